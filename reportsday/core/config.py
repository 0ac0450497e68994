"""
Settings and environment management module for the ReportsDAY service.

This module provides centralized configuration management using pydantic-settings,
which automatically loads settings from environment variables and .env files.

Key Features:
- Environment variable validation and type coercion
- Sensible defaults for development
- Singleton pattern via @lru_cache for efficient access
- Optional messaging credentials (WhatsApp gateway or Slack webhook)

Environment Variables:
- METRICS_API_URL / METRICS_API_TOKEN: PBX reporting API endpoint and token
- MESSAGING_PROVIDER: 'whatsapp' (HTTP gateway) or 'slack' (incoming webhook)
- WHATSAPP_API_URL / WHATSAPP_DESTINATION: Gateway URL and report destination
- SLACK_WEBHOOK_URL: Slack incoming webhook for report delivery
- REPORT_TIMES: Comma-separated daily report times (default: "18:00")
- TIMEZONE: IANA time zone used for day boundaries (default: America/Sao_Paulo)
- WEBHOOK_TOKEN: Shared token expected on inbound PBX webhooks
- CACHE_DIR: Directory holding the per-day JSON call cache

Usage:
    from reportsday.core.config import get_settings

    settings = get_settings()
    times = settings.schedule_times
"""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from reportsday.models.enums import MessagingProvider


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        metrics_api_url: Base URL of the PBX metrics report endpoint.
        metrics_api_token: Token sent in the ``key``/``Chave`` headers.
        metrics_timezone_offset: Offset path segment expected by the provider.
        metrics_timeout_seconds: Timeout applied to every metrics request.
        messaging_provider: Which messaging backend delivers reports.
        whatsapp_api_url: Base URL of the WhatsApp HTTP gateway.
        whatsapp_destination: Phone number receiving the daily report.
        slack_webhook_url: Slack incoming webhook URL (slack provider only).
        report_times: Comma-separated "HH:MM" daily report times.
        timezone: IANA zone that defines "today" for KPI windows.
        history_days: Size of the rolling baseline window.
        cache_dir: Directory of the per-day call cache.
        cache_ttl_seconds: Sliding TTL applied to each day on every write.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=False,
    )

    # =========================================================================
    # Metrics API (PBX reporting provider)
    # =========================================================================

    metrics_api_url: str = 'https://reportapi02.55pbx.com:50500/api/pbx/reports/metrics'
    metrics_api_token: str = ''

    # Timezone segment appended to every report URL and the offset printed in
    # the provider's date strings ("GMT -0300")
    metrics_timezone_offset: str = '-3'

    metrics_queue: str = 'all_queues'
    metrics_number: str = 'all_numbers'
    metrics_agent: str = 'all_agent'
    metrics_report: str = 'report_01'
    metrics_quiz_id: str = 'undefined'

    metrics_timeout_seconds: float = 30.0

    # =========================================================================
    # Messaging (report delivery)
    # =========================================================================

    messaging_provider: MessagingProvider = MessagingProvider.WHATSAPP

    whatsapp_api_url: Optional[str] = None
    whatsapp_destination: Optional[str] = None

    # The gateway is hosted on a platform that sleeps when idle; 60s lets it wake up
    whatsapp_timeout_seconds: float = 60.0

    slack_webhook_url: Optional[str] = None

    # =========================================================================
    # Scheduling and analysis
    # =========================================================================

    report_times: str = '18:00'
    timezone: str = 'America/Sao_Paulo'

    history_days: int = 15
    history_request_pause_seconds: float = 0.3
    followup_delay_seconds: float = 2.0
    execution_history_limit: int = 50

    # =========================================================================
    # Day cache
    # =========================================================================

    cache_dir: str = 'DB.Reports'

    # 25 hours
    cache_ttl_seconds: int = 90000

    # =========================================================================
    # HTTP / live viewers
    # =========================================================================

    webhook_token: Optional[str] = None
    viewer_queue_size: int = 100
    host: str = '0.0.0.0'
    port: int = 3005
    cors_origins: List[str] = ['*']
    log_level: str = 'INFO'

    @property
    def schedule_times(self) -> List[str]:
        """Configured report times as a list, e.g. ``["09:00", "18:00"]``."""
        return [t.strip() for t in self.report_times.split(',') if t.strip()]


@lru_cache()
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Returns:
        Settings: The cached settings instance.

    Note:
        To refresh settings in tests, clear the cache:
        >>> get_settings.cache_clear()
    """
    return Settings()
