"""
Outbound HTTP clients for the ReportsDAY service.

- metrics_client: PBX metrics report API (httpx)
- messaging: report delivery via the WhatsApp gateway (httpx) or a Slack
  incoming webhook (slack-sdk)
"""

from reportsday.clients.metrics_client import (
    MetricsClient,
    MetricsFilters,
    format_date_for_api,
)
from reportsday.clients.messaging import (
    MessagingClient,
    WhatsAppGatewayClient,
    SlackWebhookMessenger,
    build_messaging_client,
)


__all__ = [
    'MetricsClient',
    'MetricsFilters',
    'format_date_for_api',
    'MessagingClient',
    'WhatsAppGatewayClient',
    'SlackWebhookMessenger',
    'build_messaging_client',
]
