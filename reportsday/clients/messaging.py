"""
Messaging clients used to deliver daily reports.

Two providers are supported, selected by ``MESSAGING_PROVIDER``:

- whatsapp: an HTTP gateway in front of a WhatsApp session. Endpoints:
    GET  /status                  connection status
    GET  /grupos                  known groups/destinations
    POST /enviar                  {numero, mensagem}
    POST /enviar-relatorio        {jid, numero, dadosRelatorio}
    POST /enviar-relatorio-todos  {dadosRelatorio}
- slack: a Slack incoming webhook (slack-sdk WebhookClient). Structured
  reports are rendered as Block Kit blocks with a plain-text fallback.

Both clients return a DispatchResult instead of raising: success means the
provider accepted the request, nothing more. There are no retries.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx
from slack_sdk.webhook import WebhookClient

from reportsday.core.config import Settings
from reportsday.models.enums import MessagingProvider, ReportPeriod
from reportsday.models.schemas import (
    DispatchResult,
    MessagingStatus,
    OutboundMessage,
    ReportPayload,
)


logger = logging.getLogger(__name__)


# Period labels expected by the WhatsApp gateway's report template
GATEWAY_PERIOD_LABELS: Dict[ReportPeriod, str] = {
    ReportPeriod.MORNING: "Manhã",
    ReportPeriod.AFTERNOON: "Tarde",
}


class MessagingClient(ABC):
    """Interface shared by the messaging providers."""

    provider: MessagingProvider

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        ...

    @property
    def default_destination(self) -> Optional[str]:
        return None

    @abstractmethod
    async def send(self, destination: Optional[str], message: OutboundMessage) -> DispatchResult:
        ...

    @abstractmethod
    async def send_to_all(self, message: OutboundMessage) -> DispatchResult:
        ...

    @abstractmethod
    async def status(self) -> MessagingStatus:
        ...

    async def list_destinations(self) -> List[Any]:
        return []

    async def aclose(self) -> None:
        return None


def _extract_dispatch_id(data: Any) -> Optional[str]:
    """Pull a message id out of a gateway response, if it carries one."""
    if not isinstance(data, dict):
        return None
    for key in ("messageId", "id"):
        if data.get(key):
            return str(data[key])
    key_obj = data.get("key")
    if isinstance(key_obj, dict) and key_obj.get("id"):
        return str(key_obj["id"])
    return None


# =============================================================================
# WhatsApp HTTP Gateway
# =============================================================================


def build_gateway_report(report: ReportPayload) -> Dict[str, Any]:
    """Convert a ReportPayload into the gateway's ``dadosRelatorio`` object."""
    return {
        "ligacoesRecebidas": report.received,
        "ligacoesAtendidas": report.answered,
        "ligacoesAbandonadas": report.abandoned,
        "periodo": GATEWAY_PERIOD_LABELS[report.period],
        "data": report.date,
        "filas": [
            {"momento": q.moment, "quantidadePessoas": q.people}
            for q in report.queues
        ],
    }


class WhatsAppGatewayClient(MessagingClient):
    """httpx client for the WhatsApp HTTP gateway."""

    provider = MessagingProvider.WHATSAPP

    def __init__(
        self,
        base_url: Optional[str],
        destination: Optional[str],
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = (base_url or "").rstrip("/")
        self._destination = destination
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._base_url and self._destination)

    @property
    def default_destination(self) -> Optional[str]:
        return self._destination

    async def _post(self, path: str, body: Dict[str, Any], destination: Optional[str]) -> DispatchResult:
        try:
            response = await self._client.post(path, json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"WhatsApp gateway {path} returned {e.response.status_code}: {e.response.text[:200]}"
            )
            return DispatchResult(
                success=False,
                error=f"Gateway returned status {e.response.status_code}",
                destination=destination,
            )
        except httpx.HTTPError as e:
            logger.error(f"WhatsApp gateway {path} failed: {e}")
            return DispatchResult(success=False, error=str(e) or type(e).__name__, destination=destination)

        try:
            data = response.json()
        except ValueError:
            data = response.text or None

        return DispatchResult(
            success=True,
            dispatch_id=_extract_dispatch_id(data),
            destination=destination,
            data=data,
        )

    async def send(self, destination: Optional[str], message: OutboundMessage) -> DispatchResult:
        number = destination or self._destination
        if not self._base_url or not number:
            logger.warning("WhatsApp gateway not configured (WHATSAPP_API_URL / WHATSAPP_DESTINATION)")
            return DispatchResult(success=False, error="Messaging not configured", destination=number)

        if message.report is not None:
            logger.info(f"Sending report to {number}")
            body = {
                "jid": f"{number}@s.whatsapp.net",
                "numero": number,
                "dadosRelatorio": build_gateway_report(message.report),
            }
            return await self._post("/enviar-relatorio", body, number)

        logger.info(f"Sending text message to {number}")
        return await self._post("/enviar", {"numero": number, "mensagem": message.text}, number)

    async def send_to_all(self, message: OutboundMessage) -> DispatchResult:
        if not self._base_url:
            return DispatchResult(success=False, error="Messaging not configured")
        if message.report is None:
            return DispatchResult(success=False, error="Broadcast supports structured reports only")

        logger.info("Sending report to every gateway destination")
        body = {"dadosRelatorio": build_gateway_report(message.report)}
        return await self._post("/enviar-relatorio-todos", body, None)

    async def status(self) -> MessagingStatus:
        if not self._base_url:
            return MessagingStatus(
                provider=self.provider,
                configured=False,
                connected=False,
                status="not_configured",
            )
        try:
            response = await self._client.get("/status")
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            return MessagingStatus(
                provider=self.provider,
                configured=True,
                connected=False,
                status="error",
                detail=str(e) or type(e).__name__,
            )

        status = data.get("status") if isinstance(data, dict) else None
        return MessagingStatus(
            provider=self.provider,
            configured=True,
            connected=True,
            status=str(status or "connected"),
        )

    async def list_destinations(self) -> List[Any]:
        if not self._base_url:
            return []
        try:
            response = await self._client.get("/grupos")
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to list WhatsApp groups: {e}")
            return []
        return data if isinstance(data, list) else []

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


# =============================================================================
# Slack Incoming Webhook
# =============================================================================


def format_report_blocks(report: ReportPayload) -> List[Dict[str, Any]]:
    """Render a ReportPayload as Slack Block Kit blocks."""
    period = "Morning" if report.period == ReportPeriod.MORNING else "Afternoon"
    blocks: List[Dict[str, Any]] = [
        {
            "type": "header",
            "text": {
                "type": "plain_text",
                "text": f"📊 Daily Call Report - {report.date} ({period})",
                "emoji": True
            }
        },
        {"type": "divider"},
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": (
                    f"📞 Received: *{report.received:,}*\n"
                    f"✅ Answered: *{report.answered:,}*\n"
                    f"📵 Abandoned: *{report.abandoned:,}*"
                )
            }
        },
    ]

    if report.queues:
        lines = [f"• {q.moment}: {q.people:,} calls" for q in report.queues]
        blocks.append({
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": "*🕐 Peak*\n" + "\n".join(lines)
            }
        })

    return blocks


def format_report_text(report: ReportPayload) -> str:
    """Plain-text fallback for notifications that cannot show blocks."""
    return (
        f"Daily call report {report.date}: {report.received} received, "
        f"{report.answered} answered, {report.abandoned} abandoned"
    )


class SlackWebhookMessenger(MessagingClient):
    """Delivers reports through a Slack incoming webhook."""

    provider = MessagingProvider.SLACK

    def __init__(self, webhook_url: Optional[str], webhook: Optional[WebhookClient] = None) -> None:
        self._webhook_url = webhook_url
        self._webhook = webhook or (WebhookClient(webhook_url) if webhook_url else None)

    @property
    def is_configured(self) -> bool:
        return self._webhook is not None

    @property
    def default_destination(self) -> Optional[str]:
        return "slack-webhook" if self._webhook is not None else None

    async def send(self, destination: Optional[str], message: OutboundMessage) -> DispatchResult:
        if self._webhook is None:
            logger.warning("Slack webhook not configured (SLACK_WEBHOOK_URL)")
            return DispatchResult(success=False, error="Messaging not configured")

        if message.report is not None:
            kwargs = {
                "text": format_report_text(message.report),
                "blocks": format_report_blocks(message.report),
            }
        else:
            kwargs = {"text": message.text}

        # WebhookClient is blocking
        try:
            response = await asyncio.to_thread(self._webhook.send, **kwargs)
        except Exception as e:
            logger.error(f"Failed to send Slack message: {e}", exc_info=True)
            return DispatchResult(success=False, error=f"Failed to send Slack message: {e}")

        if response.status_code == 200:
            return DispatchResult(success=True, destination=self.default_destination, data=response.body)
        return DispatchResult(
            success=False,
            error=f"Slack API returned status {response.status_code}: {response.body}",
            destination=self.default_destination,
        )

    async def send_to_all(self, message: OutboundMessage) -> DispatchResult:
        # An incoming webhook posts to exactly one channel
        return await self.send(None, message)

    async def status(self) -> MessagingStatus:
        configured = self._webhook is not None
        return MessagingStatus(
            provider=self.provider,
            configured=configured,
            connected=configured,
            status="configured" if configured else "not_configured",
        )

    async def list_destinations(self) -> List[Any]:
        return [self.default_destination] if self._webhook is not None else []


def build_messaging_client(settings: Settings) -> MessagingClient:
    """Create the messaging client selected by ``settings.messaging_provider``."""
    if settings.messaging_provider == MessagingProvider.SLACK:
        return SlackWebhookMessenger(settings.slack_webhook_url)
    return WhatsAppGatewayClient(
        base_url=settings.whatsapp_api_url,
        destination=settings.whatsapp_destination,
        timeout=settings.whatsapp_timeout_seconds,
    )
