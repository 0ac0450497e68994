"""
FastAPI router module for the PBX call webhook.

Implements POST and PUT /webhook/pbx (some PBX setups only send PUT).

The request must carry the shared token in a ``token`` header or in
``Authorization`` (optionally as "Bearer <token>"). It is compared with
WEBHOOK_TOKEN, or with the metrics API token when no dedicated webhook token
is configured.

The body is a single call object, a list of calls, or {"calls": [...]}.
Every call is normalized, appended to today's day cache and announced to
live viewers as a ``new_call`` event.
"""

import hmac
import logging
from typing import Any, List, Optional

from fastapi import APIRouter, Body, Header, HTTPException
from pydantic import BaseModel, Field

from reportsday.core.dependencies import RuntimeDep
from reportsday.models.enums import CallCategory
from reportsday.services.ingestion import normalize_webhook_payload


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhook"])


class IngestedCall(BaseModel):
    call_id: Optional[str] = None
    category: CallCategory


class WebhookResponse(BaseModel):
    success: bool = True
    received: int = Field(..., ge=0, description="Calls found in the payload")
    stored: int = Field(..., ge=0, description="Calls written to the day cache")
    calls: List[IngestedCall] = Field(default_factory=list)


def extract_token(token: Optional[str], authorization: Optional[str]) -> Optional[str]:
    value = token or authorization
    if value and value.lower().startswith("bearer "):
        value = value[7:]
    return value.strip() if value else None


def token_matches(received: Optional[str], expected: Optional[str]) -> bool:
    if not received or not expected:
        return False
    return hmac.compare_digest(received.encode("utf-8"), expected.encode("utf-8"))


@router.api_route("/pbx", methods=["POST", "PUT"], response_model=WebhookResponse)
async def receive_pbx_webhook(
    runtime: RuntimeDep,
    payload: Any = Body(...),
    token: Optional[str] = Header(default=None),
    authorization: Optional[str] = Header(default=None),
) -> WebhookResponse:
    """
    Ingest calls pushed by the PBX.

    Raises:
        HTTPException 401: If the token is missing or wrong
        HTTPException 400: If the payload holds no call objects
    """
    settings = runtime.settings
    expected = settings.webhook_token or settings.metrics_api_token
    if not token_matches(extract_token(token, authorization), expected):
        logger.warning("Webhook: invalid token received")
        raise HTTPException(status_code=401, detail="Invalid token")

    try:
        records = normalize_webhook_payload(payload, runtime.tz)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    stored = 0
    for record in records:
        if await runtime.cache.add_call(record):
            stored += 1
        runtime.broadcaster.new_call(record)

    logger.info(f"Webhook: {len(records)} calls received, {stored} stored")

    return WebhookResponse(
        received=len(records),
        stored=stored,
        calls=[IngestedCall(call_id=r.call_id, category=r.category) for r in records],
    )
