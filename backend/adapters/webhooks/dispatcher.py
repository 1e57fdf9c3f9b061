"""
Outbound webhook delivery for agency integrations.

Endpoints are loaded inside the request's database session; delivery runs
afterwards as a background task with plain data only, so it never touches
the session.
"""

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from infrastructure.database.models.integration import WebhookEndpoint

logger = logging.getLogger(__name__)

DELIVERY_TIMEOUT = 10.0
USER_AGENT = "RecipeRank-Webhooks/1.0"


@dataclass(frozen=True)
class WebhookTarget:
    endpoint_id: str
    url: str
    secret: str


def sign_payload(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


async def load_webhook_targets(db: AsyncSession, user_id: str, event: str) -> list[WebhookTarget]:
    """Active endpoints of ``user_id`` subscribed to ``event``."""
    result = await db.execute(
        select(WebhookEndpoint).where(
            WebhookEndpoint.user_id == user_id,
            WebhookEndpoint.is_active.is_(True),
        )
    )
    return [
        WebhookTarget(endpoint_id=endpoint.id, url=endpoint.url, secret=endpoint.secret)
        for endpoint in result.scalars().all()
        if endpoint.subscribes_to(event)
    ]


async def deliver_event(
    targets: list[WebhookTarget],
    event: str,
    data: dict[str, Any],
    client: Optional[httpx.AsyncClient] = None,
) -> int:
    """
    POST a signed event to every target.

    Failures are logged and never raised. Returns the number of deliveries
    answered with a 2xx status.
    """
    if not targets:
        return 0

    body = json.dumps(
        {
            "event": event,
            "created_at": datetime.now(UTC).isoformat(),
            "data": data,
        },
        default=str,
    ).encode("utf-8")

    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=DELIVERY_TIMEOUT)
    delivered = 0
    try:
        for target in targets:
            headers = {
                "Content-Type": "application/json",
                "User-Agent": USER_AGENT,
                "X-RecipeRank-Event": event,
                "X-RecipeRank-Signature": sign_payload(body, target.secret),
            }
            try:
                response = await client.post(target.url, content=body, headers=headers)
                if response.is_success:
                    delivered += 1
                else:
                    logger.warning(
                        "Webhook %s to endpoint %s answered %d",
                        event, target.endpoint_id, response.status_code,
                    )
            except httpx.HTTPError as e:
                logger.warning("Webhook %s to endpoint %s failed: %s", event, target.endpoint_id, e)
    finally:
        if owns_client:
            await client.aclose()
    return delivered
