"""
Outbound webhooks.

Every lifecycle event of interest to integrators is POSTed as
``{event, data, timestamp, resourceId}`` to the configured endpoint.  When a
secret is configured the body is signed with HMAC-SHA256 and the hex digest
travels in ``X-Webhook-Signature``.

Delivery is fire-and-forget: failures are logged and swallowed so that a
slow or broken integrator never rolls back a booking.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from typing import Any, Optional

import httpx
from fastapi.encoders import jsonable_encoder

from src.config import settings
from src.infrastructure.database import utcnow

logger = logging.getLogger(__name__)

USER_AGENT = "TripSync-Webhook/1.0"


class WebhookService:
    def __init__(
        self,
        url: Optional[str] = None,
        secret: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.secret = secret
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "WebhookService":
        return cls(
            url=settings.webhook_url,
            secret=settings.webhook_secret,
            timeout=settings.webhook_timeout_seconds,
        )

    def sign(self, body: str) -> str:
        return hmac.new(
            (self.secret or "").encode(), body.encode(), hashlib.sha256
        ).hexdigest()

    def verify_signature(self, body: str, signature: Optional[str]) -> bool:
        """Accept everything when unsigned; otherwise compare in constant time."""
        if not self.secret:
            return True
        if not signature:
            return False
        return hmac.compare_digest(self.sign(body), signature)

    async def send(
        self, event: str, data: dict[str, Any], resource_id: Any = None
    ) -> bool:
        if not self.url:
            logger.warning("Webhook URL not configured, skipping %s", event)
            return False

        body = json.dumps(
            {
                "event": event,
                "data": jsonable_encoder(data),
                "timestamp": utcnow().isoformat(),
                "resourceId": str(resource_id) if resource_id is not None else None,
            }
        )
        headers = {"Content-Type": "application/json", "User-Agent": USER_AGENT}
        if self.secret:
            headers["X-Webhook-Signature"] = self.sign(body)

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(self.url, content=body, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("Webhook %s failed: %s", event, exc)
            return False

        if response.status_code != 200:
            logger.error(
                "Webhook %s rejected with status %d", event, response.status_code
            )
            return False

        logger.info("Webhook %s delivered", event)
        return True
