"""Unit tests for outbound webhook delivery and signing."""

import hashlib
import hmac
import json

import httpx
import pytest

from src.services.webhooks import USER_AGENT, WebhookService


def _recording_transport(status_code: int = 200):
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(status_code)

    return httpx.MockTransport(handler), captured


class TestWebhookService:
    @pytest.mark.asyncio
    async def test_skipped_without_url(self):
        assert await WebhookService().send("ride.booking_request", {"booking_id": 1}) is False

    @pytest.mark.asyncio
    async def test_envelope_and_signature(self):
        transport, captured = _recording_transport()
        service = WebhookService(
            url="https://hooks.example.com/tripsync", secret="s3cret", transport=transport
        )

        assert await service.send("taxi.booking_accepted", {"booking_id": 7}, 7) is True

        request = captured[0]
        body = request.content.decode()
        payload = json.loads(body)
        assert payload["event"] == "taxi.booking_accepted"
        assert payload["data"] == {"booking_id": 7}
        assert payload["resourceId"] == "7"
        assert "timestamp" in payload

        expected = hmac.new(b"s3cret", body.encode(), hashlib.sha256).hexdigest()
        assert request.headers["X-Webhook-Signature"] == expected
        assert request.headers["User-Agent"] == USER_AGENT

    @pytest.mark.asyncio
    async def test_unsigned_without_secret(self):
        transport, captured = _recording_transport()
        service = WebhookService(url="https://hooks.example.com", transport=transport)
        await service.send("delivery.created", {})
        assert "X-Webhook-Signature" not in captured[0].headers
        assert json.loads(captured[0].content)["resourceId"] is None

    @pytest.mark.asyncio
    async def test_non_200_is_failure(self):
        transport, _ = _recording_transport(status_code=500)
        service = WebhookService(url="https://hooks.example.com", transport=transport)
        assert await service.send("delivery.created", {}) is False

    @pytest.mark.asyncio
    async def test_transport_error_is_swallowed(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        service = WebhookService(
            url="https://hooks.example.com", transport=httpx.MockTransport(handler)
        )
        assert await service.send("delivery.created", {}) is False


class TestSignatureVerification:
    def test_unsigned_service_accepts_everything(self):
        assert WebhookService().verify_signature("{}", None)

    def test_valid_signature(self):
        service = WebhookService(secret="s3cret")
        assert service.verify_signature("{}", service.sign("{}"))

    def test_tampered_body(self):
        service = WebhookService(secret="s3cret")
        assert not service.verify_signature('{"x": 1}', service.sign("{}"))

    def test_missing_signature(self):
        assert not WebhookService(secret="s3cret").verify_signature("{}", None)
