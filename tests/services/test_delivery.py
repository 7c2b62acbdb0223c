"""Tests for the webhook delivery engine."""

import asyncio
import json
from datetime import UTC, datetime
from typing import Any, Callable, List
from unittest.mock import Mock

import httpx
import pytest

from gateway.models.webhook import (
    DeliveryStatus,
    RetryPolicy,
    WebhookConfig,
    WebhookEvent,
)
from gateway.services.delivery import (
    DeliveryEngine,
    DeliveryJob,
    backoff_delay,
    build_headers,
)
from gateway.utils.signing import verify_signature

SECRET = "whsec-delivery-test-secret"


def make_webhook(**overrides: Any) -> WebhookConfig:
    now = datetime.now(UTC)
    values = {
        "webhook_id": "wh-1",
        "owner_id": "owner-1",
        "name": "CRM",
        "url": "https://hooks.example.com/receive",
        "events": [WebhookEvent.OFFER_CREATED],
        "secret": SECRET,
        "created_at": now,
        "updated_at": now,
    }
    values.update(overrides)
    return WebhookConfig(**values)


def make_engine(handler: Callable[[httpx.Request], httpx.Response], **kwargs: Any):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DeliveryEngine(client=client, **kwargs), client


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until `predicate` holds or fail after `timeout` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not met in time")
        await asyncio.sleep(0.01)


class TestBackoff:
    """Tests for backoff_delay."""

    @pytest.mark.parametrize(
        "multiplier,attempt,expected",
        [(2.0, 1, 2.0), (2.0, 2, 4.0), (3.0, 2, 9.0), (1.5, 1, 1.5)],
    )
    def test_backoff_is_multiplier_to_the_attempt(
        self, multiplier, attempt, expected
    ) -> None:
        """Test the delay before attempt n+1."""
        assert backoff_delay(multiplier, attempt) == expected


class TestHeaders:
    """Tests for build_headers."""

    def test_protocol_headers(self) -> None:
        """Test that protocol headers carry event, id, attempt and signature."""
        headers = build_headers(
            make_webhook(), WebhookEvent.OFFER_CREATED, 2, "sha256=abc"
        )

        assert headers["Content-Type"] == "application/json"
        assert headers["X-Webhook-Signature"] == "sha256=abc"
        assert headers["X-Webhook-Event"] == "offer.created"
        assert headers["X-Webhook-ID"] == "wh-1"
        assert headers["X-Webhook-Attempt"] == "2"

    def test_custom_headers_cannot_override_protocol_headers(self) -> None:
        """Test that reserved names are dropped whatever their case."""
        webhook = make_webhook(
            headers={
                "X-Tenant": "acme",
                "x-webhook-signature": "sha256=forged",
                "CONTENT-TYPE": "text/plain",
            }
        )

        headers = build_headers(webhook, WebhookEvent.OFFER_CREATED, 1, "sha256=real")

        assert headers["X-Tenant"] == "acme"
        assert headers["X-Webhook-Signature"] == "sha256=real"
        assert headers["Content-Type"] == "application/json"
        assert "x-webhook-signature" not in headers
        assert "CONTENT-TYPE" not in headers


class TestAttempt:
    """Tests for a single delivery attempt."""

    @pytest.mark.asyncio
    async def test_successful_delivery_is_signed(self) -> None:
        """Test that the receiver can verify the exact bytes it got."""
        received: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(request)
            return httpx.Response(200)

        engine, client = make_engine(handler)
        job = DeliveryJob(
            webhook=make_webhook(headers={"X-Tenant": "acme"}),
            event=WebhookEvent.OFFER_CREATED,
            data={"id": "o-1", "amount": 250000},
        )

        result = await engine.attempt(job)
        await client.aclose()

        assert result.status == DeliveryStatus.SENT
        assert result.status_code == 200
        request = received[0]
        assert request.method == "POST"
        assert str(request.url) == "https://hooks.example.com/receive"
        assert verify_signature(
            request.content, request.headers["X-Webhook-Signature"], SECRET
        )
        assert request.headers["X-Webhook-Signature"] == result.signature
        assert request.headers["X-Tenant"] == "acme"

        body = json.loads(request.content)
        assert body["event"] == "offer.created"
        assert body["data"] == {"id": "o-1", "amount": 250000}
        assert body["webhookId"] == "wh-1"
        assert body["attempt"] == 1
        assert "timestamp" in body

    @pytest.mark.asyncio
    async def test_non_2xx_is_retryable_with_backoff(self) -> None:
        """Test that a 500 on the first attempt schedules attempt two."""
        engine, client = make_engine(lambda request: httpx.Response(500))
        job = DeliveryJob(
            webhook=make_webhook(), event=WebhookEvent.OFFER_CREATED, data={}
        )

        result = await engine.attempt(job)
        await client.aclose()

        assert result.status == DeliveryStatus.FAILED_RETRYABLE
        assert result.status_code == 500
        assert result.error == "HTTP 500"
        assert result.retry_in_seconds == 2.0

    @pytest.mark.asyncio
    async def test_last_attempt_is_terminal(self) -> None:
        """Test that failing attempt max_retries gives up."""
        engine, client = make_engine(lambda request: httpx.Response(404))
        job = DeliveryJob(
            webhook=make_webhook(), event=WebhookEvent.OFFER_CREATED, data={}, attempt=3
        )

        result = await engine.attempt(job)
        await client.aclose()

        assert result.status == DeliveryStatus.FAILED_TERMINAL
        assert result.retry_in_seconds is None

    @pytest.mark.asyncio
    async def test_timeout_is_a_failure(self) -> None:
        """Test that transport timeouts are treated as failed attempts."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        engine, client = make_engine(handler)
        job = DeliveryJob(
            webhook=make_webhook(), event=WebhookEvent.OFFER_CREATED, data={}
        )

        result = await engine.attempt(job)
        await client.aclose()

        assert result.status == DeliveryStatus.FAILED_RETRYABLE
        assert result.status_code is None
        assert result.error.startswith("ConnectTimeout")


class TestRetries:
    """Tests for retry scheduling."""

    @pytest.mark.asyncio
    async def test_retry_delays_follow_policy(self) -> None:
        """Test total attempts and delays for max_retries=3, multiplier=2."""
        engine, client = make_engine(lambda request: httpx.Response(503))
        engine.schedule_retry = Mock()
        job = DeliveryJob(
            webhook=make_webhook(
                retry_policy=RetryPolicy(max_retries=3, backoff_multiplier=2.0)
            ),
            event=WebhookEvent.OFFER_CREATED,
            data={},
        )

        statuses = []
        while job is not None:
            statuses.append((await engine.process(job)).status)
            if engine.schedule_retry.call_count >= len(statuses):
                job = engine.schedule_retry.call_args[0][0]
            else:
                job = None
        await client.aclose()

        assert statuses == [
            DeliveryStatus.FAILED_RETRYABLE,
            DeliveryStatus.FAILED_RETRYABLE,
            DeliveryStatus.FAILED_TERMINAL,
        ]
        delays = [c.args[1] for c in engine.schedule_retry.call_args_list]
        attempts = [c.args[0].attempt for c in engine.schedule_retry.call_args_list]
        assert delays == [2.0, 4.0]
        assert attempts == [2, 3]
        assert engine.retried == 2
        assert engine.abandoned == 1
        assert engine.sent == 0

    @pytest.mark.asyncio
    async def test_engine_retries_until_success(self) -> None:
        """Test a full run through the queue, workers and scheduler."""
        attempts: List[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request.headers["X-Webhook-Attempt"])
            return httpx.Response(200 if len(attempts) == 3 else 502)

        engine, client = make_engine(handler, workers=1)
        webhook = make_webhook(
            retry_policy=RetryPolicy(max_retries=5, backoff_multiplier=0.01)
        )

        await engine.start()
        try:
            assert await engine.enqueue(
                DeliveryJob(webhook=webhook, event=WebhookEvent.OFFER_CREATED, data={})
            )
            await wait_until(lambda: engine.sent == 1)
        finally:
            await engine.stop()
        await client.aclose()

        assert attempts == ["1", "2", "3"]
        assert engine.retried == 2
        assert engine.pending_retries == 0


class TestLifecycle:
    """Tests for start/stop behaviour."""

    @pytest.mark.asyncio
    async def test_enqueue_before_start_is_dropped(self) -> None:
        """Test that a stopped engine refuses jobs."""
        engine, client = make_engine(lambda request: httpx.Response(200))
        job = DeliveryJob(
            webhook=make_webhook(), event=WebhookEvent.OFFER_CREATED, data={}
        )

        assert await engine.enqueue(job) is False
        assert engine.queue_depth == 0
        await client.aclose()

    @pytest.mark.asyncio
    async def test_stop_discards_pending_retries(self) -> None:
        """Test that no delivery happens after stop."""
        calls: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(500)

        engine, client = make_engine(handler, workers=1)
        webhook = make_webhook(
            retry_policy=RetryPolicy(max_retries=3, backoff_multiplier=30.0)
        )

        await engine.start()
        await engine.enqueue(
            DeliveryJob(webhook=webhook, event=WebhookEvent.OFFER_CREATED, data={})
        )
        await wait_until(lambda: engine.pending_retries == 1)
        await engine.stop()

        assert engine.running is False
        assert engine.pending_retries == 0
        assert len(calls) == 1
        assert await engine.enqueue(
            DeliveryJob(webhook=webhook, event=WebhookEvent.OFFER_CREATED, data={})
        ) is False
        # An injected client belongs to the caller
        assert client.is_closed is False
        await client.aclose()

    @pytest.mark.asyncio
    async def test_stats(self) -> None:
        """Test the stats snapshot shape."""
        engine, client = make_engine(lambda request: httpx.Response(200))
        assert engine.stats() == {
            "queued": 0,
            "pending_retries": 0,
            "sent": 0,
            "retried": 0,
            "abandoned": 0,
        }
        await client.aclose()
