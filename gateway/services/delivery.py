"""Signed webhook delivery with a bounded queue, worker pool and retry scheduler."""

import asyncio
import heapq
import itertools
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional, Tuple

import httpx

from gateway.config import settings
from gateway.logging.config import get_logger
from gateway.models.webhook import (
    DeliveryAttempt,
    DeliveryStatus,
    WebhookConfig,
    WebhookEvent,
    WebhookPayload,
)
from gateway.utils.signing import compute_signature

logger = get_logger(__name__)

PROTOCOL_HEADERS = (
    "Content-Type",
    "X-Webhook-Signature",
    "X-Webhook-Event",
    "X-Webhook-ID",
    "X-Webhook-Attempt",
)


@dataclass(frozen=True)
class DeliveryJob:
    """One pending delivery of an event to a webhook."""

    webhook: WebhookConfig
    event: WebhookEvent
    data: Any
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    attempt: int = 1

    def payload(self) -> WebhookPayload:
        return WebhookPayload(
            event=self.event,
            data=self.data,
            timestamp=self.timestamp,
            webhook_id=self.webhook.webhook_id,
            attempt=self.attempt,
        )

    def next_attempt(self) -> "DeliveryJob":
        return replace(self, attempt=self.attempt + 1)


def backoff_delay(multiplier: float, attempt: int) -> float:
    """Seconds to wait after failed attempt `attempt` (1-based)."""
    return float(multiplier**attempt)


def build_headers(
    webhook: WebhookConfig, event: WebhookEvent, attempt: int, signature: str
) -> Dict[str, str]:
    """
    Build delivery headers.

    Custom headers are applied first and may not replace protocol headers,
    whatever their case.
    """
    reserved = {name.lower() for name in PROTOCOL_HEADERS}
    headers = {
        name: value
        for name, value in (webhook.headers or {}).items()
        if name.lower() not in reserved
    }
    headers.update(
        {
            "Content-Type": "application/json",
            "X-Webhook-Signature": signature,
            "X-Webhook-Event": str(event),
            "X-Webhook-ID": webhook.webhook_id,
            "X-Webhook-Attempt": str(attempt),
        }
    )
    return headers


class DeliveryEngine:
    """
    Delivers webhook payloads outside the request path.

    Jobs go through a bounded queue consumed by a pool of workers; `enqueue`
    waits for free space. Failed deliveries are pushed onto a min-heap of
    due times drained by a single scheduler task.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        queue_size: Optional[int] = None,
        workers: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        connect_timeout_seconds: Optional[float] = None,
    ) -> None:
        """
        Initialize the engine.

        Args:
            client: HTTP client to use; one is created on start() otherwise
            queue_size: Maximum queued jobs before enqueue blocks
            workers: Number of concurrent delivery workers
            timeout_seconds: Response timeout per attempt
            connect_timeout_seconds: Connect timeout per attempt
        """
        self._client = client
        self._owns_client = client is None
        self._queue_size = queue_size or settings.webhook_queue_size
        self._worker_count = workers or settings.webhook_workers
        self._timeout = httpx.Timeout(
            timeout_seconds or settings.webhook_timeout_seconds,
            connect=connect_timeout_seconds or settings.webhook_connect_timeout_seconds,
        )

        self._queue: asyncio.Queue[DeliveryJob] = asyncio.Queue(
            maxsize=self._queue_size
        )
        self._retry_heap: List[Tuple[float, int, DeliveryJob]] = []
        self._sequence = itertools.count()
        self._wakeup = asyncio.Event()
        self._tasks: List[asyncio.Task] = []
        self._running = False

        self.sent = 0
        self.retried = 0
        self.abandoned = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def queue_depth(self) -> int:
        return self._queue.qsize()

    @property
    def pending_retries(self) -> int:
        return len(self._retry_heap)

    def stats(self) -> Dict[str, int]:
        """Delivery counters for status reporting."""
        return {
            "queued": self.queue_depth,
            "pending_retries": self.pending_retries,
            "sent": self.sent,
            "retried": self.retried,
            "abandoned": self.abandoned,
        }

    async def start(self) -> None:
        """Start the worker pool and the retry scheduler."""
        if self._running:
            return
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True
        self._running = True
        self._tasks = [
            asyncio.create_task(self._worker(index))
            for index in range(self._worker_count)
        ]
        self._tasks.append(asyncio.create_task(self._scheduler()))
        logger.info(
            "Webhook delivery engine started",
            extra={"context": {"workers": self._worker_count}},
        )

    async def stop(self) -> None:
        """Cancel workers and scheduler; nothing is delivered afterwards."""
        self._running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        dropped = self._queue.qsize() + len(self._retry_heap)
        self._retry_heap.clear()
        while not self._queue.empty():
            self._queue.get_nowait()
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info(
            "Webhook delivery engine stopped",
            extra={"context": {"dropped_deliveries": dropped}},
        )

    async def enqueue(self, job: DeliveryJob) -> bool:
        """
        Queue a delivery, waiting while the queue is full.

        Returns:
            False if the engine is not running and the job was dropped
        """
        if not self._running:
            logger.warning(
                "Delivery engine not running, dropping delivery",
                extra={
                    "context": {
                        "webhook_id": job.webhook.webhook_id,
                        "event": job.event,
                    }
                },
            )
            return False
        await self._queue.put(job)
        return True

    def schedule_retry(self, job: DeliveryJob, delay: float) -> None:
        """Make `job` due for delivery after `delay` seconds."""
        if not self._running:
            logger.warning(
                "Delivery engine not running, dropping retry",
                extra={"context": {"webhook_id": job.webhook.webhook_id}},
            )
            return
        due = asyncio.get_running_loop().time() + delay
        heapq.heappush(self._retry_heap, (due, next(self._sequence), job))
        self._wakeup.set()

    async def process(self, job: DeliveryJob) -> DeliveryAttempt:
        """Attempt one delivery and schedule a retry or give up."""
        result = await self.attempt(job)
        context = {
            "webhook_id": job.webhook.webhook_id,
            "event": job.event,
            "attempt": job.attempt,
            "status_code": result.status_code,
        }

        if result.status == DeliveryStatus.SENT:
            self.sent += 1
            logger.info("Webhook delivered", extra={"context": context})
        elif result.status == DeliveryStatus.FAILED_RETRYABLE:
            self.retried += 1
            logger.warning(
                "Webhook delivery failed, retry scheduled",
                extra={
                    "context": {
                        **context,
                        "error": result.error,
                        "retry_in_seconds": result.retry_in_seconds,
                    }
                },
            )
            self.schedule_retry(job.next_attempt(), result.retry_in_seconds or 0.0)
        else:
            self.abandoned += 1
            logger.error(
                "Webhook delivery abandoned",
                extra={"context": {**context, "error": result.error}},
            )
        return result

    async def attempt(self, job: DeliveryJob) -> DeliveryAttempt:
        """
        POST a signed payload once.

        Non-2xx responses, timeouts and transport errors are failures. The
        failure is retryable while `attempt < max_retries`.
        """
        body = job.payload().to_body()
        signature = compute_signature(body, job.webhook.secret)
        headers = build_headers(job.webhook, job.event, job.attempt, signature)

        status_code: Optional[int] = None
        error: Optional[str] = None
        try:
            response = await self._client.post(
                job.webhook.url, content=body, headers=headers, timeout=self._timeout
            )
            status_code = response.status_code
            if not response.is_success:
                error = f"HTTP {status_code}"
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            error = f"{type(e).__name__}: {e}"

        record = DeliveryAttempt(
            webhook_id=job.webhook.webhook_id,
            event=job.event,
            attempt=job.attempt,
            timestamp=datetime.now(UTC),
            signature=signature,
            status_code=status_code,
            error=error,
        )
        if error is None:
            record.status = DeliveryStatus.SENT
        elif job.attempt < job.webhook.retry_policy.max_retries:
            record.status = DeliveryStatus.FAILED_RETRYABLE
            record.retry_in_seconds = backoff_delay(
                job.webhook.retry_policy.backoff_multiplier, job.attempt
            )
        else:
            record.status = DeliveryStatus.FAILED_TERMINAL
        return record

    async def _worker(self, index: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self.process(job)
            except Exception:
                logger.exception(
                    "Unexpected error in delivery worker",
                    extra={
                        "context": {
                            "worker": index,
                            "webhook_id": job.webhook.webhook_id,
                        }
                    },
                )
            finally:
                self._queue.task_done()

    async def _scheduler(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            self._wakeup.clear()
            while self._retry_heap and self._retry_heap[0][0] <= loop.time():
                _, _, job = heapq.heappop(self._retry_heap)
                await self._queue.put(job)
            timeout = (
                max(0.0, self._retry_heap[0][0] - loop.time())
                if self._retry_heap
                else None
            )
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout)
            except TimeoutError:
                pass
