"""Request dispatcher: authenticate, rate limit, authorize, handle, emit."""

import asyncio
import time
import uuid
from typing import Any, List, Optional, Set, Tuple

from gateway.auth.credential_store import CredentialStore
from gateway.auth.permissions import has_permission, resolve_operation
from gateway.config import settings
from gateway.exceptions import (
    GatewayError,
    InsufficientPermissionsError,
    InternalError,
    InvalidApiKeyError,
    RateLimitExceededError,
)
from gateway.logging.config import get_logger
from gateway.middleware.rate_limit import RateLimiter
from gateway.models.rate_limit import RateLimitResult
from gateway.models.webhook import WebhookEvent
from gateway.schemas.api import ApiError, ApiRequest, ApiResponse, ResponseMeta
from gateway.services.handlers import HandlerContext, ResourceHandlers
from gateway.services.webhook_service import WebhookRegistry

logger = get_logger(__name__)


class RequestDispatcher:
    """
    Runs one inbound request through the gateway pipeline.

    Order is fixed: key validation, rate limiting, authorization, handler,
    event emission. A failing step short-circuits everything after it.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        rate_limiter: RateLimiter,
        handlers: ResourceHandlers,
        registry: WebhookRegistry,
    ) -> None:
        self.credentials = credentials
        self.rate_limiter = rate_limiter
        self.handlers = handlers
        self.registry = registry
        self._emit_tasks: Set[asyncio.Task] = set()

    async def dispatch(
        self, request: ApiRequest, request_id: Optional[str] = None
    ) -> ApiResponse:
        """
        Process a request into an ApiResponse; never raises.

        Args:
            request: Inbound request
            request_id: Correlation id (generated when absent)

        Returns:
            ApiResponse with `meta` always set
        """
        started = time.perf_counter()
        meta = ResponseMeta(request_id=request_id or str(uuid.uuid4()))
        key_id = None

        try:
            api_key = await self.credentials.validate(request.api_key)
            if api_key is None:
                raise InvalidApiKeyError()
            key_id = api_key.key_id

            limit = self.rate_limiter.check(api_key, request.method, request.path)
            self._apply_rate_limit(meta, limit)
            if not limit.allowed:
                raise RateLimitExceededError(
                    message=f"Rate limit exceeded for {limit.rule_key}",
                    retry_after=limit.retry_after or 1,
                    details={"limit": limit.limit, "tier": str(limit.tier)},
                )

            operation = resolve_operation(request.method, request.path)
            if not has_permission(api_key, operation.resource, operation.action):
                raise InsufficientPermissionsError(
                    resource=operation.resource, action=operation.action
                )

            result = await self.handlers.handle(
                HandlerContext(
                    owner_id=api_key.owner_id,
                    api_key=api_key,
                    operation=operation,
                    body=request.body,
                    query=request.query or {},
                    request_id=meta.request_id,
                )
            )
            if result.events:
                self._emit(result.events, api_key.owner_id)

            response = ApiResponse(
                success=True, data=result.data, meta=meta, created=result.created
            )
        except GatewayError as e:
            response = self._error_response(e, meta)
        except Exception as e:
            logger.error(
                "Unhandled error in resource handler",
                extra={
                    "context": {
                        "request_id": meta.request_id,
                        "method": request.method,
                        "path": request.path,
                        "error_type": type(e).__name__,
                    }
                },
                exc_info=True,
            )
            details = (
                None
                if settings.is_production
                else {"error": str(e), "type": type(e).__name__}
            )
            response = self._error_response(InternalError(details=details), meta)

        response.key_id = key_id
        meta.processing_time_ms = round((time.perf_counter() - started) * 1000, 3)
        logger.debug(
            "Request dispatched",
            extra={
                "context": {
                    "request_id": meta.request_id,
                    "key_id": key_id,
                    "method": request.method,
                    "path": request.path,
                    "success": response.success,
                    "error_code": response.error_code,
                }
            },
        )
        return response

    async def aclose(self) -> None:
        """Wait for in-flight event emissions."""
        if self._emit_tasks:
            await asyncio.gather(*self._emit_tasks, return_exceptions=True)

    @staticmethod
    def _apply_rate_limit(meta: ResponseMeta, limit: RateLimitResult) -> None:
        meta.rate_limit_remaining = limit.remaining
        meta.rate_limit_reset = limit.reset_time
        meta.rate_limit_limit = limit.limit

    @staticmethod
    def _error_response(error: GatewayError, meta: ResponseMeta) -> ApiResponse:
        return ApiResponse(
            success=False,
            error=ApiError(
                code=error.error_code,
                message=error.message,
                details=error.details or None,
            ),
            meta=meta,
        )

    def _emit(self, events: List[Tuple[WebhookEvent, Any]], owner_id: str) -> None:
        task = asyncio.create_task(self._emit_all(events, owner_id))
        self._emit_tasks.add(task)
        task.add_done_callback(self._emit_tasks.discard)

    async def _emit_all(
        self, events: List[Tuple[WebhookEvent, Any]], owner_id: str
    ) -> None:
        for event, data in events:
            try:
                await self.registry.trigger(event, data, owner_id)
            except Exception:
                logger.exception(
                    "Failed to emit domain event",
                    extra={"context": {"event": event, "owner_id": owner_id}},
                )
