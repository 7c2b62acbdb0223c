"""Admin routes for key management, rate-limit stats and internal events.

Every route requires the `X-Admin-Token` header; the API is disabled when
no admin token is configured.
"""

from typing import List

from fastapi import APIRouter, Depends, Query, Request, status

from gateway.auth.dependencies import get_services, require_admin_token
from gateway.models.api_key import ApiKeyView
from gateway.models.rate_limit import RateLimitStats
from gateway.schemas.admin import EmitEventRequest, EmitEventResponse, IssueKeyRequest

router = APIRouter(
    prefix="/admin", tags=["Admin"], dependencies=[Depends(require_admin_token)]
)


@router.post(
    "/api-keys",
    response_model=ApiKeyView,
    status_code=status.HTTP_201_CREATED,
    summary="Issue API key",
    description="Create a key; the plaintext is returned only in this response.",
)
async def issue_api_key(body: IssueKeyRequest, request: Request) -> ApiKeyView:
    """Issue a new API key."""
    store = get_services(request).credentials
    return await store.issue(
        owner_id=body.owner_id,
        name=body.name,
        permissions=body.permissions,
        rate_ceiling=body.rate_ceiling,
        expires_at=body.expires_at,
    )


@router.get(
    "/api-keys",
    response_model=List[ApiKeyView],
    summary="List API keys",
)
async def list_api_keys(
    request: Request, owner_id: str = Query(..., min_length=1)
) -> List[ApiKeyView]:
    """List an owner's keys with secrets redacted."""
    return await get_services(request).credentials.list(owner_id)


@router.delete(
    "/api-keys/{key_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revoke API key",
)
async def revoke_api_key(
    key_id: str, request: Request, owner_id: str = Query(..., min_length=1)
) -> None:
    """Revoke a key; cached validations stop working immediately."""
    await get_services(request).credentials.revoke(key_id, owner_id)


@router.get(
    "/rate-limits/stats",
    response_model=RateLimitStats,
    summary="Rate limiting statistics",
)
async def rate_limit_stats(request: Request) -> RateLimitStats:
    """Totals, active counters and the most limited endpoints."""
    return get_services(request).rate_limiter.stats()


@router.post(
    "/events",
    response_model=EmitEventResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Emit internal domain event",
)
async def emit_event(body: EmitEventRequest, request: Request) -> EmitEventResponse:
    """Fan an event raised by another internal service out to webhooks."""
    deliveries = await get_services(request).registry.trigger(
        body.event, body.data, body.owner_id
    )
    return EmitEventResponse(event=body.event, deliveries=deliveries)
