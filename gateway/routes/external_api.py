"""External API endpoint: every /api/v1 call goes through the dispatcher."""

import json
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from gateway.auth.dependencies import get_presented_api_key, get_services
from gateway.config import settings
from gateway.exceptions import (
    InvalidRequestError,
    RequestTooLargeError,
    status_for_code,
)
from gateway.schemas.api import ApiRequest, ApiResponse

router = APIRouter(prefix="/api/v1", tags=["Gateway"])

# Credentials are passed separately and never forwarded to handlers
_CREDENTIAL_HEADERS = {"authorization", "x-api-key", "x-admin-token"}


async def _read_json_body(request: Request) -> Any:
    raw = await request.body()
    if len(raw) > settings.max_request_size_bytes:
        raise RequestTooLargeError(
            max_size=f"{settings.max_request_size_bytes // 1024}KB"
        )
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidRequestError(message="Request body is not valid JSON")


def _to_http(response: ApiResponse) -> JSONResponse:
    if response.error is not None:
        status_code = status_for_code(response.error.code)
    else:
        status_code = 201 if response.created else 200

    meta = response.meta
    headers = {"X-Request-ID": meta.request_id}
    if meta.rate_limit_limit is not None:
        headers["X-RateLimit-Limit"] = str(meta.rate_limit_limit)
        headers["X-RateLimit-Remaining"] = str(meta.rate_limit_remaining)
        headers["X-RateLimit-Reset"] = str(int(meta.rate_limit_reset.timestamp()))
    if response.error is not None and response.error.details:
        retry_after = response.error.details.get("retryAfter")
        if retry_after is not None:
            headers["Retry-After"] = str(retry_after)

    return JSONResponse(
        status_code=status_code, content=response.to_wire(), headers=headers
    )


@router.api_route(
    "/{path:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    summary="External API",
    description=(
        "Authenticated, rate-limited access to owner-scoped resources. "
        "Send the key as `Authorization: Bearer <key>` or `X-API-Key`."
    ),
)
async def gateway_request(
    path: str,
    request: Request,
    api_key: str = Depends(get_presented_api_key),
) -> JSONResponse:
    """
    Run one request through the gateway pipeline.

    Args:
        path: Resource path below /api/v1
        request: FastAPI request
        api_key: Presented credential ("" if none)

    Returns:
        JSONResponse carrying the ApiResponse envelope
    """
    api_request = ApiRequest(
        method=request.method,
        path=f"/{path}",
        headers={
            k: v
            for k, v in request.headers.items()
            if k.lower() not in _CREDENTIAL_HEADERS
        },
        query=dict(request.query_params) or None,
        body=await _read_json_body(request),
        api_key=api_key,
    )

    services = get_services(request)
    response = await services.dispatcher.dispatch(
        api_request, request_id=getattr(request.state, "correlation_id", None)
    )
    request.state.api_key_id = response.key_id
    return _to_http(response)
