"""Fixtures running the FastAPI app over in-memory services."""

from typing import AsyncIterator, List
from unittest.mock import AsyncMock

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from gateway.auth.credential_store import CredentialStore
from gateway.config import settings
from gateway.main import create_app
from gateway.middleware.rate_limit import RateLimiter
from gateway.services.container import GatewayServices
from gateway.services.delivery import DeliveryEngine
from gateway.services.webhook_service import WebhookRegistry

ADMIN_TOKEN = "admin-token-for-tests"


@pytest.fixture
def delivered() -> List[httpx.Request]:
    """Webhook requests received by the fake subscriber."""
    return []


@pytest.fixture
async def services(key_repo, backend, clock, delivered) -> AsyncIterator[GatewayServices]:
    """Started GatewayServices with in-memory stores and a fake subscriber."""

    def subscriber(request: httpx.Request) -> httpx.Response:
        delivered.append(request)
        return httpx.Response(200)

    webhook_client = httpx.AsyncClient(transport=httpx.MockTransport(subscriber))
    webhook_repository = AsyncMock()
    webhook_repository.list_all.return_value = []
    engine = DeliveryEngine(client=webhook_client, workers=1)

    services = GatewayServices(
        credentials=CredentialStore(repository=key_repo),
        rate_limiter=RateLimiter(clock=clock),
        engine=engine,
        registry=WebhookRegistry(engine=engine, repository=webhook_repository),
        backend=backend,
    )
    await services.start()
    yield services
    await services.stop()
    await webhook_client.aclose()


@pytest.fixture
async def client(services, monkeypatch) -> AsyncIterator[AsyncClient]:
    """HTTP client bound to an app using the in-memory services."""
    monkeypatch.setattr(settings, "admin_token", ADMIN_TOKEN)
    app = create_app(services)
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as http_client:
        yield http_client
