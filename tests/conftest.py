"""Shared fixtures: an in-process app wired to the in-memory store and mock services."""

import pytest
from httpx import ASGITransport, AsyncClient

from hvac_quote.main import app
from hvac_quote.services.auth import AdminSessions
from hvac_quote.services.lead_store import InMemoryLeadStore
from hvac_quote.services.mock_stubs import MockPredictor, MockPropertyLookup
from hvac_quote.services.orchestrator import LeadOrchestrator
from hvac_quote.wizards.client import QuoteApiClient

ADMIN_PASSWORD = "furnace-room"


@pytest.fixture
def store() -> InMemoryLeadStore:
    return InMemoryLeadStore()


@pytest.fixture
def orchestrator(store) -> LeadOrchestrator:
    return LeadOrchestrator(store, MockPropertyLookup(), MockPredictor())


@pytest.fixture
def sessions() -> AdminSessions:
    return AdminSessions(ADMIN_PASSWORD, ttl_seconds=3600)


@pytest.fixture
def transport(orchestrator, sessions) -> ASGITransport:
    """ASGI transport over the app with fresh collaborators on app.state."""
    app.state.orchestrator = orchestrator
    app.state.sessions = sessions
    return ASGITransport(app=app, raise_app_exceptions=False)


@pytest.fixture
async def client(transport):
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def api(transport):
    """Wizard-side API client talking to the in-process app."""
    quote_api = QuoteApiClient("http://test", transport=transport)
    yield quote_api
    await quote_api.aclose()


@pytest.fixture
async def admin_headers(client) -> dict[str, str]:
    resp = await client.post("/api/v1/admin/login", json={"password": ADMIN_PASSWORD})
    return {"Authorization": f"Bearer {resp.json()['token']}"}
