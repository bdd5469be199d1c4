"""Shared test fixtures: manual clock, in-memory store, consent engine, test client."""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from consent_engine.api.deps import build_consent_service, get_consent_service, get_idempotency_cache
from consent_engine.domain.consent import ConsentDraft
from consent_engine.main import app
from consent_engine.repositories.consents import InMemoryConsentStore
from consent_engine.security.jwt import AUTHORISER_ROLE, get_current_client

T0 = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)

USER = "76109277673"
JOINT_USER = "96362357086"
CLIENT_ID = "tpp-client"

ACCOUNT_PERMISSIONS = [
    "ACCOUNTS_READ",
    "ACCOUNTS_BALANCES_READ",
    "RESOURCES_READ",
]


class ManualClock:
    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


def make_draft(**overrides) -> ConsentDraft:
    values = {
        "client_id": CLIENT_ID,
        "user_identifier": USER,
        "permissions": list(ACCOUNT_PERMISSIONS),
        "expires_at": T0 + timedelta(days=90),
    }
    values.update(overrides)
    return ConsentDraft(**values)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def store() -> InMemoryConsentStore:
    return InMemoryConsentStore()


@pytest.fixture
def service(store, clock):
    return build_consent_service(store=store, clock=clock)


@pytest.fixture
def caller() -> dict:
    """Identity returned by the token dependency; tests mutate it per scenario."""
    return {
        "client_id": CLIENT_ID,
        "subject": None,
        "scopes": ["openid", "consents", "resources"],
        "consent_id": None,
        "roles": {AUTHORISER_ROLE},
        "raw": {},
    }


@pytest_asyncio.fixture
async def client(service, caller) -> AsyncClient:
    """Yield an httpx AsyncClient wired to the in-memory engine."""

    async def _override_get_current_client():
        return caller

    app.dependency_overrides[get_consent_service] = lambda: service
    app.dependency_overrides[get_current_client] = _override_get_current_client
    app.dependency_overrides[get_idempotency_cache] = lambda: None
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
