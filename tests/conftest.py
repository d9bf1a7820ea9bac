"""
Shared fixtures.

Backend calls go through httpx.MockTransport into an InMemoryMembershipStore,
so the full REST contract is exercised without a server. Identity tokens are
the principal's email unless a test passes its own token mapping.
"""

import httpx
import pytest

from entitlements.cache import PrincipalCache
from entitlements.loader import MembershipConfigLoader
from membership.client import MembershipApiClient
from membership.local_backend import build_handler
from membership.store import InMemoryMembershipStore
from monitoring.entitlement_alerts import reset_deny_counts

BASE_URL = "http://membership.test"
STUDENT = "student@example.com"
ADMIN = "warden@example.com"


@pytest.fixture(autouse=True)
def _reset_deny_counts():
    reset_deny_counts()
    yield
    reset_deny_counts()


@pytest.fixture
def config():
    return MembershipConfigLoader().config


@pytest.fixture
def store(config):
    return InMemoryMembershipStore(config)


@pytest.fixture
def calls():
    """(method, path) of every request that reached the backend."""
    return []


@pytest.fixture
def transport(store, calls):
    handler = build_handler(store)

    def recording(request: httpx.Request) -> httpx.Response:
        calls.append((request.method, request.url.path))
        return handler(request)

    return httpx.MockTransport(recording)


@pytest.fixture
def make_client(transport):
    def _make(token=STUDENT):
        return MembershipApiClient(base_url=BASE_URL, identity_token=token, transport=transport)

    return _make


@pytest.fixture
def cache():
    return PrincipalCache(redis_url="")


@pytest.fixture
def student(store):
    store.upsert_principal(STUDENT, name="Student")
    return STUDENT


@pytest.fixture
def admin(store):
    store.seed_principal({"email": ADMIN, "role": "admin", "badge": "Gold", "name": "Warden"})
    return ADMIN
