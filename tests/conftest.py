"""
tests/conftest.py -- Shared test fixtures.

This module provides:
  - store / resolver: an isolated in-memory UserStore and resolver for unit tests
  - seeded: a store pre-loaded with one user of every binding shape
  - api_client: TestClient over the real app with an isolated store and a
    superadmin bearer token

Design: route tests use a named shared-memory SQLite URI (not plain :memory:)
because TestClient runs sync handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.

The DEBUG env var must be set before any auth/core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.entitlements import EntitlementResolver
from auth.models import Office, Organization, Role, User
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from core.config import get_settings

# Hashed once at import; bcrypt per fixture would dominate test time.
PASSWORD = "correct-horse-42"
_PASSWORD_HASH = hash_password(PASSWORD)


def make_user(prefix: str) -> User:
    """Return an unsaved User with a unique email and user name."""
    suffix = uuid.uuid4().hex[:8]
    return User(email=f"{prefix}-{suffix}@example.com", user_name=f"{prefix}_{suffix}", hashed_password=_PASSWORD_HASH)


def make_organization(features: list[str]) -> Organization:
    suffix = uuid.uuid4().hex[:8]
    return Organization(name=f"Org {suffix}", email=f"org-{suffix}@example.com", admin_user_id="", features=features)


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def resolver(store: UserStore) -> EntitlementResolver:
    return EntitlementResolver(store, get_settings().all_features)


@dataclass
class Seeded:
    """IDs of the users created by the seeded fixture."""

    super_admin_id: str
    org_admin_id: str
    member_id: str
    orphan_id: str
    organization_id: str
    office_id: str


@pytest.fixture
def seeded(store: UserStore) -> Seeded:
    """Populate the store with one user of every binding shape.

      - super_admin: superAdmin role, no organization
      - org_admin:   organizationAdmin owning an org with features guards, payroll
      - member:      plain user bound to that org through an office membership
      - orphan:      plain user with no organization at all
    """
    super_admin_id = store.create_user(make_user("super"), role=Role.SUPER_ADMIN.value)
    organization_id, org_admin_id = store.create_organization(make_organization(["guards", "payroll"]), make_user("admin"))
    office_id = store.create_office(Office(organization_id=organization_id, name="HQ", branch_code="0001"))
    member_id = store.create_user(make_user("member"))
    store.add_office_member(member_id, office_id)
    orphan_id = store.create_user(make_user("orphan"))
    return Seeded(
        super_admin_id=super_admin_id,
        org_admin_id=org_admin_id,
        member_id=member_id,
        orphan_id=orphan_id,
        organization_id=organization_id,
        office_id=office_id,
    )


# ---------------------------------------------------------------------------
# Integration fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore):
    """Return a lifespan that wires the test store into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        yield

    return test_lifespan


@dataclass
class ApiContext:
    client: TestClient
    store: UserStore
    super_token: str

    def auth(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="module")
def api_client(request) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext for route integration tests.

    Each test module gets its own named in-memory database. The rate limiter
    is disabled so repeated logins across tests never hit 429.
    """
    db_name = f"test_gms_{request.module.__name__.rsplit('.', 1)[-1]}"
    user_store = UserStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    super_id = user_store.create_user(make_user("root"), role=Role.SUPER_ADMIN.value)
    resolver = EntitlementResolver(user_store, get_settings().all_features)
    super_token = create_access_token(resolver.resolve(super_id))

    app.router.lifespan_context = _patch_lifespan(user_store)
    limiter.enabled = False

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(client=client, store=user_store, super_token=super_token)

    limiter.enabled = True
    user_store.close()


@pytest.fixture
def new_user():
    """Factory fixture: new_user("prefix") -> unsaved User with unique email/user name."""
    return make_user


@pytest.fixture
def new_organization():
    """Factory fixture: new_organization(["feature", ...]) -> unsaved Organization."""
    return make_organization


@pytest.fixture
def password() -> str:
    """Plaintext password of every user built by new_user."""
    return PASSWORD
