"""
auth/models.py -- Domain dataclasses for identity, tenancy and authorization.

Pattern: Data class (pure data container, zero logic). The store builds these
from rows; the resolver, validator and gate consume them.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    """Role names as stored in the roles table."""

    SUPER_ADMIN = "superAdmin"
    ORGANIZATION_ADMIN = "organizationAdmin"
    USER = "user"


# Role used when a user has no role binding at all.
DEFAULT_ROLE = Role.USER.value


@dataclass
class User:
    """A stored account.

    roles lists the user's role bindings in insertion order. Only roles[0] is
    authoritative for authorization -- extra bindings are kept for the record
    but never consulted.
    """

    email: str
    user_name: str
    hashed_password: str | None = None
    id: str | None = None
    roles: list[str] = field(default_factory=list)
    created_at: str | None = None


@dataclass
class Organization:
    """A tenant. admin_user_id is the single user who administers it."""

    name: str
    email: str
    admin_user_id: str
    id: str | None = None
    features: list[str] = field(default_factory=list)
    province: str | None = None
    city: str | None = None
    phone_number: str | None = None
    address_line: str | None = None
    is_active: bool = True
    created_at: str | None = None


@dataclass
class Office:
    organization_id: str
    name: str
    branch_code: str
    id: str | None = None
    city: str | None = None
    address_line: str | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class Principal:
    """The normalized, request-scoped authorization record.

    Always derived from persisted state, never from a token payload.

    Invariants:
      - is_super_admin => organization_id is None and features is the full
        feature catalog.
      - otherwise organization_id is set iff the user has a resolvable
        organization binding, and features is exactly that organization's
        feature set (possibly empty).
    """

    id: str
    email: str
    role: str
    organization_id: str | None = None
    features: tuple[str, ...] = ()
    is_super_admin: bool = False
