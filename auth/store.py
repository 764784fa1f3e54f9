"""
auth/store.py -- SQLAlchemy Core persistence layer for identity and tenancy.

Pattern: Repository + Data Mapper. UserStore is the repository; the _row_to_*
functions are the mappers. Route, resolver and dependency code never touches
SQL directly.

Tables:
  users, roles, user_roles          -- accounts and their role bindings
  organizations, organization_features
  offices, user_offices             -- office locations and memberships

Role bindings keep insertion order through the autoincrement user_roles.id;
readers rely on that order because only the first binding is authoritative.

Absence is always None (or False for deletes), never an exception. Write
methods let sqlalchemy.exc.IntegrityError propagate so callers can turn a
duplicate email or user name into a 409.

Security:
  All queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    select,
)
from sqlalchemy.engine import Connection, Engine

from auth.models import DEFAULT_ROLE, Office, Organization, Role, User
from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("user_name", String(100), nullable=False, unique=True),
    Column("hashed_password", Text),
    Column("created_at", String(32), nullable=False),
)

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("role_name", String(50), nullable=False, unique=True),
)

_user_roles = Table(
    "user_roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(36), nullable=False, index=True),
    Column("role_id", Integer, nullable=False),
    UniqueConstraint("user_id", "role_id"),
)

_organizations = Table(
    "organizations",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("user_id", String(36), nullable=False, index=True),  # admin user
    Column("province", String(100)),
    Column("city", String(100)),
    Column("phone_number", String(30)),
    Column("address_line", Text),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
)

_organization_features = Table(
    "organization_features",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("organization_id", String(36), nullable=False, index=True),
    Column("feature", String(100), nullable=False),
    UniqueConstraint("organization_id", "feature"),
)

_offices = Table(
    "offices",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("organization_id", String(36), nullable=False, index=True),
    Column("name", String(255), nullable=False),
    Column("branch_code", String(10), nullable=False),
    Column("city", String(100)),
    Column("address_line", Text),
    Column("created_at", String(32), nullable=False),
)

_user_offices = Table(
    "user_offices",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(36), nullable=False, index=True),
    Column("office_id", String(36), nullable=False),
    UniqueConstraint("user_id", "office_id"),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block on writers.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for users, role bindings, organizations and offices.

    Usage:
        store = UserStore()
        uid = store.create_user(User(email="a@b.c", user_name="a", hashed_password=hash_password("pw")))
        user = store.get_by_id(uid)
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and "mode=memory" not in db_url and ":memory:" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)
        self._ensure_roles()

    def _ensure_roles(self) -> None:
        """Seed the fixed role catalog. Idempotent -- safe on every startup."""
        with self.engine.begin() as conn:
            existing = set(conn.execute(select(_roles.c.role_name)).scalars())
            for role in Role:
                if role.value not in existing:
                    conn.execute(_roles.insert().values(role_name=role.value))

    # ------------------------------------------------------------------
    # Users and role bindings
    # ------------------------------------------------------------------

    def create_user(self, user: User, role: str = DEFAULT_ROLE) -> str:
        """Insert a user plus its first role binding; return the new user ID.

        Raises sqlalchemy.exc.IntegrityError if the email or user name is taken.
        """
        with self.engine.begin() as conn:
            return self._insert_user(conn, user, role)

    def _insert_user(self, conn: Connection, user: User, role: str) -> str:
        user_id = user.id or _new_id()
        conn.execute(
            _users.insert().values(
                id=user_id,
                email=user.email,
                user_name=user.user_name,
                hashed_password=user.hashed_password,
                created_at=_now_iso(),
            )
        )
        self._bind_role(conn, user_id, role)
        return user_id

    def _bind_role(self, conn: Connection, user_id: str, role: str) -> None:
        role_id = conn.execute(select(_roles.c.id).where(_roles.c.role_name == role)).scalar()
        if role_id is None:
            raise ValueError(f"Unknown role: {role!r}")
        conn.execute(_user_roles.insert().values(user_id=user_id, role_id=role_id))

    def assign_role(self, user_id: str, role: str) -> None:
        """Append another role binding. It never outranks an earlier one."""
        with self.engine.begin() as conn:
            self._bind_role(conn, user_id, role)

    def get_by_id(self, user_id: str) -> User | None:
        """Load a user together with its role bindings in one query."""
        return self._get_user(_users.c.id == user_id)

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Returns None if not found."""
        return self._get_user(_users.c.email == email)

    def _get_user(self, condition) -> User | None:
        stmt = (
            select(_users, _roles.c.role_name)
            .select_from(
                _users.outerjoin(_user_roles, _user_roles.c.user_id == _users.c.id).outerjoin(
                    _roles, _roles.c.id == _user_roles.c.role_id
                )
            )
            .where(condition)
            .order_by(_user_roles.c.id)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        if not rows:
            return None
        roles = [r.role_name for r in rows if r.role_name is not None]
        return _row_to_user(rows[0], roles)

    def delete_user(self, user_id: str) -> bool:
        """Delete a user with its role bindings and office memberships.

        Returns True if the user existed. Organizations the user administers
        are left in place; callers decide what happens to them.
        """
        with self.engine.begin() as conn:
            conn.execute(_user_roles.delete().where(_user_roles.c.user_id == user_id))
            conn.execute(_user_offices.delete().where(_user_offices.c.user_id == user_id))
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Organization binding (read side of the entitlement resolver)
    # ------------------------------------------------------------------

    def find_bound_organization_id(self, user_id: str) -> str | None:
        """Return the ID of the single organization a user is bound to.

        Explicit ownership (organizations.user_id) wins. Only a user who
        administers no organization falls back to the organization of their
        earliest office membership. Both issuance and per-request validation
        go through this method, so they can never disagree.
        """
        with self.engine.connect() as conn:
            owned = conn.execute(
                select(_organizations.c.id)
                .where(_organizations.c.user_id == user_id)
                .order_by(_organizations.c.created_at, _organizations.c.id)
                .limit(1)
            ).scalar()
            if owned is not None:
                return owned
            return conn.execute(
                select(_offices.c.organization_id)
                .select_from(_user_offices.join(_offices, _offices.c.id == _user_offices.c.office_id))
                .where(_user_offices.c.user_id == user_id)
                .order_by(_user_offices.c.id)
                .limit(1)
            ).scalar()

    def get_organization_features(self, organization_id: str) -> list[str]:
        """Return the organization's feature strings in insertion order."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_organization_features.c.feature)
                .where(_organization_features.c.organization_id == organization_id)
                .order_by(_organization_features.c.id)
            ).scalars()
            return list(rows)

    # ------------------------------------------------------------------
    # Organizations
    # ------------------------------------------------------------------

    def create_organization(self, organization: Organization, admin: User) -> tuple[str, str]:
        """Create the admin user, the organization and its features atomically.

        The admin receives the organizationAdmin role binding. Returns
        (organization_id, admin_user_id). Raises IntegrityError on a duplicate
        organization email, user email or user name; nothing is written then.
        """
        with self.engine.begin() as conn:
            admin_id = self._insert_user(conn, admin, Role.ORGANIZATION_ADMIN.value)
            organization_id = organization.id or _new_id()
            conn.execute(
                _organizations.insert().values(
                    id=organization_id,
                    name=organization.name,
                    email=organization.email,
                    user_id=admin_id,
                    province=organization.province,
                    city=organization.city,
                    phone_number=organization.phone_number,
                    address_line=organization.address_line,
                    is_active=1 if organization.is_active else 0,
                    created_at=_now_iso(),
                )
            )
            self._insert_features(conn, organization_id, organization.features)
        return organization_id, admin_id

    def _insert_features(self, conn: Connection, organization_id: str, features: list[str]) -> None:
        seen: set[str] = set()
        for feature in features:
            if feature and feature not in seen:
                seen.add(feature)
                conn.execute(_organization_features.insert().values(organization_id=organization_id, feature=feature))

    def get_organization(self, organization_id: str) -> Organization | None:
        """Look up an organization by ID, features included."""
        with self.engine.connect() as conn:
            row = conn.execute(_organizations.select().where(_organizations.c.id == organization_id)).fetchone()
        if row is None:
            return None
        return _row_to_organization(row, self.get_organization_features(organization_id))

    def list_organizations(self) -> list[Organization]:
        """Return all organizations ordered by name, features included."""
        with self.engine.connect() as conn:
            rows = conn.execute(_organizations.select().order_by(_organizations.c.name)).fetchall()
            feature_rows = conn.execute(
                select(_organization_features.c.organization_id, _organization_features.c.feature).order_by(
                    _organization_features.c.id
                )
            ).fetchall()
        by_org: dict[str, list[str]] = {}
        for fr in feature_rows:
            by_org.setdefault(fr.organization_id, []).append(fr.feature)
        return [_row_to_organization(r, by_org.get(r.id, [])) for r in rows]

    def update_organization(self, organization_id: str, features: list[str] | None = None, **fields) -> bool:
        """Update mutable organization columns and optionally replace the feature set.

        Accepted fields: name, province, city, phone_number, address_line, is_active.
        Returns True if the organization exists.
        """
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        with self.engine.begin() as conn:
            exists = conn.execute(
                select(_organizations.c.id).where(_organizations.c.id == organization_id)
            ).scalar()
            if exists is None:
                return False
            if fields:
                conn.execute(_organizations.update().where(_organizations.c.id == organization_id).values(**fields))
            if features is not None:
                conn.execute(
                    _organization_features.delete().where(_organization_features.c.organization_id == organization_id)
                )
                self._insert_features(conn, organization_id, features)
        return True

    def delete_organization(self, organization_id: str) -> bool:
        """Delete an organization with its features, offices and memberships."""
        with self.engine.begin() as conn:
            office_ids = select(_offices.c.id).where(_offices.c.organization_id == organization_id)
            conn.execute(_user_offices.delete().where(_user_offices.c.office_id.in_(office_ids)))
            conn.execute(_offices.delete().where(_offices.c.organization_id == organization_id))
            conn.execute(
                _organization_features.delete().where(_organization_features.c.organization_id == organization_id)
            )
            result = conn.execute(_organizations.delete().where(_organizations.c.id == organization_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Offices
    # ------------------------------------------------------------------

    def create_office(self, office: Office) -> str:
        """Insert an office and return its ID."""
        office_id = office.id or _new_id()
        with self.engine.begin() as conn:
            conn.execute(
                _offices.insert().values(
                    id=office_id,
                    organization_id=office.organization_id,
                    name=office.name,
                    branch_code=office.branch_code,
                    city=office.city,
                    address_line=office.address_line,
                    created_at=_now_iso(),
                )
            )
        return office_id

    def get_office(self, office_id: str) -> Office | None:
        with self.engine.connect() as conn:
            row = conn.execute(_offices.select().where(_offices.c.id == office_id)).fetchone()
        return _row_to_office(row) if row is not None else None

    def list_offices(self, organization_id: str) -> list[Office]:
        """Return an organization's offices, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _offices.select()
                .where(_offices.c.organization_id == organization_id)
                .order_by(_offices.c.created_at, _offices.c.name)
            ).fetchall()
        return [_row_to_office(r) for r in rows]

    def delete_office(self, office_id: str, organization_id: str) -> bool:
        """Delete an office. organization_id is checked to prevent IDOR.

        Returns False when the office does not exist or belongs to another
        organization -- callers cannot tell the two apart.
        """
        with self.engine.begin() as conn:
            owned = conn.execute(
                select(_offices.c.id).where(
                    (_offices.c.id == office_id) & (_offices.c.organization_id == organization_id)
                )
            ).scalar()
            if owned is None:
                return False
            conn.execute(_user_offices.delete().where(_user_offices.c.office_id == office_id))
            conn.execute(_offices.delete().where(_offices.c.id == office_id))
        return True

    def add_office_member(self, user_id: str, office_id: str) -> None:
        """Bind a user to an office. Raises IntegrityError if already a member."""
        with self.engine.begin() as conn:
            conn.execute(_user_offices.insert().values(user_id=user_id, office_id=office_id))

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row, roles: list[str]) -> User:
    return User(
        id=row.id,
        email=row.email,
        user_name=row.user_name,
        hashed_password=row.hashed_password,
        roles=roles,
        created_at=row.created_at,
    )


def _row_to_organization(row, features: list[str]) -> Organization:
    return Organization(
        id=row.id,
        name=row.name,
        email=row.email,
        admin_user_id=row.user_id,
        features=features,
        province=row.province,
        city=row.city,
        phone_number=row.phone_number,
        address_line=row.address_line,
        is_active=bool(row.is_active),
        created_at=row.created_at,
    )


def _row_to_office(row) -> Office:
    return Office(
        id=row.id,
        organization_id=row.organization_id,
        name=row.name,
        branch_code=row.branch_code,
        city=row.city,
        address_line=row.address_line,
        created_at=row.created_at,
    )
