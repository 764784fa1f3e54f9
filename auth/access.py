"""
auth/access.py -- Role-based access decisions.

Each protected route declares an AccessRule: the roles it requires and
whether it runs inside the caller's own organization. The FastAPI dependency
in auth/dependencies.py validates the credential, attaches the organization
context for organization-scoped rules, then asks authorize() for a verdict.

authorize() is a pure function of its arguments -- no state is retained
between calls.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from auth.errors import ForbiddenError
from auth.models import Principal, Role

logger = logging.getLogger("gms.auth.access")


@dataclass(frozen=True)
class AccessRule:
    """Declared access requirements of one route.

    required_roles empty means any authenticated principal may call it.
    organization_scoped routes operate on the caller's own organization; only
    they receive an organization context, which is what lets an
    organizationAdmin through.
    """

    required_roles: frozenset[str] = frozenset()
    organization_scoped: bool = False

    @classmethod
    def of(cls, *roles: Role | str, organization_scoped: bool = False) -> AccessRule:
        return cls(
            required_roles=frozenset(r.value if isinstance(r, Role) else r for r in roles),
            organization_scoped=organization_scoped,
        )


def authorize(
    required_roles: Iterable[str],
    principal: Principal | None,
    organization_id: str | None = None,
) -> bool:
    """Return True if principal may perform the operation; raise ForbiddenError otherwise.

    Args:
        required_roles:  Roles declared on the operation. Empty allows everyone.
        principal:       The validated principal.
        organization_id: Organization context attached by the binding step,
                         None when the operation is not organization-scoped.
    """
    required = {r.value if isinstance(r, Role) else r for r in required_roles}
    if not required:
        return True

    if principal is None or not principal.id or not principal.role:
        # A principal without identity here means the upstream validator was bypassed.
        logger.error("Access check reached with incomplete principal: %r", principal)
        raise ForbiddenError("Missing user identity or role")

    if principal.role == Role.ORGANIZATION_ADMIN.value:
        if not organization_id:
            logger.error("Organization context missing for organizationAdmin %s", principal.id)
            raise ForbiddenError("Organization context missing")
        logger.debug("Allowing organizationAdmin %s for organization %s", principal.id, organization_id)
        return True

    if principal.role not in required:
        logger.warning(
            "Access denied for %s: role=%s required=%s", principal.id, principal.role, sorted(required)
        )
        raise ForbiddenError(f"Access denied. Required roles: {', '.join(sorted(required))}")

    return True
