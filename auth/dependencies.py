"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and access control.

get_current_principal() reads the bearer token from the Authorization header
and runs it through CredentialValidator. A missing or malformed header is
treated the same as no credential at all.

require_access(rule) builds the per-route dependency: validate, attach the
organization context when the rule is organization-scoped, then authorize.

    @router.get("/offices")
    def list_offices(principal: Principal = Depends(require_access(ORG_ADMIN_SCOPED))): ...

get_organization_id() hands the attached organization context to handlers.

Layer rule: this module may import from fastapi because it is part of the
dependency injection system. Everything below it (store, resolver, validator,
access) is framework-free.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request

from auth.access import AccessRule, authorize
from auth.entitlements import EntitlementResolver
from auth.errors import ForbiddenError, UnauthorizedError
from auth.models import Principal
from auth.store import UserStore
from auth.validator import CredentialValidator
from core.config import get_settings


def get_resolver(request: Request) -> EntitlementResolver:
    """Build a resolver over the app's store and the static feature catalog."""
    user_store: UserStore = request.app.state.user_store
    return EntitlementResolver(user_store, get_settings().all_features)


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_principal(request: Request) -> Principal:
    """Require a valid bearer token. Raises UnauthorizedError (401) otherwise."""
    token = _bearer_token(request)
    if token is None:
        raise UnauthorizedError("Authentication required")
    principal = CredentialValidator(get_resolver(request)).validate(token)
    request.state.principal = principal
    return principal


def require_access(rule: AccessRule) -> Callable[..., Principal]:
    """Return a dependency enforcing rule for the route it is attached to."""

    def dependency(request: Request, principal: Principal = Depends(get_current_principal)) -> Principal:
        if rule.organization_scoped and principal.organization_id:
            request.state.organization_id = principal.organization_id
        authorize(rule.required_roles, principal, getattr(request.state, "organization_id", None))
        return principal

    return dependency


def get_organization_id(request: Request) -> str:
    """Return the organization context bound to this request."""
    organization_id = getattr(request.state, "organization_id", None)
    if not organization_id:
        raise ForbiddenError("Organization context missing")
    return organization_id
