"""
auth/entitlements.py -- Reduce persisted role/organization facts to a Principal.

EntitlementResolver.resolve(user_id) is the single place claims are derived.
Login, signup and per-request validation all call it, so a token's snapshot
and the request-time principal are computed by identical rules:

  1. Load the user with its role bindings.
  2. role := first binding, or "user" when there is none.
  3. superAdmin -> every feature in the catalog, no organization.
  4. anyone else -> the organization from UserStore.find_bound_organization_id()
     and that organization's non-empty feature strings.

A failure while looking up the organization or its features degrades to an
empty feature set. One organization's data issue must not block sign-in; the
validator decides separately whether an organization-less principal is
acceptable.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy.exc import SQLAlchemyError

from auth.errors import InternalError, NotFoundError
from auth.models import DEFAULT_ROLE, Principal, Role, User
from auth.store import UserStore

logger = logging.getLogger("gms.auth.entitlements")


def _clean_features(features: Iterable[str]) -> tuple[str, ...]:
    """Drop empty entries and duplicates, keeping first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for feature in features:
        if feature and feature not in seen:
            seen.add(feature)
            result.append(feature)
    return tuple(result)


class EntitlementResolver:
    """Derive the current Principal for a user from the database.

    Read-only and stateless apart from its collaborators, so one instance may
    be shared across threads.
    """

    def __init__(self, store: UserStore, all_features: Iterable[str]) -> None:
        self._store = store
        self._all_features = tuple(all_features)

    def resolve(self, user_id: str) -> Principal:
        """Return the Principal for user_id.

        Raises:
            NotFoundError: the user record does not exist.
            InternalError: loading the user record failed unexpectedly.
        """
        try:
            user = self._store.get_by_id(user_id)
        except SQLAlchemyError as exc:
            logger.exception("User lookup failed while resolving claims for %s", user_id)
            raise InternalError("Error generating auth token") from exc
        if user is None:
            raise NotFoundError("User not found")
        return self.resolve_user(user)

    def resolve_user(self, user: User) -> Principal:
        """Build the Principal for an already-loaded user record."""
        role = user.roles[0] if user.roles else DEFAULT_ROLE

        if role == Role.SUPER_ADMIN.value:
            logger.info("Superadmin %s granted all %d features", user.email, len(self._all_features))
            return Principal(
                id=user.id,
                email=user.email,
                role=role,
                organization_id=None,
                features=self._all_features,
                is_super_admin=True,
            )

        organization_id: str | None = None
        features: tuple[str, ...] = ()
        try:
            organization_id = self._store.find_bound_organization_id(user.id)
            if organization_id is not None:
                features = _clean_features(self._store.get_organization_features(organization_id))
        except Exception:
            logger.exception(
                "Organization feature lookup failed for user %s (organization=%s); using no features",
                user.id,
                organization_id,
            )
            features = ()

        if organization_id is None:
            logger.warning("No organization found for user %s", user.email)
        elif not features:
            logger.warning("Organization %s of user %s has no features", organization_id, user.email)

        return Principal(
            id=user.id,
            email=user.email,
            role=role,
            organization_id=organization_id,
            features=features,
            is_super_admin=False,
        )
