"""
auth/validator.py -- Per-request credential validation.

CredentialValidator.validate() turns a raw bearer token into the Principal
that downstream access checks consume. The token is only trusted for
identity (sub, email); role, organization and features are re-resolved from
the database on every call, so a feature removed from an organization takes
effect on the very next request even with an old token.

Every failure surfaces as UnauthorizedError. Unexpected errors during
re-resolution are logged here and reported to the caller as a generic
"Authentication failed" with no internal detail.
"""

from __future__ import annotations

import logging

from auth.entitlements import EntitlementResolver
from auth.errors import NotFoundError, UnauthorizedError
from auth.models import Principal
from auth.tokens import decode_access_token

logger = logging.getLogger("gms.auth.validator")


class CredentialValidator:
    def __init__(self, resolver: EntitlementResolver) -> None:
        self._resolver = resolver

    def validate(self, raw_token: str) -> Principal:
        """Verify the token and return the user's current Principal.

        Raises UnauthorizedError when the token is invalid or expired, lacks
        sub/email, names a user that no longer exists, or belongs to a
        non-superadmin with no organization.
        """
        payload = decode_access_token(raw_token)

        subject = payload.get("sub")
        if not subject or not payload.get("email"):
            logger.error("Token payload missing required fields (keys=%s)", sorted(payload))
            raise UnauthorizedError("Invalid token format")

        try:
            principal = self._resolver.resolve(subject)
        except NotFoundError:
            logger.error("User not found for sub %s", subject)
            raise UnauthorizedError("User not found") from None
        except Exception:
            logger.exception("Error re-resolving claims for sub %s", subject)
            raise UnauthorizedError("Authentication failed") from None

        if not principal.is_super_admin:
            if principal.organization_id is None:
                logger.warning("Non-superadmin user %s has no organization", principal.id)
                raise UnauthorizedError("User has no organization access")
            if not principal.features:
                logger.warning("User %s organization %s has no features", principal.id, principal.organization_id)

        return principal
