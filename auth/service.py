"""
auth/service.py -- Login and signup operations.

Each public method is one error boundary: expected domain failures
(NotFoundError, UnauthorizedError, ForbiddenError, ConflictError) propagate
unchanged; anything else is logged with the operation and subject and
re-raised as a generic InternalError.

Tokens are only ever signed for a Principal resolved inside the same call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from auth.entitlements import EntitlementResolver
from auth.errors import EXPECTED_ERRORS, ConflictError, InternalError, UnauthorizedError
from auth.models import DEFAULT_ROLE, Principal, User
from auth.store import UserStore
from auth.tokens import authenticate_user, create_access_token, hash_password

logger = logging.getLogger("gms.auth.service")


@dataclass(frozen=True)
class AuthResult:
    token: str
    principal: Principal
    user: User


class AuthService:
    def __init__(self, store: UserStore, resolver: EntitlementResolver) -> None:
        self._store = store
        self._resolver = resolver

    def login(self, email: str, password: str) -> AuthResult:
        """Authenticate by email/password and issue a token.

        Unknown email and wrong password both raise the same
        UnauthorizedError so the response cannot be used to enumerate
        accounts. No token is issued on failure.
        """
        try:
            user = authenticate_user(self._store, email, password)
            if user is None:
                raise UnauthorizedError("Invalid email or password")
            result = self._issue(user)
        except EXPECTED_ERRORS:
            raise
        except Exception as exc:
            logger.exception("login failed for %s", email)
            raise InternalError("Login failed") from exc
        logger.info("Login successful for user %s", user.email)
        return result

    def signup(self, email: str, password: str, user_name: str) -> AuthResult:
        """Create a plain user account and issue a token for it.

        The account has the default role and no organization, so its token
        is rejected by the validator until an organization binding exists.
        """
        logger.info("Processing signup for %s", email)
        try:
            try:
                user_id = self._store.create_user(
                    User(email=email, user_name=user_name, hashed_password=hash_password(password)),
                    role=DEFAULT_ROLE,
                )
            except IntegrityError as exc:
                raise ConflictError("A user with that email or user name already exists") from exc
            user = self._store.get_by_id(user_id)
            if user is None:
                raise InternalError("User not found after write")
            result = self._issue(user)
        except EXPECTED_ERRORS:
            raise
        except Exception as exc:
            logger.exception("signup failed for %s", email)
            raise InternalError("Signup failed") from exc
        logger.info("Signup successful for user %s", email)
        return result

    def _issue(self, user: User) -> AuthResult:
        principal = self._resolver.resolve_user(user)
        return AuthResult(token=create_access_token(principal), principal=principal, user=user)
