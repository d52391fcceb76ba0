"""
Sign-in, sign-up and sign-out for the Stockroom SDK.

AuthClient checks the form locally, calls the auth backend and maps its
failure codes to user-facing AuthError messages. The resulting identity
reaches consumers through the SessionProvider, not through return values.
"""

from __future__ import annotations

import logging

from .backend.base import AuthBackend, AuthUser, BackendError
from .config import Settings
from .errors import map_auth_error
from .validate import validate_sign_in, validate_sign_up

logger = logging.getLogger(__name__)


class AuthClient:
    """Authentication operations with mapped errors.

    Example:
        >>> auth = AuthClient(backend, Settings())
        >>> user = await auth.sign_up("me@example.com", "secret1", "secret1")
        >>> await auth.sign_out()
    """

    def __init__(self, backend: AuthBackend, settings: Settings) -> None:
        self._backend = backend
        self._settings = settings

    async def sign_in(self, email: str, password: str) -> AuthUser:
        """Sign in.

        Raises:
            ValidationError: If email or password is blank
            AuthError: If the backend rejects the credentials
        """
        validate_sign_in(email, password)
        try:
            user = await self._backend.sign_in(email.strip(), password)
        except BackendError as e:
            error = map_auth_error(e.code, flow="sign_in")
            logger.info("Sign-in rejected", extra={"reason": error.reason})
            raise error from e
        logger.info("Signed in", extra={"identity": user.uid})
        return user

    async def sign_up(self, email: str, password: str, confirm_password: str) -> AuthUser:
        """Create an account.

        Raises:
            ValidationError: If the form is incomplete or passwords differ
            AuthError: If the backend rejects the registration
        """
        validate_sign_up(
            email,
            password,
            confirm_password,
            min_length=self._settings.min_password_length,
        )
        try:
            user = await self._backend.sign_up(email.strip(), password)
        except BackendError as e:
            error = map_auth_error(e.code, flow="sign_up")
            logger.info("Sign-up rejected", extra={"reason": error.reason})
            raise error from e
        logger.info("Account created", extra={"identity": user.uid})
        return user

    async def sign_out(self) -> None:
        """Sign out the current user.

        Raises:
            AuthError: If the backend fails to sign out
        """
        try:
            await self._backend.sign_out()
        except BackendError as e:
            raise map_auth_error(e.code, flow="sign_out") from e
        logger.info("Signed out")
