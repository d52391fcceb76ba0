"""
Error types for the Stockroom SDK.

This module defines all exception types raised by the SDK:
- StockroomError: Base exception
- ValidationError: Bad local input (no network call was made)
- UnknownFieldError: Unknown field in a payload
- ConflictError: Duplicate product name
- PreconditionError: Mutation blocked by a guard rule
- AuthError: Authentication failure or missing identity
- NetworkError: Backend unreachable or permission denied
- NotFoundError: Referenced document absent

Backend failures are re-classified here so raw backend codes never reach
callers unmapped.

Invariants:
    - All errors inherit from StockroomError
    - Errors include context for debugging
    - Error messages are user-facing
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from .backend.base import BackendError


class StockroomError(Exception):
    """Base exception for all Stockroom SDK errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "STOCKROOM_ERROR"
        self.details = details or {}


class ValidationError(StockroomError):
    """Local input validation failed.

    Raised when:
    - Required field is missing or blank
    - Numeric field is out of range
    - Immutable field appears in an update
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        errors: Optional[List[str]] = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name, "errors": errors or []},
        )
        self.field_name = field_name
        self.errors = errors or [message]


class UnknownFieldError(ValidationError):
    """Unknown field in payload.

    Includes suggestions for similar field names.
    """

    def __init__(
        self,
        field_name: str,
        kind_name: str,
        suggestions: Optional[List[str]] = None,
    ) -> None:
        suggestions = suggestions or []
        msg = f"Unknown field '{field_name}' for {kind_name}"
        if suggestions:
            msg += f". Did you mean: {', '.join(suggestions)}?"

        super().__init__(msg, field_name=field_name)
        self.code = "UNKNOWN_FIELD"
        self.details.update({"kind": kind_name, "suggestions": suggestions})
        self.kind_name = kind_name
        self.suggestions = suggestions


class ConflictError(StockroomError):
    """A document with the same unique key already exists."""

    def __init__(
        self,
        message: str,
        resource_type: str,
        key: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="CONFLICT",
            details={"resource_type": resource_type, "key": key},
        )
        self.resource_type = resource_type
        self.key = key


class PreconditionError(StockroomError):
    """Mutation refused by a guard rule.

    Raised when:
    - Deleting a product whose quantity is not zero
    - Mutating a document owned by another identity
    - Writing to an append-only collection
    """

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="PRECONDITION_FAILED",
            details={"resource_type": resource_type, "resource_id": resource_id},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class AuthError(StockroomError):
    """Authentication failed or no identity is signed in.

    Attributes:
        reason: Normalized reason, e.g. ``wrong-password`` or ``unauthenticated``
    """

    def __init__(self, message: str, reason: str = "unauthenticated") -> None:
        super().__init__(message, code="AUTH_ERROR", details={"reason": reason})
        self.reason = reason


class NetworkError(StockroomError):
    """Backend unreachable, or it refused the request."""

    def __init__(self, message: str, backend_code: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="NETWORK_ERROR",
            details={"backend_code": backend_code},
        )
        self.backend_code = backend_code


class NotFoundError(StockroomError):
    """Referenced document does not exist."""

    def __init__(
        self,
        message: str,
        resource_type: str,
        resource_id: str,
    ) -> None:
        super().__init__(
            message,
            code="NOT_FOUND",
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


SIGN_IN_MESSAGES: Dict[str, str] = {
    "invalid-email": "Invalid email address.",
    "user-disabled": "This account has been disabled.",
    "user-not-found": "No account found with this email.",
    "wrong-password": "Incorrect password. Please try again.",
    "too-many-requests": "Too many attempts. Please wait and try again later.",
    "network-request-failed": "Network error. Check your internet connection.",
}

SIGN_UP_MESSAGES: Dict[str, str] = {
    "email-already-in-use": "This email is already in use. Try signing in.",
    "invalid-email": "Invalid email address.",
    "weak-password": "Password is too weak. Use at least 6 characters.",
    "network-request-failed": "Network error. Check your connection and try again.",
}

_AUTH_FALLBACKS = {
    "sign_in": "Authentication failed. Please try again.",
    "sign_up": "Registration failed. Please try again.",
    "sign_out": "Sign out failed. Please try again.",
}

_NETWORK_CODES = {
    "permission-denied": "Permission denied by the backend.",
    "unavailable": "Backend is unreachable. Check your connection.",
    "deadline-exceeded": "Backend did not respond in time.",
    "unauthenticated": "Backend rejected the session credentials.",
}


def _strip_auth_prefix(code: str) -> str:
    return code[len("auth/"):] if code.startswith("auth/") else code


def map_auth_error(code: str, flow: str = "sign_in") -> AuthError:
    """Map a backend auth failure code to a user-facing AuthError.

    Args:
        code: Backend code, with or without the ``auth/`` prefix
        flow: ``sign_in``, ``sign_up`` or ``sign_out``

    Returns:
        AuthError carrying the normalized reason
    """
    reason = _strip_auth_prefix(code)
    messages = SIGN_UP_MESSAGES if flow == "sign_up" else SIGN_IN_MESSAGES
    message = messages.get(reason, _AUTH_FALLBACKS.get(flow, _AUTH_FALLBACKS["sign_in"]))
    return AuthError(message, reason=reason or "unknown")


def classify_backend_error(
    exc: BackendError,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
) -> StockroomError:
    """Re-classify a backend failure into the SDK taxonomy.

    Unrecognised codes become NetworkError with the raw code kept in
    ``details["backend_code"]``.
    """
    code = exc.code
    if code.startswith("auth/"):
        return map_auth_error(code)
    if code == "not-found":
        return NotFoundError(
            f"{resource_type or 'Document'} not found",
            resource_type=resource_type or "document",
            resource_id=resource_id or "",
        )
    if code == "already-exists":
        return ConflictError(
            f"{resource_type or 'Document'} already exists",
            resource_type=resource_type or "document",
            key=resource_id,
        )
    if code == "failed-precondition":
        return PreconditionError(
            exc.message or "Backend rejected the operation",
            resource_type=resource_type,
            resource_id=resource_id,
        )
    message = _NETWORK_CODES.get(code, "Backend request failed. Please try again.")
    return NetworkError(message, backend_code=code)
