"""
Base protocols and types for the backend-as-a-service boundary.

This module defines the AuthBackend and DataBackend protocols that every
backend must implement, along with the query and snapshot types they
exchange with the SDK.

Invariants:
    - Snapshots carry full collection state, never deltas
    - No callback fires after the unsubscribe handle returns
    - Failures are raised as BackendError with a backend code

How to change safely:
    - Protocol changes require updating all implementations
    - Keep codes aligned with errors.classify_backend_error
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    runtime_checkable,
)

Document = Dict[str, Any]
Unsubscribe = Callable[[], None]


class BackendError(Exception):
    """Failure reported by the backend.

    Attributes:
        code: Backend error code (e.g. ``permission-denied``, ``auth/wrong-password``)
        message: Backend-provided description
    """

    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(f"{code}: {message}" if message else code)
        self.code = code
        self.message = message


@dataclass(frozen=True)
class Filter:
    """Equality filter on a document field."""
    field: str
    value: Any
    op: str = "=="

    def matches(self, document: Document) -> bool:
        if self.op == "==":
            return document.get(self.field) == self.value
        if self.op == "!=":
            return document.get(self.field) != self.value
        raise ValueError(f"Unsupported filter operator: {self.op}")

    def __str__(self) -> str:
        return f"{self.field} {self.op} {self.value!r}"


@dataclass(frozen=True)
class Order:
    """Sort order for query results."""
    field: str
    descending: bool = False


@dataclass(frozen=True)
class Snapshot:
    """Full state of a filtered, ordered collection at delivery time.

    Attributes:
        collection: Collection name
        documents: Every matching document, in query order
        read_time_ms: When the snapshot was materialized
    """
    collection: str
    documents: Tuple[Document, ...]
    read_time_ms: int

    def __len__(self) -> int:
        return len(self.documents)


@dataclass(frozen=True)
class AuthUser:
    """Authenticated user as reported by the auth backend."""
    uid: str
    email: str


SnapshotCallback = Callable[[Snapshot], None]
ErrorCallback = Callable[[BackendError], None]
AuthCallback = Callable[[Optional[AuthUser]], None]


@runtime_checkable
class AuthBackend(Protocol):
    """Protocol for the authentication side of the backend.

    Listeners receive the current user once after registration and again on
    every sign-in or sign-out.
    """

    @abstractmethod
    def on_auth_state_change(self, callback: AuthCallback) -> Unsubscribe:
        """Register an auth state listener.

        Returns:
            Handle that unregisters the listener
        """
        ...

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> AuthUser:
        """Sign in with email and password.

        Raises:
            BackendError: ``auth/invalid-email``, ``auth/wrong-password``,
                ``auth/user-not-found``, ``auth/user-disabled``,
                ``auth/network-request-failed``, ``auth/too-many-requests``
        """
        ...

    @abstractmethod
    async def sign_up(self, email: str, password: str) -> AuthUser:
        """Create an account and sign it in.

        Raises:
            BackendError: ``auth/email-already-in-use``, ``auth/weak-password``,
                ``auth/invalid-email``, ``auth/network-request-failed``
        """
        ...

    @abstractmethod
    async def sign_out(self) -> None:
        """Sign out the current user."""
        ...


@runtime_checkable
class DataBackend(Protocol):
    """Protocol for the document store side of the backend.

    Ordering contract:
        - Snapshots reach a subscriber in the order the backend emits them
        - A local write becomes visible to subscribers only once the backend
          echoes it through the subscription

    Example:
        >>> unsubscribe = backend.subscribe(
        ...     "stores", [Filter("owner_id", "u1")], Order("created_at", True),
        ...     on_snapshot=print, on_error=print,
        ... )
        >>> store_id = await backend.create("stores", {"name": "Corner Shop"})
        >>> unsubscribe()
    """

    @abstractmethod
    def subscribe(
        self,
        collection: str,
        filters: Sequence[Filter],
        order: Optional[Order],
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        """Open a live query.

        The subscription ends after ``on_error`` fires; callers must open a
        new one to resume.

        Returns:
            Handle that closes the subscription synchronously
        """
        ...

    @abstractmethod
    async def get_all(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order: Optional[Order] = None,
    ) -> List[Document]:
        """Fetch every document matching the filters."""
        ...

    @abstractmethod
    async def get_one(self, collection: str, doc_id: str) -> Optional[Document]:
        """Fetch one document by id, or None when absent."""
        ...

    @abstractmethod
    async def create(self, collection: str, fields: Document) -> str:
        """Create a document and return its generated id."""
        ...

    @abstractmethod
    async def update(self, collection: str, doc_id: str, fields: Document) -> None:
        """Merge fields into an existing document.

        Raises:
            BackendError: ``not-found`` if the document is absent
        """
        ...

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document (no error if already absent)."""
        ...
