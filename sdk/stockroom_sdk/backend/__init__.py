"""
Backend-as-a-service boundary for the Stockroom SDK.

This package defines the protocols the SDK talks to:
- AuthBackend: sign in, sign up, sign out, auth state notifications
- DataBackend: live subscriptions and document CRUD
- InMemoryBackend: single-process implementation for tests and demos

Invariants:
    - Snapshots are full state, never deltas
    - Closing a subscription stops all further callbacks synchronously
    - Failures surface as BackendError carrying a backend code
"""

from .base import (
    AuthBackend,
    AuthUser,
    BackendError,
    DataBackend,
    Document,
    Filter,
    Order,
    Snapshot,
    Unsubscribe,
)
from .memory import InMemoryBackend

__all__ = [
    # Protocols and types
    "AuthBackend",
    "DataBackend",
    "AuthUser",
    "BackendError",
    "Document",
    "Filter",
    "Order",
    "Snapshot",
    "Unsubscribe",
    # Implementations
    "InMemoryBackend",
]
