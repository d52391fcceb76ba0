"""
Stockroom Python SDK - client-side data sync and access control for a
store and product inventory tracker.

This SDK provides:
- SessionProvider tracking the signed-in identity
- LiveCollectionQuery keeping a per-identity, real-time view of a collection
- EntityRepository enforcing validation, ownership and guard rules on writes
- AuditLogger appending one log record per successful mutation
- InMemoryBackend implementing the backend protocols for tests and demos

Example:
    >>> from stockroom_sdk import InMemoryBackend, StockroomClient
    >>>
    >>> async with StockroomClient(InMemoryBackend()) as client:
    ...     await client.auth.sign_up("me@example.com", "secret1", "secret1")
    ...     await client.session.wait_until_ready()
    ...     result = await client.stores.create(client.require_identity(),
    ...                                         {"name": "Corner Shop"})

Invariants:
    - Live queries never expose another identity's documents
    - Validation and guard failures never reach the backend
    - Products are deleted only at zero quantity
    - Deleting a store deletes its products and logs

Version: 1.0.0
"""

__version__ = "1.0.0"

from .audit import AuditLogger
from .auth import AuthClient
from .backend import (
    AuthBackend,
    AuthUser,
    BackendError,
    DataBackend,
    Filter,
    InMemoryBackend,
    Order,
    Snapshot,
)
from .client import StockroomClient
from .config import Settings
from .errors import (
    AuthError,
    ConflictError,
    NetworkError,
    NotFoundError,
    PreconditionError,
    StockroomError,
    UnknownFieldError,
    ValidationError,
)
from .guards import (
    can_delete_product,
    can_delete_store,
    is_duplicate_product_name,
)
from .kinds import KINDS, LOGS, PRODUCTS, STORES, EntityKind
from .live_query import LiveCollectionQuery, LiveQueryHub, QueryState
from .log_setup import setup_logging
from .models import Log, Product, Store, normalize_name, search_products
from .repository import AuditWarning, EntityRepository, MutationResult, StoreLocks
from .session import SessionProvider, SessionState

__all__ = [
    # Version
    "__version__",
    # Models
    "Store",
    "Product",
    "Log",
    "normalize_name",
    "search_products",
    # Guards
    "can_delete_store",
    "can_delete_product",
    "is_duplicate_product_name",
    # Kinds
    "EntityKind",
    "KINDS",
    "STORES",
    "PRODUCTS",
    "LOGS",
    # Backend
    "AuthBackend",
    "DataBackend",
    "AuthUser",
    "BackendError",
    "Filter",
    "Order",
    "Snapshot",
    "InMemoryBackend",
    # Components
    "SessionProvider",
    "SessionState",
    "LiveCollectionQuery",
    "LiveQueryHub",
    "QueryState",
    "EntityRepository",
    "MutationResult",
    "StoreLocks",
    "AuditWarning",
    "AuditLogger",
    "AuthClient",
    "StockroomClient",
    # Config
    "Settings",
    "setup_logging",
    # Errors
    "StockroomError",
    "ValidationError",
    "UnknownFieldError",
    "ConflictError",
    "PreconditionError",
    "AuthError",
    "NetworkError",
    "NotFoundError",
]
