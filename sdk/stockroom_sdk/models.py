"""
Entity types for the Stockroom SDK.

This module provides the documents the SDK reads and writes:
- Store: a user's shop
- Product: an item stocked in a store
- Log: append-only audit record of a store's mutations

Invariants:
    - owner_id never changes after creation
    - Product.name is the normalized (stripped, lowercase) uniqueness key
    - Product.store_id never changes
    - Timestamps are Unix milliseconds and strictly increase within a process
"""

from __future__ import annotations

import threading
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional

Identity = str

_clock_lock = threading.Lock()
_last_ms = 0


def now_ms() -> int:
    """Current time in Unix milliseconds, strictly increasing per process."""
    global _last_ms
    with _clock_lock:
        _last_ms = max(int(time.time() * 1000), _last_ms + 1)
        return _last_ms


def normalize_name(text: str) -> str:
    """Uniqueness key for a product name."""
    return text.strip().lower()


@dataclass(frozen=True)
class Store:
    """A store owned by one identity.

    Attributes:
        id: Backend document id
        name: Display name (non-empty)
        description: Free text, placeholder when not given
        owner_id: Owning identity
        created_at: Creation timestamp (Unix ms)
    """

    id: str
    name: str
    description: str
    owner_id: Identity
    created_at: int

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> Store:
        return cls(
            id=doc["id"],
            name=doc["name"],
            description=doc.get("description", ""),
            owner_id=doc["owner_id"],
            created_at=doc["created_at"],
        )

    def to_fields(self) -> Dict[str, Any]:
        fields = asdict(self)
        fields.pop("id")
        return fields


@dataclass(frozen=True)
class Product:
    """A product stocked in a store.

    Attributes:
        id: Backend document id
        store_id: Store this product belongs to
        owner_id: Owning identity
        name: Normalized name (uniqueness key within store and owner)
        display_name: Name as the user typed it
        price: Unit price, always positive
        quantity: Units in stock, never negative
        created_at: Creation timestamp (Unix ms)
        updated_at: Last update timestamp (Unix ms), if ever updated
    """

    id: str
    store_id: str
    owner_id: Identity
    name: str
    display_name: str
    price: float
    quantity: int
    created_at: int
    updated_at: Optional[int] = None

    @property
    def label(self) -> str:
        """Name to show the user."""
        return self.display_name or self.name

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> Product:
        return cls(
            id=doc["id"],
            store_id=doc["store_id"],
            owner_id=doc["owner_id"],
            name=doc["name"],
            display_name=doc.get("display_name") or doc["name"],
            price=doc["price"],
            quantity=doc["quantity"],
            created_at=doc["created_at"],
            updated_at=doc.get("updated_at"),
        )

    def to_fields(self) -> Dict[str, Any]:
        fields = asdict(self)
        fields.pop("id")
        if fields["updated_at"] is None:
            fields.pop("updated_at")
        return fields


@dataclass(frozen=True)
class Log:
    """Audit record of one successful mutation.

    Attributes:
        id: Backend document id
        store_id: Store the action happened in
        owner_id: Acting identity
        action: Human-readable description
        timestamp: When the action was recorded (Unix ms)
    """

    id: str
    store_id: str
    owner_id: Identity
    action: str
    timestamp: int

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> Log:
        return cls(
            id=doc["id"],
            store_id=doc["store_id"],
            owner_id=doc["owner_id"],
            action=doc["action"],
            timestamp=doc["timestamp"],
        )

    def to_fields(self) -> Dict[str, Any]:
        fields = asdict(self)
        fields.pop("id")
        return fields


def search_products(products: Iterable[Product], query: str) -> List[Product]:
    """Products whose label contains the query, ignoring case.

    An empty or blank query matches everything.
    """
    needle = query.strip().lower()
    return [p for p in products if needle in p.label.lower()]
