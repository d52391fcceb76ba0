"""
Audit trail for Stockroom mutations.

AuditLogger appends one immutable Log document per successful mutation.
The describe_* functions render the human-readable action text.

Invariants:
    - Logs are only ever created here, never updated or deleted
    - Every log carries the acting identity and a timestamp
    - An append failure raises a classified StockroomError; the
      repository downgrades it to a warning on the mutation result
"""

from __future__ import annotations

import logging
from typing import Optional

from .backend.base import BackendError, DataBackend
from .config import Settings
from .errors import classify_backend_error
from .models import Identity, Log, Product, Store, now_ms

logger = logging.getLogger(__name__)

CREATE = "create"
UPDATE = "update"
DELETE = "delete"


def format_amount(value: float) -> str:
    """Render a number without a trailing ``.0``."""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def describe_store(action: str, store: Store, settings: Settings) -> Optional[str]:
    """Action text for a store mutation.

    Store deletion has no text: the cascade removes the store's logs.
    """
    if action == CREATE:
        return f"Created store: {store.name}"
    if action == UPDATE:
        return f"Updated store: {store.name}"
    return None


def describe_product(action: str, product: Product, settings: Settings) -> Optional[str]:
    """Action text for a product mutation."""
    if action == DELETE:
        return f"Deleted product: {product.label}"
    verb = "Added" if action == CREATE else "Updated"
    return (
        f"{verb} product: {product.label} "
        f"(Quantity: {product.quantity}, "
        f"Price: {settings.currency_symbol}{format_amount(product.price)})"
    )


class AuditLogger:
    """Appends audit records to the logs collection.

    Example:
        >>> audit = AuditLogger(backend, Settings())
        >>> log = await audit.record("u1", "s1", "Deleted product: Rice")
    """

    def __init__(self, backend: DataBackend, settings: Settings) -> None:
        self._backend = backend
        self._collection = settings.logs_collection

    async def record(self, identity: Identity, store_id: str, action: str) -> Log:
        """Append one log record.

        Raises:
            StockroomError: Classified backend failure
        """
        fields = {
            "store_id": store_id,
            "owner_id": identity,
            "action": action,
            "timestamp": now_ms(),
        }
        try:
            log_id = await self._backend.create(self._collection, fields)
        except BackendError as e:
            raise classify_backend_error(e, resource_type="log") from e

        logger.debug("Audit log appended", extra={"store_id": store_id, "log_id": log_id})
        return Log(id=log_id, **fields)
