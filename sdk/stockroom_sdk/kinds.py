"""
Entity kind descriptors for the Stockroom SDK.

One EntityKind per collection describes everything the generic
repository and live queries need: where documents live, how to
validate them, how to order them, which guard rules apply and what
to cascade.

Invariants:
    - Kind names are stable; kinds reference each other by name
    - Every owned kind is filtered by owner_id in queries
    - Logs are read-only through repositories

Example:
    >>> PRODUCTS.collection(Settings())
    'products'
    >>> KINDS["product"].parent
    'store'
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from . import guards
from .audit import describe_product, describe_store
from .backend.base import Order
from .config import Settings
from .models import Identity, Log, Product, Store
from .validate import (
    validate_product_create,
    validate_product_update,
    validate_store_create,
    validate_store_update,
)

Validator = Callable[[Dict[str, Any], Settings], Dict[str, Any]]
DuplicateRule = Callable[[Iterable[Any], Any, Optional[str]], bool]
Describer = Callable[[str, Any, Settings], Optional[str]]


@dataclass(frozen=True)
class DeleteRule:
    """Guard evaluated against the current document before deletion.

    Attributes:
        check: Predicate taking (entity, identity); False blocks the delete
        message: User-facing reason when blocked
    """

    check: Callable[[Any, Optional[Identity]], bool]
    message: str


@dataclass(frozen=True)
class EntityKind:
    """Descriptor for one entity collection.

    Attributes:
        name: Kind name used in messages and errors
        collection_key: Settings attribute holding the collection name
        model: Dataclass with from_document()
        order: Default ordering for lists and live queries
        validate_create: Create validator (None for read-only kinds)
        validate_update: Update validator (None for read-only kinds)
        scope_fields: Extra equality filters callers may scope by
        parent: Kind name of the parent document, if any
        parent_field: Field referencing the parent
        children: Kind names deleted along with this kind
        duplicate_rule: Uniqueness predicate (existing, candidate, exclude_id)
        unique_field: Field the duplicate rule keys on
        delete_rules: Guards evaluated before deletion
        describe: Renders audit text for (action, entity, settings)
        audit_store_field: Attribute giving the store id for audit logs
        read_only: Whether repositories refuse writes
    """

    name: str
    collection_key: str
    model: Any
    order: Optional[Order] = None
    validate_create: Optional[Validator] = None
    validate_update: Optional[Validator] = None
    scope_fields: Tuple[str, ...] = ()
    parent: Optional[str] = None
    parent_field: Optional[str] = None
    children: Tuple[str, ...] = ()
    duplicate_rule: Optional[DuplicateRule] = None
    unique_field: Optional[str] = None
    delete_rules: Tuple[DeleteRule, ...] = ()
    describe: Optional[Describer] = None
    audit_store_field: str = "store_id"
    read_only: bool = False

    def collection(self, settings: Settings) -> str:
        return getattr(settings, self.collection_key)

    def from_document(self, doc: Dict[str, Any]) -> Any:
        return self.model.from_document(doc)


STORES = EntityKind(
    name="store",
    collection_key="stores_collection",
    model=Store,
    order=Order("created_at", descending=True),
    validate_create=validate_store_create,
    validate_update=validate_store_update,
    children=("product", "log"),
    delete_rules=(
        DeleteRule(guards.can_delete_store, "Only the store owner can delete this store."),
    ),
    describe=describe_store,
    audit_store_field="id",
)

PRODUCTS = EntityKind(
    name="product",
    collection_key="products_collection",
    model=Product,
    order=Order("name"),
    validate_create=validate_product_create,
    validate_update=validate_product_update,
    scope_fields=("store_id",),
    parent="store",
    parent_field="store_id",
    duplicate_rule=guards.is_duplicate_product_name,
    unique_field="name",
    delete_rules=(
        DeleteRule(guards.is_owner, "Only the owner can delete this product."),
        DeleteRule(
            lambda product, identity: guards.can_delete_product(product),
            "You can only delete products with 0 quantity. Please set quantity to 0 first.",
        ),
    ),
    describe=describe_product,
)

LOGS = EntityKind(
    name="log",
    collection_key="logs_collection",
    model=Log,
    order=Order("timestamp", descending=True),
    scope_fields=("store_id",),
    parent="store",
    parent_field="store_id",
    read_only=True,
)

KINDS: Dict[str, EntityKind] = {kind.name: kind for kind in (STORES, PRODUCTS, LOGS)}
