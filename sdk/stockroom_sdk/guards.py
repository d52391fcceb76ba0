"""
Guard rules for Stockroom mutations.

Pure predicates deciding whether a mutation is permitted:
- Ownership (only the owner mutates a store or product)
- Product deletion (only at zero quantity)
- Product name uniqueness within a store and owner

Invariants:
    - No I/O, no side effects
    - Results depend only on the arguments
    - Name comparison uses the normalized (lowercase, stripped) name
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from .models import Identity, Product, Store, normalize_name


def is_owner(entity: Any, identity: Optional[Identity]) -> bool:
    """Whether the identity owns the entity.

    Args:
        entity: Any document with an ``owner_id``
        identity: Acting identity (None when signed out)

    Returns:
        True if identity is present and equals the owner
    """
    return identity is not None and entity.owner_id == identity


def can_delete_store(store: Store, identity: Optional[Identity]) -> bool:
    """Only the owning identity may delete a store."""
    return is_owner(store, identity)


def can_delete_product(product: Product) -> bool:
    """Products may only be deleted once their quantity reaches zero."""
    return product.quantity == 0


def is_duplicate_product_name(
    existing: Iterable[Product],
    candidate: Product,
    exclude_id: Optional[str] = None,
) -> bool:
    """Check whether a product name is already taken.

    Args:
        existing: Products to compare against
        candidate: Product being created or renamed
        exclude_id: Product id to ignore (the one being renamed)

    Returns:
        True if another product in the same store and owner scope has the
        same normalized name

    Example:
        >>> is_duplicate_product_name([rice], replace(rice, id="", name="RICE"))
        True
    """
    key = normalize_name(candidate.name)
    for product in existing:
        if exclude_id is not None and product.id == exclude_id:
            continue
        if (
            product.store_id == candidate.store_id
            and product.owner_id == candidate.owner_id
            and normalize_name(product.name) == key
        ):
            return True
    return False
