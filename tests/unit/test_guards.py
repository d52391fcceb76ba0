"""
Unit tests for guard rules.

Tests cover:
- Store deletion ownership
- Product deletion at zero quantity
- Product name uniqueness within store and owner
"""

from dataclasses import replace

import pytest

from sdk.stockroom_sdk.guards import (
    can_delete_product,
    can_delete_store,
    is_duplicate_product_name,
    is_owner,
)
from sdk.stockroom_sdk.models import Product, Store


def make_product(id="p1", name="rice", store_id="s1", owner_id="u1", quantity=0):
    return Product(
        id=id,
        store_id=store_id,
        owner_id=owner_id,
        name=name,
        display_name=name.title(),
        price=45.5,
        quantity=quantity,
        created_at=1,
    )


class TestStoreGuards:
    """Tests for store deletion rules."""

    @pytest.fixture
    def store(self):
        return Store(
            id="s1",
            name="Corner Shop",
            description="",
            owner_id="u1",
            created_at=1,
        )

    def test_owner_can_delete(self, store):
        """Owner may delete their store."""
        assert can_delete_store(store, "u1") is True

    @pytest.mark.parametrize("identity", ["u2", "", None])
    def test_others_cannot_delete(self, store, identity):
        """Any other identity, or none, is refused."""
        assert can_delete_store(store, identity) is False

    def test_is_owner_requires_identity(self, store):
        """Signed-out callers own nothing."""
        assert is_owner(store, None) is False


class TestProductGuards:
    """Tests for product deletion rules."""

    @pytest.mark.parametrize("quantity,allowed", [(0, True), (1, False), (10, False)])
    def test_delete_only_at_zero(self, quantity, allowed):
        """Deletion allowed exactly when quantity is zero."""
        assert can_delete_product(make_product(quantity=quantity)) is allowed


class TestDuplicateProductName:
    """Tests for is_duplicate_product_name."""

    def test_same_name_different_case(self):
        """Names compare case-insensitively."""
        existing = [make_product(name="rice")]
        candidate = make_product(id="", name="RICE")
        assert is_duplicate_product_name(existing, candidate)

    def test_surrounding_whitespace_ignored(self):
        """Names compare after stripping."""
        existing = [make_product(name="rice")]
        candidate = make_product(id="", name="  Rice ")
        assert is_duplicate_product_name(existing, candidate)

    def test_different_name(self):
        """Distinct names are not duplicates."""
        existing = [make_product(name="rice")]
        assert not is_duplicate_product_name(existing, make_product(id="", name="sugar"))

    def test_other_store_not_duplicate(self):
        """Same name in another store is allowed."""
        existing = [make_product(name="rice", store_id="s2")]
        assert not is_duplicate_product_name(existing, make_product(id="", name="rice"))

    def test_other_owner_not_duplicate(self):
        """Same name for another owner is allowed."""
        existing = [make_product(name="rice", owner_id="u2")]
        assert not is_duplicate_product_name(existing, make_product(id="", name="rice"))

    def test_exclude_id_skips_self(self):
        """Renaming a product to its own name is not a conflict."""
        rice = make_product(id="p1", name="rice")
        renamed = replace(rice, name="Rice")
        assert not is_duplicate_product_name([rice], renamed, exclude_id="p1")

    def test_exclude_id_still_checks_others(self):
        """Excluding one product does not hide another with the name."""
        existing = [make_product(id="p1", name="rice"), make_product(id="p2", name="sugar")]
        renamed = make_product(id="p1", name="sugar")
        assert is_duplicate_product_name(existing, renamed, exclude_id="p1")

    def test_empty_existing(self):
        """Nothing to collide with."""
        assert not is_duplicate_product_name([], make_product(id=""))
