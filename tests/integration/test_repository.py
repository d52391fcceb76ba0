"""
Integration tests for EntityRepository against the in-memory backend.

Tests cover:
- The store/product lifecycle with audit logs
- Duplicate names, ownership and parent checks
- Store deletion cascade
- Audit failures downgraded to warnings
- Backend error classification
- Overlapping mutations on one store
"""

import asyncio

import pytest

from sdk.stockroom_sdk.errors import (
    AuthError,
    ConflictError,
    NetworkError,
    NotFoundError,
    PreconditionError,
    UnknownFieldError,
    ValidationError,
)
from sdk.stockroom_sdk.repository import MutationResult, StoreLocks


async def make_store(stores, identity="u1", name="Corner Shop"):
    return (await stores.create(identity, {"name": name})).entity


async def make_product(products, store_id, identity="u1", name="Rice", price="45.50", quantity="10"):
    result = await products.create(
        identity,
        {"store_id": store_id, "name": name, "price": price, "quantity": quantity},
    )
    return result.entity


class TestStoreRepository:
    """Tests for store operations."""

    @pytest.mark.asyncio
    async def test_create_store(self, stores, settings):
        result = await stores.create("u1", {"name": "  Corner Shop ", "description": ""})

        store = result.entity
        assert store.name == "Corner Shop"
        assert store.description == settings.default_store_description
        assert store.owner_id == "u1"
        assert result.log.action == "Created store: Corner Shop"
        assert result.log.store_id == store.id
        assert not result.has_warnings

    @pytest.mark.asyncio
    async def test_list_is_owner_scoped_newest_first(self, stores):
        await make_store(stores, "u1", "First")
        await make_store(stores, "u2", "Not mine")
        await make_store(stores, "u1", "Second")

        assert [s.name for s in await stores.list("u1")] == ["Second", "First"]

    @pytest.mark.asyncio
    async def test_update_store_logs(self, stores):
        store = await make_store(stores)
        result = await stores.update("u1", store.id, {"name": "Corner Shop 2"})

        assert result.entity.name == "Corner Shop 2"
        assert result.log.action == "Updated store: Corner Shop 2"

    @pytest.mark.asyncio
    async def test_get_hides_other_owners(self, stores):
        store = await make_store(stores, "u1")
        with pytest.raises(NotFoundError):
            await stores.get("u2", store.id)

    @pytest.mark.asyncio
    async def test_non_owner_cannot_delete(self, stores, backend):
        store = await make_store(stores, "u1")
        with pytest.raises(PreconditionError) as exc_info:
            await stores.delete("u2", store.id)
        assert exc_info.value.message == "Only the store owner can delete this store."
        assert len(backend.documents("stores")) == 1

    @pytest.mark.asyncio
    async def test_requires_identity(self, stores):
        with pytest.raises(AuthError):
            await stores.create(None, {"name": "Corner Shop"})

    @pytest.mark.asyncio
    async def test_immutable_field_rejected(self, stores):
        store = await make_store(stores)
        with pytest.raises(ValidationError):
            await stores.update("u1", store.id, {"owner_id": "u2"})

    @pytest.mark.asyncio
    async def test_unknown_field_suggests(self, stores):
        with pytest.raises(UnknownFieldError) as exc_info:
            await stores.create("u1", {"nmae": "Corner Shop"})
        assert "name" in exc_info.value.suggestions


class TestStoreCascade:
    """Tests for deleting a store with children."""

    @pytest.mark.asyncio
    async def test_delete_removes_products_and_logs(self, stores, products, backend):
        store = await make_store(stores)
        other = await make_store(stores, name="Other")
        await make_product(products, store.id, name="Rice")
        await make_product(products, store.id, name="Sugar")
        kept = await make_product(products, other.id, name="Salt")

        result = await stores.delete("u1", store.id)

        assert result.log is None
        assert [d["id"] for d in backend.documents("stores")] == [other.id]
        assert [d["id"] for d in backend.documents("products")] == [kept.id]
        assert all(d["store_id"] == other.id for d in backend.documents("logs"))

    @pytest.mark.asyncio
    async def test_cascade_ignores_stock(self, stores, products, backend):
        """Products with stock do not block deleting their store."""
        store = await make_store(stores)
        await make_product(products, store.id, quantity=99)

        await stores.delete("u1", store.id)
        assert backend.documents("products") == []


class TestProductRepository:
    """Tests for product operations."""

    @pytest.mark.asyncio
    async def test_product_lifecycle(self, stores, products, logs):
        """Stock, refuse deletion while stocked, zero out, then delete."""
        store = await make_store(stores)

        created = await products.create(
            "u1",
            {"store_id": store.id, "name": "Rice", "price": "45.50", "quantity": "10"},
        )
        rice = created.entity
        assert rice.name == "rice"
        assert rice.label == "Rice"
        assert rice.price == 45.5
        assert created.log.action == "Added product: Rice (Quantity: 10, Price: ₱45.5)"

        with pytest.raises(PreconditionError) as exc_info:
            await products.delete("u1", rice.id)
        assert "0 quantity" in exc_info.value.message
        assert len(await logs.list("u1", store_id=store.id)) == 2

        updated = await products.update("u1", rice.id, {"quantity": 0})
        assert updated.entity.quantity == 0
        assert updated.entity.updated_at is not None
        assert updated.log.action == "Updated product: Rice (Quantity: 0, Price: ₱45.5)"

        deleted = await products.delete("u1", rice.id)
        assert deleted.log.action == "Deleted product: Rice"

        actions = [log.action for log in await logs.list("u1", store_id=store.id)]
        assert actions == [
            "Deleted product: Rice",
            "Updated product: Rice (Quantity: 0, Price: ₱45.5)",
            "Added product: Rice (Quantity: 10, Price: ₱45.5)",
            "Created store: Corner Shop",
        ]

    @pytest.mark.asyncio
    async def test_duplicate_name_case_insensitive(self, stores, products, backend):
        store = await make_store(stores)
        await make_product(products, store.id, name="Rice")
        before = len(backend.documents("logs"))

        with pytest.raises(ConflictError) as exc_info:
            await make_product(products, store.id, name="  RICE ")

        assert exc_info.value.message == "A product with this name already exists in this store"
        assert len(backend.documents("products")) == 1
        assert len(backend.documents("logs")) == before

    @pytest.mark.asyncio
    async def test_same_name_in_other_store(self, stores, products):
        first = await make_store(stores, name="A")
        second = await make_store(stores, name="B")
        await make_product(products, first.id, name="Rice")
        await make_product(products, second.id, name="Rice")

    @pytest.mark.asyncio
    async def test_rename_collision(self, stores, products):
        store = await make_store(stores)
        await make_product(products, store.id, name="Rice")
        sugar = await make_product(products, store.id, name="Sugar")

        with pytest.raises(ConflictError):
            await products.update("u1", sugar.id, {"name": "rice"})

    @pytest.mark.asyncio
    async def test_rename_to_own_name(self, stores, products):
        """Changing only the capitalisation of a product's own name is allowed."""
        store = await make_store(stores)
        rice = await make_product(products, store.id, name="Rice")

        result = await products.update("u1", rice.id, {"name": "RICE"})
        assert result.entity.label == "RICE"

    @pytest.mark.asyncio
    async def test_missing_parent(self, products):
        with pytest.raises(NotFoundError) as exc_info:
            await make_product(products, "no-such-store")
        assert exc_info.value.resource_type == "store"

    @pytest.mark.asyncio
    async def test_parent_owned_by_someone_else(self, stores, products):
        store = await make_store(stores, "u1")
        with pytest.raises(PreconditionError):
            await make_product(products, store.id, identity="u2")

    @pytest.mark.asyncio
    async def test_non_owner_cannot_update_or_delete(self, stores, products):
        store = await make_store(stores, "u1")
        rice = await make_product(products, store.id, quantity="0")

        with pytest.raises(PreconditionError):
            await products.update("u2", rice.id, {"quantity": 5})
        with pytest.raises(PreconditionError) as exc_info:
            await products.delete("u2", rice.id)
        assert exc_info.value.message == "Only the owner can delete this product."

    @pytest.mark.asyncio
    async def test_validation_before_backend(self, stores, products, backend):
        """Invalid input fails locally; queued backend failures stay unused."""
        store = await make_store(stores)
        backend.fail_next("get_one", "unavailable")

        with pytest.raises(ValidationError) as exc_info:
            await products.create(
                "u1", {"store_id": store.id, "name": " ", "price": "0", "quantity": "-1"}
            )
        assert exc_info.value.errors == [
            "Product name is required.",
            "Enter a valid price greater than 0.",
            "Enter a valid non-negative quantity.",
        ]

        with pytest.raises(NetworkError):
            await stores.get("u1", store.id)

    @pytest.mark.asyncio
    async def test_list_rejects_unknown_scope(self, products):
        with pytest.raises(ValidationError):
            await products.list("u1", owner="u2")


class TestAuditAndBackendFailures:
    """Tests for audit warnings and classified backend errors."""

    @pytest.mark.asyncio
    async def test_audit_failure_is_a_warning(self, stores, products, backend):
        store = await make_store(stores)
        backend.fail_next("create", "unavailable", collection="logs")

        result = await products.create(
            "u1", {"store_id": store.id, "name": "Rice", "price": 45.5, "quantity": 10}
        )

        assert result.log is None
        assert result.has_warnings
        assert result.warnings[0].message.startswith(
            "Saved, but the activity log could not be updated"
        )
        assert isinstance(result.warnings[0].error, NetworkError)
        assert len(backend.documents("products")) == 1

    @pytest.mark.asyncio
    async def test_write_failure_is_classified(self, stores, backend):
        backend.fail_next("create", "permission-denied", collection="stores")
        with pytest.raises(NetworkError) as exc_info:
            await make_store(stores)
        assert exc_info.value.backend_code == "permission-denied"
        assert backend.documents("logs") == []

    @pytest.mark.asyncio
    async def test_update_vanished_document(self, stores, products, backend):
        store = await make_store(stores)
        rice = await make_product(products, store.id)
        backend.fail_next("update", "not-found", collection="products")

        with pytest.raises(NotFoundError) as exc_info:
            await products.update("u1", rice.id, {"quantity": 1})
        assert exc_info.value.resource_id == rice.id

    @pytest.mark.asyncio
    async def test_logs_are_read_only(self, stores, logs):
        store = await make_store(stores)
        with pytest.raises(PreconditionError):
            await logs.create("u1", {"store_id": store.id, "action": "forged"})

        entries = await logs.list("u1", store_id=store.id)
        with pytest.raises(PreconditionError):
            await logs.delete("u1", entries[0].id)


class TestConcurrentMutations:
    """Tests for overlapping mutations on one store."""

    def test_locks_are_per_store(self):
        locks = StoreLocks()
        assert locks.lock("s1") is locks.lock("s1")
        assert locks.lock("s1") is not locks.lock("s2")

    @pytest.mark.asyncio
    async def test_duplicate_creates_conflict_once(self, stores, products, backend):
        store = await make_store(stores)

        results = await asyncio.gather(
            make_product(products, store.id, name="Rice"),
            make_product(products, store.id, name="RICE"),
            return_exceptions=True,
        )

        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(conflicts) == 1
        assert [d["name"] for d in backend.documents("products")] == ["rice"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("delete_first", [False, True])
    async def test_create_during_store_delete_leaves_no_orphans(
        self, stores, products, backend, delete_first
    ):
        """Whichever runs first, nothing survives under the deleted store."""
        store = await make_store(stores)
        create = make_product(products, store.id, quantity="1")
        delete = stores.delete("u1", store.id)
        calls = [delete, create] if delete_first else [create, delete]

        results = await asyncio.gather(*calls, return_exceptions=True)
        delete_result, create_result = results if delete_first else results[::-1]

        assert isinstance(delete_result, MutationResult)
        assert not isinstance(create_result, Exception) or isinstance(
            create_result, NotFoundError
        )
        assert backend.documents("stores") == []
        assert [d for d in backend.documents("products") if d["store_id"] == store.id] == []
        assert [d for d in backend.documents("logs") if d["store_id"] == store.id] == []

    @pytest.mark.asyncio
    async def test_restock_during_delete_keeps_stock(self, stores, products, backend):
        """A product restocked while being deleted is never lost with its stock."""
        store = await make_store(stores)
        rice = await make_product(products, store.id, quantity="0")

        update_result, delete_result = await asyncio.gather(
            products.update("u1", rice.id, {"quantity": 50}),
            products.delete("u1", rice.id),
            return_exceptions=True,
        )

        assert not (
            isinstance(update_result, MutationResult)
            and isinstance(delete_result, MutationResult)
        )
        remaining = backend.documents("products")
        if isinstance(delete_result, PreconditionError):
            assert isinstance(update_result, MutationResult)
            assert [d["quantity"] for d in remaining] == [50]
        else:
            assert isinstance(delete_result, MutationResult)
            assert isinstance(update_result, NotFoundError)
            assert remaining == []

    @pytest.mark.asyncio
    async def test_same_name_in_two_stores_at_once(self, stores, products, backend):
        """Locks are per store; the same name in two stores is not a conflict."""
        first = await make_store(stores, name="A")
        second = await make_store(stores, name="B")

        await asyncio.gather(
            make_product(products, first.id, name="Rice"),
            make_product(products, second.id, name="Rice"),
        )
        assert len(backend.documents("products")) == 2
