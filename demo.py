#!/usr/bin/env python3
"""
Stockroom Demo - Shows stores, products, guards and live views.

This demo runs the SDK against the in-memory backend, so no hosted
service is needed.
"""

import asyncio

from sdk.stockroom_sdk import (
    ConflictError,
    InMemoryBackend,
    PreconditionError,
    Settings,
    StockroomClient,
    search_products,
    setup_logging,
)


async def main():
    settings = Settings(log_format="text", log_level="WARNING")
    setup_logging(settings)

    print("=" * 60)
    print("Stockroom Demo - Stores, Products and Audit Logs")
    print("=" * 60)
    print()

    backend = InMemoryBackend()

    async with StockroomClient(backend, settings=settings) as client:
        # 1. Register
        print("[Step 1] Creating an account...")

        user = await client.auth.sign_up("owner@example.com", "secret1", "secret1")
        await backend.settle()
        me = client.require_identity()
        print(f"  - Signed in as {user.email} ({me})")

        # 2. Live view of stores
        print("\n[Step 2] Opening a live view of my stores...")

        stores_view = client.live_stores()
        stores_view.listen(lambda state: print(f"  * stores view: {len(state.items)} store(s)"))

        store = (await client.stores.create(me, {"name": "Corner Shop"})).entity
        await backend.settle()
        print(f"  - Created store: {store.name} ({store.description})")

        # 3. Stock products
        print("\n[Step 3] Stocking products...")

        products_view = client.live_products(store.id)
        for name, price, quantity in [
            ("Rice", "45.50", "10"),
            ("Sugar", "60", "4"),
            ("Cooking Oil", "120.75", "0"),
        ]:
            result = await client.products.create(
                me,
                {"store_id": store.id, "name": name, "price": price, "quantity": quantity},
            )
            print(f"  - {result.log.action}")
        await backend.settle()

        for product in products_view.items:
            print(
                f"    {product.label:<12} qty={product.quantity:<3} "
                f"price={settings.currency_symbol}{product.price}"
            )

        # 4. Uniqueness
        print("\n[Step 4] Adding a duplicate name...")

        try:
            await client.products.create(
                me, {"store_id": store.id, "name": "RICE", "price": 1, "quantity": 1}
            )
        except ConflictError as e:
            print(f"  - Rejected: {e.message}")

        # 5. Delete guard
        print("\n[Step 5] Deleting a stocked product...")

        rice = search_products(products_view.items, "rice")[0]
        try:
            await client.products.delete(me, rice.id)
        except PreconditionError as e:
            print(f"  - Rejected: {e.message}")

        await client.products.update(me, rice.id, {"quantity": 0})
        result = await client.products.delete(me, rice.id)
        await backend.settle()
        print(f"  - After setting quantity to 0: {result.log.action}")

        # 6. Audit trail
        print("\n[Step 6] Activity log (newest first)...")
        print("-" * 50)

        logs_view = client.live_logs(store.id)
        await backend.settle()
        for log in logs_view.items:
            print(f"  {log.timestamp}  {log.action}")
        print()

        # 7. Cascade
        print("[Step 7] Deleting the store...")

        await client.stores.delete(me, store.id)
        await backend.settle()
        print(f"  - Stores: {len(stores_view.items)}")
        print(f"  - Products left: {len(backend.documents(settings.products_collection))}")
        print(f"  - Logs left: {len(backend.documents(settings.logs_collection))}")
        print()

        await client.auth.sign_out()
        await backend.settle()

    print("=" * 60)
    print("Demo Complete!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
