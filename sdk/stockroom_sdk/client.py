"""
Stockroom client facade.

StockroomClient wires one backend to the SDK components:
- SessionProvider: current identity
- AuthClient: sign in, sign up, sign out
- EntityRepository per kind: stores, products, logs
- LiveQueryHub: shared live queries

Example:
    >>> backend = InMemoryBackend()
    >>> async with StockroomClient(backend) as client:
    ...     await client.auth.sign_up("me@example.com", "secret1", "secret1")
    ...     await client.session.wait_until_ready()
    ...     store = (await client.stores.create(client.require_identity(),
    ...                                         {"name": "Corner Shop"})).entity
    ...     products = client.live_products(store.id)

Invariants:
    - One SessionProvider per client, injected into every consumer
    - Live queries are only created through the hub
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from .audit import AuditLogger
from .auth import AuthClient
from .backend.base import AuthBackend, DataBackend
from .config import Settings
from .errors import AuthError
from .kinds import LOGS, PRODUCTS, STORES
from .live_query import LiveCollectionQuery, LiveQueryHub
from .models import Identity
from .repository import EntityRepository, StoreLocks
from .session import SessionProvider

logger = logging.getLogger(__name__)


class StockroomClient:
    """Entry point for applications.

    The backend must implement both AuthBackend and DataBackend.

    Attributes:
        settings: SDK settings
        session: Session provider
        auth: Authentication operations
        stores: Store repository
        products: Product repository
        logs: Log repository (read-only)
        locks: Per-store mutation locks shared by the repositories
        live: Live query hub
    """

    def __init__(self, backend: Any, *, settings: Optional[Settings] = None) -> None:
        if not isinstance(backend, AuthBackend) or not isinstance(backend, DataBackend):
            raise TypeError("backend must implement AuthBackend and DataBackend")

        self.settings = settings or Settings()
        self.backend = backend
        self.session = SessionProvider(backend)
        self.auth = AuthClient(backend, self.settings)
        self.audit = AuditLogger(backend, self.settings)

        # Every repository shares one lock map.
        self.locks = StoreLocks()
        repo_args = {"audit": self.audit, "settings": self.settings, "locks": self.locks}
        self.stores = EntityRepository(backend, STORES, **repo_args)
        self.products = EntityRepository(backend, PRODUCTS, **repo_args)
        self.logs = EntityRepository(backend, LOGS, **repo_args)

        self.live = LiveQueryHub(backend, self.session, self.settings)

    @property
    def identity(self) -> Optional[Identity]:
        return self.session.identity

    def require_identity(self) -> Identity:
        """Current identity, or AuthError when signed out."""
        identity = self.session.identity
        if identity is None:
            raise AuthError("You must be logged in to do that.")
        return identity

    async def start(self) -> None:
        """Start tracking the session and wait for the first auth report."""
        self.session.start()
        await self.session.wait_until_ready()
        logger.info("Stockroom client started", extra={"identity": self.identity})

    async def stop(self) -> None:
        """Close every live query and stop tracking the session."""
        self.live.close()
        self.session.stop()
        logger.info("Stockroom client stopped")

    async def __aenter__(self) -> StockroomClient:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()

    def live_stores(self) -> LiveCollectionQuery:
        """Shared live query of the signed-in identity's stores, newest first."""
        return self.live.acquire(STORES)

    def live_products(self, store_id: str) -> LiveCollectionQuery:
        """Shared live query of a store's products, by name."""
        return self.live.acquire(PRODUCTS, store_id=store_id)

    def live_logs(self, store_id: str) -> LiveCollectionQuery:
        """Shared live query of a store's audit logs, newest first."""
        return self.live.acquire(LOGS, store_id=store_id)
