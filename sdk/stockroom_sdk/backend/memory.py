"""
In-memory backend implementation for testing.

This module provides a single-process stand-in for the hosted backend:
- Unit and integration tests
- The demo script
- Local development without network access

Invariants:
    - All data is lost on process exit
    - Every I/O call yields to the event loop before completing
    - Subscribers receive full snapshots, materialized at delivery time
    - A closed subscription never receives another callback

How to change safely:
    - Keep interface compatible with AuthBackend and DataBackend
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import re
import time
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import logging

from .base import (
    AuthCallback,
    AuthUser,
    BackendError,
    Document,
    ErrorCallback,
    Filter,
    Order,
    Snapshot,
    SnapshotCallback,
    Unsubscribe,
)

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass
class _Subscription:
    """Registered live query."""
    sub_id: int
    collection: str
    filters: Tuple[Filter, ...]
    order: Optional[Order]
    on_snapshot: SnapshotCallback
    on_error: ErrorCallback
    active: bool = True


@dataclass
class _Account:
    uid: str
    email: str
    password: str
    disabled: bool = False
    failed_attempts: int = 0


@dataclass
class _AuthListener:
    callback: AuthCallback
    active: bool = True


class InMemoryBackend:
    """In-memory implementation of AuthBackend and DataBackend.

    Attributes:
        min_password_length: Shortest password sign_up accepts
        max_failed_attempts: Wrong passwords before ``too-many-requests``
        subscription_events: Journal of ("open" | "close", id, collection, filters)

    Example:
        >>> backend = InMemoryBackend()
        >>> user = await backend.sign_up("a@example.com", "secret1")
        >>> store_id = await backend.create("stores", {"name": "Corner Shop"})
        >>> await backend.settle()
    """

    def __init__(
        self,
        *,
        id_factory: Optional[Callable[[], str]] = None,
        min_password_length: int = 6,
        max_failed_attempts: int = 5,
    ) -> None:
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self.min_password_length = min_password_length
        self.max_failed_attempts = max_failed_attempts

        self._collections: Dict[str, Dict[str, Document]] = defaultdict(dict)
        self._subscriptions: Dict[int, _Subscription] = {}
        self._sub_ids = itertools.count(1)
        self._pending = 0
        self._failures: Dict[Tuple[str, Optional[str]], List[str]] = defaultdict(list)

        self._accounts: Dict[str, _Account] = {}
        self._current_user: Optional[AuthUser] = None
        self._auth_listeners: List[_AuthListener] = []

        self.subscription_events: List[Tuple[str, int, str, Tuple[Filter, ...]]] = []

    # Auth

    @property
    def current_user(self) -> Optional[AuthUser]:
        return self._current_user

    def on_auth_state_change(self, callback: AuthCallback) -> Unsubscribe:
        listener = _AuthListener(callback)
        self._auth_listeners.append(listener)
        self._schedule(self._notify_listener, listener, self._current_user)

        def unsubscribe() -> None:
            listener.active = False
            if listener in self._auth_listeners:
                self._auth_listeners.remove(listener)

        return unsubscribe

    async def sign_in(self, email: str, password: str) -> AuthUser:
        await self._io("sign_in")
        email = email.strip().lower()
        if not _EMAIL_RE.match(email):
            raise BackendError("auth/invalid-email", "Badly formatted email")

        account = self._accounts.get(email)
        if account is None:
            raise BackendError("auth/user-not-found", "No user record")
        if account.disabled:
            raise BackendError("auth/user-disabled", "User disabled")
        if account.failed_attempts >= self.max_failed_attempts:
            raise BackendError("auth/too-many-requests", "Account temporarily locked")
        if account.password != password:
            account.failed_attempts += 1
            raise BackendError("auth/wrong-password", "Wrong password")

        account.failed_attempts = 0
        user = AuthUser(uid=account.uid, email=account.email)
        self._set_current_user(user)
        logger.debug("Signed in", extra={"uid": user.uid})
        return user

    async def sign_up(self, email: str, password: str) -> AuthUser:
        await self._io("sign_up")
        email = email.strip().lower()
        if not _EMAIL_RE.match(email):
            raise BackendError("auth/invalid-email", "Badly formatted email")
        if len(password) < self.min_password_length:
            raise BackendError("auth/weak-password", "Password too short")
        if email in self._accounts:
            raise BackendError("auth/email-already-in-use", "Email taken")

        account = _Account(uid=self._id_factory(), email=email, password=password)
        self._accounts[email] = account
        user = AuthUser(uid=account.uid, email=account.email)
        self._set_current_user(user)
        logger.debug("Signed up", extra={"uid": user.uid})
        return user

    async def sign_out(self) -> None:
        await self._io("sign_out")
        self._set_current_user(None)

    def _set_current_user(self, user: Optional[AuthUser]) -> None:
        self._current_user = user
        for listener in list(self._auth_listeners):
            self._schedule(self._notify_listener, listener, user)

    def _notify_listener(self, listener: _AuthListener, user: Optional[AuthUser]) -> None:
        if listener.active:
            listener.callback(user)

    # Data

    def subscribe(
        self,
        collection: str,
        filters: Sequence[Filter],
        order: Optional[Order],
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        sub = _Subscription(
            sub_id=next(self._sub_ids),
            collection=collection,
            filters=tuple(filters),
            order=order,
            on_snapshot=on_snapshot,
            on_error=on_error,
        )
        self._subscriptions[sub.sub_id] = sub
        self.subscription_events.append(("open", sub.sub_id, collection, sub.filters))
        logger.debug(
            "Subscription opened",
            extra={"sub_id": sub.sub_id, "collection": collection},
        )

        failure = self._take_failure("subscribe", collection)
        if failure is not None:
            self._schedule(self._fail_subscription, sub, BackendError(failure))
        else:
            self._schedule(self._deliver, sub)

        def unsubscribe() -> None:
            if not sub.active:
                return
            sub.active = False
            self._subscriptions.pop(sub.sub_id, None)
            self.subscription_events.append(("close", sub.sub_id, collection, sub.filters))
            logger.debug(
                "Subscription closed",
                extra={"sub_id": sub.sub_id, "collection": collection},
            )

        return unsubscribe

    async def get_all(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order: Optional[Order] = None,
    ) -> List[Document]:
        await self._io("get_all", collection)
        return list(self._query(collection, filters, order))

    async def get_one(self, collection: str, doc_id: str) -> Optional[Document]:
        await self._io("get_one", collection)
        doc = self._collections[collection].get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def create(self, collection: str, fields: Document) -> str:
        await self._io("create", collection)
        doc_id = self._id_factory()
        doc = copy.deepcopy(fields)
        doc["id"] = doc_id
        self._collections[collection][doc_id] = doc
        self._changed(collection)
        return doc_id

    async def update(self, collection: str, doc_id: str, fields: Document) -> None:
        await self._io("update", collection)
        doc = self._collections[collection].get(doc_id)
        if doc is None:
            raise BackendError("not-found", f"No document {collection}/{doc_id}")
        doc.update(copy.deepcopy(fields))
        doc["id"] = doc_id
        self._changed(collection)

    async def delete(self, collection: str, doc_id: str) -> None:
        await self._io("delete", collection)
        if self._collections[collection].pop(doc_id, None) is not None:
            self._changed(collection)

    # Internals

    async def _io(self, operation: str, collection: Optional[str] = None) -> None:
        """Suspend like a network round trip, then apply any injected failure."""
        await asyncio.sleep(0)
        failure = self._take_failure(operation, collection)
        if failure is not None:
            raise BackendError(failure, f"Injected failure on {operation}")

    def _take_failure(self, operation: str, collection: Optional[str]) -> Optional[str]:
        for key in ((operation, collection), (operation, None)):
            queue = self._failures.get(key)
            if queue:
                return queue.pop(0)
        return None

    def _query(
        self,
        collection: str,
        filters: Sequence[Filter],
        order: Optional[Order],
    ) -> Tuple[Document, ...]:
        docs = [
            copy.deepcopy(doc)
            for doc in self._collections[collection].values()
            if all(f.matches(doc) for f in filters)
        ]
        if order is not None:
            docs.sort(key=lambda d: _sort_key(d.get(order.field)), reverse=order.descending)
        return tuple(docs)

    def _changed(self, collection: str) -> None:
        for sub in list(self._subscriptions.values()):
            if sub.collection == collection:
                self._schedule(self._deliver, sub)

    def _schedule(self, callback: Callable[..., None], *args) -> None:
        loop = asyncio.get_running_loop()
        self._pending += 1

        def run() -> None:
            self._pending -= 1
            callback(*args)

        loop.call_soon(run)

    def _deliver(self, sub: _Subscription) -> None:
        if not sub.active:
            return
        snapshot = Snapshot(
            collection=sub.collection,
            documents=self._query(sub.collection, sub.filters, sub.order),
            read_time_ms=int(time.time() * 1000),
        )
        sub.on_snapshot(snapshot)

    def _fail_subscription(self, sub: _Subscription, error: BackendError) -> None:
        if not sub.active:
            return
        sub.active = False
        self._subscriptions.pop(sub.sub_id, None)
        self.subscription_events.append(("close", sub.sub_id, sub.collection, sub.filters))
        logger.debug(
            "Subscription terminated by error",
            extra={"sub_id": sub.sub_id, "code": error.code},
        )
        sub.on_error(error)

    # Testing helpers

    def fail_next(self, operation: str, code: str, collection: Optional[str] = None) -> None:
        """Make the next matching operation fail with the given backend code.

        Args:
            operation: ``create``, ``update``, ``delete``, ``get_all``,
                ``get_one``, ``subscribe``, ``sign_in``, ``sign_up`` or ``sign_out``
            code: Backend error code to raise
            collection: Restrict to one collection (None matches any)
        """
        self._failures[(operation, collection)].append(code)

    def break_subscriptions(self, collection: str, code: str = "unavailable") -> int:
        """Terminate every active subscription on a collection with an error.

        Returns:
            Number of subscriptions broken
        """
        broken = 0
        for sub in list(self._subscriptions.values()):
            if sub.collection == collection:
                self._schedule(self._fail_subscription, sub, BackendError(code))
                broken += 1
        return broken

    def disable_user(self, email: str) -> None:
        """Mark an account as disabled."""
        self._accounts[email.strip().lower()].disabled = True

    def documents(self, collection: str) -> List[Document]:
        """Return every stored document of a collection (testing helper)."""
        return [copy.deepcopy(doc) for doc in self._collections[collection].values()]

    def active_subscriptions(self, collection: Optional[str] = None) -> int:
        """Count active subscriptions, optionally for one collection."""
        return sum(
            1
            for sub in self._subscriptions.values()
            if collection is None or sub.collection == collection
        )

    async def settle(self, max_rounds: int = 1000) -> None:
        """Yield to the event loop until no scheduled delivery is pending."""
        rounds = 0
        while self._pending and rounds < max_rounds:
            await asyncio.sleep(0)
            rounds += 1


def _sort_key(value):
    # None sorts first, like a missing field
    return (value is not None, value)
