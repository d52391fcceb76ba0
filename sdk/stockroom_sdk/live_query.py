"""
Live, per-identity collection queries.

LiveCollectionQuery follows the SessionProvider: whenever the signed-in
identity changes it closes its backend subscription and opens a new one
filtered by ``owner_id == identity`` (plus any scope such as a store id).
Each snapshot replaces the exposed items wholesale.

LiveQueryHub owns every live query so that consumers share one
subscription per (collection, scope) instead of opening duplicates.

Invariants:
    - At most one open subscription per query at any time
    - The previous subscription is closed before the next one opens
    - Items always equal the latest snapshot, never a merge of two
    - A failed subscription keeps its last items and reports an error;
      the error clears only when a new subscription delivers a snapshot
    - No callback from a closed subscription changes the state

Full-snapshot replacement costs O(collection size) per update, which is
acceptable for a single user's stores and products.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from .backend.base import BackendError, DataBackend, Filter, Snapshot, Unsubscribe
from .config import Settings
from .errors import StockroomError, ValidationError, classify_backend_error
from .kinds import EntityKind
from .models import Identity
from .session import SessionProvider, SessionState

logger = logging.getLogger(__name__)

QueryListener = Callable[["QueryState"], None]


@dataclass(frozen=True)
class QueryState:
    """Exposed state of a live query.

    Attributes:
        items: Entities from the latest snapshot, in query order
        loading: True until the first snapshot (or signed-out state) arrives
        error: Classified subscription failure, if any
        identity: Identity the items belong to
    """

    items: Tuple[Any, ...] = ()
    loading: bool = True
    error: Optional[StockroomError] = None
    identity: Optional[Identity] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class LiveCollectionQuery:
    """Live view of one identity's documents in a collection.

    Example:
        >>> stores = LiveCollectionQuery(backend, session, STORES, settings)
        >>> stores.start()
        >>> unlisten = stores.listen(lambda s: print(len(s.items)))
        >>> stores.stop()
    """

    def __init__(
        self,
        backend: DataBackend,
        session: SessionProvider,
        kind: EntityKind,
        settings: Settings,
        scope: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._backend = backend
        self._session = session
        self.kind = kind
        self.scope = dict(scope or {})
        self._collection = kind.collection(settings)

        unknown = sorted(set(self.scope) - set(kind.scope_fields))
        if unknown:
            raise ValidationError(
                f"Cannot scope {kind.name} by '{unknown[0]}'",
                field_name=unknown[0],
            )

        self._state = QueryState()
        self._listeners: List[QueryListener] = []
        self._session_unsubscribe: Optional[Callable[[], None]] = None
        self._unsubscribe: Optional[Unsubscribe] = None
        self._token: Optional[object] = None
        self._identity: Optional[Identity] = None

    @property
    def state(self) -> QueryState:
        return self._state

    @property
    def items(self) -> Tuple[Any, ...]:
        return self._state.items

    @property
    def subscribed(self) -> bool:
        """Whether a backend subscription is currently open."""
        return self._unsubscribe is not None

    @property
    def running(self) -> bool:
        return self._session_unsubscribe is not None

    def start(self) -> None:
        """Follow the session and keep a subscription for its identity."""
        if self._session_unsubscribe is not None:
            return
        self._session_unsubscribe = self._session.subscribe(self._on_session)

    def stop(self) -> None:
        """Close the subscription and stop following the session.

        No snapshot or error callback changes the state after this returns.
        """
        if self._session_unsubscribe is not None:
            self._session_unsubscribe()
            self._session_unsubscribe = None
        self._close()
        self._identity = None

    def refresh(self) -> None:
        """Reopen the subscription for the current identity.

        Used to recover after a subscription error; the error stays
        visible until the new subscription delivers its first snapshot.
        """
        if self._identity is None:
            return
        self._close()
        self._open(self._identity)

    def listen(self, listener: QueryListener) -> Callable[[], None]:
        """Register a state listener.

        Returns:
            Handle that removes the listener
        """
        self._listeners.append(listener)

        def unlisten() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unlisten

    # Session

    def _on_session(self, session: SessionState) -> None:
        if session.loading:
            return
        if session.identity == self._identity and (
            self._unsubscribe is not None or self._state.error is not None
        ):
            return

        self._close()
        self._identity = session.identity

        if session.identity is None:
            self._set_state(QueryState(loading=False))
            return
        self._open(session.identity)

    # Subscription

    def _filters(self, identity: Identity) -> List[Filter]:
        filters = [Filter("owner_id", identity)]
        filters.extend(Filter(name, value) for name, value in self.scope.items())
        return filters

    def _open(self, identity: Identity) -> None:
        token = object()
        self._token = token
        # Another identity's items must never stay visible.
        items = self._state.items if self._state.identity == identity else ()
        self._set_state(replace(self._state, items=items, loading=True, identity=identity))

        logger.debug(
            "Opening live query",
            extra={"collection": self._collection, "identity": identity, "scope": self.scope},
        )
        self._unsubscribe = self._backend.subscribe(
            self._collection,
            self._filters(identity),
            self.kind.order,
            lambda snapshot: self._on_snapshot(token, snapshot),
            lambda error: self._on_error(token, error),
        )

    def _close(self) -> None:
        self._token = None
        if self._unsubscribe is not None:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            unsubscribe()
            logger.debug(
                "Closed live query",
                extra={"collection": self._collection, "identity": self._identity},
            )

    def _on_snapshot(self, token: object, snapshot: Snapshot) -> None:
        if token is not self._token:
            return
        items = tuple(self.kind.from_document(doc) for doc in snapshot.documents)
        self._set_state(
            QueryState(items=items, loading=False, error=None, identity=self._identity)
        )

    def _on_error(self, token: object, error: BackendError) -> None:
        if token is not self._token:
            return
        # The backend ends a subscription after reporting an error.
        self._unsubscribe = None
        classified = classify_backend_error(error, resource_type=self.kind.name)
        logger.warning(
            "Live query failed",
            extra={
                "collection": self._collection,
                "identity": self._identity,
                "error_code": classified.code,
            },
        )
        self._set_state(replace(self._state, loading=False, error=classified))

    def _set_state(self, state: QueryState) -> None:
        if state == self._state:
            return
        self._state = state
        for listener in list(self._listeners):
            listener(state)


class LiveQueryHub:
    """Sole owner of live queries, shared by reference count.

    Example:
        >>> hub = LiveQueryHub(backend, session, settings)
        >>> products = hub.acquire(PRODUCTS, store_id="s1")
        >>> same = hub.acquire(PRODUCTS, store_id="s1")  # no second subscription
        >>> hub.release(products); hub.release(same)
    """

    def __init__(
        self,
        backend: DataBackend,
        session: SessionProvider,
        settings: Settings,
    ) -> None:
        self._backend = backend
        self._session = session
        self._settings = settings
        self._queries: Dict[Tuple, LiveCollectionQuery] = {}
        self._refcounts: Dict[Tuple, int] = {}

    def _key(self, kind: EntityKind, scope: Dict[str, Any]) -> Tuple:
        return (kind.collection(self._settings), tuple(sorted(scope.items())))

    def acquire(self, kind: EntityKind, **scope: Any) -> LiveCollectionQuery:
        """Get the shared query for (kind, scope), starting it on first use."""
        key = self._key(kind, scope)
        query = self._queries.get(key)
        if query is None:
            query = LiveCollectionQuery(
                self._backend, self._session, kind, self._settings, scope=scope
            )
            self._queries[key] = query
            self._refcounts[key] = 0
            query.start()
        self._refcounts[key] += 1
        return query

    def release(self, query: LiveCollectionQuery) -> None:
        """Drop one reference; the last release stops the query."""
        key = self._key(query.kind, query.scope)
        if self._queries.get(key) is not query:
            return
        self._refcounts[key] -= 1
        if self._refcounts[key] <= 0:
            del self._queries[key]
            del self._refcounts[key]
            query.stop()

    def close(self) -> None:
        """Stop every query regardless of references."""
        for query in list(self._queries.values()):
            query.stop()
        self._queries.clear()
        self._refcounts.clear()

    def __len__(self) -> int:
        return len(self._queries)
