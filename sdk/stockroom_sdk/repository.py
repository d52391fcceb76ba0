"""
Generic entity repository for the Stockroom SDK.

One EntityRepository class serves every entity kind; the EntityKind
descriptor supplies the collection, validators and guard rules.

Each mutation runs in this order:
1. Require a signed-in identity
2. Validate input locally (no network call on failure)
3. Check parent, ownership, uniqueness and delete guards
4. Write through the backend
5. Append one audit log (failure becomes a warning, not an error)

Invariants:
    - Validation and guard failures never reach the backend
    - Backend failures are re-raised through classify_backend_error
    - Deleting a store removes its products and logs first
    - Mutations touching the same store never interleave: guard checks,
      the write and its audit log run under that store's lock
    - No automatic retries
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Iterator, List, Optional, Tuple

from .audit import CREATE, DELETE, UPDATE, AuditLogger
from .backend.base import BackendError, DataBackend, Document, Filter
from .config import Settings
from .errors import (
    AuthError,
    ConflictError,
    NotFoundError,
    PreconditionError,
    StockroomError,
    ValidationError,
    classify_backend_error,
)
from .guards import is_owner
from .kinds import KINDS, EntityKind
from .models import Identity, Log, now_ms

logger = logging.getLogger(__name__)


@dataclass
class AuditWarning:
    """Non-fatal failure to record a mutation in the audit log.

    Attributes:
        message: User-facing description
        error: The classified failure
    """

    message: str
    error: StockroomError


@dataclass
class MutationResult:
    """Outcome of a successful mutation.

    Attributes:
        entity: The created, updated or deleted entity
        log: Audit record appended, None if none was written
        warnings: Audit failures that did not stop the mutation
    """

    entity: Any
    log: Optional[Log] = None
    warnings: List[AuditWarning] = field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


class StoreLocks:
    """Per-store mutation locks.

    One instance must be shared by every repository working on the same
    backend, otherwise a store cascade and a product write in that store
    can still interleave.

    Example:
        >>> locks = StoreLocks()
        >>> stores = EntityRepository(backend, STORES, audit=audit, settings=settings, locks=locks)
        >>> products = EntityRepository(backend, PRODUCTS, audit=audit, settings=settings, locks=locks)
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def lock(self, store_id: str) -> asyncio.Lock:
        return self._locks[store_id]


class EntityRepository:
    """CRUD operations for one entity kind.

    Example:
        >>> stores = EntityRepository(backend, STORES, audit=audit, settings=settings)
        >>> result = await stores.create("u1", {"name": "Corner Shop"})
        >>> await stores.delete("u1", result.entity.id)
    """

    def __init__(
        self,
        backend: DataBackend,
        kind: EntityKind,
        *,
        audit: AuditLogger,
        settings: Settings,
        kinds: Optional[Dict[str, EntityKind]] = None,
        locks: Optional[StoreLocks] = None,
    ) -> None:
        self._backend = backend
        self.kind = kind
        self._audit = audit
        self._settings = settings
        self._kinds = kinds or KINDS
        self._locks = locks if locks is not None else StoreLocks()

    @property
    def collection(self) -> str:
        return self.kind.collection(self._settings)

    # Reads

    async def get(self, identity: Optional[Identity], doc_id: str) -> Any:
        """Fetch one owned entity.

        Raises:
            NotFoundError: If absent or owned by another identity
        """
        identity = self._require_identity(identity)
        doc = await self._fetch(doc_id)
        entity = self.kind.from_document(doc)
        if not is_owner(entity, identity):
            raise self._not_found(doc_id)
        return entity

    async def list(self, identity: Optional[Identity], **scope: Any) -> List[Any]:
        """List the identity's entities, ordered by the kind's order.

        Args:
            identity: Acting identity
            **scope: Equality filters on the kind's scope fields (e.g. store_id)
        """
        identity = self._require_identity(identity)
        filters = self._scope_filters(identity, scope)
        with self._backend_errors():
            docs = await self._backend.get_all(self.collection, filters, self.kind.order)
        return [self.kind.from_document(doc) for doc in docs]

    # Writes

    async def create(self, identity: Optional[Identity], data: Dict[str, Any]) -> MutationResult:
        """Create an entity owned by the identity.

        Raises:
            AuthError: If no identity is signed in
            ValidationError: If the input is invalid
            NotFoundError: If the parent document is absent
            PreconditionError: If the parent is owned by someone else
            ConflictError: If the unique name is taken
        """
        identity = self._require_identity(identity)
        self._require_writable()
        fields = self.kind.validate_create(data, self._settings)

        # A new store has no id yet, so nothing else can touch it.
        store_id = fields[self.kind.parent_field] if self.kind.parent is not None else None
        async with self._store_lock(store_id):
            if self.kind.parent is not None:
                await self._check_parent(identity, store_id)

            fields["owner_id"] = identity
            fields["created_at"] = now_ms()
            candidate = self.kind.from_document({"id": "", **fields})

            if self.kind.duplicate_rule is not None:
                await self._check_duplicate(identity, candidate, exclude_id=None)

            with self._backend_errors():
                doc_id = await self._backend.create(self.collection, fields)
            entity = self.kind.from_document({"id": doc_id, **fields})

            logger.info(
                f"Created {self.kind.name}",
                extra={"kind": self.kind.name, "id": doc_id, "identity": identity},
            )
            return await self._finish(identity, CREATE, entity)

    async def update(
        self,
        identity: Optional[Identity],
        doc_id: str,
        patch: Dict[str, Any],
    ) -> MutationResult:
        """Apply a patch to an owned entity.

        Raises:
            AuthError: If no identity is signed in
            ValidationError: If the patch is invalid or touches immutable fields
            NotFoundError: If the entity is absent
            PreconditionError: If the entity is owned by someone else
            ConflictError: If a rename collides with another entity
        """
        identity = self._require_identity(identity)
        self._require_writable()
        fields = self.kind.validate_update(patch, self._settings)

        store_id = self._store_of(await self._fetch(doc_id))
        async with self._store_lock(store_id):
            # Re-read under the lock; the first read only located the store.
            current = await self._fetch(doc_id)
            self._require_owner(self.kind.from_document(current), identity, doc_id)

            fields["updated_at"] = now_ms()
            entity = self.kind.from_document({**current, **fields})

            if self.kind.duplicate_rule is not None and self.kind.unique_field in fields:
                await self._check_duplicate(identity, entity, exclude_id=doc_id)

            with self._backend_errors(doc_id):
                await self._backend.update(self.collection, doc_id, fields)

            logger.info(
                f"Updated {self.kind.name}",
                extra={"kind": self.kind.name, "id": doc_id, "fields": sorted(fields)},
            )
            return await self._finish(identity, UPDATE, entity)

    async def delete(self, identity: Optional[Identity], doc_id: str) -> MutationResult:
        """Delete an entity, cascading to its children.

        Guards run against the backend's current copy, not a caller's
        possibly stale one.

        Raises:
            AuthError: If no identity is signed in
            NotFoundError: If the entity is absent
            PreconditionError: If a delete rule blocks it
        """
        identity = self._require_identity(identity)
        self._require_writable()

        store_id = self._store_of(await self._fetch(doc_id))
        async with self._store_lock(store_id):
            current = await self._fetch(doc_id)
            entity = self.kind.from_document(current)
            for rule in self.kind.delete_rules:
                if not rule.check(entity, identity):
                    raise PreconditionError(
                        rule.message,
                        resource_type=self.kind.name,
                        resource_id=doc_id,
                    )

            removed = await self._cascade(doc_id)

            with self._backend_errors(doc_id):
                await self._backend.delete(self.collection, doc_id)

            logger.info(
                f"Deleted {self.kind.name}",
                extra={"kind": self.kind.name, "id": doc_id, "cascaded": removed},
            )
            return await self._finish(identity, DELETE, entity)

    # Internals

    @contextmanager
    def _backend_errors(self, resource_id: Optional[str] = None) -> Iterator[None]:
        try:
            yield
        except BackendError as e:
            raise classify_backend_error(
                e,
                resource_type=self.kind.name,
                resource_id=resource_id,
            ) from e

    @asynccontextmanager
    async def _store_lock(self, store_id: Optional[str]) -> AsyncIterator[None]:
        if store_id is None:
            yield
            return
        async with self._locks.lock(store_id):
            yield

    def _store_of(self, doc: Document) -> str:
        """Id of the store a document lives in (its own id for a store)."""
        if self.kind.parent_field is not None:
            return doc[self.kind.parent_field]
        return doc["id"]

    def _require_identity(self, identity: Optional[Identity]) -> Identity:
        if not identity:
            raise AuthError("You must be logged in to do that.")
        return identity

    def _require_writable(self) -> None:
        if self.kind.read_only:
            raise PreconditionError(
                f"{self.kind.name.capitalize()} records are append-only",
                resource_type=self.kind.name,
            )

    def _require_owner(self, entity: Any, identity: Identity, doc_id: str) -> None:
        if not is_owner(entity, identity):
            raise PreconditionError(
                f"Only the owner can modify this {self.kind.name}.",
                resource_type=self.kind.name,
                resource_id=doc_id,
            )

    def _not_found(self, doc_id: str, kind: Optional[EntityKind] = None) -> NotFoundError:
        kind = kind or self.kind
        return NotFoundError(
            f"{kind.name.capitalize()} not found",
            resource_type=kind.name,
            resource_id=doc_id,
        )

    async def _fetch(self, doc_id: str) -> Document:
        with self._backend_errors(doc_id):
            doc = await self._backend.get_one(self.collection, doc_id)
        if doc is None:
            raise self._not_found(doc_id)
        return doc

    def _scope_filters(self, identity: Identity, scope: Dict[str, Any]) -> List[Filter]:
        filters = [Filter("owner_id", identity)]
        for name, value in scope.items():
            if name not in self.kind.scope_fields:
                raise ValidationError(
                    f"Cannot scope {self.kind.name} by '{name}'",
                    field_name=name,
                )
            filters.append(Filter(name, value))
        return filters

    async def _check_parent(self, identity: Identity, parent_id: str) -> None:
        parent_kind = self._kinds[self.kind.parent]
        with self._backend_errors(parent_id):
            doc = await self._backend.get_one(parent_kind.collection(self._settings), parent_id)
        if doc is None:
            raise self._not_found(parent_id, parent_kind)
        if not is_owner(parent_kind.from_document(doc), identity):
            raise PreconditionError(
                f"Only the owner can add to this {parent_kind.name}.",
                resource_type=parent_kind.name,
                resource_id=parent_id,
            )

    async def _check_duplicate(
        self,
        identity: Identity,
        candidate: Any,
        exclude_id: Optional[str],
    ) -> None:
        key = getattr(candidate, self.kind.unique_field)
        scope = {name: getattr(candidate, name) for name in self.kind.scope_fields}
        filters = self._scope_filters(identity, scope)
        filters.append(Filter(self.kind.unique_field, key))

        with self._backend_errors():
            docs = await self._backend.get_all(self.collection, filters)
        existing = [self.kind.from_document(doc) for doc in docs]

        if self.kind.duplicate_rule(existing, candidate, exclude_id):
            raise ConflictError(
                f"A {self.kind.name} with this name already exists in this store",
                resource_type=self.kind.name,
                key=key,
            )

    async def _cascade(self, doc_id: str) -> Dict[str, int]:
        """Delete every child document referencing doc_id."""
        removed: Dict[str, int] = {}
        for child_name in self.kind.children:
            child = self._kinds[child_name]
            collection = child.collection(self._settings)
            with self._backend_errors(doc_id):
                docs = await self._backend.get_all(
                    collection, [Filter(child.parent_field, doc_id)]
                )
                for doc in docs:
                    await self._backend.delete(collection, doc["id"])
            removed[child_name] = len(docs)
        return removed

    async def _finish(self, identity: Identity, action: str, entity: Any) -> MutationResult:
        log, warnings = await self._append_log(identity, action, entity)
        return MutationResult(entity=entity, log=log, warnings=warnings)

    async def _append_log(
        self,
        identity: Identity,
        action: str,
        entity: Any,
    ) -> Tuple[Optional[Log], List[AuditWarning]]:
        if self.kind.describe is None:
            return None, []
        text = self.kind.describe(action, entity, self._settings)
        if text is None:
            return None, []

        store_id = getattr(entity, self.kind.audit_store_field)
        try:
            log = await self._audit.record(identity, store_id, text)
        except StockroomError as e:
            logger.warning(
                "Audit log append failed",
                extra={"kind": self.kind.name, "action": action, "error_code": e.code},
            )
            warning = AuditWarning(
                f"Saved, but the activity log could not be updated: {e.message}",
                error=e,
            )
            return None, [warning]
        return log, []
