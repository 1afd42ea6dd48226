"""Declarative object store on an async SQLAlchemy engine.

The store owns the semantics the rest of the system consumes through the
store ports:

* ``generation`` increases only when the spec changes; status writes never
  touch it;
* names are unique per kind across namespaces;
* deleting an object with finalizers only stamps ``deletion_timestamp``;
  removing the last finalizer (or deleting an object without any) removes the
  row and cascades to every object listing it as an owner;
* admission validators run before create and update, under the write lock, so
  check-then-write validations are not racy;
* every successful write is published to the watch hub.

Repositories never see the store directly: they get a ``ScopedObjectClient``
bound to the caller's identity, which enforces the access policy and has no
status capability. Controllers use the store itself.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Any, Protocol

from sqlalchemy import and_, delete, insert, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import async_sessionmaker

from kiln.adapters.sqlalchemy.mappings import declarative_objects_table as objects
from kiln.adapters.sqlalchemy.schema import object_to_row, row_to_object
from kiln.adapters.watch import WatchHub
from kiln.domain.model import ResourceKind, new_guid, utc_now
from kiln.domain.ports.store import (
    AccessDeniedError,
    AlreadyExistsError,
    ObjectNotFoundError,
    StoreUnavailableError,
    WatchEventType,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Sequence

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

    from kiln.domain.model import ObjectKey
    from kiln.domain.ports.authorization import AuthInfo
    from kiln.domain.ports.store import AdmissionValidator, AnyObject
    from kiln.domain.selectors import LabelSelector

log = getLogger(__name__)


class AccessPolicy(Protocol):
    def allows(self, user: str, verb: str, namespace: str | None) -> bool: ...


def _spec_changed(old: AnyObject, new: AnyObject) -> bool:
    return old.spec != new.spec


def _metadata_changed(old: AnyObject, new: AnyObject) -> bool:
    before, after = old.metadata, new.metadata
    return (
        before.labels != after.labels
        or before.annotations != after.annotations
        or before.owner_references != after.owner_references
        or before.finalizers != after.finalizers
    )


@dataclass(slots=True)
class _Cascade:
    removed: list[AnyObject] = field(default_factory=list)
    marked: list[AnyObject] = field(default_factory=list)


class SqlAlchemyObjectStore:
    """Privileged store client; implements the controller client port."""

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        hub: WatchHub | None = None,
        validators: Sequence[AdmissionValidator] = (),
    ) -> None:
        self.engine = engine
        self.hub = hub or WatchHub()
        self.validators = list(validators)
        self._session_factory = async_sessionmaker(engine, expire_on_commit=False)
        self._write_lock = asyncio.Lock()

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session, session.begin():
                yield session
        except OperationalError as exc:
            raise StoreUnavailableError(str(exc)) from exc

    # Reads ---------------------------------------------------------------------

    async def get[T: AnyObject](self, object_type: type[T], key: ObjectKey) -> T:
        async with self._session() as session:
            row = await self._load(session, object_type.KIND, key.name)
        if row is None or row.namespace != key.namespace:
            raise ObjectNotFoundError(object_type.KIND, key)
        return row

    async def list[T: AnyObject](
        self,
        object_type: type[T],
        *,
        namespace: str | None = None,
        selector: LabelSelector | None = None,
    ) -> list[T]:
        statement = select(objects).where(objects.c.kind == str(object_type.KIND))
        if namespace is not None:
            statement = statement.where(objects.c.namespace == namespace)
        statement = statement.order_by(objects.c.created_at, objects.c.name)
        async with self._session() as session:
            result = await session.execute(statement)
            rows = result.mappings().all()
        found = [row_to_object(row) for row in rows]
        if selector is not None:
            found = [obj for obj in found if selector.matches(obj.metadata.labels)]
        return found

    async def find_namespace(self, kind: ResourceKind, name: str) -> str | None:
        statement = select(objects.c.namespace).where(
            and_(objects.c.kind == str(kind), objects.c.name == name)
        )
        async with self._session() as session:
            result = await session.execute(statement)
            return result.scalar_one_or_none()

    def watch[T: AnyObject](
        self,
        object_type: type[T],
        *,
        namespace: str | None = None,
        name: str | None = None,
    ) -> Any:
        return self.hub.subscribe(object_type.KIND, namespace=namespace, name=name)

    # Writes --------------------------------------------------------------------

    async def create[T: AnyObject](self, obj: T) -> T:
        async with self._write_lock:
            for validator in self.validators:
                await validator.validate_create(obj, self)

            now = utc_now()
            created = obj.deep_copy()
            meta = created.metadata
            meta.uid = new_guid()
            meta.generation = 1
            meta.resource_version = 1
            meta.creation_timestamp = now
            meta.updated_at = now
            meta.deletion_timestamp = None

            async with self._session() as session:
                if await self._load(session, created.kind, meta.name) is not None:
                    raise AlreadyExistsError(created.kind, meta.name)
                await session.execute(insert(objects).values(**object_to_row(created)))

        log.debug("Created %s %s", created.kind, created.key)
        self.hub.publish(WatchEventType.ADDED, created)
        return created.deep_copy()

    async def patch[T: AnyObject](self, obj: T, mutate: Callable[[T], None]) -> T:
        async with self._write_lock:
            async with self._session() as session:
                current = await self._require(session, obj)
            working = current.deep_copy()
            mutate(working)
            working.status = current.status
            _keep_identity(current, working)

            spec_changed = _spec_changed(current, working)
            if not spec_changed and not _metadata_changed(current, working):
                return current

            for validator in self.validators:
                await validator.validate_update(current, working, self)

            if spec_changed:
                working.metadata.generation = current.metadata.generation + 1
            working.metadata.resource_version = current.metadata.resource_version + 1
            working.metadata.updated_at = utc_now()

            if working.metadata.is_deleting and not working.metadata.finalizers:
                cascade = await self._remove(working)
            else:
                await self._write(working)
                cascade = None

        if cascade is not None:
            self._publish(cascade)
        else:
            self.hub.publish(WatchEventType.MODIFIED, working)
        return working.deep_copy()

    async def update_status[T: AnyObject](self, obj: T) -> T:
        async with self._write_lock:
            async with self._session() as session:
                current = await self._require(session, obj)
            if current.status == obj.status:
                return current
            current.status = obj.deep_copy().status
            current.metadata.resource_version += 1
            await self._write(current)

        self.hub.publish(WatchEventType.MODIFIED, current)
        return current.deep_copy()

    async def delete(self, obj: AnyObject) -> None:
        async with self._write_lock:
            async with self._session() as session:
                current = await self._require(session, obj)
            if current.metadata.finalizers:
                if current.metadata.is_deleting:
                    return
                current.metadata.deletion_timestamp = utc_now()
                current.metadata.resource_version += 1
                await self._write(current)
                cascade = None
            else:
                cascade = await self._remove(current)

        if cascade is not None:
            self._publish(cascade)
        else:
            log.debug("Marked %s %s for deletion", current.kind, current.key)
            self.hub.publish(WatchEventType.MODIFIED, current)

    # Internals -----------------------------------------------------------------

    async def _load(self, session: AsyncSession, kind: ResourceKind, name: str) -> Any:
        statement = select(objects).where(
            and_(objects.c.kind == str(kind), objects.c.name == name)
        )
        result = await session.execute(statement)
        row = result.mappings().one_or_none()
        return None if row is None else row_to_object(row)

    async def _require(self, session: AsyncSession, obj: AnyObject) -> Any:
        current = await self._load(session, obj.kind, obj.name)
        if current is None or current.namespace != obj.namespace:
            raise ObjectNotFoundError(obj.kind, obj.key)
        return current

    async def _write(self, obj: AnyObject) -> None:
        async with self._session() as session:
            await self._update_row(session, obj)

    async def _update_row(self, session: AsyncSession, obj: AnyObject) -> None:
        row = object_to_row(obj)
        await session.execute(
            update(objects)
            .where(and_(objects.c.kind == row["kind"], objects.c.name == row["name"]))
            .values(**row)
        )

    async def _remove(self, root: AnyObject) -> _Cascade:
        """Delete ``root`` and cascade to its dependents.

        Dependents holding finalizers are only marked for deletion.
        """

        cascade = _Cascade()
        seen: set[tuple[str, str]] = set()
        pending = [root]
        async with self._session() as session:
            while pending:
                target = pending.pop()
                identity = (str(target.kind), target.name)
                if identity in seen:
                    continue
                seen.add(identity)
                await session.execute(
                    delete(objects).where(
                        and_(objects.c.kind == identity[0], objects.c.name == identity[1])
                    )
                )
                cascade.removed.append(target)
                for dependent in await self._dependents(session, target):
                    if not dependent.metadata.finalizers:
                        pending.append(dependent)
                    elif not dependent.metadata.is_deleting:
                        dependent.metadata.deletion_timestamp = utc_now()
                        dependent.metadata.resource_version += 1
                        await self._update_row(session, dependent)
                        cascade.marked.append(dependent)
        return cascade

    async def _dependents(self, session: AsyncSession, owner: AnyObject) -> list[AnyObject]:
        statement = select(objects).where(objects.c.namespace == owner.namespace)
        result = await session.execute(statement)
        dependents: list[AnyObject] = []
        for row in result.mappings().all():
            candidate = row_to_object(row)
            if any(ref.uid == owner.metadata.uid for ref in candidate.metadata.owner_references):
                dependents.append(candidate)
        return dependents

    def _publish(self, cascade: _Cascade) -> None:
        for obj in cascade.removed:
            log.debug("Deleted %s %s", obj.kind, obj.key)
            self.hub.publish(WatchEventType.DELETED, obj)
        for obj in cascade.marked:
            log.debug("Marked %s %s for deletion", obj.kind, obj.key)
            self.hub.publish(WatchEventType.MODIFIED, obj)


def _keep_identity(current: AnyObject, working: AnyObject) -> None:
    before, after = current.metadata, working.metadata
    after.name = before.name
    after.namespace = before.namespace
    after.uid = before.uid
    after.generation = before.generation
    after.resource_version = before.resource_version
    after.creation_timestamp = before.creation_timestamp
    after.updated_at = before.updated_at
    after.deletion_timestamp = before.deletion_timestamp


class ScopedObjectClient:
    """Identity-scoped client: enforces the access policy, cannot write status."""

    def __init__(self, store: SqlAlchemyObjectStore, policy: AccessPolicy, user: str) -> None:
        self.store = store
        self.policy = policy
        self.user = user

    def _authorize(self, verb: str, kind: ResourceKind, namespace: str | None) -> None:
        if not self.policy.allows(self.user, verb, namespace):
            raise AccessDeniedError(self.user, verb, kind, namespace)

    async def get[T: AnyObject](self, object_type: type[T], key: ObjectKey) -> T:
        self._authorize("get", object_type.KIND, key.namespace)
        return await self.store.get(object_type, key)

    async def list[T: AnyObject](
        self,
        object_type: type[T],
        *,
        namespace: str | None = None,
        selector: LabelSelector | None = None,
    ) -> list[T]:
        self._authorize("list", object_type.KIND, namespace)
        return await self.store.list(object_type, namespace=namespace, selector=selector)

    def watch[T: AnyObject](
        self,
        object_type: type[T],
        *,
        namespace: str | None = None,
        name: str | None = None,
    ) -> Any:
        self._authorize("watch", object_type.KIND, namespace)
        return self.store.watch(object_type, namespace=namespace, name=name)

    async def create[T: AnyObject](self, obj: T) -> T:
        self._authorize("create", obj.kind, obj.namespace)
        return await self.store.create(obj)

    async def patch[T: AnyObject](self, obj: T, mutate: Callable[[T], None]) -> T:
        self._authorize("patch", obj.kind, obj.namespace)
        return await self.store.patch(obj, mutate)

    async def delete(self, obj: AnyObject) -> None:
        self._authorize("delete", obj.kind, obj.namespace)
        await self.store.delete(obj)


class ScopedClientFactory:
    def __init__(self, store: SqlAlchemyObjectStore, policy: AccessPolicy) -> None:
        self.store = store
        self.policy = policy

    def build_client(self, auth: AuthInfo) -> ScopedObjectClient:
        return ScopedObjectClient(self.store, self.policy, auth.user)

