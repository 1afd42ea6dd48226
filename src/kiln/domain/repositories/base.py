"""Shared machinery for per-kind entity repositories.

A repository translates between caller-facing records and declarative objects.
Reads go through a client scoped to the caller's identity; lists fan out over
every partition the caller can see and tolerate losing access to some of them.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Any, ClassVar

from kiln.domain.errors import (
    ApiError,
    ForbiddenError,
    NotFoundError,
    UnprocessableEntityError,
    as_unprocessable_entity,
    forbidden_as_not_found,
    from_store_error,
    log_and_return,
)
from kiln.domain.model import (
    DEFAULT_RULES,
    ConditionType,
    Created,
    JobReference,
    ObjectKey,
    is_ready,
    last_operation,
    last_updated_at,
)
from kiln.domain.ports.store import AccessDeniedError, StoreError
from kiln.domain.selectors import SelectorSyntaxError, parse_label_selector

if TYPE_CHECKING:
    from collections.abc import Collection, Mapping, Sequence
    from datetime import datetime

    from kiln.domain.awaiter import ConditionAwaiter
    from kiln.domain.model import (
        ConditionRules,
        LastOperation,
        ObjectMeta,
        ReadinessState,
        Record,
    )
    from kiln.domain.ports.authorization import (
        AuthInfo,
        NamespacePermissions,
        NamespaceRetriever,
        UserClientFactory,
    )
    from kiln.domain.ports.store import AnyObject, ObjectClient
    from kiln.domain.selectors import LabelSelector

log = getLogger(__name__)


def empty_or_contains(values: Collection[str], value: str | None) -> bool:
    """Filters OR within one field: an empty filter accepts everything."""

    return not values or value in values


@dataclass(slots=True, kw_only=True)
class MetadataPatch:
    """Label/annotation changes; a ``None`` value removes the key."""

    labels: dict[str, str | None] = field(default_factory=dict)
    annotations: dict[str, str | None] = field(default_factory=dict)

    def apply(self, metadata: ObjectMeta) -> None:
        _merge(metadata.labels, self.labels)
        _merge(metadata.annotations, self.annotations)


def _merge(target: dict[str, str], changes: Mapping[str, str | None]) -> None:
    for key, value in changes.items():
        if value is None:
            target.pop(key, None)
        else:
            target[key] = value


@dataclass(slots=True, kw_only=True)
class ListMessage:
    """Common list filters: OR within a field, AND across fields."""

    guids: Sequence[str] = ()
    space_guids: Sequence[str] = ()
    label_selector: str = ""

    def matches(self, obj: AnyObject) -> bool:
        return empty_or_contains(self.guids, obj.name)


class EntityRepository[TObject: AnyObject, TRecord: Record, TList: ListMessage](ABC):
    """CRUD, list and status derivation over one entity kind."""

    resource_type: ClassVar[str]
    object_type: type[TObject]
    rules: ConditionRules = DEFAULT_RULES

    def __init__(
        self,
        *,
        namespace_retriever: NamespaceRetriever,
        user_client_factory: UserClientFactory,
        namespace_permissions: NamespacePermissions,
    ) -> None:
        self.namespace_retriever = namespace_retriever
        self.user_client_factory = user_client_factory
        self.namespace_permissions = namespace_permissions

    @abstractmethod
    def to_record(self, obj: TObject) -> TRecord: ...

    # Reads ---------------------------------------------------------------------

    async def get(self, auth: AuthInfo, guid: str) -> TRecord:
        return self.to_record(await self.get_object(auth, guid))

    async def get_object(self, auth: AuthInfo, guid: str) -> TObject:
        namespace = await self.namespace_retriever.namespace_for(guid, self.resource_type)
        client = self.user_client_factory.build_client(auth)
        return await self._get_in_namespace(client, ObjectKey(namespace, guid))

    async def _get_in_namespace(self, client: ObjectClient, key: ObjectKey) -> TObject:
        try:
            return await client.get(self.object_type, key)
        except StoreError as exc:
            error = forbidden_as_not_found(from_store_error(exc, self.resource_type))
            raise log_and_return(
                log, error, f"Get {self.resource_type} failed", {"key": key}
            ) from exc

    async def list(self, auth: AuthInfo, message: TList) -> list[TRecord]:
        return [self.to_record(obj) for obj in await self.list_objects(auth, message)]

    async def list_objects(self, auth: AuthInfo, message: TList) -> list[TObject]:
        try:
            selector = parse_label_selector(message.label_selector)
        except SelectorSyntaxError as exc:
            raise UnprocessableEntityError("invalid label selector", cause=exc) from exc

        namespaces = await self.namespace_permissions.authorized_namespaces(auth)
        if message.space_guids:
            namespaces &= set(message.space_guids)

        client = self.user_client_factory.build_client(auth)
        objects = await self._fan_out(client, sorted(namespaces), selector)
        return [obj for obj in objects if message.matches(obj)]

    async def _fan_out(
        self,
        client: ObjectClient,
        namespaces: Sequence[str],
        selector: LabelSelector,
    ) -> list[TObject]:
        results = await asyncio.gather(
            *(self._list_namespace(client, namespace, selector) for namespace in namespaces)
        )
        return [obj for partition in results for obj in partition]

    async def _list_namespace(
        self,
        client: ObjectClient,
        namespace: str,
        selector: LabelSelector,
    ) -> list[TObject]:
        try:
            return await client.list(self.object_type, namespace=namespace, selector=selector)
        except AccessDeniedError:
            log.debug("Skipping namespace %s: %s list forbidden", namespace, self.resource_type)
            return []
        except StoreError as exc:
            raise from_store_error(exc, self.resource_type) from exc

    async def get_last_operation(self, auth: AuthInfo, guid: str) -> LastOperation:
        return last_operation(await self.get_object(auth, guid), self.rules)

    async def get_state(self, auth: AuthInfo, guid: str) -> ReadinessState:
        return (await self.get(auth, guid)).state

    async def get_deleted_at(self, auth: AuthInfo, guid: str) -> datetime | None:
        return (await self.get(auth, guid)).deleted_at

    # Writes --------------------------------------------------------------------

    async def update_metadata(self, auth: AuthInfo, guid: str, patch: MetadataPatch) -> TRecord:
        obj = await self.get_object(auth, guid)
        client = self.user_client_factory.build_client(auth)
        patched = await self._patch(client, obj, lambda target: patch.apply(target.metadata))
        return self.to_record(patched)

    async def delete(self, auth: AuthInfo, guid: str) -> None:
        obj = await self.get_object(auth, guid)
        client = self.user_client_factory.build_client(auth)
        try:
            await client.delete(obj)
        except StoreError as exc:
            error = forbidden_as_not_found(from_store_error(exc, self.resource_type))
            raise log_and_return(
                log, error, f"Delete {self.resource_type} failed", {"key": obj.key}
            ) from exc
        log.info("Deleted %s %s", self.resource_type, obj.key)

    async def _patch(self, client: ObjectClient, obj: TObject, mutate: Any) -> TObject:
        try:
            return await client.patch(obj, mutate)
        except StoreError as exc:
            raise self._translate_write_error(exc) from exc

    async def _create(self, client: ObjectClient, obj: TObject) -> TObject:
        try:
            created = await client.create(obj)
        except StoreError as exc:
            raise self._translate_write_error(exc) from exc
        log.info("Created %s %s", self.resource_type, created.key)
        return created

    def _translate_write_error(self, error: StoreError) -> ApiError:
        """Hook for kinds whose admission rejections carry their own meaning."""

        return forbidden_as_not_found(from_store_error(error, self.resource_type))

    async def _resolve_related[TRelated: AnyObject](
        self,
        client: ObjectClient,
        object_type: type[TRelated],
        resource_type: str,
        guid: str,
        detail: str,
    ) -> TRelated:
        """Load a referenced object; absence or lack of access is unprocessable."""

        try:
            namespace = await self.namespace_retriever.namespace_for(guid, resource_type)
            return await client.get(object_type, ObjectKey(namespace, guid))
        except StoreError as exc:
            error = as_unprocessable_entity(
                from_store_error(exc, resource_type), detail, ForbiddenError, NotFoundError
            )
            raise log_and_return(
                log, error, f"Resolve {resource_type} failed", {"guid": guid}
            ) from exc
        except NotFoundError as exc:
            error = UnprocessableEntityError(detail, cause=exc)
            raise log_and_return(
                log, error, f"Resolve {resource_type} failed", {"guid": guid}
            ) from exc

    async def _complete_creation(
        self,
        client: ObjectClient,
        obj: TObject,
        *,
        awaiter: ConditionAwaiter[TObject] | None,
        operation: str,
    ) -> Created[TRecord]:
        """Either block until ready or hand back an accepted marker for polling."""

        if awaiter is not None:
            converged = await awaiter.await_condition(client, obj, ConditionType.READY)
            return Created(record=self.to_record(converged))
        return Created(
            record=self.to_record(obj),
            job=JobReference(operation=operation, resource_guid=obj.name),
        )

    # Record helpers ------------------------------------------------------------

    def record_fields(self, obj: TObject) -> dict[str, Any]:
        meta = obj.metadata
        return {
            "guid": meta.name,
            "space_guid": meta.namespace,
            "created_at": meta.creation_timestamp,
            "updated_at": last_updated_at(obj),
            "deleted_at": meta.deletion_timestamp,
            "last_operation": last_operation(obj, self.rules),
            "ready": is_ready(obj, self.rules),
            "labels": dict(meta.labels),
            "annotations": dict(meta.annotations),
        }
