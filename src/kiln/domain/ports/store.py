"""Ports for the declarative object store.

The store itself (persistence, watch fan-out, admission, cascading deletion)
lives behind these protocols. Write access is split into two capabilities:
``SpecWriter`` for desired state and metadata (held by repositories) and
``StatusWriter`` for observed state (held only by the controller of a kind).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable
    from contextlib import AbstractAsyncContextManager

    from kiln.domain.model import DeclarativeObject, ObjectKey
    from kiln.domain.selectors import LabelSelector

type AnyObject = DeclarativeObject[Any, Any]


class StoreError(Exception):
    """Base class for failures reported by the object store."""


class ObjectNotFoundError(StoreError):
    def __init__(self, kind: str, key: ObjectKey | str) -> None:
        super().__init__(f"{kind} {key} not found")
        self.kind = kind
        self.key = key


class AccessDeniedError(StoreError):
    def __init__(self, user: str, verb: str, kind: str, namespace: str | None) -> None:
        scope = f"namespace {namespace}" if namespace else "all namespaces"
        super().__init__(f"user {user} cannot {verb} {kind} in {scope}")
        self.user = user
        self.verb = verb
        self.kind = kind
        self.namespace = namespace


class AlreadyExistsError(StoreError):
    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f"{kind} {name} already exists")
        self.kind = kind
        self.name = name


class AdmissionRejectedError(StoreError):
    """Structured rejection from an admission validator, tagged with a category."""

    def __init__(self, category: str, message: str) -> None:
        super().__init__(f"{category}: {message}")
        self.category = category
        self.message = message


class StoreUnavailableError(StoreError):
    """Retryable low-level failure (connection loss, lock contention, ...)."""


class WatchEventType(StrEnum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass(frozen=True, slots=True)
class WatchEvent[TObject]:
    type: WatchEventType
    object: TObject


@runtime_checkable
class ObjectReader(Protocol):
    async def get[T: AnyObject](self, object_type: type[T], key: ObjectKey) -> T: ...

    async def list[T: AnyObject](
        self,
        object_type: type[T],
        *,
        namespace: str | None = None,
        selector: LabelSelector | None = None,
    ) -> list[T]: ...


@runtime_checkable
class SpecWriter(Protocol):
    async def create[T: AnyObject](self, obj: T) -> T: ...

    async def patch[T: AnyObject](self, obj: T, mutate: Callable[[T], None]) -> T:
        """Apply ``mutate`` to the latest stored copy; status changes are discarded."""
        ...

    async def delete(self, obj: AnyObject) -> None: ...


@runtime_checkable
class Watcher(Protocol):
    def watch[T: AnyObject](
        self,
        object_type: type[T],
        *,
        namespace: str | None = None,
        name: str | None = None,
    ) -> AbstractAsyncContextManager[AsyncIterator[WatchEvent[T]]]: ...


@runtime_checkable
class StatusWriter(Protocol):
    async def update_status[T: AnyObject](self, obj: T) -> T: ...


@runtime_checkable
class ObjectClient(ObjectReader, SpecWriter, Watcher, Protocol):
    """Identity-scoped client handed to repositories."""


@runtime_checkable
class ControllerClient(ObjectClient, StatusWriter, Protocol):
    """Privileged client handed to controllers."""


@runtime_checkable
class AdmissionValidator(Protocol):
    """Store-side validation run before a write is persisted."""

    async def validate_create(self, obj: AnyObject, reader: ObjectReader) -> None: ...

    async def validate_update(
        self, old: AnyObject, new: AnyObject, reader: ObjectReader
    ) -> None: ...
