"""
Object identity and metadata shared by every declarative object kind.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar, Self
from uuid import uuid4

from kiln.domain.model.conditions import Condition

if TYPE_CHECKING:
    from datetime import datetime

    from kiln.domain.model.enums import ResourceKind


def new_guid() -> str:
    return str(uuid4())


@dataclass(frozen=True, slots=True)
class ObjectKey:
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(slots=True, kw_only=True)
class OwnerReference:
    """Declared (not exclusive) back-reference used for cascading deletion."""

    kind: str
    name: str
    uid: str
    controller: bool = False


@dataclass(slots=True, kw_only=True)
class ObjectMeta:
    name: str
    namespace: str
    uid: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    generation: int = 0
    resource_version: int = 0
    creation_timestamp: datetime | None = None
    updated_at: datetime | None = None
    deletion_timestamp: datetime | None = None
    owner_references: list[OwnerReference] = field(default_factory=list)
    finalizers: list[str] = field(default_factory=list)

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(namespace=self.namespace, name=self.name)

    @property
    def is_deleting(self) -> bool:
        return self.deletion_timestamp is not None


@dataclass(slots=True, kw_only=True)
class ObjectStatus:
    """Observed state common to every kind; written only by that kind's controller."""

    observed_generation: int = 0
    conditions: list[Condition] = field(default_factory=list)


@dataclass(kw_only=True)
class DeclarativeObject[TSpec, TStatus: ObjectStatus]:
    """Versioned desired/observed-state record stored centrally."""

    KIND: ClassVar[ResourceKind]

    metadata: ObjectMeta
    spec: TSpec
    status: TStatus

    @property
    def kind(self) -> ResourceKind:
        return self.KIND

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def key(self) -> ObjectKey:
        return self.metadata.key

    def deep_copy(self) -> Self:
        return copy.deepcopy(self)

    def owner_reference(self, *, controller: bool = False) -> OwnerReference:
        return OwnerReference(
            kind=str(self.KIND),
            name=self.metadata.name,
            uid=self.metadata.uid,
            controller=controller,
        )


def set_owner_reference(owner: DeclarativeObject[object, ObjectStatus], obj: ObjectMeta) -> bool:
    """Record ``owner`` as the controlling owner of ``obj``; returns whether it changed."""

    reference = owner.owner_reference(controller=True)
    for existing in obj.owner_references:
        if existing.kind == reference.kind and existing.name == reference.name:
            if existing.uid == reference.uid and existing.controller:
                return False
            existing.uid = reference.uid
            existing.controller = True
            return True
    if any(existing.controller for existing in obj.owner_references):
        raise OwnerConflictError(
            f"{obj.namespace}/{obj.name} is already controlled by another owner"
        )
    obj.owner_references.append(reference)
    return True


class OwnerConflictError(ValueError):
    """Raised when an object already has a different controlling owner."""
