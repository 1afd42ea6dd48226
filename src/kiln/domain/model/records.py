"""Caller-facing projections of declarative objects."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from kiln.domain.model.enums import ReadinessState, ResourceState

if TYPE_CHECKING:
    from datetime import datetime

    from kiln.domain.model.enums import (
        AppDesiredState,
        LifecycleType,
        PackageType,
        ServiceBindingType,
        ServiceInstanceType,
    )
    from kiln.domain.model.objects import Droplet, Lifecycle
    from kiln.domain.model.state import LastOperation


@dataclass(slots=True, kw_only=True)
class Record:
    guid: str
    space_guid: str
    created_at: datetime | None
    updated_at: datetime | None
    deleted_at: datetime | None
    last_operation: LastOperation
    ready: bool
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)

    @property
    def state(self) -> ReadinessState:
        return ReadinessState.READY if self.ready else ReadinessState.UNKNOWN

    @property
    def operation_state(self) -> ResourceState:
        return self.last_operation.state

    def relationships(self) -> dict[str, str]:
        return {"space": self.space_guid}


@dataclass(slots=True, kw_only=True)
class AppRecord(Record):
    name: str
    desired_state: AppDesiredState
    lifecycle: Lifecycle
    droplet_guid: str | None = None


@dataclass(slots=True, kw_only=True)
class PackageRecord(Record):
    type: PackageType
    app_guid: str
    image: str | None = None

    def relationships(self) -> dict[str, str]:
        return {"app": self.app_guid}


@dataclass(slots=True, kw_only=True)
class BuildRecord(Record):
    app_guid: str
    package_guid: str
    lifecycle_type: LifecycleType
    staging_memory_mb: int
    staging_disk_mb: int
    droplet: Droplet | None = None

    def relationships(self) -> dict[str, str]:
        return {"app": self.app_guid, "package": self.package_guid}


@dataclass(slots=True, kw_only=True)
class ServiceInstanceRecord(Record):
    name: str
    type: ServiceInstanceType
    plan_guid: str | None = None
    tags: list[str] = field(default_factory=list)


@dataclass(slots=True, kw_only=True)
class ServiceBindingRecord(Record):
    type: ServiceBindingType
    name: str | None
    service_instance_guid: str
    app_guid: str | None
    parameters: dict[str, Any] = field(default_factory=dict)

    def relationships(self) -> dict[str, str]:
        relationships = {"service_instance": self.service_instance_guid}
        if self.app_guid is not None:
            relationships["app"] = self.app_guid
        return relationships


@dataclass(slots=True, kw_only=True)
class ServiceBindingDetailsRecord:
    credentials: dict[str, Any]


@dataclass(frozen=True, slots=True)
class JobReference:
    """Handle a caller can use to poll an asynchronous operation."""

    operation: str
    resource_guid: str

    @property
    def guid(self) -> str:
        return f"{self.operation}~{self.resource_guid}"


@dataclass(slots=True, kw_only=True)
class Created[TRecord: Record]:
    """Outcome of a create: either the finished record or an accepted marker."""

    record: TRecord
    job: JobReference | None = None

    @property
    def accepted(self) -> bool:
        return self.job is not None
