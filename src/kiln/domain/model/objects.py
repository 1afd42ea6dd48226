"""Platform entity kinds expressed as declarative objects."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

from kiln.domain.model.enums import (
    AppDesiredState,
    LifecycleType,
    PackageType,
    ResourceKind,
    ServiceBindingType,
    ServiceInstanceType,
)
from kiln.domain.model.meta import DeclarativeObject, ObjectMeta, ObjectStatus

PLAN_GUID_LABEL = "kiln.io/plan-guid"
APP_GUID_LABEL = "kiln.io/app-guid"
BUILD_GUID_LABEL = "kiln.io/build-guid"
SERVICE_INSTANCE_GUID_LABEL = "kiln.io/service-instance-guid"
PROVISIONED_SERVICE_LABEL = "servicebinding.io/provisioned-service"


@dataclass(slots=True, kw_only=True)
class Lifecycle:
    type: LifecycleType
    buildpacks: list[str] = field(default_factory=list)
    stack: str = ""


@dataclass(slots=True, kw_only=True)
class Droplet:
    image: str
    process_types: dict[str, str] = field(default_factory=dict)


# Apps --------------------------------------------------------------------------


@dataclass(slots=True, kw_only=True)
class AppSpec:
    display_name: str
    desired_state: AppDesiredState = AppDesiredState.STOPPED
    lifecycle: Lifecycle = field(default_factory=lambda: Lifecycle(type=LifecycleType.BUILDPACK))
    current_droplet_ref: str | None = None


@dataclass(slots=True, kw_only=True)
class AppStatus(ObjectStatus):
    pass


@dataclass(kw_only=True)
class App(DeclarativeObject[AppSpec, AppStatus]):
    KIND: ClassVar[ResourceKind] = ResourceKind.APP
    status: AppStatus = field(default_factory=AppStatus)


# Packages ----------------------------------------------------------------------


@dataclass(slots=True, kw_only=True)
class PackageSpec:
    type: PackageType
    app_ref: str
    image: str | None = None


@dataclass(slots=True, kw_only=True)
class PackageStatus(ObjectStatus):
    pass


@dataclass(kw_only=True)
class Package(DeclarativeObject[PackageSpec, PackageStatus]):
    KIND: ClassVar[ResourceKind] = ResourceKind.PACKAGE
    status: PackageStatus = field(default_factory=PackageStatus)


# Builds ------------------------------------------------------------------------


@dataclass(slots=True, kw_only=True)
class BuildSpec:
    package_ref: str
    app_ref: str
    lifecycle: Lifecycle
    staging_memory_mb: int = 1024
    staging_disk_mb: int = 1024


@dataclass(slots=True, kw_only=True)
class BuildStatus(ObjectStatus):
    droplet: Droplet | None = None


@dataclass(kw_only=True)
class Build(DeclarativeObject[BuildSpec, BuildStatus]):
    KIND: ClassVar[ResourceKind] = ResourceKind.BUILD
    status: BuildStatus = field(default_factory=BuildStatus)


@dataclass(slots=True, kw_only=True)
class BuildWorkloadSpec:
    build_ref: str
    source_image: str | None = None
    buildpacks: list[str] = field(default_factory=list)


@dataclass(slots=True, kw_only=True)
class BuildWorkloadStatus(ObjectStatus):
    droplet: Droplet | None = None


@dataclass(kw_only=True)
class BuildWorkload(DeclarativeObject[BuildWorkloadSpec, BuildWorkloadStatus]):
    KIND: ClassVar[ResourceKind] = ResourceKind.BUILD_WORKLOAD
    status: BuildWorkloadStatus = field(default_factory=BuildWorkloadStatus)


# Services ----------------------------------------------------------------------


@dataclass(slots=True, kw_only=True)
class ServiceInstanceSpec:
    display_name: str
    type: ServiceInstanceType
    plan_guid: str | None = None
    tags: list[str] = field(default_factory=list)
    credentials: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, kw_only=True)
class ServiceInstanceStatus(ObjectStatus):
    pass


@dataclass(kw_only=True)
class ServiceInstance(DeclarativeObject[ServiceInstanceSpec, ServiceInstanceStatus]):
    KIND: ClassVar[ResourceKind] = ResourceKind.SERVICE_INSTANCE
    status: ServiceInstanceStatus = field(default_factory=ServiceInstanceStatus)


@dataclass(slots=True, kw_only=True)
class ServiceBindingSpec:
    service_instance_ref: str
    type: ServiceBindingType = ServiceBindingType.APP
    app_ref: str | None = None
    display_name: str | None = None
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, kw_only=True)
class ServiceBindingStatus(ObjectStatus):
    credentials: dict[str, Any] | None = None


@dataclass(kw_only=True)
class ServiceBinding(DeclarativeObject[ServiceBindingSpec, ServiceBindingStatus]):
    KIND: ClassVar[ResourceKind] = ResourceKind.SERVICE_BINDING
    status: ServiceBindingStatus = field(default_factory=ServiceBindingStatus)


# Registry ----------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class KindInfo:
    kind: ResourceKind
    object_type: type[DeclarativeObject[Any, Any]]
    spec_type: type[Any]
    status_type: type[ObjectStatus]

    def build(self, metadata: ObjectMeta, spec: object, status: ObjectStatus) -> Any:
        return self.object_type(metadata=metadata, spec=spec, status=status)


KINDS: dict[ResourceKind, KindInfo] = {
    info.kind: info
    for info in (
        KindInfo(ResourceKind.APP, App, AppSpec, AppStatus),
        KindInfo(ResourceKind.PACKAGE, Package, PackageSpec, PackageStatus),
        KindInfo(ResourceKind.BUILD, Build, BuildSpec, BuildStatus),
        KindInfo(
            ResourceKind.BUILD_WORKLOAD,
            BuildWorkload,
            BuildWorkloadSpec,
            BuildWorkloadStatus,
        ),
        KindInfo(
            ResourceKind.SERVICE_INSTANCE,
            ServiceInstance,
            ServiceInstanceSpec,
            ServiceInstanceStatus,
        ),
        KindInfo(
            ResourceKind.SERVICE_BINDING,
            ServiceBinding,
            ServiceBindingSpec,
            ServiceBindingStatus,
        ),
    )
}


def kind_info(kind: ResourceKind) -> KindInfo:
    return KINDS[kind]
