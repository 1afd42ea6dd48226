"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class ResourceKind(StrEnum):
    """Discriminator for the declarative object kinds managed by the store."""

    APP = "App"
    PACKAGE = "Package"
    BUILD = "Build"
    BUILD_WORKLOAD = "BuildWorkload"
    SERVICE_INSTANCE = "ServiceInstance"
    SERVICE_BINDING = "ServiceBinding"


class ConditionStatus(StrEnum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class ConditionType(StrEnum):
    """Well-known condition types written by the controllers."""

    READY = "Ready"
    SUCCEEDED = "Succeeded"
    STAGING = "Staging"
    FAILED = "Failed"


class LifecycleType(StrEnum):
    BUILDPACK = "buildpack"
    DOCKER = "docker"


class PackageType(StrEnum):
    BITS = "bits"
    DOCKER = "docker"


class AppDesiredState(StrEnum):
    STARTED = "STARTED"
    STOPPED = "STOPPED"


class ServiceInstanceType(StrEnum):
    USER_PROVIDED = "user-provided"
    MANAGED = "managed"


class ServiceBindingType(StrEnum):
    APP = "app"
    KEY = "key"


class ResourceState(StrEnum):
    """Tagged state derived from an object's conditions and deletion timestamp."""

    INITIAL = "initial"
    IN_PROGRESS = "in progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    DELETING = "deleting"


class OperationType(StrEnum):
    CREATE = "create"
    DELETE = "delete"


class ReadinessState(StrEnum):
    """Coarse readiness reported to pollers."""

    UNKNOWN = "unknown"
    READY = "ready"


PACKAGE_LIFECYCLE_TYPES: dict[PackageType, LifecycleType] = {
    PackageType.BITS: LifecycleType.BUILDPACK,
    PackageType.DOCKER: LifecycleType.DOCKER,
}


class AdmissionCategory(StrEnum):
    """Categories attached to admission rejections so callers can tell them apart."""

    SERVICE_BINDING = "ServiceBindingErrorType"
    DUPLICATE_APP_NAME = "DuplicateAppNameError"
    IMMUTABLE_FIELD = "ImmutableFieldError"
