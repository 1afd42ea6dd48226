"""Public domain model surface."""

from __future__ import annotations

from kiln.domain.model.conditions import (
    Condition,
    find_status_condition,
    is_status_condition_false,
    is_status_condition_true,
    remove_status_condition,
    set_status_condition,
    utc_now,
)
from kiln.domain.model.enums import (
    PACKAGE_LIFECYCLE_TYPES,
    AdmissionCategory,
    AppDesiredState,
    ConditionStatus,
    ConditionType,
    LifecycleType,
    OperationType,
    PackageType,
    ReadinessState,
    ResourceKind,
    ResourceState,
    ServiceBindingType,
    ServiceInstanceType,
)
from kiln.domain.model.meta import (
    DeclarativeObject,
    ObjectKey,
    ObjectMeta,
    ObjectStatus,
    OwnerConflictError,
    OwnerReference,
    new_guid,
    set_owner_reference,
)
from kiln.domain.model.objects import (
    APP_GUID_LABEL,
    BUILD_GUID_LABEL,
    KINDS,
    PLAN_GUID_LABEL,
    PROVISIONED_SERVICE_LABEL,
    SERVICE_INSTANCE_GUID_LABEL,
    App,
    AppSpec,
    AppStatus,
    Build,
    BuildSpec,
    BuildStatus,
    BuildWorkload,
    BuildWorkloadSpec,
    BuildWorkloadStatus,
    Droplet,
    KindInfo,
    Lifecycle,
    Package,
    PackageSpec,
    PackageStatus,
    ServiceBinding,
    ServiceBindingSpec,
    ServiceBindingStatus,
    ServiceInstance,
    ServiceInstanceSpec,
    ServiceInstanceStatus,
    kind_info,
)
from kiln.domain.model.records import (
    AppRecord,
    BuildRecord,
    Created,
    JobReference,
    PackageRecord,
    Record,
    ServiceBindingDetailsRecord,
    ServiceBindingRecord,
    ServiceInstanceRecord,
)
from kiln.domain.model.state import (
    BUILD_RULES,
    DEFAULT_RULES,
    ConditionRules,
    LastOperation,
    derive_state,
    is_ready,
    last_operation,
    last_updated_at,
)

__all__ = [  # noqa: RUF022
    # conditions
    "Condition",
    "find_status_condition",
    "is_status_condition_false",
    "is_status_condition_true",
    "remove_status_condition",
    "set_status_condition",
    "utc_now",
    # enums
    "PACKAGE_LIFECYCLE_TYPES",
    "AdmissionCategory",
    "AppDesiredState",
    "ConditionStatus",
    "ConditionType",
    "LifecycleType",
    "OperationType",
    "PackageType",
    "ReadinessState",
    "ResourceKind",
    "ResourceState",
    "ServiceBindingType",
    "ServiceInstanceType",
    # metadata
    "DeclarativeObject",
    "ObjectKey",
    "ObjectMeta",
    "ObjectStatus",
    "OwnerConflictError",
    "OwnerReference",
    "new_guid",
    "set_owner_reference",
    # kinds
    "APP_GUID_LABEL",
    "BUILD_GUID_LABEL",
    "KINDS",
    "PLAN_GUID_LABEL",
    "PROVISIONED_SERVICE_LABEL",
    "SERVICE_INSTANCE_GUID_LABEL",
    "App",
    "AppSpec",
    "AppStatus",
    "Build",
    "BuildSpec",
    "BuildStatus",
    "BuildWorkload",
    "BuildWorkloadSpec",
    "BuildWorkloadStatus",
    "Droplet",
    "KindInfo",
    "Lifecycle",
    "Package",
    "PackageSpec",
    "PackageStatus",
    "ServiceBinding",
    "ServiceBindingSpec",
    "ServiceBindingStatus",
    "ServiceInstance",
    "ServiceInstanceSpec",
    "ServiceInstanceStatus",
    "kind_info",
    # records
    "AppRecord",
    "BuildRecord",
    "Created",
    "JobReference",
    "PackageRecord",
    "Record",
    "ServiceBindingDetailsRecord",
    "ServiceBindingRecord",
    "ServiceInstanceRecord",
    # state
    "BUILD_RULES",
    "DEFAULT_RULES",
    "ConditionRules",
    "LastOperation",
    "derive_state",
    "is_ready",
    "last_operation",
    "last_updated_at",
]
