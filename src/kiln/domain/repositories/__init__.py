"""Per-kind repositories translating records to declarative objects."""

from __future__ import annotations

from .apps import AppRepository, CreateAppMessage, ListAppsMessage, UpdateAppMessage
from .base import EntityRepository, ListMessage, MetadataPatch
from .builds import BuildRepository, CreateBuildMessage, ListBuildsMessage
from .packages import CreatePackageMessage, ListPackagesMessage, PackageRepository
from .service_bindings import (
    CreateServiceBindingMessage,
    ListServiceBindingsMessage,
    ServiceBindingRepository,
    UpdateServiceBindingMessage,
)
from .service_instances import (
    CreateServiceInstanceMessage,
    ListServiceInstancesMessage,
    ServiceInstanceRepository,
    UpdateServiceInstanceMessage,
)

__all__ = [
    "AppRepository",
    "BuildRepository",
    "CreateAppMessage",
    "CreateBuildMessage",
    "CreatePackageMessage",
    "CreateServiceBindingMessage",
    "CreateServiceInstanceMessage",
    "EntityRepository",
    "ListAppsMessage",
    "ListBuildsMessage",
    "ListMessage",
    "ListPackagesMessage",
    "ListServiceBindingsMessage",
    "ListServiceInstancesMessage",
    "MetadataPatch",
    "PackageRepository",
    "ServiceBindingRepository",
    "ServiceInstanceRepository",
    "UpdateAppMessage",
    "UpdateServiceBindingMessage",
    "UpdateServiceInstanceMessage",
]
