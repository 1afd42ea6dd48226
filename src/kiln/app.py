"""Application orchestration entry points."""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import create_async_engine

from kiln.adapters.authorization import (
    Role,
    RoleBinding,
    StaticRoleBindings,
    StoreNamespaceRetriever,
)
from kiln.adapters.sqlalchemy import ScopedClientFactory, SqlAlchemyObjectStore
from kiln.adapters.sqlalchemy.migrations import upgrade_head
from kiln.config import ConfigurationError, get_database_config, get_platform_config
from kiln.domain.awaiter import ConditionAwaiter
from kiln.domain.controllers import (
    AppNameUniquenessValidator,
    BuildCleaner,
    BuildReconciler,
    BuildWorkloadDelegate,
    ControllerManager,
    DockerBuildDelegate,
    ManagedBindingDelegate,
    PatchingReconciler,
    ServiceBindingReconciler,
    ServiceBindingUniquenessValidator,
    UserProvidedBindingDelegate,
)
from kiln.domain.model import Build, ServiceBinding, ServiceInstanceType
from kiln.domain.repositories import (
    AppRepository,
    BuildRepository,
    PackageRepository,
    ServiceBindingRepository,
    ServiceInstanceRepository,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncEngine

    from kiln.config import PlatformConfig, RoleBindingEntry
    from kiln.domain.controllers import BindingDelegate, BuildDelegate
    from kiln.domain.ports.provisioning import ServiceBroker

log = getLogger(__name__)


def role_bindings_from_config(entries: Iterable[RoleBindingEntry]) -> list[RoleBinding]:
    bindings: list[RoleBinding] = []
    for entry in entries:
        try:
            role = Role(entry.role)
        except ValueError as exc:
            raise ConfigurationError(
                f"Unknown role {entry.role!r} for user {entry.user!r}"
            ) from exc
        bindings.append(RoleBinding(entry.user, entry.namespace, role))
    return bindings


class Platform:
    """Wires the store, repositories and controllers around one engine."""

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        config: PlatformConfig | None = None,
        broker: ServiceBroker | None = None,
    ) -> None:
        self.engine = engine
        self.config = config or get_platform_config()

        self.store = SqlAlchemyObjectStore(
            engine,
            validators=(ServiceBindingUniquenessValidator(), AppNameUniquenessValidator()),
        )
        self.role_bindings = StaticRoleBindings(
            role_bindings_from_config(self.config.role_bindings)
        )
        self.client_factory = ScopedClientFactory(self.store, self.role_bindings)
        self.namespace_retriever = StoreNamespaceRetriever(self.store)

        shared = {
            "namespace_retriever": self.namespace_retriever,
            "user_client_factory": self.client_factory,
            "namespace_permissions": self.role_bindings,
        }
        self.apps = AppRepository(**shared)
        self.packages = PackageRepository(**shared)
        self.builds = BuildRepository(**shared)
        self.service_instances = ServiceInstanceRepository(**shared)
        self.service_bindings = ServiceBindingRepository(
            **shared,
            awaiter=ConditionAwaiter[ServiceBinding](self.config.await_timeout_seconds),
            synchronous_readiness={
                ServiceInstanceType.USER_PROVIDED: self.config.sync_user_provided_bindings,
                ServiceInstanceType.MANAGED: self.config.sync_managed_bindings,
            },
        )

        self.manager = ControllerManager(
            self.store,
            workers=self.config.controller_workers,
            resync_interval=self.config.resync_seconds,
        )
        self._register_controllers(broker)

    def _register_controllers(self, broker: ServiceBroker | None) -> None:
        cleaner = BuildCleaner(self.store, self.config.retained_builds)
        build_delegates: list[BuildDelegate] = [
            DockerBuildDelegate(),
            BuildWorkloadDelegate(self.store),
        ]
        for delegate in build_delegates:
            self.manager.register(
                PatchingReconciler(
                    self.store,
                    Build,
                    BuildReconciler(self.store, delegate, cleaner),
                    name=f"Build/{delegate.lifecycle_type}",
                )
            )

        binding_delegates: dict[ServiceInstanceType, BindingDelegate] = {
            ServiceInstanceType.USER_PROVIDED: UserProvidedBindingDelegate(),
        }
        if broker is not None:
            binding_delegates[ServiceInstanceType.MANAGED] = ManagedBindingDelegate(broker)
        else:
            log.warning("No service broker configured; managed bindings will not be reconciled")
        self.manager.register(
            PatchingReconciler(
                self.store,
                ServiceBinding,
                ServiceBindingReconciler(self.store, binding_delegates),
            )
        )

    async def upgrade_database(self) -> None:
        await upgrade_head(engine=self.engine)

    async def run_controllers(self) -> None:
        await self.manager.run()

    async def close(self) -> None:
        self.store.hub.close()
        await self.engine.dispose()


def build_platform(
    *,
    database_uri: str | None = None,
    broker: ServiceBroker | None = None,
) -> Platform:
    """Create a platform bound to the configured database."""

    uri = database_uri or get_database_config().uri
    log.info("Using database %s", uri)
    return Platform(create_async_engine(uri), broker=broker)


async def _upgrade_database(database_uri: str | None) -> None:
    platform = build_platform(database_uri=database_uri)
    try:
        await platform.upgrade_database()
    finally:
        await platform.close()


async def _run_controllers(database_uri: str | None) -> None:
    platform = build_platform(database_uri=database_uri)
    try:
        await platform.upgrade_database()
        await platform.run_controllers()
    finally:
        await platform.close()


def upgrade_database(*, database_uri: str | None = None) -> None:
    """Apply all pending schema migrations."""

    asyncio.run(_upgrade_database(database_uri))
    log.info("Database schema is up to date")


def run_controllers(*, database_uri: str | None = None) -> None:
    """Run the reconciliation controllers until interrupted."""

    asyncio.run(_run_controllers(database_uri))
