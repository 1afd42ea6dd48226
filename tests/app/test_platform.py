from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import TYPE_CHECKING

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from kiln.app import Platform, role_bindings_from_config
from kiln.config import ConfigurationError, PlatformConfig, RoleBindingEntry
from kiln.domain.awaiter import ConditionAwaiter
from kiln.domain.model import (
    Build,
    ConditionType,
    Droplet,
    Lifecycle,
    LifecycleType,
    ObjectKey,
    PackageType,
    ResourceState,
    ServiceInstanceType,
)
from kiln.domain.ports.authorization import AuthInfo
from kiln.domain.repositories import (
    CreateAppMessage,
    CreateBuildMessage,
    CreatePackageMessage,
    CreateServiceBindingMessage,
    CreateServiceInstanceMessage,
)
from tests.helpers.objects import SPACE_A, FakeBroker

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

pytestmark = pytest.mark.asyncio

ALICE = AuthInfo(user="alice")


@pytest_asyncio.fixture
async def platform(database_uri: str) -> AsyncIterator[Platform]:
    config = PlatformConfig(
        await_timeout_seconds=2.0,
        role_bindings=(RoleBindingEntry("alice", SPACE_A, "developer"),),
    )
    platform = Platform(create_async_engine(database_uri), config=config, broker=FakeBroker())
    await platform.upgrade_database()
    task = asyncio.create_task(platform.run_controllers())
    try:
        async with asyncio.timeout(1):
            await platform.manager.wait_ready()
        yield platform
    finally:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        await platform.close()


async def test_registers_one_build_controller_per_lifecycle(platform: Platform) -> None:
    assert platform.manager.controllers == ["Build/docker", "Build/buildpack", "ServiceBinding"]


async def test_docker_build_stages_end_to_end(platform: Platform) -> None:
    app = await platform.apps.create(
        ALICE,
        CreateAppMessage(
            name="web", space_guid=SPACE_A, lifecycle=Lifecycle(type=LifecycleType.DOCKER)
        ),
    )
    package = await platform.packages.create(
        ALICE,
        CreatePackageMessage(
            type=PackageType.DOCKER, app_guid=app.record.guid, image="nginx:1.27"
        ),
    )
    build = await platform.builds.create(
        ALICE, CreateBuildMessage(package_guid=package.record.guid)
    )

    staged = await ConditionAwaiter[Build](timeout=2).await_condition(
        platform.store,
        await platform.store.get(Build, ObjectKey(SPACE_A, build.record.guid)),
        ConditionType.SUCCEEDED,
    )
    operation = await platform.builds.get_last_operation(ALICE, build.record.guid)

    assert staged.status.droplet == Droplet(image="nginx:1.27")
    assert operation.state is ResourceState.SUCCEEDED


async def test_user_provided_binding_is_ready_on_create(platform: Platform) -> None:
    app = await platform.apps.create(ALICE, CreateAppMessage(name="api", space_guid=SPACE_A))
    instance = await platform.service_instances.create(
        ALICE,
        CreateServiceInstanceMessage(
            name="db",
            space_guid=SPACE_A,
            type=ServiceInstanceType.USER_PROVIDED,
            credentials={"password": "hunter2"},
        ),
    )

    binding = await platform.service_bindings.create(
        ALICE,
        CreateServiceBindingMessage(
            service_instance_guid=instance.record.guid, app_guid=app.record.guid
        ),
    )
    details = await platform.service_bindings.get_details(ALICE, binding.record.guid)

    assert binding.job is None
    assert binding.record.ready
    assert details.credentials == {"password": "hunter2"}


async def test_unknown_role_in_config_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="Unknown role 'owner'"):
        role_bindings_from_config([RoleBindingEntry("alice", SPACE_A, "owner")])
