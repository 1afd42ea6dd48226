from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

import pytest
import pytest_asyncio

from kiln.domain.awaiter import ConditionAwaiter
from kiln.domain.controllers import (
    PatchingReconciler,
    ServiceBindingReconciler,
    UserProvidedBindingDelegate,
)
from kiln.domain.errors import (
    AwaitTimeoutError,
    NotFoundError,
    UniquenessError,
    UnprocessableEntityError,
)
from kiln.domain.model import (
    APP_GUID_LABEL,
    PLAN_GUID_LABEL,
    PROVISIONED_SERVICE_LABEL,
    SERVICE_INSTANCE_GUID_LABEL,
    ObjectKey,
    ServiceBinding,
    ServiceBindingType,
    ServiceInstanceType,
)
from kiln.domain.repositories import (
    CreateServiceBindingMessage,
    ListServiceBindingsMessage,
    ServiceBindingRepository,
    UpdateServiceBindingMessage,
)
from tests.helpers.objects import SPACE_A, SPACE_B, create_app, create_instance

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from kiln.adapters.sqlalchemy import SqlAlchemyObjectStore
    from kiln.domain.ports.authorization import AuthInfo

pytestmark = pytest.mark.asyncio

NEVER_WAIT = {ServiceInstanceType.USER_PROVIDED: False, ServiceInstanceType.MANAGED: False}


def _repository(
    dependencies: dict[str, object],
    *,
    timeout: float = 2.0,
    synchronous_readiness: dict[ServiceInstanceType, bool] | None = None,
) -> ServiceBindingRepository:
    extra: dict[str, object] = {}
    if synchronous_readiness is not None:
        extra["synchronous_readiness"] = synchronous_readiness
    return ServiceBindingRepository(
        **dependencies,  # type: ignore[arg-type]
        awaiter=ConditionAwaiter[ServiceBinding](timeout),
        **extra,  # type: ignore[arg-type]
    )


def _binding_controller(store: SqlAlchemyObjectStore) -> PatchingReconciler[ServiceBinding]:
    return PatchingReconciler(
        store,
        ServiceBinding,
        ServiceBindingReconciler(
            store, {ServiceInstanceType.USER_PROVIDED: UserProvidedBindingDelegate()}
        ),
    )


async def _reconcile_new_bindings(store: SqlAlchemyObjectStore) -> None:
    """Tiny stand-in for the controller manager: reconcile each binding as it appears."""

    controller = _binding_controller(store)
    async with store.watch(ServiceBinding) as events:
        async for event in events:
            await controller.reconcile(event.object.key)


@pytest_asyncio.fixture
async def running_binding_controller(
    store: SqlAlchemyObjectStore,
) -> AsyncIterator[None]:
    task = asyncio.create_task(_reconcile_new_bindings(store))
    await asyncio.sleep(0)
    try:
        yield
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


async def test_user_provided_binding_waits_until_ready(
    store: SqlAlchemyObjectStore,
    repository_dependencies: dict[str, object],
    running_binding_controller: None,
    alice: AuthInfo,
) -> None:
    bindings = _repository(repository_dependencies)
    instance = await create_instance(store, credentials={"password": "s3cret"})
    app = await create_app(store)

    created = await bindings.create(
        alice,
        CreateServiceBindingMessage(service_instance_guid=instance.name, app_guid=app.name),
    )

    assert created.accepted is False
    assert created.record.ready is True
    assert created.record.relationships() == {
        "service_instance": instance.name,
        "app": app.name,
    }
    details = await bindings.get_details(alice, created.record.guid)
    assert details.credentials == {"password": "s3cret"}


async def test_timed_out_wait_still_converges_later(
    store: SqlAlchemyObjectStore,
    repository_dependencies: dict[str, object],
    alice: AuthInfo,
) -> None:
    bindings = _repository(repository_dependencies, timeout=0.01)
    instance = await create_instance(store)
    app = await create_app(store)

    with pytest.raises(AwaitTimeoutError):
        await bindings.create(
            alice,
            CreateServiceBindingMessage(service_instance_guid=instance.name, app_guid=app.name),
        )

    [pending] = await store.list(ServiceBinding)
    await _binding_controller(store).reconcile(pending.key)
    record = await bindings.get(alice, pending.name)
    assert record.ready is True


async def test_managed_binding_returns_job_reference(
    store: SqlAlchemyObjectStore,
    repository_dependencies: dict[str, object],
    alice: AuthInfo,
) -> None:
    bindings = _repository(repository_dependencies)
    instance = await create_instance(
        store, instance_type=ServiceInstanceType.MANAGED, plan_guid="plan-1"
    )
    app = await create_app(store)

    created = await bindings.create(
        alice,
        CreateServiceBindingMessage(service_instance_guid=instance.name, app_guid=app.name),
    )

    assert created.accepted is True
    assert created.job is not None
    assert created.job.guid == f"managed_service_binding.create~{created.record.guid}"
    assert created.record.ready is False
    stored = await store.get(ServiceBinding, ObjectKey(SPACE_A, created.record.guid))
    assert stored.metadata.labels == {
        PROVISIONED_SERVICE_LABEL: "true",
        SERVICE_INSTANCE_GUID_LABEL: instance.name,
        PLAN_GUID_LABEL: "plan-1",
        APP_GUID_LABEL: app.name,
    }


async def test_cross_space_binding_is_rejected_and_creates_nothing(
    store: SqlAlchemyObjectStore,
    repository_dependencies: dict[str, object],
    alice: AuthInfo,
) -> None:
    bindings = _repository(repository_dependencies)
    instance = await create_instance(store, SPACE_A)
    app = await create_app(store, SPACE_B)

    with pytest.raises(UnprocessableEntityError) as exc:
        await bindings.create(
            alice,
            CreateServiceBindingMessage(service_instance_guid=instance.name, app_guid=app.name),
        )

    assert exc.value.detail == "The service instance and the app are in different spaces"
    assert await store.list(ServiceBinding) == []


async def test_unknown_instance_is_unprocessable(
    repository_dependencies: dict[str, object], alice: AuthInfo
) -> None:
    bindings = _repository(repository_dependencies)

    with pytest.raises(UnprocessableEntityError) as exc:
        await bindings.create(
            alice, CreateServiceBindingMessage(service_instance_guid="missing", app_guid="a")
        )

    assert "Unable to use service instance missing" in exc.value.detail


async def test_invisible_instance_is_unprocessable(
    store: SqlAlchemyObjectStore,
    repository_dependencies: dict[str, object],
    bob: AuthInfo,
) -> None:
    bindings = _repository(repository_dependencies)
    instance = await create_instance(store)

    with pytest.raises(UnprocessableEntityError):
        await bindings.create(
            bob,
            CreateServiceBindingMessage(
                service_instance_guid=instance.name, type=ServiceBindingType.KEY
            ),
        )


async def test_app_binding_requires_app(
    store: SqlAlchemyObjectStore,
    repository_dependencies: dict[str, object],
    alice: AuthInfo,
) -> None:
    bindings = _repository(repository_dependencies)
    instance = await create_instance(store)

    with pytest.raises(UnprocessableEntityError):
        await bindings.create(
            alice, CreateServiceBindingMessage(service_instance_guid=instance.name)
        )


async def test_second_binding_of_same_app_is_uniqueness_error(
    store: SqlAlchemyObjectStore,
    repository_dependencies: dict[str, object],
    alice: AuthInfo,
) -> None:
    bindings = _repository(repository_dependencies, synchronous_readiness=NEVER_WAIT)
    instance = await create_instance(store)
    app = await create_app(store)
    message = CreateServiceBindingMessage(service_instance_guid=instance.name, app_guid=app.name)
    await bindings.create(alice, message)

    with pytest.raises(UniquenessError) as exc:
        await bindings.create(alice, message)

    assert exc.value.detail == "The app is already bound to the service instance."


async def test_key_bindings_are_not_unique_per_instance(
    store: SqlAlchemyObjectStore,
    repository_dependencies: dict[str, object],
    alice: AuthInfo,
) -> None:
    bindings = _repository(repository_dependencies, synchronous_readiness=NEVER_WAIT)
    instance = await create_instance(store)
    message = CreateServiceBindingMessage(
        service_instance_guid=instance.name, type=ServiceBindingType.KEY, name="key"
    )

    await bindings.create(alice, message)
    await bindings.create(alice, message)

    assert len(await store.list(ServiceBinding)) == 2


async def test_details_before_credentials_are_not_found(
    store: SqlAlchemyObjectStore,
    repository_dependencies: dict[str, object],
    alice: AuthInfo,
) -> None:
    bindings = _repository(repository_dependencies, synchronous_readiness=NEVER_WAIT)
    instance = await create_instance(store)
    app = await create_app(store)
    created = await bindings.create(
        alice,
        CreateServiceBindingMessage(service_instance_guid=instance.name, app_guid=app.name),
    )

    with pytest.raises(NotFoundError) as exc:
        await bindings.get_details(alice, created.record.guid)

    assert exc.value.resource_type == "ServiceBindingDetails"


async def test_update_renames_binding(
    store: SqlAlchemyObjectStore,
    repository_dependencies: dict[str, object],
    alice: AuthInfo,
) -> None:
    bindings = _repository(repository_dependencies, synchronous_readiness=NEVER_WAIT)
    instance = await create_instance(store)
    app = await create_app(store)
    created = await bindings.create(
        alice,
        CreateServiceBindingMessage(service_instance_guid=instance.name, app_guid=app.name),
    )

    record = await bindings.update(
        alice, created.record.guid, UpdateServiceBindingMessage(name="primary-db")
    )

    assert record.name == "primary-db"


async def test_list_filters(
    store: SqlAlchemyObjectStore,
    repository_dependencies: dict[str, object],
    alice: AuthInfo,
) -> None:
    bindings = _repository(repository_dependencies, synchronous_readiness=NEVER_WAIT)
    managed = await create_instance(
        store, instance_type=ServiceInstanceType.MANAGED, plan_guid="plan-1"
    )
    provided = await create_instance(store)
    app = await create_app(store)
    app_binding = await bindings.create(
        alice,
        CreateServiceBindingMessage(service_instance_guid=managed.name, app_guid=app.name),
    )
    key_binding = await bindings.create(
        alice,
        CreateServiceBindingMessage(
            service_instance_guid=provided.name, type=ServiceBindingType.KEY
        ),
    )

    async def guids(message: ListServiceBindingsMessage) -> list[str]:
        return [record.guid for record in await bindings.list(alice, message)]

    assert await guids(ListServiceBindingsMessage(app_guids=[app.name])) == [
        app_binding.record.guid
    ]
    assert await guids(ListServiceBindingsMessage(plan_guids=["plan-1"])) == [
        app_binding.record.guid
    ]
    assert await guids(ListServiceBindingsMessage(service_instance_guids=[provided.name])) == [
        key_binding.record.guid
    ]
    assert await guids(ListServiceBindingsMessage(type=ServiceBindingType.KEY)) == [
        key_binding.record.guid
    ]
    assert (
        await guids(
            ListServiceBindingsMessage(app_guids=[app.name], type=ServiceBindingType.KEY)
        )
        == []
    )
