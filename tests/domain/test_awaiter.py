from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from kiln.domain.awaiter import ConditionAwaiter
from kiln.domain.errors import AwaitTimeoutError, NotFoundError
from kiln.domain.model import (
    ConditionStatus,
    ConditionType,
    ServiceBinding,
    is_status_condition_true,
)
from tests.helpers.objects import create_binding, create_instance, set_condition

if TYPE_CHECKING:
    from kiln.adapters.sqlalchemy import ScopedClientFactory, SqlAlchemyObjectStore
    from kiln.domain.ports.authorization import AuthInfo

pytestmark = pytest.mark.asyncio


async def _converge_later(
    store: SqlAlchemyObjectStore, binding: ServiceBinding, delay: float
) -> None:
    await asyncio.sleep(delay)
    await set_condition(store, binding, ConditionType.READY, ConditionStatus.TRUE)


async def test_returns_immediately_when_condition_already_true(
    store: SqlAlchemyObjectStore,
) -> None:
    binding = await create_binding(store, await create_instance(store))
    await set_condition(store, binding, ConditionType.READY, ConditionStatus.TRUE)

    result = await ConditionAwaiter[ServiceBinding](timeout=0.5).await_condition(
        store, binding, ConditionType.READY
    )

    assert is_status_condition_true(result.status.conditions, ConditionType.READY)


async def test_wakes_up_on_watch_event(store: SqlAlchemyObjectStore) -> None:
    binding = await create_binding(store, await create_instance(store))
    converger = asyncio.create_task(_converge_later(store, binding, 0.05))

    result = await ConditionAwaiter[ServiceBinding](timeout=2).await_condition(
        store, binding, ConditionType.READY
    )
    await converger

    assert result.name == binding.name
    assert result.metadata.resource_version > binding.metadata.resource_version
    assert is_status_condition_true(result.status.conditions, ConditionType.READY)


async def test_timeout_abandons_wait_but_not_the_object(store: SqlAlchemyObjectStore) -> None:
    binding = await create_binding(store, await create_instance(store))
    converger = asyncio.create_task(_converge_later(store, binding, 0.05))

    with pytest.raises(AwaitTimeoutError) as exc:
        await ConditionAwaiter[ServiceBinding](timeout=0.01).await_condition(
            store, binding, ConditionType.READY
        )
    await converger

    assert isinstance(exc.value, TimeoutError)
    current = await store.get(ServiceBinding, binding.key)
    assert is_status_condition_true(current.status.conditions, ConditionType.READY)


async def test_per_call_timeout_overrides_default(store: SqlAlchemyObjectStore) -> None:
    binding = await create_binding(store, await create_instance(store))

    with pytest.raises(AwaitTimeoutError):
        await ConditionAwaiter[ServiceBinding](timeout=30).await_condition(
            store, binding, ConditionType.READY, timeout=0.01
        )


async def test_deletion_while_waiting_is_not_found(store: SqlAlchemyObjectStore) -> None:
    binding = await create_binding(store, await create_instance(store))

    async def _delete_later() -> None:
        await asyncio.sleep(0.05)
        await store.delete(binding)

    deleter = asyncio.create_task(_delete_later())
    with pytest.raises(NotFoundError):
        await ConditionAwaiter[ServiceBinding](timeout=2).await_condition(
            store, binding, ConditionType.READY
        )
    await deleter


async def test_missing_object_is_not_found(store: SqlAlchemyObjectStore) -> None:
    binding = await create_binding(store, await create_instance(store))
    await store.delete(binding)

    with pytest.raises(NotFoundError):
        await ConditionAwaiter[ServiceBinding](timeout=0.5).await_condition(
            store, binding, ConditionType.READY
        )


async def test_subscription_is_released_after_wait(store: SqlAlchemyObjectStore) -> None:
    binding = await create_binding(store, await create_instance(store))

    with pytest.raises(AwaitTimeoutError):
        await ConditionAwaiter[ServiceBinding](timeout=0.01).await_condition(
            store, binding, ConditionType.READY
        )

    assert store.hub.subscriber_count == 0


async def test_caller_deadline_raises_builtin_timeout(store: SqlAlchemyObjectStore) -> None:
    binding = await create_binding(store, await create_instance(store))
    converger = asyncio.create_task(_converge_later(store, binding, 0.05))

    with pytest.raises(TimeoutError) as exc:
        async with asyncio.timeout(0.01):
            await ConditionAwaiter[ServiceBinding]().await_condition(
                store, binding, ConditionType.READY
            )

    assert not isinstance(exc.value, AwaitTimeoutError)
    assert store.hub.subscriber_count == 0
    await converger
    current = await store.get(ServiceBinding, binding.key)
    assert is_status_condition_true(current.status.conditions, ConditionType.READY)


async def test_inaccessible_object_is_not_found(
    store: SqlAlchemyObjectStore, client_factory: ScopedClientFactory, bob: AuthInfo
) -> None:
    binding = await create_binding(store, await create_instance(store))

    with pytest.raises(NotFoundError):
        await ConditionAwaiter[ServiceBinding](timeout=0.5).await_condition(
            client_factory.build_client(bob), binding, ConditionType.READY
        )
    assert store.hub.subscriber_count == 0
