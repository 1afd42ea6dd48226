from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from kiln.domain.model import (
    AdmissionCategory,
    App,
    ObjectMeta,
    ServiceBinding,
    ServiceBindingSpec,
    ServiceBindingType,
    new_guid,
)
from kiln.domain.ports.store import AdmissionRejectedError
from tests.helpers.objects import SPACE_B, create_app, create_binding, create_instance

if TYPE_CHECKING:
    from kiln.adapters.sqlalchemy import SqlAlchemyObjectStore

pytestmark = pytest.mark.asyncio


async def test_duplicate_app_binding_is_rejected(store: SqlAlchemyObjectStore) -> None:
    instance = await create_instance(store)
    app = await create_app(store)
    await create_binding(store, instance, app)

    with pytest.raises(AdmissionRejectedError) as excinfo:
        await create_binding(store, instance, app)

    assert excinfo.value.category == AdmissionCategory.SERVICE_BINDING
    assert excinfo.value.message == "The app is already bound to the service instance."
    assert len(await store.list(ServiceBinding)) == 1


async def test_same_app_may_bind_different_instances(store: SqlAlchemyObjectStore) -> None:
    app = await create_app(store)
    await create_binding(store, await create_instance(store), app)
    await create_binding(store, await create_instance(store), app)

    assert len(await store.list(ServiceBinding)) == 2


async def test_key_bindings_are_not_unique(store: SqlAlchemyObjectStore) -> None:
    instance = await create_instance(store)
    for _ in range(2):
        await store.create(
            ServiceBinding(
                metadata=ObjectMeta(name=new_guid(), namespace=instance.namespace),
                spec=ServiceBindingSpec(
                    service_instance_ref=instance.name, type=ServiceBindingType.KEY
                ),
            )
        )

    assert len(await store.list(ServiceBinding)) == 2


async def test_binding_references_are_immutable(store: SqlAlchemyObjectStore) -> None:
    binding = await create_binding(
        store, await create_instance(store), await create_app(store)
    )
    other_app = await create_app(store)

    def _rebind(target: ServiceBinding) -> None:
        target.spec.app_ref = other_app.name

    with pytest.raises(AdmissionRejectedError) as excinfo:
        await store.patch(binding, _rebind)

    assert excinfo.value.category == AdmissionCategory.IMMUTABLE_FIELD


async def test_binding_display_name_can_change(store: SqlAlchemyObjectStore) -> None:
    binding = await create_binding(
        store, await create_instance(store), await create_app(store)
    )

    def _rename(target: ServiceBinding) -> None:
        target.spec.display_name = "primary-db"

    updated = await store.patch(binding, _rename)

    assert updated.spec.display_name == "primary-db"


async def test_app_names_are_unique_per_space_ignoring_case(
    store: SqlAlchemyObjectStore,
) -> None:
    await create_app(store, display_name="Web")

    with pytest.raises(AdmissionRejectedError) as excinfo:
        await create_app(store, display_name="wEB")

    assert excinfo.value.category == AdmissionCategory.DUPLICATE_APP_NAME
    assert excinfo.value.message == "App with the name 'wEB' already exists."
    await create_app(store, SPACE_B, display_name="Web")


async def test_renaming_app_onto_taken_name_is_rejected(store: SqlAlchemyObjectStore) -> None:
    await create_app(store, display_name="api")
    worker = await create_app(store, display_name="worker")

    def _rename(target: App) -> None:
        target.spec.display_name = "API"

    with pytest.raises(AdmissionRejectedError):
        await store.patch(worker, _rename)


async def test_unchanged_app_name_is_not_rechecked(store: SqlAlchemyObjectStore) -> None:
    app = await create_app(store, display_name="api")

    def _relabel(target: App) -> None:
        target.metadata.labels["team"] = "core"

    updated = await store.patch(app, _relabel)

    assert updated.metadata.labels == {"team": "core"}
