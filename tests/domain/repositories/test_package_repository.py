from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from kiln.domain.errors import UnprocessableEntityError
from kiln.domain.model import APP_GUID_LABEL, PackageType
from kiln.domain.repositories import (
    CreatePackageMessage,
    ListPackagesMessage,
    PackageRepository,
)
from tests.helpers.objects import SPACE_B, create_app

if TYPE_CHECKING:
    from kiln.adapters.sqlalchemy import SqlAlchemyObjectStore
    from kiln.domain.ports.authorization import AuthInfo

pytestmark = pytest.mark.asyncio


@pytest.fixture
def packages(repository_dependencies: dict[str, object]) -> PackageRepository:
    return PackageRepository(**repository_dependencies)  # type: ignore[arg-type]


async def test_create_places_package_in_app_space(
    packages: PackageRepository, store: SqlAlchemyObjectStore, alice: AuthInfo
) -> None:
    app = await create_app(store, SPACE_B)

    created = await packages.create(
        alice, CreatePackageMessage(type=PackageType.BITS, app_guid=app.name)
    )

    assert created.record.space_guid == SPACE_B
    assert created.record.app_guid == app.name
    assert created.record.relationships() == {"app": app.name}
    assert created.record.labels == {APP_GUID_LABEL: app.name}


async def test_docker_package_requires_image(
    packages: PackageRepository, store: SqlAlchemyObjectStore, alice: AuthInfo
) -> None:
    app = await create_app(store)

    with pytest.raises(UnprocessableEntityError):
        await packages.create(
            alice, CreatePackageMessage(type=PackageType.DOCKER, app_guid=app.name)
        )


async def test_unknown_app_is_unprocessable(packages: PackageRepository, alice: AuthInfo) -> None:
    with pytest.raises(UnprocessableEntityError) as exc:
        await packages.create(
            alice, CreatePackageMessage(type=PackageType.BITS, app_guid="missing")
        )

    assert "Unable to use app missing" in exc.value.detail


async def test_list_by_app(
    packages: PackageRepository, store: SqlAlchemyObjectStore, alice: AuthInfo
) -> None:
    web = await create_app(store)
    api = await create_app(store)
    await packages.create(alice, CreatePackageMessage(type=PackageType.BITS, app_guid=web.name))
    pending = await packages.create(
        alice, CreatePackageMessage(type=PackageType.BITS, app_guid=api.name)
    )

    by_app = await packages.list(alice, ListPackagesMessage(app_guids=[api.name]))

    assert [record.guid for record in by_app] == [pending.record.guid]
