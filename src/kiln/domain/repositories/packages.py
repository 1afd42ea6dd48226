"""Package repository."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from kiln.domain.errors import UnprocessableEntityError
from kiln.domain.model import (
    APP_GUID_LABEL,
    App,
    Created,
    ObjectMeta,
    Package,
    PackageRecord,
    PackageSpec,
    PackageType,
    new_guid,
)
from kiln.domain.repositories.base import EntityRepository, ListMessage, empty_or_contains

if TYPE_CHECKING:
    from collections.abc import Sequence

    from kiln.domain.ports.authorization import AuthInfo


@dataclass(slots=True, kw_only=True)
class CreatePackageMessage:
    type: PackageType
    app_guid: str
    image: str | None = None
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True, kw_only=True)
class ListPackagesMessage(ListMessage):
    app_guids: Sequence[str] = ()

    def matches(self, obj: Package) -> bool:
        if not ListMessage.matches(self, obj):
            return False
        return empty_or_contains(self.app_guids, obj.spec.app_ref)


class PackageRepository(EntityRepository[Package, PackageRecord, ListPackagesMessage]):
    resource_type = "Package"
    object_type = Package

    def to_record(self, obj: Package) -> PackageRecord:
        return PackageRecord(
            **self.record_fields(obj),
            type=obj.spec.type,
            app_guid=obj.spec.app_ref,
            image=obj.spec.image,
        )

    async def create(
        self, auth: AuthInfo, message: CreatePackageMessage
    ) -> Created[PackageRecord]:
        if message.type is PackageType.DOCKER and not message.image:
            raise UnprocessableEntityError("docker packages require an image")

        client = self.user_client_factory.build_client(auth)
        app = await self._resolve_related(
            client,
            App,
            "App",
            message.app_guid,
            f"Unable to use app {message.app_guid}. "
            "Ensure that the app exists and you have access to it.",
        )
        package = Package(
            metadata=ObjectMeta(
                name=new_guid(),
                namespace=app.namespace,
                labels={**message.labels, APP_GUID_LABEL: app.name},
                annotations=dict(message.annotations),
            ),
            spec=PackageSpec(type=message.type, app_ref=app.name, image=message.image),
        )
        created = await self._create(client, package)
        return Created(record=self.to_record(created))
