"""Build repository.

Staging runs in the build controller, so creating a build only records the
request and returns an accepted marker; callers poll ``get_last_operation``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from kiln.domain.errors import (
    ForbiddenError,
    NotFoundError,
    as_unprocessable_entity,
    from_store_error,
)
from kiln.domain.model import (
    APP_GUID_LABEL,
    BUILD_RULES,
    App,
    Build,
    BuildRecord,
    BuildSpec,
    ObjectKey,
    ObjectMeta,
    Package,
    derive_state,
    new_guid,
)
from kiln.domain.ports.store import StoreError
from kiln.domain.repositories.base import EntityRepository, ListMessage, empty_or_contains

if TYPE_CHECKING:
    from collections.abc import Sequence

    from kiln.domain.model import Created, Lifecycle, ResourceState
    from kiln.domain.ports.authorization import AuthInfo

PACKAGE_GUID_LABEL = "kiln.io/package-guid"
CREATE_OPERATION = "build.create"


@dataclass(slots=True, kw_only=True)
class CreateBuildMessage:
    package_guid: str
    lifecycle: Lifecycle | None = None
    staging_memory_mb: int = 1024
    staging_disk_mb: int = 1024
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True, kw_only=True)
class ListBuildsMessage(ListMessage):
    app_guids: Sequence[str] = ()
    package_guids: Sequence[str] = ()
    states: Sequence[ResourceState] = ()

    def matches(self, obj: Build) -> bool:
        if not (
            ListMessage.matches(self, obj)
            and empty_or_contains(self.app_guids, obj.spec.app_ref)
            and empty_or_contains(self.package_guids, obj.spec.package_ref)
        ):
            return False
        state = derive_state(obj.status.conditions, obj.metadata.deletion_timestamp, BUILD_RULES)
        return not self.states or state in self.states


class BuildRepository(EntityRepository[Build, BuildRecord, ListBuildsMessage]):
    resource_type = "Build"
    object_type = Build
    rules = BUILD_RULES

    def to_record(self, obj: Build) -> BuildRecord:
        return BuildRecord(
            **self.record_fields(obj),
            app_guid=obj.spec.app_ref,
            package_guid=obj.spec.package_ref,
            lifecycle_type=obj.spec.lifecycle.type,
            staging_memory_mb=obj.spec.staging_memory_mb,
            staging_disk_mb=obj.spec.staging_disk_mb,
            droplet=obj.status.droplet,
        )

    async def create(self, auth: AuthInfo, message: CreateBuildMessage) -> Created[BuildRecord]:
        client = self.user_client_factory.build_client(auth)
        package = await self._resolve_related(
            client,
            Package,
            "Package",
            message.package_guid,
            f"Unable to use package {message.package_guid}. "
            "Ensure that the package exists and you have access to it.",
        )
        try:
            app = await client.get(App, ObjectKey(package.namespace, package.spec.app_ref))
        except StoreError as exc:
            raise as_unprocessable_entity(
                from_store_error(exc, "App"),
                f"Unable to use the app of package {package.name}.",
                ForbiddenError,
                NotFoundError,
            ) from exc

        build = Build(
            metadata=ObjectMeta(
                name=new_guid(),
                namespace=package.namespace,
                labels={
                    **message.labels,
                    APP_GUID_LABEL: app.name,
                    PACKAGE_GUID_LABEL: package.name,
                },
                annotations=dict(message.annotations),
            ),
            spec=BuildSpec(
                package_ref=package.name,
                app_ref=app.name,
                lifecycle=message.lifecycle or app.spec.lifecycle,
                staging_memory_mb=message.staging_memory_mb,
                staging_disk_mb=message.staging_disk_mb,
            ),
        )
        created = await self._create(client, build)
        return await self._complete_creation(
            client, created, awaiter=None, operation=CREATE_OPERATION
        )
