"""App repository."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from kiln.domain.errors import UniquenessError
from kiln.domain.model import (
    AdmissionCategory,
    App,
    AppDesiredState,
    AppRecord,
    AppSpec,
    Created,
    Lifecycle,
    LifecycleType,
    ObjectMeta,
    new_guid,
)
from kiln.domain.ports.store import AdmissionRejectedError
from kiln.domain.repositories.base import (
    EntityRepository,
    ListMessage,
    MetadataPatch,
    empty_or_contains,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from kiln.domain.errors import ApiError
    from kiln.domain.ports.authorization import AuthInfo
    from kiln.domain.ports.store import StoreError


@dataclass(slots=True, kw_only=True)
class CreateAppMessage:
    name: str
    space_guid: str
    lifecycle: Lifecycle = field(default_factory=lambda: Lifecycle(type=LifecycleType.BUILDPACK))
    desired_state: AppDesiredState = AppDesiredState.STOPPED
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True, kw_only=True)
class UpdateAppMessage:
    name: str | None = None
    lifecycle: Lifecycle | None = None
    desired_state: AppDesiredState | None = None
    metadata: MetadataPatch = field(default_factory=MetadataPatch)

    def apply(self, app: App) -> None:
        if self.name is not None:
            app.spec.display_name = self.name
        if self.lifecycle is not None:
            app.spec.lifecycle = self.lifecycle
        if self.desired_state is not None:
            app.spec.desired_state = self.desired_state
        self.metadata.apply(app.metadata)


@dataclass(slots=True, kw_only=True)
class ListAppsMessage(ListMessage):
    names: Sequence[str] = ()

    def matches(self, obj: App) -> bool:
        return ListMessage.matches(self, obj) and empty_or_contains(
            self.names, obj.spec.display_name
        )


class AppRepository(EntityRepository[App, AppRecord, ListAppsMessage]):
    resource_type = "App"
    object_type = App

    def to_record(self, obj: App) -> AppRecord:
        return AppRecord(
            **self.record_fields(obj),
            name=obj.spec.display_name,
            desired_state=obj.spec.desired_state,
            lifecycle=obj.spec.lifecycle,
            droplet_guid=obj.spec.current_droplet_ref,
        )

    async def create(self, auth: AuthInfo, message: CreateAppMessage) -> Created[AppRecord]:
        client = self.user_client_factory.build_client(auth)
        app = App(
            metadata=ObjectMeta(
                name=new_guid(),
                namespace=message.space_guid,
                labels=dict(message.labels),
                annotations=dict(message.annotations),
            ),
            spec=AppSpec(
                display_name=message.name,
                desired_state=message.desired_state,
                lifecycle=message.lifecycle,
            ),
        )
        created = await self._create(client, app)
        return Created(record=self.to_record(created))

    async def update(self, auth: AuthInfo, guid: str, message: UpdateAppMessage) -> AppRecord:
        app = await self.get_object(auth, guid)
        client = self.user_client_factory.build_client(auth)
        return self.to_record(await self._patch(client, app, message.apply))

    async def set_current_droplet(self, auth: AuthInfo, guid: str, droplet_guid: str) -> AppRecord:
        app = await self.get_object(auth, guid)
        client = self.user_client_factory.build_client(auth)

        def _point_at(target: App) -> None:
            target.spec.current_droplet_ref = droplet_guid

        return self.to_record(await self._patch(client, app, _point_at))

    def _translate_write_error(self, error: StoreError) -> ApiError:
        if (
            isinstance(error, AdmissionRejectedError)
            and error.category == AdmissionCategory.DUPLICATE_APP_NAME
        ):
            return UniquenessError(error.message, cause=error)
        return super()._translate_write_error(error)
