"""Service instance repository."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from kiln.domain.errors import UnprocessableEntityError
from kiln.domain.model import (
    PLAN_GUID_LABEL,
    Created,
    ObjectMeta,
    ServiceInstance,
    ServiceInstanceRecord,
    ServiceInstanceSpec,
    ServiceInstanceType,
    new_guid,
)
from kiln.domain.repositories.base import (
    EntityRepository,
    ListMessage,
    MetadataPatch,
    empty_or_contains,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from kiln.domain.ports.authorization import AuthInfo


@dataclass(slots=True, kw_only=True)
class CreateServiceInstanceMessage:
    name: str
    space_guid: str
    type: ServiceInstanceType
    plan_guid: str | None = None
    tags: list[str] = field(default_factory=list)
    credentials: dict[str, Any] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True, kw_only=True)
class UpdateServiceInstanceMessage:
    name: str | None = None
    tags: list[str] | None = None
    credentials: dict[str, Any] | None = None
    metadata: MetadataPatch = field(default_factory=MetadataPatch)

    def apply(self, instance: ServiceInstance) -> None:
        if self.name is not None:
            instance.spec.display_name = self.name
        if self.tags is not None:
            instance.spec.tags = list(self.tags)
        if self.credentials is not None:
            instance.spec.credentials = dict(self.credentials)
        self.metadata.apply(instance.metadata)


@dataclass(slots=True, kw_only=True)
class ListServiceInstancesMessage(ListMessage):
    names: Sequence[str] = ()
    plan_guids: Sequence[str] = ()

    def matches(self, obj: ServiceInstance) -> bool:
        return (
            ListMessage.matches(self, obj)
            and empty_or_contains(self.names, obj.spec.display_name)
            and empty_or_contains(self.plan_guids, obj.spec.plan_guid)
        )


class ServiceInstanceRepository(
    EntityRepository[ServiceInstance, ServiceInstanceRecord, ListServiceInstancesMessage]
):
    resource_type = "ServiceInstance"
    object_type = ServiceInstance

    def to_record(self, obj: ServiceInstance) -> ServiceInstanceRecord:
        return ServiceInstanceRecord(
            **self.record_fields(obj),
            name=obj.spec.display_name,
            type=obj.spec.type,
            plan_guid=obj.spec.plan_guid,
            tags=list(obj.spec.tags),
        )

    async def create(
        self, auth: AuthInfo, message: CreateServiceInstanceMessage
    ) -> Created[ServiceInstanceRecord]:
        if message.type is ServiceInstanceType.MANAGED and not message.plan_guid:
            raise UnprocessableEntityError("managed service instances require a plan")
        if message.type is ServiceInstanceType.MANAGED and message.credentials:
            raise UnprocessableEntityError(
                "credentials are only accepted for user-provided instances"
            )

        labels = dict(message.labels)
        if message.plan_guid:
            labels[PLAN_GUID_LABEL] = message.plan_guid
        instance = ServiceInstance(
            metadata=ObjectMeta(
                name=new_guid(),
                namespace=message.space_guid,
                labels=labels,
                annotations=dict(message.annotations),
            ),
            spec=ServiceInstanceSpec(
                display_name=message.name,
                type=message.type,
                plan_guid=message.plan_guid,
                tags=list(message.tags),
                credentials=dict(message.credentials),
            ),
        )
        client = self.user_client_factory.build_client(auth)
        created = await self._create(client, instance)
        return Created(record=self.to_record(created))

    async def update(
        self, auth: AuthInfo, guid: str, message: UpdateServiceInstanceMessage
    ) -> ServiceInstanceRecord:
        instance = await self.get_object(auth, guid)
        client = self.user_client_factory.build_client(auth)
        return self.to_record(await self._patch(client, instance, message.apply))
