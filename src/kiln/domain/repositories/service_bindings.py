"""Service binding repository.

Creating a binding validates that the instance (and, for app bindings, the
app) exist and live in the same space, persists the binding, and then either
waits for the controller to mark it ready or hands back a job reference.
Which of the two happens depends on the instance type: user-provided bindings
converge quickly and are awaited, managed ones go through a broker and are
polled.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Any

from kiln.domain.errors import (
    NotFoundError,
    UniquenessError,
    UnprocessableEntityError,
)
from kiln.domain.model import (
    APP_GUID_LABEL,
    PLAN_GUID_LABEL,
    PROVISIONED_SERVICE_LABEL,
    SERVICE_INSTANCE_GUID_LABEL,
    AdmissionCategory,
    App,
    ObjectMeta,
    ServiceBinding,
    ServiceBindingDetailsRecord,
    ServiceBindingRecord,
    ServiceBindingSpec,
    ServiceBindingType,
    ServiceInstance,
    ServiceInstanceType,
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
    from collections.abc import Mapping, Sequence

    from kiln.domain.awaiter import ConditionAwaiter
    from kiln.domain.errors import ApiError
    from kiln.domain.model import Created
    from kiln.domain.ports.authorization import (
        AuthInfo,
        NamespacePermissions,
        NamespaceRetriever,
        UserClientFactory,
    )
    from kiln.domain.ports.store import StoreError

log = getLogger(__name__)

CREATE_OPERATION = "managed_service_binding.create"

DEFAULT_SYNCHRONOUS_READINESS: Mapping[ServiceInstanceType, bool] = {
    ServiceInstanceType.USER_PROVIDED: True,
    ServiceInstanceType.MANAGED: False,
}


@dataclass(slots=True, kw_only=True)
class CreateServiceBindingMessage:
    service_instance_guid: str
    type: ServiceBindingType = ServiceBindingType.APP
    app_guid: str | None = None
    name: str | None = None
    parameters: dict[str, Any] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True, kw_only=True)
class UpdateServiceBindingMessage:
    name: str | None = None
    metadata: MetadataPatch = field(default_factory=MetadataPatch)

    def apply(self, binding: ServiceBinding) -> None:
        if self.name is not None:
            binding.spec.display_name = self.name
        self.metadata.apply(binding.metadata)


@dataclass(slots=True, kw_only=True)
class ListServiceBindingsMessage(ListMessage):
    app_guids: Sequence[str] = ()
    service_instance_guids: Sequence[str] = ()
    plan_guids: Sequence[str] = ()
    type: ServiceBindingType | None = None

    def matches(self, obj: ServiceBinding) -> bool:
        return (
            ListMessage.matches(self, obj)
            and empty_or_contains(self.app_guids, obj.spec.app_ref)
            and empty_or_contains(self.service_instance_guids, obj.spec.service_instance_ref)
            and empty_or_contains(self.plan_guids, obj.metadata.labels.get(PLAN_GUID_LABEL))
            and (self.type is None or obj.spec.type == self.type)
        )


class ServiceBindingRepository(
    EntityRepository[ServiceBinding, ServiceBindingRecord, ListServiceBindingsMessage]
):
    resource_type = "ServiceBinding"
    object_type = ServiceBinding

    def __init__(
        self,
        *,
        namespace_retriever: NamespaceRetriever,
        user_client_factory: UserClientFactory,
        namespace_permissions: NamespacePermissions,
        awaiter: ConditionAwaiter[ServiceBinding],
        synchronous_readiness: Mapping[ServiceInstanceType, bool] = DEFAULT_SYNCHRONOUS_READINESS,
    ) -> None:
        super().__init__(
            namespace_retriever=namespace_retriever,
            user_client_factory=user_client_factory,
            namespace_permissions=namespace_permissions,
        )
        self.awaiter = awaiter
        self.synchronous_readiness = dict(synchronous_readiness)

    def to_record(self, obj: ServiceBinding) -> ServiceBindingRecord:
        return ServiceBindingRecord(
            **self.record_fields(obj),
            type=obj.spec.type,
            name=obj.spec.display_name,
            service_instance_guid=obj.spec.service_instance_ref,
            app_guid=obj.spec.app_ref,
            parameters=dict(obj.spec.parameters),
        )

    def requires_synchronous_readiness(self, instance: ServiceInstance) -> bool:
        return self.synchronous_readiness.get(instance.spec.type, False)

    async def create(
        self, auth: AuthInfo, message: CreateServiceBindingMessage
    ) -> Created[ServiceBindingRecord]:
        client = self.user_client_factory.build_client(auth)
        instance = await self._resolve_related(
            client,
            ServiceInstance,
            "ServiceInstance",
            message.service_instance_guid,
            f"Unable to use service instance {message.service_instance_guid}. "
            "Ensure that the service instance exists and you have access to it.",
        )

        labels = {
            **message.labels,
            PROVISIONED_SERVICE_LABEL: "true",
            SERVICE_INSTANCE_GUID_LABEL: instance.name,
        }
        if instance.spec.plan_guid:
            labels[PLAN_GUID_LABEL] = instance.spec.plan_guid

        if message.type is ServiceBindingType.APP:
            if message.app_guid is None:
                raise UnprocessableEntityError("app bindings require an app")
            app = await self._resolve_related(
                client,
                App,
                "App",
                message.app_guid,
                f"Unable to use app {message.app_guid}. "
                "Ensure that the app exists and you have access to it.",
            )
            if app.namespace != instance.namespace:
                raise UnprocessableEntityError(
                    "The service instance and the app are in different spaces"
                )
            labels[APP_GUID_LABEL] = app.name

        binding = ServiceBinding(
            metadata=ObjectMeta(
                name=new_guid(),
                namespace=instance.namespace,
                labels=labels,
                annotations=dict(message.annotations),
            ),
            spec=ServiceBindingSpec(
                service_instance_ref=instance.name,
                type=message.type,
                app_ref=message.app_guid,
                display_name=message.name,
                parameters=dict(message.parameters),
            ),
        )
        created = await self._create(client, binding)

        synchronous = self.requires_synchronous_readiness(instance)
        log.debug(
            "Binding %s to %s instance %s (synchronous=%s)",
            created.key,
            instance.spec.type,
            instance.name,
            synchronous,
        )
        return await self._complete_creation(
            client,
            created,
            awaiter=self.awaiter if synchronous else None,
            operation=CREATE_OPERATION,
        )

    async def update(
        self, auth: AuthInfo, guid: str, message: UpdateServiceBindingMessage
    ) -> ServiceBindingRecord:
        binding = await self.get_object(auth, guid)
        client = self.user_client_factory.build_client(auth)
        return self.to_record(await self._patch(client, binding, message.apply))

    async def get_details(self, auth: AuthInfo, guid: str) -> ServiceBindingDetailsRecord:
        binding = await self.get_object(auth, guid)
        if binding.status.credentials is None:
            raise NotFoundError(
                "ServiceBindingDetails",
                detail=f"credentials for service binding {guid} are not available yet",
            )
        return ServiceBindingDetailsRecord(credentials=dict(binding.status.credentials))

    def _translate_write_error(self, error: StoreError) -> ApiError:
        if (
            isinstance(error, AdmissionRejectedError)
            and error.category == AdmissionCategory.SERVICE_BINDING
        ):
            return UniquenessError(error.message, cause=error)
        return super()._translate_write_error(error)
