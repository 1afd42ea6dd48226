"""Service binding controller and its per-instance-type delegates."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, Protocol

from kiln.domain.controllers.engine import DONE, RetryableError, WatchMapping
from kiln.domain.model import (
    SERVICE_INSTANCE_GUID_LABEL,
    App,
    Condition,
    ConditionStatus,
    ConditionType,
    ObjectKey,
    OwnerConflictError,
    ServiceBinding,
    ServiceBindingType,
    ServiceInstance,
    ServiceInstanceType,
    is_status_condition_true,
    set_owner_reference,
    set_status_condition,
)
from kiln.domain.ports.provisioning import BrokerBindError
from kiln.domain.ports.store import ObjectNotFoundError
from kiln.domain.selectors import Equals, LabelSelector

if TYPE_CHECKING:
    from collections.abc import Mapping

    from kiln.domain.controllers.engine import Result
    from kiln.domain.ports.provisioning import ServiceBroker
    from kiln.domain.ports.store import AnyObject, ControllerClient

log = getLogger(__name__)

BINDING_READY = "BindingReady"
BINDING_FAILED = "BindingFailed"


def _mark(
    binding: ServiceBinding,
    condition_type: str,
    status: ConditionStatus,
    reason: str,
    message: str = "",
) -> None:
    set_status_condition(
        binding.status.conditions,
        Condition(
            type=condition_type,
            status=status,
            reason=reason,
            message=message,
            observed_generation=binding.metadata.generation,
        ),
    )


class BindingDelegate(Protocol):
    instance_type: ServiceInstanceType

    async def reconcile_binding(
        self, binding: ServiceBinding, instance: ServiceInstance
    ) -> Result: ...


class UserProvidedBindingDelegate:
    """User-provided instances carry their credentials inline."""

    instance_type = ServiceInstanceType.USER_PROVIDED

    async def reconcile_binding(self, binding: ServiceBinding, instance: ServiceInstance) -> Result:
        binding.status.credentials = dict(instance.spec.credentials)
        _mark(binding, ConditionType.READY, ConditionStatus.TRUE, BINDING_READY)
        return DONE


class ManagedBindingDelegate:
    """Managed instances obtain credentials from a service broker."""

    instance_type = ServiceInstanceType.MANAGED

    def __init__(self, broker: ServiceBroker) -> None:
        self.broker = broker

    async def reconcile_binding(self, binding: ServiceBinding, instance: ServiceInstance) -> Result:
        if is_status_condition_true(binding.status.conditions, ConditionType.FAILED):
            return DONE
        if is_status_condition_true(binding.status.conditions, ConditionType.READY):
            return DONE

        try:
            credentials = await self.broker.bind(instance, binding)
        except BrokerBindError as exc:
            log.info("Broker refused binding %s: %s", binding.key, exc)
            _mark(binding, ConditionType.FAILED, ConditionStatus.TRUE, BINDING_FAILED, str(exc))
            _mark(binding, ConditionType.READY, ConditionStatus.FALSE, BINDING_FAILED, str(exc))
            return DONE

        binding.status.credentials = dict(credentials)
        _mark(binding, ConditionType.READY, ConditionStatus.TRUE, BINDING_READY)
        return DONE


class ServiceBindingReconciler:
    def __init__(
        self,
        client: ControllerClient,
        delegates: Mapping[ServiceInstanceType, BindingDelegate],
    ) -> None:
        self.client = client
        self.delegates = dict(delegates)

    async def reconcile(self, obj: ServiceBinding) -> Result:
        if obj.metadata.is_deleting:
            return DONE

        obj.status.observed_generation = obj.metadata.generation

        instance = await self._dependency(
            ServiceInstance, ObjectKey(obj.namespace, obj.spec.service_instance_ref)
        )
        if obj.spec.type is ServiceBindingType.APP and obj.spec.app_ref is not None:
            await self._dependency(App, ObjectKey(obj.namespace, obj.spec.app_ref))

        await self._link_owner(obj, instance)

        delegate = self.delegates.get(instance.spec.type)
        if delegate is None:
            raise RetryableError(f"no binding delegate for {instance.spec.type} instances")
        return await delegate.reconcile_binding(obj, instance)

    def watches(self) -> list[WatchMapping]:
        return [WatchMapping(object_type=ServiceInstance, map_keys=self._bindings_of)]

    async def _bindings_of(self, instance: AnyObject) -> list[ObjectKey]:
        bindings = await self.client.list(
            ServiceBinding,
            namespace=instance.namespace,
            selector=LabelSelector((Equals(SERVICE_INSTANCE_GUID_LABEL, instance.name),)),
        )
        return [binding.key for binding in bindings]

    async def _dependency[T: AnyObject](self, object_type: type[T], key: ObjectKey) -> T:
        try:
            return await self.client.get(object_type, key)
        except ObjectNotFoundError as exc:
            raise RetryableError(f"{object_type.KIND} {key} not found") from exc

    async def _link_owner(self, binding: ServiceBinding, instance: ServiceInstance) -> None:
        candidate = binding.deep_copy()
        try:
            changed = set_owner_reference(instance, candidate.metadata)
        except OwnerConflictError as exc:
            raise RetryableError(str(exc)) from exc
        if not changed:
            return

        def _link(target: ServiceBinding) -> None:
            set_owner_reference(instance, target.metadata)
            target.metadata.labels[SERVICE_INSTANCE_GUID_LABEL] = instance.name

        patched = await self.client.patch(binding, _link)
        binding.metadata = patched.metadata
