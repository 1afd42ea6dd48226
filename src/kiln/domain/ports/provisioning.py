"""Ports for collaborators that controllers delegate to."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from kiln.domain.model import ObjectKey, ServiceBinding, ServiceInstance


@runtime_checkable
class Cleaner(Protocol):
    """Best-effort garbage collection of superseded objects belonging to one owner."""

    async def clean(self, owner: ObjectKey) -> None: ...


class BrokerBindError(Exception):
    """The broker refused the binding; retrying will not help without a new request."""


@runtime_checkable
class ServiceBroker(Protocol):
    async def bind(self, instance: ServiceInstance, binding: ServiceBinding) -> dict[str, Any]:
        """Provision credentials for ``binding`` against a managed ``instance``."""
        ...
