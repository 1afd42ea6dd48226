"""Admission validators run by the store before a write is persisted."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from kiln.domain.model import AdmissionCategory, App, ServiceBinding, ServiceBindingType
from kiln.domain.ports.store import AdmissionRejectedError

if TYPE_CHECKING:
    from kiln.domain.ports.store import AnyObject, ObjectReader

log = getLogger(__name__)


class ServiceBindingUniquenessValidator:
    """An app may be bound to a given service instance at most once."""

    async def validate_create(self, obj: AnyObject, reader: ObjectReader) -> None:
        if not isinstance(obj, ServiceBinding) or obj.spec.type is not ServiceBindingType.APP:
            return
        existing = await reader.list(ServiceBinding, namespace=obj.namespace)
        for binding in existing:
            if (
                binding.name != obj.name
                and binding.spec.type is ServiceBindingType.APP
                and binding.spec.app_ref == obj.spec.app_ref
                and binding.spec.service_instance_ref == obj.spec.service_instance_ref
            ):
                log.debug("Rejecting duplicate binding %s (existing %s)", obj.key, binding.key)
                raise AdmissionRejectedError(
                    AdmissionCategory.SERVICE_BINDING,
                    "The app is already bound to the service instance.",
                )

    async def validate_update(self, old: AnyObject, new: AnyObject, reader: ObjectReader) -> None:
        if not isinstance(old, ServiceBinding) or not isinstance(new, ServiceBinding):
            return
        if (
            old.spec.app_ref != new.spec.app_ref
            or old.spec.service_instance_ref != new.spec.service_instance_ref
            or old.spec.type != new.spec.type
        ):
            raise AdmissionRejectedError(
                AdmissionCategory.IMMUTABLE_FIELD,
                "Service binding references cannot be changed.",
            )


class AppNameUniquenessValidator:
    """App display names are unique within a space."""

    async def validate_create(self, obj: AnyObject, reader: ObjectReader) -> None:
        if isinstance(obj, App):
            await self._ensure_unique(obj, reader)

    async def validate_update(self, old: AnyObject, new: AnyObject, reader: ObjectReader) -> None:
        if not isinstance(old, App) or not isinstance(new, App):
            return
        if old.spec.display_name != new.spec.display_name:
            await self._ensure_unique(new, reader)

    async def _ensure_unique(self, app: App, reader: ObjectReader) -> None:
        wanted = app.spec.display_name.casefold()
        for other in await reader.list(App, namespace=app.namespace):
            if other.name != app.name and other.spec.display_name.casefold() == wanted:
                raise AdmissionRejectedError(
                    AdmissionCategory.DUPLICATE_APP_NAME,
                    f"App with the name '{app.spec.display_name}' already exists.",
                )
