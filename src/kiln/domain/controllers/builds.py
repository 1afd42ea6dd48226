"""Build controller: validates a build against its app and package, then stages it."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from kiln.domain.controllers.build_delegates import (
    BUILD_FAILED,
    BUILD_NOT_RUNNING,
    mark_staging,
    mark_succeeded,
)
from kiln.domain.controllers.engine import DONE, RetryableError, WatchMapping
from kiln.domain.model import (
    APP_GUID_LABEL,
    PACKAGE_LIFECYCLE_TYPES,
    App,
    Build,
    ConditionStatus,
    ConditionType,
    ObjectKey,
    OwnerConflictError,
    Package,
    find_status_condition,
    set_owner_reference,
)
from kiln.domain.ports.store import ObjectNotFoundError

if TYPE_CHECKING:
    from kiln.domain.controllers.build_delegates import BuildDelegate
    from kiln.domain.controllers.engine import Result
    from kiln.domain.ports.provisioning import Cleaner
    from kiln.domain.ports.store import AnyObject, ControllerClient

log = getLogger(__name__)


class BuildValidationError(ValueError):
    """The build cannot succeed until its app, package or lifecycle changes."""


def validate_lifecycle_types(build: Build, app: App, package: Package) -> None:
    package_lifecycle = PACKAGE_LIFECYCLE_TYPES[package.spec.type]
    if package_lifecycle != build.spec.lifecycle.type:
        raise BuildValidationError(
            f"cannot build {package.spec.type} package with {build.spec.lifecycle.type} build"
        )
    if package_lifecycle != app.spec.lifecycle.type:
        raise BuildValidationError(
            f"cannot build {package.spec.type} package for {app.spec.lifecycle.type} app"
        )


def is_converged(build: Build) -> bool:
    """True once the build reached a terminal outcome for its current generation."""

    succeeded = find_status_condition(build.status.conditions, ConditionType.SUCCEEDED)
    if succeeded is None:
        return False
    if succeeded.is_true:
        return True
    return succeeded.is_false and succeeded.observed_generation == build.metadata.generation


class BuildReconciler:
    """Reconciles builds of one lifecycle type through a fixed delegate."""

    def __init__(
        self,
        client: ControllerClient,
        delegate: BuildDelegate,
        cleaner: Cleaner | None = None,
    ) -> None:
        self.client = client
        self.delegate = delegate
        self.cleaner = cleaner

    async def reconcile(self, obj: Build) -> Result:
        if obj.spec.lifecycle.type != self.delegate.lifecycle_type:
            return DONE

        await self._clean(obj)

        if obj.metadata.is_deleting:
            return DONE

        obj.status.observed_generation = obj.metadata.generation

        if is_converged(obj):
            return DONE

        app = await self._dependency(App, ObjectKey(obj.namespace, obj.spec.app_ref))
        package = await self._dependency(Package, ObjectKey(obj.namespace, obj.spec.package_ref))

        try:
            validate_lifecycle_types(obj, app, package)
        except BuildValidationError as exc:
            log.info("Build %s failed validation: %s", obj.key, exc)
            mark_succeeded(obj, ConditionStatus.FALSE, reason=BUILD_FAILED, message=str(exc))
            mark_staging(obj, running=False, reason=BUILD_NOT_RUNNING, message=str(exc))
            return DONE

        await self._link_owner(obj, app)
        return await self.delegate.reconcile_build(obj, app, package)

    def watches(self) -> list[WatchMapping]:
        return self.delegate.setup_watches()

    async def _clean(self, build: Build) -> None:
        if self.cleaner is None:
            return
        try:
            await self.cleaner.clean(ObjectKey(build.namespace, build.spec.app_ref))
        except Exception:
            log.warning("Cleaning builds of app %s failed", build.spec.app_ref, exc_info=True)

    async def _dependency[T: AnyObject](self, object_type: type[T], key: ObjectKey) -> T:
        try:
            return await self.client.get(object_type, key)
        except ObjectNotFoundError as exc:
            raise RetryableError(f"{object_type.KIND} {key} not found") from exc

    async def _link_owner(self, build: Build, app: App) -> None:
        candidate = build.deep_copy()
        try:
            changed = set_owner_reference(app, candidate.metadata)
        except OwnerConflictError as exc:
            raise RetryableError(str(exc)) from exc
        if not changed and build.metadata.labels.get(APP_GUID_LABEL) == app.name:
            return

        def _link(target: Build) -> None:
            set_owner_reference(app, target.metadata)
            target.metadata.labels[APP_GUID_LABEL] = app.name

        try:
            patched = await self.client.patch(build, _link)
        except OwnerConflictError as exc:
            raise RetryableError(str(exc)) from exc
        build.metadata = patched.metadata
