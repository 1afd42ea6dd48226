"""Lifecycle-specific build provisioning.

A delegate is chosen when the build controller is constructed and owns the
meaning of "staged" for its lifecycle: docker builds reuse the package image
directly, buildpack builds run through an owned ``BuildWorkload``.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, Protocol

from kiln.domain.controllers.engine import DONE, WatchMapping
from kiln.domain.model import (
    BUILD_GUID_LABEL,
    BuildWorkload,
    BuildWorkloadSpec,
    Condition,
    ConditionStatus,
    ConditionType,
    Droplet,
    LifecycleType,
    ObjectKey,
    ObjectMeta,
    find_status_condition,
    set_status_condition,
)
from kiln.domain.ports.store import AlreadyExistsError, ObjectNotFoundError

if TYPE_CHECKING:
    from kiln.domain.controllers.engine import Result
    from kiln.domain.model import App, Build, Package
    from kiln.domain.ports.store import AnyObject, ControllerClient

log = getLogger(__name__)

BUILD_RUNNING = "BuildRunning"
BUILD_NOT_RUNNING = "BuildNotRunning"
BUILD_SUCCEEDED = "BuildSucceeded"
BUILD_FAILED = "BuildFailed"


class BuildDelegate(Protocol):
    lifecycle_type: LifecycleType

    async def reconcile_build(self, build: Build, app: App, package: Package) -> Result: ...

    def setup_watches(self) -> list[WatchMapping]: ...


def mark_staging(build: Build, *, running: bool, reason: str, message: str = "") -> None:
    set_status_condition(
        build.status.conditions,
        Condition(
            type=ConditionType.STAGING,
            status=ConditionStatus.TRUE if running else ConditionStatus.FALSE,
            reason=reason,
            message=message,
            observed_generation=build.metadata.generation,
        ),
    )


def mark_succeeded(
    build: Build,
    status: ConditionStatus,
    *,
    reason: str,
    message: str = "",
) -> None:
    set_status_condition(
        build.status.conditions,
        Condition(
            type=ConditionType.SUCCEEDED,
            status=status,
            reason=reason,
            message=message,
            observed_generation=build.metadata.generation,
        ),
    )


class DockerBuildDelegate:
    """Docker packages already are runnable images; staging is a relabel."""

    lifecycle_type = LifecycleType.DOCKER

    async def reconcile_build(self, build: Build, app: App, package: Package) -> Result:
        if not package.spec.image:
            mark_staging(build, running=False, reason=BUILD_NOT_RUNNING)
            mark_succeeded(
                build,
                ConditionStatus.FALSE,
                reason=BUILD_FAILED,
                message=f"package {package.name} has no image",
            )
            return DONE

        build.status.droplet = Droplet(image=package.spec.image)
        mark_staging(build, running=False, reason=BUILD_NOT_RUNNING)
        mark_succeeded(build, ConditionStatus.TRUE, reason=BUILD_SUCCEEDED)
        log.info("Staged docker build %s for app %s", build.key, app.name)
        return DONE

    def setup_watches(self) -> list[WatchMapping]:
        return []


class BuildWorkloadDelegate:
    """Runs buildpack staging through a ``BuildWorkload`` owned by the build."""

    lifecycle_type = LifecycleType.BUILDPACK

    def __init__(self, client: ControllerClient) -> None:
        self.client = client

    async def reconcile_build(self, build: Build, app: App, package: Package) -> Result:
        try:
            workload = await self.client.get(BuildWorkload, build.key)
        except ObjectNotFoundError:
            await self._create_workload(build, package)
            mark_staging(build, running=True, reason=BUILD_RUNNING)
            mark_succeeded(build, ConditionStatus.UNKNOWN, reason=BUILD_RUNNING)
            return DONE

        outcome = find_status_condition(workload.status.conditions, ConditionType.SUCCEEDED)
        if outcome is None or outcome.status == ConditionStatus.UNKNOWN:
            mark_staging(build, running=True, reason=BUILD_RUNNING)
            mark_succeeded(build, ConditionStatus.UNKNOWN, reason=BUILD_RUNNING)
            return DONE

        mark_staging(build, running=False, reason=BUILD_NOT_RUNNING)
        if outcome.is_true:
            build.status.droplet = workload.status.droplet
            mark_succeeded(build, ConditionStatus.TRUE, reason=BUILD_SUCCEEDED)
            log.info("Build %s for app %s succeeded", build.key, app.name)
        else:
            mark_succeeded(
                build,
                ConditionStatus.FALSE,
                reason=outcome.reason or BUILD_FAILED,
                message=outcome.message,
            )
            log.info("Build %s for app %s failed: %s", build.key, app.name, outcome.message)
        return DONE

    async def _create_workload(self, build: Build, package: Package) -> None:
        workload = BuildWorkload(
            metadata=ObjectMeta(
                name=build.name,
                namespace=build.namespace,
                labels={BUILD_GUID_LABEL: build.name},
                owner_references=[build.owner_reference(controller=True)],
            ),
            spec=BuildWorkloadSpec(
                build_ref=build.name,
                source_image=package.spec.image,
                buildpacks=list(build.spec.lifecycle.buildpacks),
            ),
        )
        try:
            await self.client.create(workload)
        except AlreadyExistsError:
            log.debug("Build workload %s already exists", workload.key)

    def setup_watches(self) -> list[WatchMapping]:
        return [WatchMapping(object_type=BuildWorkload, map_keys=_owning_build)]


async def _owning_build(workload: AnyObject) -> list[ObjectKey]:
    return [ObjectKey(workload.namespace, workload.spec.build_ref)]
