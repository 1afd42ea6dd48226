"""Garbage collection of superseded builds."""

from __future__ import annotations

from datetime import datetime
from logging import getLogger
from typing import TYPE_CHECKING

from kiln.domain.model import (
    APP_GUID_LABEL,
    BUILD_RULES,
    App,
    Build,
    ResourceState,
    derive_state,
)
from kiln.domain.ports.store import ObjectNotFoundError
from kiln.domain.selectors import Equals, LabelSelector

if TYPE_CHECKING:
    from kiln.domain.model import ObjectKey
    from kiln.domain.ports.store import ControllerClient

log = getLogger(__name__)

DEFAULT_RETAINED_BUILDS = 5
_TERMINAL = (ResourceState.SUCCEEDED, ResourceState.FAILED)
_EPOCH = datetime.min


class BuildCleaner:
    """Keeps the newest ``retained_builds`` finished builds of an app.

    The build backing the app's current droplet is always kept and does not
    count towards the limit. Builds still in progress are never touched.
    """

    def __init__(
        self,
        client: ControllerClient,
        retained_builds: int = DEFAULT_RETAINED_BUILDS,
    ) -> None:
        self.client = client
        self.retained_builds = retained_builds

    async def clean(self, owner: ObjectKey) -> None:
        try:
            app = await self.client.get(App, owner)
        except ObjectNotFoundError:
            return

        builds = await self.client.list(
            Build,
            namespace=owner.namespace,
            selector=LabelSelector((Equals(APP_GUID_LABEL, app.name),)),
        )
        candidates = [
            build
            for build in builds
            if build.name != app.spec.current_droplet_ref
            and not build.metadata.is_deleting
            and derive_state(build.status.conditions, None, BUILD_RULES) in _TERMINAL
        ]
        candidates.sort(key=_created_at, reverse=True)

        for build in candidates[self.retained_builds :]:
            try:
                await self.client.delete(build)
            except ObjectNotFoundError:
                continue
            log.info("Deleted superseded build %s of app %s", build.key, app.name)


def _created_at(build: Build) -> datetime:
    created = build.metadata.creation_timestamp
    return created.replace(tzinfo=None) if created is not None else _EPOCH
