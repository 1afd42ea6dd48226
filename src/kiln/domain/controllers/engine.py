"""Generic reconciliation engine.

A ``PatchingReconciler`` loads one object by key, hands a working copy to the
kind-specific reconciler, and writes the status back through the status
capability only when something actually changed. It also classifies failures:
retryable ones requeue the key without touching status; everything else is
logged and propagated to the dispatcher.
"""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Protocol

from kiln.domain.ports.store import ObjectNotFoundError, StoreError, StoreUnavailableError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from kiln.domain.model import ObjectKey
    from kiln.domain.ports.store import AnyObject, ControllerClient

log = getLogger(__name__)


class RetryableError(Exception):
    """The object cannot be reconciled yet; try again later without status changes."""


@dataclass(frozen=True, slots=True)
class Result:
    requeue: bool = False
    requeue_after: float | None = None


DONE = Result()
REQUEUE = Result(requeue=True)


@dataclass(frozen=True, slots=True)
class WatchMapping:
    """Secondary watch: changes to ``object_type`` re-trigger the keys ``map_keys`` yields."""

    object_type: type[AnyObject]
    map_keys: Callable[[AnyObject], Awaitable[list[ObjectKey]]]


class ObjectReconciler[TObject: AnyObject](Protocol):
    async def reconcile(self, obj: TObject) -> Result:
        """Drive ``obj`` toward its spec, mutating ``obj.status`` in place."""
        ...

    def watches(self) -> list[WatchMapping]: ...


class PatchingReconciler[TObject: AnyObject]:
    def __init__(
        self,
        client: ControllerClient,
        object_type: type[TObject],
        reconciler: ObjectReconciler[TObject],
        *,
        name: str | None = None,
    ) -> None:
        self.client = client
        self.object_type = object_type
        self.reconciler = reconciler
        self.name = name or str(object_type.KIND)

    async def reconcile(self, key: ObjectKey) -> Result:
        try:
            original = await self.client.get(self.object_type, key)
        except ObjectNotFoundError:
            log.debug("%s %s is gone, nothing to reconcile", self.name, key)
            return DONE
        except StoreUnavailableError as exc:
            log.info("Requeueing %s %s: %s", self.name, key, exc)
            return REQUEUE

        working = original.deep_copy()
        try:
            result = await self.reconciler.reconcile(working)
        except (RetryableError, StoreError) as exc:
            log.info("Requeueing %s %s: %s", self.name, key, exc)
            return REQUEUE
        except Exception:
            log.exception("Reconciling %s %s failed", self.name, key)
            raise

        if working.status != original.status:
            try:
                await self.client.update_status(working)
            except ObjectNotFoundError:
                return DONE
            except StoreError as exc:
                log.info("Requeueing %s %s after failed status write: %s", self.name, key, exc)
                return REQUEUE
        return result
