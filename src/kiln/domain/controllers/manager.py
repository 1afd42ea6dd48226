"""Event-driven dispatch of reconcile requests.

The manager subscribes to store watches for every registered controller and
feeds a shared work queue. Workers take ``(controller, key)`` items off the
queue with these guarantees:

* a key is reconciled by at most one worker per controller at a time;
* a key that changes while it is being reconciled is marked dirty and runs
  again once the current pass finishes;
* requeues back off exponentially per key, reset after a clean pass;
* every primary kind is re-listed on a resync interval, so writes made by
  another process (which never reach this process's watch hub) still converge.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING, Any

from kiln.domain.ports.store import StoreError

if TYPE_CHECKING:
    from kiln.domain.controllers.engine import PatchingReconciler, Result, WatchMapping
    from kiln.domain.model import ObjectKey
    from kiln.domain.ports.store import ControllerClient

log = getLogger(__name__)

DEFAULT_WORKERS = 2
DEFAULT_BASE_BACKOFF_SECONDS = 0.05
DEFAULT_MAX_BACKOFF_SECONDS = 30.0
DEFAULT_RESYNC_SECONDS = 30.0


@dataclass(frozen=True, slots=True)
class WorkItem:
    controller: str
    key: ObjectKey


class ControllerManager:
    def __init__(
        self,
        client: ControllerClient,
        *,
        workers: int = DEFAULT_WORKERS,
        base_backoff: float = DEFAULT_BASE_BACKOFF_SECONDS,
        max_backoff: float = DEFAULT_MAX_BACKOFF_SECONDS,
        resync_interval: float | None = DEFAULT_RESYNC_SECONDS,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        if resync_interval is not None and resync_interval <= 0:
            raise ValueError("resync_interval must be positive")
        self.client = client
        self.workers = workers
        self.base_backoff = base_backoff
        self.max_backoff = max_backoff
        self.resync_interval = resync_interval
        self._controllers: dict[str, PatchingReconciler[Any]] = {}
        self._queue: asyncio.Queue[WorkItem] = asyncio.Queue()
        self._queued: set[WorkItem] = set()
        self._processing: set[WorkItem] = set()
        self._dirty: set[WorkItem] = set()
        self._failures: dict[WorkItem, int] = {}
        self._timers: set[asyncio.TimerHandle] = set()
        self._subscriptions = 0
        self._ready = asyncio.Event()

    def register(self, controller: PatchingReconciler[Any]) -> None:
        if controller.name in self._controllers:
            raise ValueError(f"controller {controller.name!r} is already registered")
        self._controllers[controller.name] = controller

    @property
    def controllers(self) -> list[str]:
        return list(self._controllers)

    async def wait_ready(self) -> None:
        """Wait until every watch subscription has been established."""

        await self._ready.wait()

    def enqueue(self, controller: str, key: ObjectKey) -> None:
        item = WorkItem(controller, key)
        if item in self._processing:
            self._dirty.add(item)
            return
        if item in self._queued:
            return
        self._queued.add(item)
        self._queue.put_nowait(item)

    async def run(self) -> None:
        """Run watches and workers until cancelled."""

        expected = sum(
            1 + len(controller.reconciler.watches()) for controller in self._controllers.values()
        )
        if expected == 0:
            self._ready.set()
        log.info(
            "Starting %d controller(s) with %d worker(s): %s",
            len(self._controllers),
            self.workers,
            ", ".join(self._controllers),
        )
        try:
            async with asyncio.TaskGroup() as group:
                for controller in self._controllers.values():
                    group.create_task(self._watch_primary(controller, expected))
                    if self.resync_interval is not None:
                        group.create_task(self._resync(controller, self.resync_interval))
                    for mapping in controller.reconciler.watches():
                        group.create_task(self._watch_secondary(controller, mapping, expected))
                for index in range(self.workers):
                    group.create_task(self._worker(index))
        finally:
            for timer in self._timers:
                timer.cancel()
            self._timers.clear()
            log.info("Controllers stopped")

    # Watches -------------------------------------------------------------------

    def _subscribed(self, expected: int) -> None:
        self._subscriptions += 1
        if self._subscriptions >= expected:
            self._ready.set()

    async def _watch_primary(self, controller: PatchingReconciler[Any], expected: int) -> None:
        async with self.client.watch(controller.object_type) as events:
            self._subscribed(expected)
            for obj in await self.client.list(controller.object_type):
                self.enqueue(controller.name, obj.key)
            async for event in events:
                self.enqueue(controller.name, event.object.key)

    async def _resync(self, controller: PatchingReconciler[Any], interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                objects = await self.client.list(controller.object_type)
            except StoreError:
                log.warning("Resync of %s failed", controller.name, exc_info=True)
                continue
            log.debug("Resync of %s enqueues %d object(s)", controller.name, len(objects))
            for obj in objects:
                self.enqueue(controller.name, obj.key)

    async def _watch_secondary(
        self,
        controller: PatchingReconciler[Any],
        mapping: WatchMapping,
        expected: int,
    ) -> None:
        async with self.client.watch(mapping.object_type) as events:
            self._subscribed(expected)
            async for event in events:
                try:
                    keys = await mapping.map_keys(event.object)
                except StoreError:
                    log.warning(
                        "Could not map %s %s to %s objects",
                        mapping.object_type.KIND,
                        event.object.key,
                        controller.name,
                        exc_info=True,
                    )
                    continue
                for key in keys:
                    self.enqueue(controller.name, key)

    # Workers -------------------------------------------------------------------

    async def _worker(self, index: int) -> None:
        while True:
            item = await self._queue.get()
            self._queued.discard(item)
            if item in self._processing:
                self._dirty.add(item)
                self._queue.task_done()
                continue
            self._processing.add(item)
            try:
                await self._process(item)
            finally:
                self._processing.discard(item)
                self._queue.task_done()
                if item in self._dirty:
                    self._dirty.discard(item)
                    self.enqueue(item.controller, item.key)

    async def _process(self, item: WorkItem) -> None:
        controller = self._controllers[item.controller]
        try:
            result = await controller.reconcile(item.key)
        except Exception:
            log.warning("Reconcile of %s %s raised; backing off", item.controller, item.key)
            self._requeue(item, None)
            return
        self._handle_result(item, result)

    def _handle_result(self, item: WorkItem, result: Result) -> None:
        if result.requeue_after is not None:
            self._failures.pop(item, None)
            self._schedule(item, result.requeue_after)
        elif result.requeue:
            self._requeue(item, None)
        else:
            self._failures.pop(item, None)

    def _requeue(self, item: WorkItem, delay: float | None) -> None:
        failures = self._failures.get(item, 0)
        self._failures[item] = failures + 1
        if delay is None:
            delay = min(self.base_backoff * (2**failures), self.max_backoff)
        self._schedule(item, delay)

    def _schedule(self, item: WorkItem, delay: float) -> None:
        loop = asyncio.get_running_loop()
        timer: asyncio.TimerHandle

        def _fire() -> None:
            self._timers.discard(timer)
            self.enqueue(item.controller, item.key)

        timer = loop.call_later(delay, _fire)
        self._timers.add(timer)
