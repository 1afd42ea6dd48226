"""In-process fan-out of store change events to watch subscribers."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Any, Final

from kiln.domain.ports.store import WatchEvent

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from kiln.domain.model import ResourceKind
    from kiln.domain.ports.store import AnyObject, WatchEventType

log = getLogger(__name__)

_CLOSED: Final = object()


@dataclass(eq=False, slots=True)
class _Subscription:
    kind: ResourceKind
    namespace: str | None
    name: str | None
    queue: asyncio.Queue[Any] = field(default_factory=asyncio.Queue)

    def matches(self, obj: AnyObject) -> bool:
        return (
            obj.kind == self.kind
            and (self.namespace is None or obj.namespace == self.namespace)
            and (self.name is None or obj.name == self.name)
        )

    async def events(self) -> AsyncIterator[WatchEvent[Any]]:
        while True:
            item = await self.queue.get()
            if item is _CLOSED:
                return
            yield item


class WatchHub:
    """Delivers every published change to the subscribers whose filter matches.

    Each subscriber owns an unbounded queue, so a slow consumer never blocks a
    writer. Events carry deep copies: subscribers may mutate what they receive.
    """

    def __init__(self) -> None:
        self._subscriptions: set[_Subscription] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    @asynccontextmanager
    async def subscribe(
        self,
        kind: ResourceKind,
        *,
        namespace: str | None = None,
        name: str | None = None,
    ) -> AsyncIterator[AsyncIterator[WatchEvent[Any]]]:
        subscription = _Subscription(kind=kind, namespace=namespace, name=name)
        self._subscriptions.add(subscription)
        log.debug("Watch opened on %s namespace=%s name=%s", kind, namespace, name)
        try:
            yield subscription.events()
        finally:
            self._subscriptions.discard(subscription)
            log.debug("Watch closed on %s namespace=%s name=%s", kind, namespace, name)

    def publish(self, event_type: WatchEventType, obj: AnyObject) -> None:
        for subscription in list(self._subscriptions):
            if subscription.matches(obj):
                subscription.queue.put_nowait(WatchEvent(event_type, obj.deep_copy()))

    def close(self) -> None:
        """End every open subscription's event stream."""

        for subscription in list(self._subscriptions):
            subscription.queue.put_nowait(_CLOSED)
