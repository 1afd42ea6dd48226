from __future__ import annotations

import asyncio

import pytest

from kiln.adapters.watch import WatchHub
from kiln.domain.model import App, AppSpec, ObjectMeta, ResourceKind
from kiln.domain.ports.store import WatchEventType

pytestmark = pytest.mark.asyncio


def _app(name: str, namespace: str = "space-a") -> App:
    return App(metadata=ObjectMeta(name=name, namespace=namespace), spec=AppSpec(display_name=name))


async def test_subscribers_only_see_matching_objects() -> None:
    hub = WatchHub()

    async with hub.subscribe(ResourceKind.APP, namespace="space-a", name="web") as events:
        hub.publish(WatchEventType.ADDED, _app("worker"))
        hub.publish(WatchEventType.ADDED, _app("web", "space-b"))
        hub.publish(WatchEventType.ADDED, _app("web"))

        event = await asyncio.wait_for(anext(events), timeout=1)

    assert (event.type, event.object.name, event.object.namespace) == (
        WatchEventType.ADDED,
        "web",
        "space-a",
    )


async def test_events_carry_independent_copies() -> None:
    hub = WatchHub()
    app = _app("web")

    async with hub.subscribe(ResourceKind.APP) as events:
        hub.publish(WatchEventType.MODIFIED, app)
        app.spec.display_name = "mutated"
        event = await asyncio.wait_for(anext(events), timeout=1)

    assert event.object.spec.display_name == "web"


async def test_subscription_is_dropped_on_exit() -> None:
    hub = WatchHub()

    async with hub.subscribe(ResourceKind.APP):
        assert hub.subscriber_count == 1

    assert hub.subscriber_count == 0


async def test_close_ends_open_streams() -> None:
    hub = WatchHub()

    async with hub.subscribe(ResourceKind.APP) as events:
        hub.close()
        received = [event async for event in events]

    assert received == []
