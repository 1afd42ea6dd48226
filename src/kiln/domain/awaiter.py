"""Bridge synchronous-looking callers onto asynchronous convergence.

The awaiter suspends on a watch subscription (never on a poll interval) until a
condition on one object turns true, the object disappears, or the deadline
passes. Timing out only abandons the wait: the object and its reconciliation
carry on, so a later read may still observe success.
"""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import TYPE_CHECKING

from kiln.domain.errors import (
    AwaitTimeoutError,
    NotFoundError,
    forbidden_as_not_found,
    from_store_error,
)
from kiln.domain.model import is_status_condition_true
from kiln.domain.ports.store import ObjectNotFoundError, StoreError, WatchEventType

if TYPE_CHECKING:
    from kiln.domain.ports.store import AnyObject, ObjectClient

log = getLogger(__name__)

DEFAULT_AWAIT_TIMEOUT_SECONDS = 30.0


class ConditionAwaiter[TObject: AnyObject]:
    def __init__(self, timeout: float = DEFAULT_AWAIT_TIMEOUT_SECONDS) -> None:
        self.timeout = timeout

    async def await_condition(
        self,
        client: ObjectClient,
        obj: TObject,
        condition_type: str,
        *,
        timeout: float | None = None,
    ) -> TObject:
        """Return the first observed copy of ``obj`` whose ``condition_type`` is true.

        Callers must derive any fields from the returned object, not from the
        snapshot they passed in. A deadline imposed by the caller surfaces as the
        builtin ``TimeoutError``, and cancelling the calling task raises
        ``CancelledError``; only this awaiter's own timeout raises ``AwaitTimeoutError``.
        """

        effective_timeout = self.timeout if timeout is None else timeout
        object_type = type(obj)
        kind = str(obj.kind)
        try:
            async with asyncio.timeout(effective_timeout):
                async with client.watch(
                    object_type, namespace=obj.namespace, name=obj.name
                ) as events:
                    # Subscribe first, then read: an update landing in between
                    # is still delivered through the subscription.
                    current = await client.get(object_type, obj.key)
                    if is_status_condition_true(current.status.conditions, condition_type):
                        return current
                    async for event in events:
                        if event.type is WatchEventType.DELETED:
                            raise NotFoundError(
                                kind,
                                detail=f"{kind} {obj.key} was deleted while awaiting "
                                f"{condition_type}",
                            )
                        if is_status_condition_true(event.object.status.conditions, condition_type):
                            return event.object
        except TimeoutError as exc:
            log.info(
                "Timed out after %ss awaiting condition %s on %s %s",
                effective_timeout,
                condition_type,
                kind,
                obj.key,
            )
            raise AwaitTimeoutError(
                f"{kind} {obj.key} did not reach condition {condition_type} "
                f"within {effective_timeout}s",
                cause=exc,
            ) from exc
        except ObjectNotFoundError as exc:
            raise NotFoundError(kind, cause=exc) from exc
        except StoreError as exc:
            raise forbidden_as_not_found(from_store_error(exc, kind)) from exc

        raise NotFoundError(kind, detail=f"watch on {kind} {obj.key} ended unexpectedly")
