"""State derivation for declarative objects.

Every caller-facing notion of progress (``ready``, ``LastOperation``, coarse
readiness) is computed here from an object's conditions, generations and
deletion timestamp, so that the rules live in exactly one place.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from kiln.domain.model.conditions import find_status_condition
from kiln.domain.model.enums import (
    ConditionType,
    OperationType,
    ResourceState,
)

if TYPE_CHECKING:
    from datetime import datetime

    from kiln.domain.model.conditions import Condition
    from kiln.domain.model.meta import DeclarativeObject, ObjectStatus


@dataclass(frozen=True, slots=True)
class ConditionRules:
    """Which conditions mean success and failure for one kind.

    ``failure_type`` names an explicit failure condition that marks the object
    failed when true. ``ready_false_is_failure`` treats an explicitly false
    ready condition as the failure signal (builds report failure that way).
    """

    ready_type: str = ConditionType.READY
    failure_type: str | None = ConditionType.FAILED
    ready_false_is_failure: bool = False


DEFAULT_RULES = ConditionRules()
BUILD_RULES = ConditionRules(
    ready_type=ConditionType.SUCCEEDED,
    failure_type=None,
    ready_false_is_failure=True,
)


@dataclass(frozen=True, slots=True)
class LastOperation:
    type: OperationType
    state: ResourceState
    created_at: datetime | None
    updated_at: datetime | None
    description: str | None = None


def derive_state(
    conditions: list[Condition],
    deletion_timestamp: datetime | None,
    rules: ConditionRules = DEFAULT_RULES,
) -> ResourceState:
    if deletion_timestamp is not None:
        return ResourceState.DELETING

    ready = find_status_condition(conditions, rules.ready_type)
    if ready is None:
        return ResourceState.INITIAL
    if ready.is_true:
        return ResourceState.SUCCEEDED

    if rules.failure_type is not None:
        failure = find_status_condition(conditions, rules.failure_type)
        if failure is not None and failure.is_true:
            return ResourceState.FAILED
    if rules.ready_false_is_failure and ready.is_false:
        return ResourceState.FAILED
    return ResourceState.IN_PROGRESS


def is_ready(
    obj: DeclarativeObject[object, ObjectStatus],
    rules: ConditionRules = DEFAULT_RULES,
) -> bool:
    """A stale observation never reports ready."""

    if obj.metadata.generation != obj.status.observed_generation:
        return False
    ready = find_status_condition(obj.status.conditions, rules.ready_type)
    return ready is not None and ready.is_true


def last_updated_at(obj: DeclarativeObject[object, ObjectStatus]) -> datetime | None:
    candidates = [obj.metadata.updated_at]
    candidates.extend(condition.last_transition_time for condition in obj.status.conditions)
    present = [candidate for candidate in candidates if candidate is not None]
    return max(present) if present else None


def last_operation(
    obj: DeclarativeObject[object, ObjectStatus],
    rules: ConditionRules = DEFAULT_RULES,
) -> LastOperation:
    conditions = obj.status.conditions
    meta = obj.metadata
    state = derive_state(conditions, meta.deletion_timestamp, rules)

    if state is ResourceState.DELETING:
        return LastOperation(
            type=OperationType.DELETE,
            state=ResourceState.IN_PROGRESS,
            created_at=meta.deletion_timestamp,
            updated_at=last_updated_at(obj),
        )

    if state in (ResourceState.INITIAL, ResourceState.SUCCEEDED):
        return LastOperation(
            type=OperationType.CREATE,
            state=state,
            created_at=meta.creation_timestamp,
            updated_at=last_updated_at(obj),
        )

    ready = find_status_condition(conditions, rules.ready_type)
    transition = ready.last_transition_time if ready is not None else None
    description = None
    if state is ResourceState.FAILED:
        failure = (
            find_status_condition(conditions, rules.failure_type)
            if rules.failure_type is not None
            else ready
        )
        if failure is not None and failure.message:
            description = failure.message
    return LastOperation(
        type=OperationType.CREATE,
        state=state,
        created_at=meta.creation_timestamp,
        updated_at=transition,
        description=description,
    )
