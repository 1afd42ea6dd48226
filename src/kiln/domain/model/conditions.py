"""Status conditions: named boolean progress flags keyed by type.

A condition list behaves like a map keyed by ``type``. Writing a condition whose
status did not change keeps the previous ``last_transition_time`` so that callers
can rely on it as a monotonic "something changed" signal.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime

from kiln.domain.model.enums import ConditionStatus


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(slots=True, kw_only=True)
class Condition:
    type: str
    status: ConditionStatus
    reason: str = ""
    message: str = ""
    last_transition_time: datetime | None = None
    observed_generation: int = 0

    @property
    def is_true(self) -> bool:
        return self.status == ConditionStatus.TRUE

    @property
    def is_false(self) -> bool:
        return self.status == ConditionStatus.FALSE


def find_status_condition(conditions: list[Condition], condition_type: str) -> Condition | None:
    for condition in conditions:
        if condition.type == condition_type:
            return condition
    return None


def set_status_condition(
    conditions: list[Condition],
    new: Condition,
    *,
    now: datetime | None = None,
) -> bool:
    """Insert or update ``new`` in place and report whether anything changed."""

    existing = find_status_condition(conditions, new.type)
    timestamp = now or utc_now()
    if existing is None:
        conditions.append(replace(new, last_transition_time=new.last_transition_time or timestamp))
        return True

    changed = False
    if existing.status != new.status:
        existing.status = new.status
        existing.last_transition_time = new.last_transition_time or timestamp
        changed = True
    for attribute in ("reason", "message", "observed_generation"):
        value = getattr(new, attribute)
        if getattr(existing, attribute) != value:
            setattr(existing, attribute, value)
            changed = True
    return changed


def remove_status_condition(conditions: list[Condition], condition_type: str) -> bool:
    for index, condition in enumerate(conditions):
        if condition.type == condition_type:
            del conditions[index]
            return True
    return False


def is_status_condition_true(conditions: list[Condition], condition_type: str) -> bool:
    condition = find_status_condition(conditions, condition_type)
    return condition is not None and condition.is_true


def is_status_condition_false(conditions: list[Condition], condition_type: str) -> bool:
    condition = find_status_condition(conditions, condition_type)
    return condition is not None and condition.is_false
