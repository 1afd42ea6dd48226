"""Label selector parsing and matching.

Selectors use the familiar equality/set-based syntax::

    env=prod,tier!=cache,team in (a, b),!legacy,owner

Requirements are AND-ed together. Selectors are pure, side-effect-free objects
and can be shared between list calls.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

_NAME = r"[A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?"
_KEY_RE = re.compile(rf"^([a-z0-9]([-a-z0-9.]*[a-z0-9])?/)?{_NAME}$")
_VALUE_RE = re.compile(rf"^({_NAME})?$")
_SET_RE = re.compile(r"^(?P<key>\S+)\s+(?P<op>in|notin)\s*\((?P<values>[^()]*)\)$")
_EQUALITY_RE = re.compile(r"^(?P<key>[^!=\s]+)\s*(?P<op>==|!=|=)\s*(?P<value>[^!=\s]*)$")


class SelectorSyntaxError(ValueError):
    """Raised when a label selector string cannot be parsed."""


class Requirement(ABC):
    """A single constraint on one label key."""

    key: str

    @abstractmethod
    def matches(self, labels: Mapping[str, str]) -> bool: ...


@dataclass(frozen=True, slots=True)
class Equals(Requirement):
    key: str
    value: str

    def matches(self, labels: Mapping[str, str]) -> bool:
        return labels.get(self.key) == self.value


@dataclass(frozen=True, slots=True)
class NotEquals(Requirement):
    key: str
    value: str

    def matches(self, labels: Mapping[str, str]) -> bool:
        return labels.get(self.key) != self.value


@dataclass(frozen=True, slots=True)
class In(Requirement):
    key: str
    values: frozenset[str]

    def matches(self, labels: Mapping[str, str]) -> bool:
        return self.key in labels and labels[self.key] in self.values


@dataclass(frozen=True, slots=True)
class NotIn(Requirement):
    key: str
    values: frozenset[str]

    def matches(self, labels: Mapping[str, str]) -> bool:
        return labels.get(self.key) not in self.values


@dataclass(frozen=True, slots=True)
class Exists(Requirement):
    key: str

    def matches(self, labels: Mapping[str, str]) -> bool:
        return self.key in labels


@dataclass(frozen=True, slots=True)
class DoesNotExist(Requirement):
    key: str

    def matches(self, labels: Mapping[str, str]) -> bool:
        return self.key not in labels


@dataclass(frozen=True, slots=True)
class LabelSelector:
    requirements: tuple[Requirement, ...] = field(default_factory=tuple)

    @property
    def empty(self) -> bool:
        return not self.requirements

    def matches(self, labels: Mapping[str, str]) -> bool:
        return all(requirement.matches(labels) for requirement in self.requirements)


EVERYTHING = LabelSelector()


def parse_label_selector(text: str | None) -> LabelSelector:
    """Parse ``text`` into a selector; an empty string selects everything."""

    if text is None or not text.strip():
        return EVERYTHING
    return LabelSelector(tuple(_parse_term(term) for term in _split_terms(text)))


def _split_terms(text: str) -> list[str]:
    terms: list[str] = []
    depth = 0
    current: list[str] = []
    for char in text:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise SelectorSyntaxError(f"unbalanced parenthesis in selector {text!r}")
        if char == "," and depth == 0:
            terms.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    if depth != 0:
        raise SelectorSyntaxError(f"unbalanced parenthesis in selector {text!r}")
    terms.append("".join(current).strip())
    if any(not term for term in terms):
        raise SelectorSyntaxError(f"empty requirement in selector {text!r}")
    return terms


def _parse_term(term: str) -> Requirement:
    if term.startswith("!"):
        return DoesNotExist(_valid_key(term[1:].strip()))

    set_match = _SET_RE.match(term)
    if set_match is not None:
        key = _valid_key(set_match["key"])
        values = frozenset(
            _valid_value(value.strip()) for value in set_match["values"].split(",")
        )
        if set_match["op"] == "in":
            return In(key, values)
        return NotIn(key, values)

    equality_match = _EQUALITY_RE.match(term)
    if equality_match is not None:
        key = _valid_key(equality_match["key"])
        value = _valid_value(equality_match["value"])
        if equality_match["op"] == "!=":
            return NotEquals(key, value)
        return Equals(key, value)

    return Exists(_valid_key(term))


def _valid_key(key: str) -> str:
    if not _KEY_RE.match(key):
        raise SelectorSyntaxError(f"invalid label key {key!r}")
    return key


def _valid_value(value: str) -> str:
    if not _VALUE_RE.match(value):
        raise SelectorSyntaxError(f"invalid label value {value!r}")
    return value
