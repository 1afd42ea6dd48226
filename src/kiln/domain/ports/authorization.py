"""Ports for caller identity, scoped clients and tenant visibility."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from kiln.domain.ports.store import ObjectClient


@dataclass(frozen=True, slots=True)
class AuthInfo:
    """Resolved caller identity; credential handling happens upstream."""

    user: str


@runtime_checkable
class UserClientFactory(Protocol):
    def build_client(self, auth: AuthInfo) -> ObjectClient: ...


@runtime_checkable
class NamespacePermissions(Protocol):
    async def authorized_namespaces(self, auth: AuthInfo) -> set[str]:
        """Return the tenant partitions visible to ``auth``."""
        ...


@runtime_checkable
class NamespaceRetriever(Protocol):
    async def namespace_for(self, name: str, resource_type: str) -> str:
        """Resolve the partition holding ``name``; raises ``NotFoundError`` when absent."""
        ...
