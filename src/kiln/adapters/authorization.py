"""Static role bindings and name-to-space resolution.

Credential handling and role management live upstream; this adapter only
consumes an already-resolved table of ``(user, space, role)`` bindings.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING, Final

from kiln.domain.errors import NotFoundError
from kiln.domain.model import ResourceKind

if TYPE_CHECKING:
    from collections.abc import Iterable

    from kiln.adapters.sqlalchemy.store import SqlAlchemyObjectStore
    from kiln.domain.ports.authorization import AuthInfo

log = getLogger(__name__)


class Role(StrEnum):
    VIEWER = "viewer"
    DEVELOPER = "developer"


READ_VERBS: Final[frozenset[str]] = frozenset({"get", "list", "watch"})
WRITE_VERBS: Final[frozenset[str]] = frozenset({"create", "patch", "delete"})

ROLE_VERBS: Final[dict[Role, frozenset[str]]] = {
    Role.VIEWER: READ_VERBS,
    Role.DEVELOPER: READ_VERBS | WRITE_VERBS,
}


@dataclass(frozen=True, slots=True)
class RoleBinding:
    user: str
    namespace: str
    role: Role


class StaticRoleBindings:
    """Access policy and tenant visibility backed by a fixed binding table."""

    def __init__(self, bindings: Iterable[RoleBinding] = ()) -> None:
        self._bindings: set[RoleBinding] = set(bindings)

    def bind(self, user: str, namespace: str, role: Role) -> None:
        self._bindings.add(RoleBinding(user, namespace, role))

    def unbind(self, user: str, namespace: str) -> None:
        self._bindings = {
            binding
            for binding in self._bindings
            if not (binding.user == user and binding.namespace == namespace)
        }

    def allows(self, user: str, verb: str, namespace: str | None) -> bool:
        if namespace is None:
            return False
        return any(
            binding.user == user
            and binding.namespace == namespace
            and verb in ROLE_VERBS[binding.role]
            for binding in self._bindings
        )

    async def authorized_namespaces(self, auth: AuthInfo) -> set[str]:
        return {binding.namespace for binding in self._bindings if binding.user == auth.user}


class StoreNamespaceRetriever:
    """Resolves the space of an object through the store's global name index."""

    def __init__(self, store: SqlAlchemyObjectStore) -> None:
        self.store = store

    async def namespace_for(self, name: str, resource_type: str) -> str:
        namespace = await self.store.find_namespace(ResourceKind(resource_type), name)
        if namespace is None:
            log.debug("No %s named %s", resource_type, name)
            raise NotFoundError(resource_type)
        return namespace
