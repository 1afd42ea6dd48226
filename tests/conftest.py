from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from kiln.adapters.authorization import Role, StaticRoleBindings, StoreNamespaceRetriever
from kiln.adapters.sqlalchemy import ScopedClientFactory, SqlAlchemyObjectStore, create_all_tables
from kiln.domain.controllers import AppNameUniquenessValidator, ServiceBindingUniquenessValidator
from kiln.domain.ports.authorization import AuthInfo
from tests.helpers.objects import SPACE_A, SPACE_B

os.environ.setdefault("KILN_DATABASE_URI", "sqlite+aiosqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine


@pytest.fixture
def database_uri(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'kiln.db'}"


@pytest_asyncio.fixture
async def sqlite_engine(database_uri: str) -> AsyncIterator[AsyncEngine]:
    engine = create_async_engine(database_uri)
    await create_all_tables(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def store(sqlite_engine: AsyncEngine) -> AsyncIterator[SqlAlchemyObjectStore]:
    object_store = SqlAlchemyObjectStore(
        sqlite_engine,
        validators=(ServiceBindingUniquenessValidator(), AppNameUniquenessValidator()),
    )
    try:
        yield object_store
    finally:
        object_store.hub.close()


@pytest.fixture
def alice() -> AuthInfo:
    return AuthInfo(user="alice")


@pytest.fixture
def bob() -> AuthInfo:
    return AuthInfo(user="bob")


@pytest.fixture
def role_bindings() -> StaticRoleBindings:
    bindings = StaticRoleBindings()
    bindings.bind("alice", SPACE_A, Role.DEVELOPER)
    bindings.bind("alice", SPACE_B, Role.DEVELOPER)
    return bindings


@pytest.fixture
def client_factory(
    store: SqlAlchemyObjectStore, role_bindings: StaticRoleBindings
) -> ScopedClientFactory:
    return ScopedClientFactory(store, role_bindings)


@pytest.fixture
def namespace_retriever(store: SqlAlchemyObjectStore) -> StoreNamespaceRetriever:
    return StoreNamespaceRetriever(store)


@pytest.fixture
def repository_dependencies(
    namespace_retriever: StoreNamespaceRetriever,
    client_factory: ScopedClientFactory,
    role_bindings: StaticRoleBindings,
) -> dict[str, object]:
    return {
        "namespace_retriever": namespace_retriever,
        "user_client_factory": client_factory,
        "namespace_permissions": role_bindings,
    }
