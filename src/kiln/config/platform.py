"""Platform behaviour knobs: await timeouts, build retention, controllers, roles."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Final

from .env import env_bool, env_float, env_int
from .errors import ConfigurationError

DEFAULT_AWAIT_TIMEOUT_SECONDS: Final[float] = 30.0
DEFAULT_RETAINED_BUILDS: Final[int] = 5
DEFAULT_CONTROLLER_WORKERS: Final[int] = 2
DEFAULT_RESYNC_SECONDS: Final[float] = 30.0


@dataclass(frozen=True, slots=True)
class RoleBindingEntry:
    user: str
    namespace: str
    role: str


@dataclass(frozen=True, slots=True)
class PlatformConfig:
    await_timeout_seconds: float = DEFAULT_AWAIT_TIMEOUT_SECONDS
    retained_builds: int = DEFAULT_RETAINED_BUILDS
    sync_user_provided_bindings: bool = True
    sync_managed_bindings: bool = False
    controller_workers: int = DEFAULT_CONTROLLER_WORKERS
    resync_seconds: float = DEFAULT_RESYNC_SECONDS
    role_bindings: tuple[RoleBindingEntry, ...] = field(default_factory=tuple)


def _parse_role_bindings(raw: str | None) -> tuple[RoleBindingEntry, ...]:
    """Parse ``[{"user": ..., "namespace": ..., "role": ...}, ...]``."""

    if raw is None or not raw.strip():
        return ()
    try:
        payload: Any = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"KILN_ROLE_BINDINGS is not valid JSON: {exc}") from exc
    if not isinstance(payload, list):
        raise ConfigurationError("KILN_ROLE_BINDINGS must be a JSON list")

    entries: list[RoleBindingEntry] = []
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            raise ConfigurationError(f"KILN_ROLE_BINDINGS[{index}] must be an object")
        try:
            entries.append(
                RoleBindingEntry(
                    user=str(item["user"]),
                    namespace=str(item["namespace"]),
                    role=str(item["role"]),
                )
            )
        except KeyError as exc:
            raise ConfigurationError(
                f"KILN_ROLE_BINDINGS[{index}] is missing {exc.args[0]!r}"
            ) from exc
    return tuple(entries)


def get_platform_config() -> PlatformConfig:
    return PlatformConfig(
        await_timeout_seconds=env_float(
            "KILN_AWAIT_TIMEOUT_SECONDS", DEFAULT_AWAIT_TIMEOUT_SECONDS
        ),
        retained_builds=env_int("KILN_RETAINED_BUILDS", DEFAULT_RETAINED_BUILDS),
        sync_user_provided_bindings=env_bool("KILN_SYNC_USER_PROVIDED_BINDINGS", True),
        sync_managed_bindings=env_bool("KILN_SYNC_MANAGED_BINDINGS", False),
        controller_workers=env_int(
            "KILN_CONTROLLER_WORKERS", DEFAULT_CONTROLLER_WORKERS, minimum=1
        ),
        resync_seconds=env_float("KILN_RESYNC_SECONDS", DEFAULT_RESYNC_SECONDS),
        role_bindings=_parse_role_bindings(os.getenv("KILN_ROLE_BINDINGS")),
    )
