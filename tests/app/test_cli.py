from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from kiln.config import ConfigurationError
from kiln.ui import cli

if TYPE_CHECKING:
    from collections.abc import Callable


def _record(captured: dict[str, object], name: str) -> Callable[..., None]:
    def fake(**kwargs: object) -> None:
        captured[name] = kwargs

    return fake


def test_db_upgrade_dispatches(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}
    monkeypatch.setattr(cli, "upgrade_database", _record(captured, "upgrade"))
    monkeypatch.setattr(cli, "run_controllers", _record(captured, "run"))

    cli.main(["--database-uri", "sqlite+aiosqlite:///x.db", "db", "upgrade"])

    assert captured == {"upgrade": {"database_uri": "sqlite+aiosqlite:///x.db"}}


def test_controllers_run_dispatches(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}
    monkeypatch.setattr(cli, "run_controllers", _record(captured, "run"))

    cli.main(["controllers", "run"])

    assert captured == {"run": {"database_uri": None}}


def test_missing_subcommand_is_a_usage_error() -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["db"])

    assert excinfo.value.code == 2


@pytest.mark.parametrize(
    ("error", "code"),
    [
        (KeyboardInterrupt(), 0),
        (ConfigurationError("KILN_CONTROLLER_WORKERS must be >= 1"), 2),
        (RuntimeError("database exploded"), 1),
    ],
)
def test_failures_map_to_exit_codes(
    monkeypatch: pytest.MonkeyPatch, error: BaseException, code: int
) -> None:
    def failing(**_: object) -> None:
        raise error

    monkeypatch.setattr(cli, "run_controllers", failing)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["controllers", "run"])

    assert excinfo.value.code == code
