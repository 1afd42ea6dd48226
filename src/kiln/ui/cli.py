from __future__ import annotations

import argparse
import logging
import sys
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from kiln.app import run_controllers, upgrade_database
from kiln.config import ConfigurationError, configure_logging

if TYPE_CHECKING:
    from collections.abc import Sequence

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Kiln platform control plane")
    parser.add_argument(
        "--database-uri",
        type=str,
        default=None,
        help="SQLAlchemy async database URI (defaults to KILN_DATABASE_URI or the data dir)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log at DEBUG level",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    db = subparsers.add_parser("db", help="Database schema commands")
    db_sub = db.add_subparsers(dest="db_command", required=True)
    db_sub.add_parser("upgrade", help="Apply pending schema migrations")

    controllers = subparsers.add_parser("controllers", help="Reconciliation controllers")
    controllers_sub = controllers.add_subparsers(dest="controllers_command", required=True)
    controllers_sub.add_parser("run", help="Run build and binding controllers until interrupted")

    return parser.parse_args(list(argv))


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    load_dotenv()
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    try:
        if parsed_args.command == "db" and parsed_args.db_command == "upgrade":
            upgrade_database(database_uri=parsed_args.database_uri)
        elif parsed_args.command == "controllers" and parsed_args.controllers_command == "run":
            run_controllers(database_uri=parsed_args.database_uri)
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301
    except KeyboardInterrupt:
        log.info("Closed by user (Ctrl+C)")
        sys.exit(0)
    except ConfigurationError:
        log.exception("Invalid configuration")
        sys.exit(2)
    except Exception:
        log.exception("Fatal error")
        sys.exit(1)


if __name__ == "__main__":
    main()
