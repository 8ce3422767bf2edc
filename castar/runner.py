"""
Operator command line for the CaStar local store.

Commands:
    castar init --user U         Apply migrations and seed defaults for a user
    castar pending               List outbox items awaiting sync
    castar dead                  List outbox items that exhausted their retries
    castar export --user U ...   Write a CSV or XLSX export of a user's transactions
"""

import argparse
import logging
import sqlite3
import sys
from datetime import date
from pathlib import Path
from typing import Optional

from castar.config import (
    ENV_FILE,
    LOG_FILE,
    LOG_FORMAT,
    SUPPORTED_CURRENCIES,
    VERSION,
    ensure_directories,
    get_log_level,
    load_environment,
)
from castar.db import open_store, seed_defaults
from castar.db.repository import LocalStore
from castar.services.export import ExportFormat, ExportService

logger = logging.getLogger(__name__)


def setup_logging():
    """Log to the configured file and to stdout."""
    ensure_directories()
    logging.basicConfig(
        level=get_log_level(),
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(LOG_FILE),
            logging.StreamHandler(sys.stdout),
        ],
    )


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date '{value}', expected YYYY-MM-DD")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="castar", description="CaStar local store maintenance"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("--db", type=Path, help="Database file (default: CASTAR_DB_PATH)")
    commands = parser.add_subparsers(dest="command", required=True)

    init = commands.add_parser("init", help="Migrate and seed defaults for a user")
    init.add_argument("--user", required=True, help="User ID to seed")
    init.add_argument(
        "--currency",
        choices=SUPPORTED_CURRENCIES,
        help="Currency of the default cash account",
    )

    commands.add_parser("pending", help="List outbox items awaiting sync")
    commands.add_parser("dead", help="List outbox items that gave up")

    export = commands.add_parser("export", help="Export a user's transactions")
    export.add_argument("--user", required=True, help="User ID to export")
    export.add_argument(
        "--format",
        choices=[f.value for f in ExportFormat],
        default=ExportFormat.XLSX.value,
    )
    export.add_argument("--out", type=Path, help="Output file (default: generated name)")
    export.add_argument("--from", dest="start_date", type=_parse_date)
    export.add_argument("--to", dest="end_date", type=_parse_date)
    return parser


def _cmd_init(store: LocalStore, args) -> int:
    kwargs = {"currency": args.currency} if args.currency else {}
    if seed_defaults(store.db, args.user, **kwargs):
        print(f"Seeded defaults for {args.user}")
    else:
        print(f"{args.user} already has categories, nothing to seed")
    return 0


def _cmd_pending(store: LocalStore, args) -> int:
    items = store.sync_queue.find_pending(limit=sys.maxsize)
    for item in items:
        print(
            f"{item.seq:>6}  {item.action.value:<6}  {item.table_name:<12}  "
            f"{item.record_id}  attempts={item.attempts}"
        )
    print(f"{len(items)} pending")
    return 0


def _cmd_dead(store: LocalStore, args) -> int:
    items = store.sync_queue.find_dead()
    for item in items:
        print(
            f"{item.seq:>6}  {item.action.value:<6}  {item.table_name:<12}  "
            f"{item.record_id}  {item.last_error or ''}"
        )
    print(f"{len(items)} dead")
    return 0


def _cmd_export(store: LocalStore, args) -> int:
    if args.start_date and args.end_date and args.start_date > args.end_date:
        print("Error: --from must not be after --to", file=sys.stderr)
        return 1

    service = ExportService(store)
    export_format = ExportFormat(args.format)
    buffer = service.export(args.user, export_format, args.start_date, args.end_date)
    out = args.out or Path(
        service.get_filename(export_format, args.start_date, args.end_date)
    )
    out.write_bytes(buffer.getvalue())
    logger.info(f"Exported transactions of {args.user} to {out}")
    print(f"Wrote {out}")
    return 0


COMMANDS = {
    "init": _cmd_init,
    "pending": _cmd_pending,
    "dead": _cmd_dead,
    "export": _cmd_export,
}


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point of the ``castar`` command."""
    args = build_parser().parse_args(argv)

    env_loaded = load_environment()
    setup_logging()
    if env_loaded:
        logger.info(f"Loaded environment from {ENV_FILE}")

    try:
        store = open_store(args.db)
    except sqlite3.Error as e:
        logger.error(f"Failed to open store: {e}", exc_info=True)
        print(f"Error: could not open database: {e}", file=sys.stderr)
        return 1

    try:
        return COMMANDS[args.command](store, args)
    except (ValueError, sqlite3.Error, OSError) as e:
        logger.error(f"Command '{args.command}' failed: {e}", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
