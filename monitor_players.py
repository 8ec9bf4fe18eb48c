"""CLI entrypoint for the PlayerWatch agent."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from playerwatch.api import build_client_from_env
from playerwatch.db import Database, resolve_sqlite_path
from playerwatch.notifications import AlertDispatcher, build_notifier_from_env
from playerwatch.runner import DEFAULT_REFRESH_INTERVAL, PlayerWatchRunner
from playerwatch.watchlist import (
    add_player,
    delete_group,
    ensure_sort_order,
    remove_player,
    sorted_for_display,
    sync_group_settings,
    toggle_group_notifications,
)

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="PlayerWatch monitoring agent")
    parser.add_argument("--init", action="store_true", help="initialize storage and exit")
    parser.add_argument(
        "--run",
        action="store_true",
        help="execute one monitoring cycle (group offline alerts need --loop)",
    )
    parser.add_argument(
        "--loop",
        action="store_true",
        help="keep running monitoring cycles until interrupted",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=float(os.getenv("REFRESH_INTERVAL", DEFAULT_REFRESH_INTERVAL)),
        help="seconds between cycles in --loop mode (overrides REFRESH_INTERVAL env var)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="skip persistence updates and notifications while still scanning",
    )
    parser.add_argument(
        "--server-id",
        default=os.getenv("BATTLEMETRICS_SERVER_ID"),
        help="BattleMetrics server to watch (overrides BATTLEMETRICS_SERVER_ID env var)",
    )
    parser.add_argument("--add", metavar="KEY", help="watch a player name or id")
    parser.add_argument("--group", default="", help="group for --add")
    parser.add_argument("--remove", metavar="KEY", help="stop watching a player")
    parser.add_argument("--delete-group", metavar="NAME", help="remove a group and all its players")
    parser.add_argument("--toggle-group", metavar="NAME", help="switch group offline alerts on/off")
    parser.add_argument("--list", action="store_true", help="print the watch list")
    parser.add_argument("--export", metavar="PATH", help="export the watch list to an xlsx file")
    parser.add_argument("--verbose", action="store_true", help="enable debug logging")
    return parser


def edit_watchlist(database: Database, args: argparse.Namespace) -> bool:
    """Apply any watch-list edits requested on the command line."""
    if not (args.add or args.remove or args.delete_group or args.toggle_group):
        return False

    entities = database.load_entities()
    settings = database.load_group_settings()

    if args.add:
        added = add_player(entities, args.add, args.group)
        if added is None:
            logger.warning("Nothing added for %r", args.add)
    if args.remove and not remove_player(entities, args.remove):
        logger.warning("Player %r is not on the watch list", args.remove)
    if args.delete_group:
        delete_group(entities, settings, args.delete_group)

    ensure_sort_order(entities)
    sync_group_settings(entities, settings)
    if args.toggle_group:
        enabled = toggle_group_notifications(settings, args.toggle_group)
        logger.info("Group %r alerts %s", args.toggle_group, "enabled" if enabled else "disabled")

    database.save_entities(entities)
    database.save_group_settings(settings)
    return True


def print_watchlist(database: Database) -> None:
    current_group = None
    for entity in sorted_for_display(database.load_entities()):
        if entity.group != current_group:
            current_group = entity.group
            print(f"[{current_group or 'ungrouped'}]")
        status = "online" if entity.online else "offline"
        duration = f" ({entity.display_duration})" if entity.display_duration else ""
        print(f"  {entity.display_name} - {status}{duration}")
        for line in entity.details:
            print(f"      {line}")


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    database_url = os.getenv("DATABASE_URL", "sqlite:///player_watch.db")
    db_path = resolve_sqlite_path(database_url)
    database = Database(path=db_path)
    database.initialize()

    if args.init:
        logger.info("Initialized database at %s", db_path)
        return 0

    edited = edit_watchlist(database, args)

    if args.export:
        export_path = Path(args.export)
        database.export_entities_to_xlsx(export_path)
        logger.info("Exported watch list to %s", export_path)

    if args.list:
        print_watchlist(database)

    if not (args.run or args.loop):
        if edited or args.export or args.list:
            return 0
        parser.print_help()
        return 1

    client = build_client_from_env(args.server_id)
    notifier = build_notifier_from_env()
    runner = PlayerWatchRunner(
        database=database,
        fetch_snapshot=client.fetch_snapshot,
        fetch_extended_info=client.fetch_extended_info,
        dispatcher=AlertDispatcher(notifier=notifier),
    )

    if args.loop:
        try:
            runner.run_forever(interval=args.interval)
        except KeyboardInterrupt:
            logger.info("Monitoring stopped")
        return 0

    logger.info("One-shot run: group offline alerts are skipped; use --loop to enable them")
    summary = runner.run(dry_run=args.dry_run)
    if not summary.snapshot_valid:
        logger.warning("Snapshot unavailable; no presence changes recorded.")
    elif summary.transitions:
        for entity, is_online in summary.transitions:
            logger.info("%s -> %s", entity.display_name, "online" if is_online else "offline")
    else:
        logger.info("No status changes detected in this run.")
    for group_name in summary.group_alerts:
        logger.info("Group %s is entirely offline", group_name)
    return 0


if __name__ == "__main__":
    sys.exit(main())
