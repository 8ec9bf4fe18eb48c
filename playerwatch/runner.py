"""Core execution workflow for PlayerWatch."""

from __future__ import annotations

import copy
import datetime as dt
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from .db import Database
from .gate import GroupNotificationGate, display_names
from .models import CycleSummary, ScanResult, WatchedEntity
from .notifications import AlertDispatcher, should_notify
from .scanner import SnapshotFetcher, scan
from .tracker import DEFAULT_INFO_TTL, ExtendedInfoFetcher
from .watchlist import sync_group_settings

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL = 10


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


@dataclass
class PlayerWatchRunner:
    """Coordinates fetch, reconciliation, alerting and persistence steps."""

    database: Database
    fetch_snapshot: SnapshotFetcher
    fetch_extended_info: Optional[ExtendedInfoFetcher] = None
    dispatcher: AlertDispatcher = field(default_factory=lambda: AlertDispatcher(notifier=None))
    clock: Callable[[], dt.datetime] = utcnow
    info_ttl: dt.timedelta = DEFAULT_INFO_TTL
    gate: GroupNotificationGate = field(default_factory=GroupNotificationGate)
    published: Tuple[WatchedEntity, ...] = ()

    def init(self) -> None:
        """Initialize required persistence structures."""
        logger.info("Initializing database at %s", self.database.path)
        self.database.initialize()

    def run(self, dry_run: bool = False) -> CycleSummary:
        """Execute a single monitoring cycle."""
        now = self.clock()
        executed_at = now.isoformat()
        entities = self.database.load_entities()
        if not entities:
            logger.info("Watch list is empty; nothing to scan")
            self.database.add_run(executed_at=executed_at, status="empty", notes=None)
            self.published = ()
            return CycleSummary(
                executed_at=executed_at,
                snapshot_valid=True,
                changed=False,
                transitions=[],
                group_alerts=[],
            )

        result = scan(
            entities,
            self.fetch_snapshot,
            self.fetch_extended_info,
            now=now,
            info_ttl=self.info_ttl,
        )
        if not result.snapshot_valid:
            self.database.add_run(
                executed_at=executed_at,
                status="fetch_failed",
                notes="snapshot unavailable; presence left unchanged",
            )
            self.published = tuple(copy.deepcopy(entity) for entity in entities)
            return CycleSummary(
                executed_at=executed_at,
                snapshot_valid=False,
                changed=False,
                transitions=[],
                group_alerts=[],
                entities=self.published,
            )

        group_settings = self.database.load_group_settings()
        if sync_group_settings(entities, group_settings) and not dry_run:
            self.database.save_group_settings(group_settings)

        alerts = self.gate.evaluate(entities, group_settings)
        names = display_names(entities)
        group_alerts = sorted(names.get(key, key) for key in alerts)

        for entity, is_online in result.transitions:
            logger.info("%s is now %s", entity.display_name, "online" if is_online else "offline")

        if dry_run:
            logger.info(
                "Dry run detected %d transition(s) and %d group alert(s)",
                len(result.transitions),
                len(group_alerts),
            )
            status = "dry_run"
        else:
            for entity, is_online in result.transitions:
                if should_notify(entity, group_settings):
                    self.dispatcher.notify_status_change(entity, is_online)
            for group_name in group_alerts:
                self.dispatcher.notify_group_all_offline(group_name)
            if result.changed or result.refreshed:
                self.database.save_entities(entities)
                logger.debug("Persisted %d player(s)", len(entities))
            status = "success"

        note = _format_note(result, group_alerts, prefix="dry-run " if dry_run else "")
        self.database.add_run(executed_at=executed_at, status=status, notes=note)
        self.published = tuple(copy.deepcopy(entity) for entity in entities)
        return CycleSummary(
            executed_at=executed_at,
            snapshot_valid=True,
            changed=result.changed,
            transitions=result.transitions,
            group_alerts=group_alerts,
            entities=self.published,
        )

    def run_forever(
        self,
        interval: float = DEFAULT_REFRESH_INTERVAL,
        max_cycles: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> int:
        """Run cycles back to back, sleeping ``interval`` seconds between them."""
        cycles = 0
        logger.info("Monitoring every %ss", interval)
        while max_cycles is None or cycles < max_cycles:
            try:
                self.run()
            except Exception:  # noqa: BLE001
                logger.exception("Monitoring cycle failed; retrying after %ss", interval)
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break
            sleep(interval)
        return cycles


def _format_note(result: ScanResult, group_alerts: List[str], prefix: str = "") -> str:
    """Render a concise run note summarizing the cycle outcome."""
    joined = sum(1 for _, online in result.transitions if online)
    left = len(result.transitions) - joined
    return (
        f"{prefix}"
        f"players(+{joined} / -{left}) "
        f"groups_offline({len(group_alerts)}) "
        f"changed={'yes' if result.changed else 'no'}"
    )
