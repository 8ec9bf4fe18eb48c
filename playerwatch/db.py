"""SQLite-backed persistence helpers."""

from __future__ import annotations

import datetime as dt
import json
import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from openpyxl import Workbook

from .models import HOURS_PER_DAY, WatchedEntity, empty_hour_counts

logger = logging.getLogger(__name__)

SQLITE_PREFIX = "sqlite://"

PLAYER_COLUMNS = (
    "position",
    "player_key",
    "resolved_name",
    "original_name",
    "resolved_id",
    "online",
    "display_duration",
    "details",
    "session_start_at",
    "last_seen_at",
    "last_offline_at",
    "last_session_seconds",
    "total_session_seconds",
    "join_hour_counts",
    "leave_hour_counts",
    "notifications_enabled",
    "group_name",
    "sort_order",
    "created_at",
    "updated_at",
    "last_seen_api_at",
    "steam_id",
    "info_fetched_at",
    "current_server_name",
)

EXPORT_COLUMNS = (
    "group",
    "key",
    "resolved_name",
    "resolved_id",
    "online",
    "display_duration",
    "last_seen_at",
    "last_offline_at",
    "last_session_seconds",
    "total_session_seconds",
    "steam_id",
)


def resolve_sqlite_path(database_url: str) -> Path:
    """Translate a DATABASE_URL into a filesystem path."""
    if not database_url:
        raise ValueError("DATABASE_URL must not be empty")

    if database_url.startswith(SQLITE_PREFIX):
        raw_path = database_url[len(SQLITE_PREFIX) :]
        # Allow sqlite:///path/to/file and sqlite://path/to/file styles.
        if raw_path.startswith("/"):
            raw_path = raw_path[1:]
        path = Path(raw_path)
    else:
        path = Path(database_url)

    if not path.is_absolute():
        path = Path.cwd() / path

    return path.expanduser().resolve()


@dataclass
class Database:
    """Thin wrapper around sqlite3 for the watch list, group settings and run history."""

    path: Path

    def connect(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        return sqlite3.connect(self.path)

    def initialize(self) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS runs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    executed_at TEXT NOT NULL,
                    status TEXT NOT NULL,
                    notes TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS players (
                    position INTEGER NOT NULL,
                    player_key TEXT NOT NULL,
                    resolved_name TEXT,
                    original_name TEXT,
                    resolved_id TEXT,
                    online INTEGER NOT NULL DEFAULT 0,
                    display_duration TEXT,
                    details TEXT,
                    session_start_at TEXT,
                    last_seen_at TEXT,
                    last_offline_at TEXT,
                    last_session_seconds INTEGER,
                    total_session_seconds INTEGER NOT NULL DEFAULT 0,
                    join_hour_counts TEXT,
                    leave_hour_counts TEXT,
                    notifications_enabled INTEGER,
                    group_name TEXT NOT NULL DEFAULT '',
                    sort_order INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            columns = {
                row[1]
                for row in conn.execute("PRAGMA table_info(players)")
            }
            for column in (
                "created_at",
                "updated_at",
                "last_seen_api_at",
                "steam_id",
                "info_fetched_at",
                "current_server_name",
            ):
                if column not in columns:
                    conn.execute(f"ALTER TABLE players ADD COLUMN {column} TEXT")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS group_settings (
                    group_key TEXT PRIMARY KEY,
                    notifications_enabled INTEGER NOT NULL DEFAULT 1
                )
                """
            )
            conn.commit()

    def add_run(self, executed_at: str, status: str, notes: str | None) -> None:
        with self.connect() as conn:
            conn.execute(
                "INSERT INTO runs (executed_at, status, notes) VALUES (?, ?, ?)",
                (executed_at, status, notes),
            )
            conn.commit()

    def recent_runs(self, limit: int = 10) -> Iterable[Tuple[str, str, str | None]]:
        with self.connect() as conn:
            cursor = conn.execute(
                "SELECT executed_at, status, notes FROM runs ORDER BY id DESC LIMIT ?",
                (limit,),
            )
            yield from cursor.fetchall()

    def load_entities(self) -> List[WatchedEntity]:
        """Return the watch list in stored order, repairing malformed rows."""
        query = f"SELECT {', '.join(PLAYER_COLUMNS)} FROM players ORDER BY position"
        with self.connect() as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(query).fetchall()
        return [_entity_from_row(row) for row in rows]

    def save_entities(self, entities: Iterable[WatchedEntity]) -> None:
        """Replace the stored watch list with ``entities``."""
        rows = [_entity_to_row(position, entity) for position, entity in enumerate(entities)]
        placeholders = ", ".join("?" for _ in PLAYER_COLUMNS)
        with self.connect() as conn:
            conn.execute("DELETE FROM players")
            conn.executemany(
                f"INSERT INTO players ({', '.join(PLAYER_COLUMNS)}) VALUES ({placeholders})",
                rows,
            )
            conn.commit()

    def load_group_settings(self) -> Dict[str, bool]:
        with self.connect() as conn:
            cursor = conn.execute("SELECT group_key, notifications_enabled FROM group_settings")
            return {row[0]: bool(row[1]) for row in cursor.fetchall()}

    def save_group_settings(self, settings: Dict[str, bool]) -> None:
        with self.connect() as conn:
            conn.execute("DELETE FROM group_settings")
            conn.executemany(
                "INSERT INTO group_settings (group_key, notifications_enabled) VALUES (?, ?)",
                [(key, int(bool(enabled))) for key, enabled in settings.items()],
            )
            conn.commit()

    def export_entities_to_xlsx(self, export_path: Path) -> None:
        """Write the current watch list to an Excel workbook."""
        workbook = Workbook()
        worksheet = workbook.active
        worksheet.title = "players"
        worksheet.append(list(EXPORT_COLUMNS))
        for entity in self.load_entities():
            worksheet.append([
                entity.group,
                entity.key,
                entity.resolved_name,
                entity.resolved_id,
                "online" if entity.online else "offline",
                entity.display_duration,
                _format_timestamp(entity.last_seen_at),
                _format_timestamp(entity.last_offline_at),
                entity.last_session_seconds,
                entity.total_session_seconds,
                entity.steam_id,
            ])
        export_path.parent.mkdir(parents=True, exist_ok=True)
        workbook.save(export_path)


def _format_timestamp(value: Optional[dt.datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_timestamp(value: Optional[str], column: str, key: str) -> Optional[dt.datetime]:
    if not value:
        return None
    try:
        parsed = dt.datetime.fromisoformat(value)
    except (TypeError, ValueError):
        logger.warning("Discarding malformed %s for %s: %r", column, key, value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


def _parse_hour_counts(value: Optional[str], column: str, key: str) -> List[int]:
    try:
        counts = json.loads(value) if value else None
    except (TypeError, ValueError):
        counts = None
    if (
        not isinstance(counts, list)
        or len(counts) != HOURS_PER_DAY
        or not all(isinstance(item, int) and not isinstance(item, bool) for item in counts)
    ):
        if value:
            logger.warning("Resetting malformed %s for %s", column, key)
        return empty_hour_counts()
    return [max(item, 0) for item in counts]


def _parse_details(value: Optional[str], key: str) -> List[str]:
    try:
        details = json.loads(value) if value else []
    except (TypeError, ValueError):
        logger.warning("Discarding malformed details for %s", key)
        return []
    if not isinstance(details, list):
        return []
    return [str(item) for item in details if isinstance(item, str) and item.strip()]


def _entity_from_row(row: sqlite3.Row) -> WatchedEntity:
    key = row["player_key"]
    enabled = row["notifications_enabled"]
    total = row["total_session_seconds"] or 0
    return WatchedEntity(
        key=key,
        resolved_name=row["resolved_name"] or key,
        original_name=row["original_name"] or key,
        resolved_id=row["resolved_id"] or None,
        online=bool(row["online"]),
        display_duration=row["display_duration"] or "",
        details=_parse_details(row["details"], key),
        session_start_at=_parse_timestamp(row["session_start_at"], "session_start_at", key),
        last_seen_at=_parse_timestamp(row["last_seen_at"], "last_seen_at", key),
        last_offline_at=_parse_timestamp(row["last_offline_at"], "last_offline_at", key),
        last_session_seconds=row["last_session_seconds"],
        total_session_seconds=max(int(total), 0),
        join_hour_counts=_parse_hour_counts(row["join_hour_counts"], "join_hour_counts", key),
        leave_hour_counts=_parse_hour_counts(row["leave_hour_counts"], "leave_hour_counts", key),
        notifications_enabled=None if enabled is None else bool(enabled),
        group=row["group_name"] or "",
        sort_order=row["sort_order"] or 0,
        created_at=_parse_timestamp(row["created_at"], "created_at", key),
        updated_at=_parse_timestamp(row["updated_at"], "updated_at", key),
        last_seen_api_at=_parse_timestamp(row["last_seen_api_at"], "last_seen_api_at", key),
        steam_id=row["steam_id"] or None,
        info_fetched_at=_parse_timestamp(row["info_fetched_at"], "info_fetched_at", key),
        current_server_name=row["current_server_name"] or None,
    )


def _entity_to_row(position: int, entity: WatchedEntity) -> tuple:
    enabled = entity.notifications_enabled
    return (
        position,
        entity.key,
        entity.resolved_name,
        entity.original_name,
        entity.resolved_id,
        int(entity.online),
        entity.display_duration,
        json.dumps(entity.details, ensure_ascii=False),
        _format_timestamp(entity.session_start_at),
        _format_timestamp(entity.last_seen_at),
        _format_timestamp(entity.last_offline_at),
        entity.last_session_seconds,
        entity.total_session_seconds,
        json.dumps(entity.join_hour_counts),
        json.dumps(entity.leave_hour_counts),
        None if enabled is None else int(enabled),
        entity.group,
        entity.sort_order,
        _format_timestamp(entity.created_at),
        _format_timestamp(entity.updated_at),
        _format_timestamp(entity.last_seen_api_at),
        entity.steam_id,
        _format_timestamp(entity.info_fetched_at),
        entity.current_server_name,
    )
