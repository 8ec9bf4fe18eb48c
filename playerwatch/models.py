"""Core data models for PlayerWatch."""

from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Tuple

HOURS_PER_DAY = 24

SESSION_TIME_KEYS = (
    "sessionTime",
    "onlineTime",
    "timePlayed",
    "timePlayedSeconds",
    "secondsPlayed",
    "playTime",
    "playtime",
)
STEAM_KEYS = {"steamid", "steamid64", "steam64", "steam"}
PREFERRED_DETAIL_KEYS = (
    "steamID",
    "steamId",
    "steamid",
    "steam64",
    "playerId",
    "country",
    "region",
    "score",
    "rank",
    "kills",
    "deaths",
    "kdr",
    "level",
)
EXCLUDED_DETAIL_KEYS = {
    "name",
    "online",
    "status",
    "lastseen",
    "firstseen",
    "createdat",
    "updatedat",
} | {key.lower() for key in SESSION_TIME_KEYS}


def empty_hour_counts() -> List[int]:
    return [0] * HOURS_PER_DAY


@dataclass
class WatchedEntity:
    """A player handle tracked by the monitor."""

    key: str
    resolved_name: str = ""
    original_name: Optional[str] = None
    resolved_id: Optional[str] = None
    online: bool = False
    display_duration: str = ""
    details: List[str] = field(default_factory=list)
    session_start_at: Optional[dt.datetime] = None
    last_seen_at: Optional[dt.datetime] = None
    last_offline_at: Optional[dt.datetime] = None
    last_session_seconds: Optional[int] = None
    total_session_seconds: int = 0
    join_hour_counts: List[int] = field(default_factory=empty_hour_counts)
    leave_hour_counts: List[int] = field(default_factory=empty_hour_counts)
    notifications_enabled: Optional[bool] = None
    group: str = ""
    sort_order: int = 0
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None
    last_seen_api_at: Optional[dt.datetime] = None
    steam_id: Optional[str] = None
    info_fetched_at: Optional[dt.datetime] = None
    current_server_name: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.resolved_name:
            self.resolved_name = self.key

    @property
    def display_name(self) -> str:
        return self.resolved_name.strip() or self.key

    @property
    def notifications_active(self) -> bool:
        """Unset counts as enabled."""
        return self.notifications_enabled is not False

    def state(self) -> "EntityState":
        return EntityState(
            online=self.online,
            resolved_name=self.resolved_name,
            resolved_id=self.resolved_id,
            display_duration=self.display_duration,
            details=tuple(self.details),
            current_server_name=self.current_server_name,
            created_at=self.created_at,
            updated_at=self.updated_at,
            last_seen_api_at=self.last_seen_api_at,
            steam_id=self.steam_id,
        )


@dataclass(frozen=True)
class EntityState:
    """Comparable view of the observable fields of a WatchedEntity."""

    online: bool
    resolved_name: str
    resolved_id: Optional[str]
    display_duration: str
    details: Tuple[str, ...]
    current_server_name: Optional[str]
    created_at: Optional[dt.datetime]
    updated_at: Optional[dt.datetime]
    last_seen_api_at: Optional[dt.datetime]
    steam_id: Optional[str]


class PlayerAttributes:
    """Raw attributes of one online player as reported by the provider."""

    def __init__(self, raw: Mapping[str, Any], player_id: Optional[str] = None):
        self.raw = dict(raw)
        self.player_id = player_id
        name = self.raw.get("name")
        self.name = str(name).strip() if name is not None and str(name).strip() else None

    def __repr__(self) -> str:
        return f"PlayerAttributes(player_id={self.player_id!r}, name={self.name!r})"

    def best_seconds(self) -> Optional[int]:
        for key in SESSION_TIME_KEYS:
            value = self.raw.get(key)
            if value is None:
                continue
            seconds = _normalize_seconds(value)
            if seconds is not None and seconds > 0:
                return seconds
        return None

    def extract_steam_id(self) -> Optional[str]:
        return extract_steam_id(self.raw)

    def build_details(self) -> List[str]:
        details: List[str] = []
        used = set()
        for key in PREFERRED_DETAIL_KEYS:
            if key not in self.raw:
                continue
            formatted = _format_value(self.raw[key])
            if formatted is None:
                continue
            details.append(f"{_format_label(key)}: {formatted}")
            used.add(key.lower())

        remaining = sorted(
            (
                key
                for key in self.raw
                if key.lower() not in EXCLUDED_DETAIL_KEYS and key.lower() not in used
            ),
            key=str.lower,
        )
        for key in remaining:
            formatted = _format_value(self.raw[key])
            if formatted is None:
                continue
            details.append(f"{_format_label(key)}: {formatted}")
        return details


@dataclass(frozen=True)
class ExtendedInfo:
    """Per-player metadata fetched from the player details endpoint."""

    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None
    last_seen: Optional[dt.datetime] = None
    steam_id: Optional[str] = None


@dataclass(frozen=True)
class Snapshot:
    """One presence fetch result."""

    valid: bool
    server_name: Optional[str] = None
    players: Mapping[str, PlayerAttributes] = field(default_factory=dict)
    session_starts: Mapping[str, dt.datetime] = field(default_factory=dict)

    @classmethod
    def invalid(cls) -> "Snapshot":
        return cls(valid=False)

    def lookup(self, entity: WatchedEntity) -> Tuple[Optional[PlayerAttributes], Optional[str]]:
        """Return the matching attributes and the provider id they were found under."""
        if not self.valid:
            return None, None
        if entity.resolved_id and entity.resolved_id in self.players:
            return self.players[entity.resolved_id], entity.resolved_id
        found = self.players.get(entity.key.strip().lower())
        if found is None:
            return None, None
        return found, found.player_id

    def session_start_for(self, player_id: Optional[str]) -> Optional[dt.datetime]:
        if not player_id:
            return None
        return self.session_starts.get(player_id)


@dataclass
class ScanResult:
    """Outcome of one reconciliation pass."""

    changed: bool
    transitions: List[Tuple[WatchedEntity, bool]]
    snapshot_valid: bool = True
    # Metadata refresh stamps moved; not part of the observable state.
    refreshed: bool = False


@dataclass
class CycleSummary:
    """Aggregated result returned by a monitoring cycle."""

    executed_at: str
    snapshot_valid: bool
    changed: bool
    transitions: List[Tuple[WatchedEntity, bool]]
    group_alerts: List[str]
    entities: Tuple[WatchedEntity, ...] = ()


def extract_steam_id(raw: Mapping[str, Any]) -> Optional[str]:
    for key, value in raw.items():
        if key.lower() in STEAM_KEYS and value is not None:
            return _format_identifier(value)

    identifiers = raw.get("identifiers")
    if isinstance(identifiers, list):
        for entry in identifiers:
            if isinstance(entry, str) and entry.lower().startswith("steam"):
                return _format_identifier(entry)
            if not isinstance(entry, dict):
                continue
            kind = str(entry.get("type") or "").lower()
            identifier = entry.get("identifier", entry.get("id"))
            if "steam" in kind and identifier is not None:
                return _format_identifier(identifier)
    return None


def _format_identifier(value: Any) -> Optional[str]:
    text = str(value).strip()
    if not text:
        return None
    if ":" in text and text.lower().startswith("steam"):
        text = text.split(":", 1)[1].strip()
    return text or None


def _normalize_seconds(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = int(value)
    elif isinstance(value, str):
        try:
            number = int(value.strip())
        except ValueError:
            return None
    else:
        return None
    # Epoch-scale values are milliseconds.
    if number > 1_000_000_000:
        return number // 1000
    return number


def _format_label(key: str) -> str:
    spaced = re.sub(r"([a-z])([A-Z])", r"\1 \2", key)
    return spaced[:1].upper() + spaced[1:]


def _format_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        text = "yes" if value else "no"
    elif isinstance(value, dict):
        text = ", ".join(f"{key}:{item}" for key, item in value.items())
    elif isinstance(value, list):
        text = ", ".join(str(item) for item in value)
    else:
        text = str(value)
    return text if text.strip() else None
