"""Human-readable status details for watched players."""

from __future__ import annotations

import datetime as dt
from typing import Iterable, List, Optional, Sequence

from .models import PlayerAttributes, WatchedEntity

UNKNOWN_DURATION = "??"
NO_DATA = "no data"


def format_duration(seconds: float) -> str:
    """Render a duration as ``Nd Mh``, ``Nh Mm`` or ``Nm``."""
    minutes = max(int(seconds), 0) // 60
    hours = minutes // 60
    days = hours // 24
    if days > 0:
        return f"{days}d {hours % 24}h"
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    return f"{minutes}m"


def format_relative(then: dt.datetime, now: dt.datetime) -> str:
    elapsed = max(int((now - then).total_seconds()), 0)
    minutes = elapsed // 60
    hours = minutes // 60
    if elapsed < 60:
        return "moments ago"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


def format_clock(moment: dt.datetime) -> str:
    return moment.astimezone().strftime("%H:%M")


def format_last_login(moment: Optional[dt.datetime], now: dt.datetime) -> str:
    if moment is None:
        return "Last login: none"
    days = (now.astimezone().date() - moment.astimezone().date()).days
    if days <= 0:
        bucket = "today"
    elif days == 1:
        bucket = "yesterday"
    else:
        bucket = f"{days} days ago"
    return f"Last login: {bucket} {format_clock(moment)}"


def typical_hour(counts: Sequence[int]) -> Optional[int]:
    """Return the first hour holding the highest positive count."""
    if not counts:
        return None
    peak = max(counts)
    if peak <= 0:
        return None
    return list(counts).index(peak)


def merge_details(entries: Iterable[str]) -> List[str]:
    seen = set()
    merged: List[str] = []
    for entry in entries:
        normalized = entry.strip().lower()
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)
        merged.append(entry)
    return merged


def session_seconds(entity: WatchedEntity, now: dt.datetime) -> Optional[int]:
    if entity.session_start_at is None:
        return None
    return max(int((now - entity.session_start_at).total_seconds()), 0)


def render(
    entity: WatchedEntity,
    now: dt.datetime,
    attributes: Optional[PlayerAttributes] = None,
) -> List[str]:
    """Build the ordered, deduplicated detail lines for ``entity``."""
    lines: List[str] = []
    current = session_seconds(entity, now) if entity.online else None

    if entity.online:
        if entity.current_server_name:
            lines.append(f"Server: {entity.current_server_name}")
        if current is not None:
            lines.append(f"In session: {format_duration(current)}")
    else:
        if entity.last_session_seconds is not None:
            lines.append(f"Last session: {format_duration(entity.last_session_seconds)}")
        last_seen = entity.last_offline_at or entity.last_seen_at
        if last_seen is not None:
            lines.append(f"Last seen: {format_relative(last_seen, now)}")

    lines.append(f"Player ID: {entity.resolved_id or NO_DATA}")

    freshest = max(
        (moment for moment in (entity.updated_at, entity.last_seen_api_at) if moment),
        default=None,
    )
    if freshest is not None:
        lines.append(f"Last activity: {format_relative(freshest, now)}")
    else:
        lines.append(f"Last activity: {NO_DATA}")

    last_login = entity.session_start_at if entity.online else None
    lines.append(format_last_login(last_login or entity.last_seen_at, now))

    total = entity.total_session_seconds + (current or 0)
    if total > 0:
        lines.append(f"Total tracked: {format_duration(total)}")

    join_hour = typical_hour(entity.join_hour_counts)
    if join_hour is not None:
        lines.append(f"Typically joins around {join_hour:02d}:00")
    leave_hour = typical_hour(entity.leave_hour_counts)
    if leave_hour is not None:
        lines.append(f"Typically leaves around {leave_hour:02d}:00")

    if entity.online and attributes is not None:
        lines.extend(attributes.build_details())

    return merge_details(lines)
