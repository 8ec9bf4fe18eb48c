"""Per-player session state machine."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Callable, List, Optional

from .details import UNKNOWN_DURATION, format_duration
from .models import HOURS_PER_DAY, ExtendedInfo, PlayerAttributes, WatchedEntity

logger = logging.getLogger(__name__)

DEFAULT_INFO_TTL = dt.timedelta(seconds=60)

ExtendedInfoFetcher = Callable[[str], Optional[ExtendedInfo]]


def local_hour(moment: dt.datetime) -> int:
    return moment.astimezone().hour


def increment_hour(counts: List[int], moment: dt.datetime) -> List[int]:
    """Return a repaired copy of ``counts`` with the slot for ``moment`` bumped."""
    updated = [max(int(value), 0) for value in counts[:HOURS_PER_DAY]]
    if len(updated) < HOURS_PER_DAY:
        updated.extend([0] * (HOURS_PER_DAY - len(updated)))
    updated[local_hour(moment)] += 1
    return updated


def reconcile(
    entity: WatchedEntity,
    match: Optional[PlayerAttributes],
    session_start_hint: Optional[dt.datetime],
    now: dt.datetime,
    server_name: Optional[str] = None,
) -> WatchedEntity:
    """Apply one snapshot observation to ``entity`` and return it."""
    if match is not None:
        _mark_online(entity, match, session_start_hint, now, server_name)
    else:
        _mark_offline(entity, now)
    return entity


def _mark_online(
    entity: WatchedEntity,
    match: PlayerAttributes,
    hint: Optional[dt.datetime],
    now: dt.datetime,
    server_name: Optional[str],
) -> None:
    was_online = entity.online
    entity.online = True
    if match.name:
        entity.resolved_name = match.name
    entity.current_server_name = server_name.strip() if server_name and server_name.strip() else None

    if not entity.resolved_id:
        key = entity.key.strip()
        entity.resolved_id = key if key.isdigit() else match.player_id

    if not was_online:
        entity.last_seen_at = now
        entity.join_hour_counts = increment_hour(entity.join_hour_counts, now)
        entity.session_start_at = hint or now
        logger.debug("%s joined (session start %s)", entity.key, entity.session_start_at)
    elif hint is not None:
        entity.session_start_at = hint
    elif entity.session_start_at is None:
        entity.session_start_at = now

    elapsed = (now - entity.session_start_at).total_seconds()
    entity.display_duration = format_duration(elapsed) if elapsed > 0 else UNKNOWN_DURATION


def _mark_offline(entity: WatchedEntity, now: dt.datetime) -> None:
    if entity.online:
        if entity.session_start_at is not None:
            seconds = max(int((now - entity.session_start_at).total_seconds()), 0)
            entity.last_session_seconds = seconds
            if seconds > 0:
                entity.total_session_seconds += seconds
        entity.session_start_at = None
        entity.last_offline_at = now
        entity.leave_hour_counts = increment_hour(entity.leave_hour_counts, now)
        logger.debug("%s left after %ss", entity.key, entity.last_session_seconds)
    entity.online = False
    entity.display_duration = ""
    entity.current_server_name = None


def refresh_extended_info(
    entity: WatchedEntity,
    fetch: Optional[ExtendedInfoFetcher],
    now: dt.datetime,
    ttl: dt.timedelta = DEFAULT_INFO_TTL,
) -> bool:
    """Refresh provider metadata at most once per ``ttl``; returns True when applied."""
    if fetch is None or not entity.resolved_id:
        return False
    if entity.info_fetched_at is not None and now - entity.info_fetched_at < ttl:
        return False

    try:
        info = fetch(entity.resolved_id)
    except Exception:  # noqa: BLE001
        logger.warning("Extended info lookup failed for %s", entity.resolved_id, exc_info=True)
        return False
    if info is None:
        logger.debug("No extended info for %s this cycle", entity.resolved_id)
        return False

    entity.created_at = info.created_at or entity.created_at
    entity.updated_at = info.updated_at or entity.updated_at
    entity.last_seen_api_at = info.last_seen or entity.last_seen_api_at
    entity.steam_id = info.steam_id or entity.steam_id
    entity.info_fetched_at = now
    return True
