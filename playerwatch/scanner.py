"""Single reconciliation pass over the watch list."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Callable, Iterable, List, Optional, Set, Tuple

from .details import render
from .models import ScanResult, Snapshot, WatchedEntity
from .tracker import DEFAULT_INFO_TTL, ExtendedInfoFetcher, reconcile, refresh_extended_info

logger = logging.getLogger(__name__)

SnapshotFetcher = Callable[[Set[str]], Snapshot]


def lookup_keys(entities: Iterable[WatchedEntity]) -> Set[str]:
    """Collect the case-folded keys and resolved ids the snapshot must cover."""
    keys: Set[str] = set()
    for entity in entities:
        normalized = entity.key.strip().lower()
        if normalized:
            keys.add(normalized)
        if entity.resolved_id:
            keys.add(entity.resolved_id)
    return keys


def scan(
    entities: List[WatchedEntity],
    fetch_snapshot: SnapshotFetcher,
    fetch_extended_info: Optional[ExtendedInfoFetcher] = None,
    now: Optional[dt.datetime] = None,
    info_ttl: dt.timedelta = DEFAULT_INFO_TTL,
) -> ScanResult:
    """Reconcile ``entities`` in place against a fresh snapshot."""
    snapshot = fetch_snapshot(lookup_keys(entities))
    if not snapshot.valid:
        logger.warning("Snapshot unavailable; skipping presence update for %d player(s)", len(entities))
        return ScanResult(changed=False, transitions=[], snapshot_valid=False)

    if now is None:
        now = dt.datetime.now(dt.timezone.utc)

    changed = False
    refreshed = False
    transitions: List[Tuple[WatchedEntity, bool]] = []
    for entity in entities:
        before = entity.state()

        match, player_id = snapshot.lookup(entity)
        reconcile(
            entity,
            match,
            snapshot.session_start_for(player_id or entity.resolved_id) if match else None,
            now,
            server_name=snapshot.server_name,
        )
        if refresh_extended_info(entity, fetch_extended_info, now, ttl=info_ttl):
            refreshed = True
        entity.details = render(entity, now, attributes=match)

        after = entity.state()
        if before != after:
            changed = True
        if before.online != after.online:
            transitions.append((entity, after.online))

    logger.debug(
        "Scan complete: %d player(s), %d transition(s), changed=%s",
        len(entities),
        len(transitions),
        changed,
    )
    return ScanResult(changed=changed, transitions=transitions, refreshed=refreshed)
