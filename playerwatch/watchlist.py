"""Watch-list editing helpers: players, groups and ordering."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, MutableMapping, Optional

from .models import WatchedEntity

logger = logging.getLogger(__name__)

NO_GROUP = ""


def normalize_group_name(name: Optional[str]) -> str:
    return (name or "").strip()


def group_key(name: Optional[str]) -> str:
    return normalize_group_name(name).lower()


def group_members(entities: Iterable[WatchedEntity]) -> Dict[str, List[WatchedEntity]]:
    grouped: Dict[str, List[WatchedEntity]] = defaultdict(list)
    for entity in entities:
        grouped[group_key(entity.group)].append(entity)
    return dict(grouped)


def resolve_group_name(entities: Iterable[WatchedEntity], name: str) -> str:
    """Reuse the spelling of an existing group that matches ``name`` case-insensitively."""
    normalized = normalize_group_name(name)
    if not normalized:
        return NO_GROUP
    key = group_key(normalized)
    for entity in entities:
        if group_key(entity.group) == key:
            return normalize_group_name(entity.group)
    return normalized


def find_player(entities: Iterable[WatchedEntity], key: str) -> Optional[WatchedEntity]:
    wanted = key.strip().lower()
    for entity in entities:
        if entity.key.strip().lower() == wanted:
            return entity
    return None


def next_sort_order(entities: Iterable[WatchedEntity], group: str) -> int:
    key = group_key(group)
    orders = [entity.sort_order for entity in entities if group_key(entity.group) == key]
    return max(orders, default=-1) + 1


def add_player(entities: List[WatchedEntity], key: str, group: str = NO_GROUP) -> Optional[WatchedEntity]:
    trimmed = key.strip()
    if not trimmed:
        return None
    if find_player(entities, trimmed) is not None:
        logger.info("Player %s is already watched", trimmed)
        return None

    resolved_group = resolve_group_name(entities, group)
    entity = WatchedEntity(
        key=trimmed,
        original_name=trimmed,
        group=resolved_group,
        sort_order=next_sort_order(entities, resolved_group),
    )
    entities.append(entity)
    logger.info("Added %s to group %r", trimmed, resolved_group)
    return entity


def remove_player(entities: List[WatchedEntity], key: str) -> bool:
    entity = find_player(entities, key)
    if entity is None:
        return False
    entities.remove(entity)
    logger.info("Removed %s", entity.key)
    return True


def move_player_to_group(entities: List[WatchedEntity], entity: WatchedEntity, group: str) -> bool:
    resolved_group = resolve_group_name(entities, group)
    if entity.group == resolved_group:
        return False
    entity.group = resolved_group
    entity.sort_order = next_sort_order(
        [other for other in entities if other is not entity], resolved_group
    )
    return True


def rename_group(
    entities: List[WatchedEntity],
    settings: MutableMapping[str, bool],
    old: str,
    new: str,
) -> bool:
    old_name = normalize_group_name(old)
    new_name = normalize_group_name(new)
    old_key = group_key(old_name)
    new_key = group_key(new_name)
    if old_name == new_name:
        return False

    if old_key != new_key:
        existing = settings.pop(old_key, None)
        if existing is not None and new_key and new_key not in settings:
            settings[new_key] = existing

    keys = {old_key, new_key}
    changed = False
    for entity in entities:
        if group_key(entity.group) in keys and entity.group != new_name:
            entity.group = new_name
            changed = True
    return changed


def delete_group(
    entities: List[WatchedEntity],
    settings: MutableMapping[str, bool],
    group: str,
) -> int:
    key = group_key(group)
    if not key:
        return 0
    doomed = [entity for entity in entities if group_key(entity.group) == key]
    for entity in doomed:
        entities.remove(entity)
    settings.pop(key, None)
    logger.info("Deleted group %r with %d player(s)", group, len(doomed))
    return len(doomed)


def toggle_group_notifications(settings: MutableMapping[str, bool], group: str) -> bool:
    key = group_key(group)
    settings[key] = not settings.get(key, True)
    return settings[key]


def toggle_notifications(entity: WatchedEntity) -> bool:
    entity.notifications_enabled = not entity.notifications_active
    return entity.notifications_enabled


def sync_group_settings(entities: Iterable[WatchedEntity], settings: MutableMapping[str, bool]) -> bool:
    """Give every live group a setting and drop the settings of vanished groups."""
    live = {group_key(entity.group) for entity in entities} - {NO_GROUP}
    changed = False
    for key in live:
        if key not in settings:
            settings[key] = True
            changed = True
    for key in set(settings) - live:
        del settings[key]
        changed = True
    return changed


def _name_key(entity: WatchedEntity) -> str:
    return entity.display_name.lower()


def ensure_sort_order(entities: Iterable[WatchedEntity]) -> bool:
    changed = False
    for members in group_members(entities).values():
        orders = [entity.sort_order for entity in members]
        if len(set(orders)) == len(orders):
            continue
        for index, entity in enumerate(sorted(members, key=_name_key)):
            if entity.sort_order != index:
                entity.sort_order = index
                changed = True
    return changed


def sorted_for_display(entities: Iterable[WatchedEntity]) -> List[WatchedEntity]:
    grouped = group_members(entities)
    ordered: List[WatchedEntity] = []
    ungrouped = grouped.pop(NO_GROUP, [])
    ordered.extend(sorted(ungrouped, key=lambda item: (item.sort_order, _name_key(item))))
    for key in sorted(grouped, key=lambda k: normalize_group_name(grouped[k][0].group).lower()):
        ordered.extend(sorted(grouped[key], key=lambda item: (item.sort_order, _name_key(item))))
    return ordered
