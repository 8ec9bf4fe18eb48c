"""Group-wide "everyone went offline" alert detection."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Set

from .models import WatchedEntity
from .watchlist import NO_GROUP, group_members, normalize_group_name

logger = logging.getLogger(__name__)

SIGNATURE_SEPARATOR = "|"


def membership_signature(members: Iterable[WatchedEntity]) -> str:
    """Order-independent fingerprint of a group's member identifiers."""
    identifiers = (
        ((entity.resolved_id or "").strip() or entity.key).strip().lower()
        for entity in members
    )
    return SIGNATURE_SEPARATOR.join(sorted(identifiers))


def display_names(entities: Iterable[WatchedEntity]) -> Dict[str, str]:
    return {
        key: normalize_group_name(members[0].group)
        for key, members in group_members(entities).items()
        if key != NO_GROUP
    }


@dataclass
class GroupNotificationGate:
    """Tracks per-group offline baselines between monitoring cycles."""

    offline_state: Dict[str, bool] = field(default_factory=dict)
    signatures: Dict[str, str] = field(default_factory=dict)

    def evaluate(
        self,
        entities: Iterable[WatchedEntity],
        group_settings: Mapping[str, bool],
    ) -> Set[str]:
        """Return the group keys whose "all offline" alert should fire now."""
        grouped = group_members(entities)
        grouped.pop(NO_GROUP, None)
        self._forget_missing(grouped)

        alerts: Set[str] = set()
        for key, members in grouped.items():
            signature = membership_signature(members)
            previous = self.signatures.get(key)
            self.signatures[key] = signature

            if not group_settings.get(key, True):
                self.offline_state[key] = False
                continue

            all_offline = all(not member.online for member in members)
            if previous is None or previous != signature:
                if previous is not None:
                    logger.debug("Membership of group %r changed; resetting baseline", key)
                self.offline_state[key] = all_offline
                continue

            if all_offline and not self.offline_state.get(key, False):
                logger.info("All players in group %r are offline", key)
                alerts.add(key)
            self.offline_state[key] = all_offline
        return alerts

    def _forget_missing(self, grouped: Mapping[str, List[WatchedEntity]]) -> None:
        for store in (self.offline_state, self.signatures):
            for key in [key for key in store if key not in grouped]:
                del store[key]
