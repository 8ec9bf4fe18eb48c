"""PlayerWatch package initialization."""

from .api import BattleMetricsClient
from .db import Database
from .details import format_duration, render
from .gate import GroupNotificationGate
from .models import (
    CycleSummary,
    EntityState,
    ExtendedInfo,
    PlayerAttributes,
    ScanResult,
    Snapshot,
    WatchedEntity,
)
from .runner import PlayerWatchRunner
from .scanner import scan
from .tracker import reconcile, refresh_extended_info

__all__ = [
    "BattleMetricsClient",
    "CycleSummary",
    "Database",
    "EntityState",
    "ExtendedInfo",
    "GroupNotificationGate",
    "PlayerAttributes",
    "PlayerWatchRunner",
    "ScanResult",
    "Snapshot",
    "WatchedEntity",
    "format_duration",
    "reconcile",
    "refresh_extended_info",
    "render",
    "scan",
]
