"""BattleMetrics-backed presence snapshot provider."""

from __future__ import annotations

import datetime as dt
import logging
import os
from typing import Any, Callable, Dict, Iterable, Optional, Set
from urllib.parse import urljoin

import requests

from .models import ExtendedInfo, PlayerAttributes, Snapshot, extract_steam_id

logger = logging.getLogger(__name__)

API_BASE = "https://api.battlemetrics.com/"
DEFAULT_TIMEOUT = 10


def parse_timestamp(value: Any) -> Optional[dt.datetime]:
    """Parse an ISO-8601 timestamp into an aware datetime (UTC when unqualified)."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = dt.datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


class BattleMetricsClient:
    """Lightweight wrapper around the BattleMetrics REST API."""

    def __init__(
        self,
        server_id: str,
        token: str | None = None,
        session: requests.Session | None = None,
        timeout: int = DEFAULT_TIMEOUT,
        resolve_sessions: bool = True,
        clock: Callable[[], dt.datetime] | None = None,
    ):
        self.server_id = server_id
        self.timeout = timeout
        self.resolve_sessions = resolve_sessions
        self.clock = clock or (lambda: dt.datetime.now(dt.timezone.utc))
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": "PlayerWatch/1.0",
            "Accept": "application/json",
        })
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        self._known_starts: Dict[str, Optional[dt.datetime]] = {}

    def get(self, endpoint: str, params: Dict[str, Any] | None = None) -> dict:
        response = self.session.get(
            urljoin(API_BASE, endpoint),
            params=params,
            timeout=self.timeout,
        )
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError(f"Unexpected response payload: {payload!r}")
        return payload

    def fetch_snapshot(self, watched_keys: Set[str]) -> Snapshot:
        """Return the current presence snapshot restricted to ``watched_keys``."""
        try:
            payload = self.get(f"servers/{self.server_id}", params={"include": "player"})
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Snapshot fetch failed for server %s: %s", self.server_id, exc)
            return Snapshot.invalid()

        server_name = _server_name(payload)
        now = self.clock()
        players: Dict[str, PlayerAttributes] = {}
        session_starts: Dict[str, dt.datetime] = {}
        online_ids: Set[str] = set()

        for item in payload.get("included") or []:
            if not isinstance(item, dict) or item.get("type") != "player":
                continue
            player_id = item.get("id")
            raw = item.get("attributes")
            if not player_id or not isinstance(raw, dict):
                continue
            player_id = str(player_id)
            attributes = PlayerAttributes(raw, player_id=player_id)
            name_key = attributes.name.lower() if attributes.name else None
            if player_id not in watched_keys and name_key not in watched_keys:
                continue

            players[player_id] = attributes
            if name_key:
                players[name_key] = attributes
            online_ids.add(player_id)

            start = self._session_start(player_id, attributes, now)
            if start is not None:
                session_starts[player_id] = start

        # Forget players that left so a rejoin resolves a fresh start.
        for player_id in set(self._known_starts) - online_ids:
            del self._known_starts[player_id]

        logger.debug(
            "Snapshot for %s: %d watched player(s) online", server_name or self.server_id, len(online_ids)
        )
        return Snapshot(
            valid=True,
            server_name=server_name,
            players=players,
            session_starts=session_starts,
        )

    def _session_start(
        self,
        player_id: str,
        attributes: PlayerAttributes,
        now: dt.datetime,
    ) -> Optional[dt.datetime]:
        if player_id in self._known_starts:
            return None

        start = None
        seconds = attributes.best_seconds()
        if seconds:
            start = now - dt.timedelta(seconds=seconds)
        elif self.resolve_sessions:
            start = self.fetch_session_start(player_id)
        self._known_starts[player_id] = start
        return start

    def fetch_session_start(self, player_id: str) -> Optional[dt.datetime]:
        """Return the start of the player's open session on this server, if any."""
        try:
            payload = self.get(
                f"players/{player_id}/sessions",
                params={
                    "filter[servers]": self.server_id,
                    "sort": "-start",
                    "page[size]": 1,
                },
            )
        except (requests.RequestException, ValueError) as exc:
            logger.debug("Session lookup failed for %s: %s", player_id, exc)
            return None

        for entry in payload.get("data") or []:
            attributes = entry.get("attributes") if isinstance(entry, dict) else None
            if not isinstance(attributes, dict) or attributes.get("stop"):
                continue
            return parse_timestamp(attributes.get("start"))
        return None

    def fetch_extended_info(self, resolved_id: str) -> Optional[ExtendedInfo]:
        try:
            payload = self.get(f"players/{resolved_id}", params={"include": "identifier"})
        except (requests.RequestException, ValueError) as exc:
            logger.debug("Player info lookup failed for %s: %s", resolved_id, exc)
            return None

        data = payload.get("data")
        raw = data.get("attributes") if isinstance(data, dict) else None
        if not isinstance(raw, dict):
            return None
        return ExtendedInfo(
            created_at=parse_timestamp(raw.get("createdAt")),
            updated_at=parse_timestamp(raw.get("updatedAt")),
            last_seen=parse_timestamp(raw.get("lastSeen")),
            steam_id=extract_steam_id(raw) or _steam_from_included(payload.get("included")),
        )


def _server_name(payload: dict) -> Optional[str]:
    data = payload.get("data")
    attributes = data.get("attributes") if isinstance(data, dict) else None
    if not isinstance(attributes, dict):
        return None
    name = str(attributes.get("name") or "").strip()
    return name or None


def _steam_from_included(included: Iterable[Any] | None) -> Optional[str]:
    for item in included or []:
        if not isinstance(item, dict) or item.get("type") != "identifier":
            continue
        attributes = item.get("attributes") or {}
        if "steam" in str(attributes.get("type") or "").lower():
            return extract_steam_id({"identifiers": [attributes]})
    return None


def build_client_from_env(server_id: str | None = None) -> BattleMetricsClient:
    """Construct a client from BATTLEMETRICS_* environment variables."""
    server_id = (server_id or os.getenv("BATTLEMETRICS_SERVER_ID") or "").strip()
    if not server_id:
        raise ValueError("BATTLEMETRICS_SERVER_ID must not be empty")
    token = (os.getenv("BATTLEMETRICS_TOKEN") or "").strip() or None
    return BattleMetricsClient(server_id=server_id, token=token)


__all__ = [
    "BattleMetricsClient",
    "build_client_from_env",
    "parse_timestamp",
]
