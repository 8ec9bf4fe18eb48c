import datetime as dt

import pytest
import requests

from playerwatch.api import BattleMetricsClient, build_client_from_env, parse_timestamp
from playerwatch.models import PlayerAttributes

NOW = dt.datetime(2025, 3, 14, 18, 30, tzinfo=dt.timezone.utc)

SERVER_PAYLOAD = {
    "data": {"id": "14154299", "type": "server", "attributes": {"name": "Rust EU Main"}},
    "included": [
        {"id": "1", "type": "player", "attributes": {"name": "Alice", "timePlayed": 600}},
        {"id": "2", "type": "player", "attributes": {"name": "Bob"}},
        {"id": "3", "type": "player", "attributes": {"name": "Stranger"}},
        {"id": "9", "type": "identifier", "attributes": {"name": "ignored"}},
    ],
}


class DummyResponse:
    def __init__(self, payload, status_code: int = 200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


class DummySession:
    def __init__(self, responses):
        self.responses = responses
        self.headers = {}
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params))
        for suffix, response in self.responses.items():
            if url.endswith(suffix):
                if isinstance(response, Exception):
                    raise response
                return response
        return DummyResponse({}, status_code=404)


def make_client(responses, **kwargs) -> BattleMetricsClient:
    return BattleMetricsClient(
        server_id="14154299",
        token="secret",
        session=DummySession(responses),
        clock=lambda: NOW,
        **kwargs,
    )


def test_parse_timestamp_variants():
    assert parse_timestamp("2025-03-14T18:00:00.000Z") == NOW - dt.timedelta(minutes=30)
    assert parse_timestamp("2025-03-14T18:30:00") == NOW
    assert parse_timestamp("garbage") is None
    assert parse_timestamp(None) is None


def test_client_sets_authorization_header():
    client = make_client({})
    assert client.session.headers["Authorization"] == "Bearer secret"


def test_fetch_snapshot_filters_to_watched_keys():
    client = make_client(
        {
            "servers/14154299": DummyResponse(SERVER_PAYLOAD),
            "players/2/sessions": DummyResponse(
                {"data": [{"attributes": {"start": "2025-03-14T18:00:00Z", "stop": None}}]}
            ),
        }
    )

    snapshot = client.fetch_snapshot({"alice", "2"})

    assert snapshot.valid is True
    assert snapshot.server_name == "Rust EU Main"
    assert set(snapshot.players) == {"1", "alice", "2", "bob"}
    assert snapshot.session_starts == {
        "1": NOW - dt.timedelta(seconds=600),
        "2": NOW - dt.timedelta(minutes=30),
    }


def test_session_starts_are_only_reported_for_new_arrivals():
    client = make_client({"servers/14154299": DummyResponse(SERVER_PAYLOAD)}, resolve_sessions=False)

    first = client.fetch_snapshot({"alice"})
    second = client.fetch_snapshot({"alice"})

    assert "1" in first.session_starts
    assert second.session_starts == {}


def test_fetch_snapshot_failure_is_invalid(caplog):
    client = make_client({"servers/14154299": requests.ConnectionError("down")})
    with caplog.at_level("WARNING"):
        snapshot = client.fetch_snapshot({"alice"})
    assert snapshot.valid is False
    assert snapshot.players == {}
    assert "Snapshot fetch failed" in caplog.text


def test_fetch_snapshot_http_error_is_invalid():
    client = make_client({"servers/14154299": DummyResponse({}, status_code=401)})
    assert client.fetch_snapshot({"alice"}).valid is False


def test_fetch_extended_info_parses_attributes():
    payload = {
        "data": {
            "id": "1",
            "attributes": {
                "createdAt": "2024-01-01T00:00:00Z",
                "updatedAt": "2025-03-14T18:00:00Z",
                "lastSeen": "2025-03-14T18:30:00Z",
            },
        },
        "included": [
            {"type": "identifier", "attributes": {"type": "steamID", "identifier": "76561198000000000"}},
        ],
    }
    client = make_client({"players/1": DummyResponse(payload)})

    info = client.fetch_extended_info("1")

    assert info.created_at == dt.datetime(2024, 1, 1, tzinfo=dt.timezone.utc)
    assert info.last_seen == NOW
    assert info.steam_id == "76561198000000000"


def test_fetch_extended_info_failure_returns_none():
    client = make_client({"players/1": DummyResponse({}, status_code=500)})
    assert client.fetch_extended_info("1") is None


def test_player_attributes_helpers():
    attributes = PlayerAttributes(
        {
            "name": "Alice",
            "sessionTime": 1_700_000_000_000,
            "steamId": "steam:7656",
            "kills": 4,
            "favouriteWeapon": "bow",
            "online": True,
        },
        player_id="1",
    )
    assert attributes.best_seconds() == 1_700_000_000
    assert attributes.extract_steam_id() == "7656"
    assert attributes.build_details() == [
        "Steam Id: steam:7656",
        "Kills: 4",
        "Favourite Weapon: bow",
    ]


def test_build_client_from_env(monkeypatch):
    monkeypatch.setenv("BATTLEMETRICS_SERVER_ID", "123")
    monkeypatch.delenv("BATTLEMETRICS_TOKEN", raising=False)
    client = build_client_from_env()
    assert client.server_id == "123"
    assert "Authorization" not in client.session.headers


def test_build_client_from_env_requires_server(monkeypatch):
    monkeypatch.delenv("BATTLEMETRICS_SERVER_ID", raising=False)
    with pytest.raises(ValueError, match="BATTLEMETRICS_SERVER_ID"):
        build_client_from_env()
