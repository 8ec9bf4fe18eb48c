import datetime as dt

from openpyxl import load_workbook

from playerwatch.db import Database, resolve_sqlite_path
from playerwatch.models import WatchedEntity

NOW = dt.datetime(2025, 3, 14, 18, 30, tzinfo=dt.timezone.utc)


def make_db(tmp_path, name="playerwatch.db") -> Database:
    db = Database(path=tmp_path / name)
    db.initialize()
    return db


def test_resolve_sqlite_path_handles_relative(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = resolve_sqlite_path("sqlite:///./relative.db")
    assert path == tmp_path / "relative.db"


def test_database_initializes_schema(tmp_path):
    db = make_db(tmp_path)
    assert db.path.exists()
    assert db.path.stat().st_size > 0
    assert db.load_entities() == []


def test_save_and_load_preserves_entities(tmp_path):
    db = make_db(tmp_path)
    joins = [0] * 24
    joins[18] = 4
    entity = WatchedEntity(
        key="Alice",
        resolved_name="Alice the Great",
        original_name="Alice",
        resolved_id="42",
        online=True,
        display_duration="10m",
        details=["Server: EU Main", "Player ID: 42"],
        session_start_at=NOW - dt.timedelta(minutes=10),
        last_seen_at=NOW,
        total_session_seconds=7200,
        last_session_seconds=3600,
        join_hour_counts=joins,
        notifications_enabled=False,
        group="Raid Team",
        sort_order=3,
        steam_id="76561198000000000",
        info_fetched_at=NOW,
        current_server_name="EU Main",
    )
    other = WatchedEntity(key="zoë", group="")

    db.save_entities([entity, other])
    loaded = db.load_entities()

    assert loaded == [entity, WatchedEntity(key="zoë", original_name="zoë")]


def test_save_replaces_whole_list(tmp_path):
    db = make_db(tmp_path)
    db.save_entities([WatchedEntity(key="a"), WatchedEntity(key="b")])
    db.save_entities([WatchedEntity(key="c")])
    assert [entity.key for entity in db.load_entities()] == ["c"]


def test_load_repairs_malformed_rows(tmp_path, caplog):
    db = make_db(tmp_path)
    with db.connect() as conn:
        conn.execute(
            """
            INSERT INTO players (
                position, player_key, resolved_name, original_name, details,
                join_hour_counts, leave_hour_counts, notifications_enabled,
                session_start_at, total_session_seconds
            )
            VALUES (0, 'broken', NULL, '', 'not json', '[1, 2, 3]', NULL, NULL, 'yesterday', 5)
            """
        )
        conn.commit()

    with caplog.at_level("WARNING"):
        loaded = db.load_entities()

    assert len(loaded) == 1
    entity = loaded[0]
    assert entity.resolved_name == "broken"
    assert entity.original_name == "broken"
    assert entity.details == []
    assert entity.join_hour_counts == [0] * 24
    assert entity.leave_hour_counts == [0] * 24
    assert entity.notifications_enabled is None
    assert entity.notifications_active is True
    assert entity.session_start_at is None
    assert entity.total_session_seconds == 5
    assert "join_hour_counts" in caplog.text


def test_negative_histogram_values_are_clamped(tmp_path):
    db = make_db(tmp_path)
    counts = [-1] + [1] * 23
    with db.connect() as conn:
        conn.execute(
            "INSERT INTO players (position, player_key, join_hour_counts) VALUES (0, 'neg', ?)",
            (str(counts),),
        )
        conn.commit()
    assert db.load_entities()[0].join_hour_counts == [0] + [1] * 23


def test_group_settings_round_trip(tmp_path):
    db = make_db(tmp_path)
    db.save_group_settings({"alpha": True, "beta": False})
    assert db.load_group_settings() == {"alpha": True, "beta": False}
    db.save_group_settings({"beta": True})
    assert db.load_group_settings() == {"beta": True}


def test_runs_are_recorded(tmp_path):
    db = make_db(tmp_path)
    db.add_run("2025-01-01T00:00:00", "success", "players(+1 / -0)")
    assert list(db.recent_runs()) == [("2025-01-01T00:00:00", "success", "players(+1 / -0)")]


def test_export_entities_to_xlsx(tmp_path):
    db = make_db(tmp_path)
    db.save_entities([
        WatchedEntity(key="Alice", group="Raid Team", resolved_id="42", online=True, total_session_seconds=60),
    ])

    export_path = tmp_path / "out" / "players.xlsx"
    db.export_entities_to_xlsx(export_path)

    assert export_path.exists()
    worksheet = load_workbook(export_path).active
    headers = [cell.value for cell in next(worksheet.iter_rows(min_row=1, max_row=1))]
    assert headers[:3] == ["group", "key", "resolved_name"]
    row = [cell.value for cell in next(worksheet.iter_rows(min_row=2, max_row=2))]
    assert row[:5] == ["Raid Team", "Alice", "Alice", "42", "online"]
    assert row[9] == 60
