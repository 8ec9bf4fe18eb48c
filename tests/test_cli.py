from types import SimpleNamespace

from openpyxl import load_workbook

import monitor_players
from playerwatch.db import Database
from playerwatch.models import Snapshot


def test_cli_edits_lists_and_exports(tmp_path, monkeypatch, capsys):
    db_path = tmp_path / "cli.db"
    monkeypatch.setenv("DATABASE_URL", str(db_path))

    assert monitor_players.main(["--add", "Alice", "--group", "Raid Team"]) == 0
    assert monitor_players.main(["--add", "1234"]) == 0
    assert monitor_players.main(["--toggle-group", "raid team"]) == 0

    database = Database(path=db_path)
    assert [entity.key for entity in database.load_entities()] == ["Alice", "1234"]
    assert database.load_group_settings() == {"raid team": False}

    export_path = tmp_path / "players.xlsx"
    assert monitor_players.main(["--list", "--export", str(export_path)]) == 0
    output = capsys.readouterr().out
    assert "[ungrouped]" in output
    assert "[Raid Team]" in output
    assert "Alice - offline" in output
    assert load_workbook(export_path).active.max_row == 3

    assert monitor_players.main(["--delete-group", "RAID TEAM"]) == 0
    assert [entity.key for entity in database.load_entities()] == ["1234"]
    assert database.load_group_settings() == {}


def test_cli_without_action_prints_help(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", str(tmp_path / "cli.db"))
    assert monitor_players.main([]) == 1


def test_one_shot_run_mentions_skipped_group_alerts(tmp_path, monkeypatch, caplog):
    monkeypatch.setenv("DATABASE_URL", str(tmp_path / "cli.db"))
    monkeypatch.delenv("SLACK_WEBHOOK", raising=False)
    monkeypatch.delenv("DISCORD_WEBHOOK_URL", raising=False)
    client = SimpleNamespace(
        fetch_snapshot=lambda keys: Snapshot(valid=True, players={}),
        fetch_extended_info=lambda player_id: None,
    )
    monkeypatch.setattr(monitor_players, "build_client_from_env", lambda server_id: client)

    assert "--loop" in monitor_players.build_parser().format_help()
    caplog.set_level("INFO")
    assert monitor_players.main(["--add", "Alice", "--group", "Raid Team", "--run"]) == 0
    assert "group offline alerts are skipped" in caplog.text
