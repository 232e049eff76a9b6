import json
import socket
from pathlib import Path

from typer.testing import CliRunner

from hunt_tracker.cli import app


runner = CliRunner()


def _free_port() -> int:
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def test_patterns_lists_catalogue_in_order():
    result = runner.invoke(app, ["patterns"])
    assert result.exit_code == 0
    rows = json.loads(result.output)
    assert [r["id"] for r in rows] == list(range(15))
    assert rows[0]["kind"] == "SelfCrit"


def test_patterns_yaml_output():
    result = runner.invoke(app, ["patterns", "--yaml"])
    assert result.exit_code == 0
    assert "GlobalHuntHOF" in result.output


def test_patterns_rejects_bad_file(tmp_path: Path):
    bad = tmp_path / "patterns.yaml"
    bad.write_text("patterns:\n  - kind: SelfHit\n    category: Combat\n    regex: '(unclosed'\n", encoding="utf-8")
    result = runner.invoke(app, ["patterns", "--file", str(bad)])
    assert result.exit_code == 1


def test_classify_line():
    result = runner.invoke(app, ["classify", "Critical hit - Additional damage! You inflicted 45.2 points of damage"])
    assert result.exit_code == 0
    out = json.loads(result.output)
    assert out == {"matched": True, "pattern_id": 0, "category": "Combat", "kind": "SelfCrit", "fields": ["45.2"]}

    result = runner.invoke(app, ["classify", "hello there"])
    assert json.loads(result.output) == {"matched": False}


def test_sessions_new_and_list(tmp_path: Path):
    result = runner.invoke(app, ["sessions", "new", "evening", "--dir", str(tmp_path)])
    assert result.exit_code == 0
    assert json.loads(result.output)["created"] == "evening_session"
    result = runner.invoke(app, ["sessions", "list", "--dir", str(tmp_path)])
    rows = json.loads(result.output)
    assert [r["name"] for r in rows] == ["evening_session"]
    assert rows[0]["elapsed"] == "00h 00m 00s 000ms"


def test_loadouts_new_and_list(tmp_path: Path):
    result = runner.invoke(app, [
        "loadouts", "new", "Opalo Mk 1", "--decay", "500", "--burn", "100", "--weapon", "Opalo", "--dir", str(tmp_path),
    ])
    assert result.exit_code == 0
    rows = json.loads(runner.invoke(app, ["loadouts", "list", "--dir", str(tmp_path)]).output)
    assert rows[0]["name"] == "Opalo Mk 1"
    assert rows[0]["weapon"] == "Opalo"
    assert rows[0]["cost_per_shot"] == "0.0099950024987506246876561719"

    result = runner.invoke(app, ["loadouts", "new", "Broken", "--decay", "lots", "--dir", str(tmp_path)])
    assert result.exit_code == 1


def test_markups_set_and_list(tmp_path: Path):
    result = runner.invoke(app, ["markups", "set", "Animal Hide", "115", "--dir", str(tmp_path)])
    assert result.exit_code == 0
    assert json.loads(result.output)["value"] == "1.15"
    rows = json.loads(runner.invoke(app, ["markups", "list", "--dir", str(tmp_path)]).output)
    assert rows == [{"name": "Animal Hide", "percent": "115.00"}]

    result = runner.invoke(app, ["markups", "set", "Animal Hide", "many", "--dir", str(tmp_path)])
    assert result.exit_code == 1


def test_report_latest_session(tmp_path: Path):
    runner.invoke(app, ["sessions", "new", "evening", "--dir", str(tmp_path)])
    result = runner.invoke(app, ["report", "--dir", str(tmp_path)])
    assert result.exit_code == 0
    out = json.loads(result.output)
    assert out["session"] == "evening_session"
    assert out["active"] is False
    assert out["total_cost"] == "0.0000"

    result = runner.invoke(app, ["report", "nothing_session", "--dir", str(tmp_path)])
    assert result.exit_code == 1


def test_start_without_log_fails(tmp_path: Path):
    result = runner.invoke(app, ["start", "--dir", str(tmp_path)])
    assert result.exit_code == 1
    assert (tmp_path / "config.yaml").exists()


def test_live_command_without_tracker():
    result = runner.invoke(app, ["status", "--port", str(_free_port())])
    assert result.exit_code == 0
    assert json.loads(result.output)["ok"] is False


def test_start_reports_clashing_pattern_file(tmp_path: Path):
    log = tmp_path / "chat.log"
    log.write_text("", encoding="utf-8")
    patterns = tmp_path / "patterns.yaml"
    patterns.write_text(
        "patterns:\n"
        "  - {kind: SelfMiss, category: Combat, regex: 'You missed'}\n"
        "  - {kind: SelfEvade, category: Combat, regex: '(?i)you evaded the attack'}\n",
        encoding="utf-8",
    )
    result = runner.invoke(app, ["start", "--dir", str(tmp_path / "state"), "--log", str(log),
                                 "--player", "Aardvark Nolin", "--patterns", str(patterns)])
    assert result.exit_code == 1
    assert "Invalid pattern catalogue" in result.output
