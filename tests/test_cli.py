"""
Tests for the foxbot-eval command line tool.
"""

import json

import pytest

from foxbot import cli

SNAPSHOT = {
    "phase": "DECISION",
    "round": 3,
    "eventTrack": ["ROOSTER_CROW", "DOG_CHARGE"],
    "roosterSeen": 2,
    "players": [{"id": "p1", "denColor": "RED", "loot": [{"v": 3}]}],
}


@pytest.fixture
def snapshot_file(tmp_path):
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps(SNAPSHOT))
    return path


def test_json_output(snapshot_file, capsys):
    code = cli.main([str(snapshot_file), "--agent", "p1", "--json"])

    assert code == 0
    data = json.loads(capsys.readouterr().out)
    assert data['phase'] == "DECISION"
    assert data['best']['id'] == "DASH"
    assert data['meta']['reason'] == "TERMINAL_ESCALATION"


def test_text_output(snapshot_file, capsys):
    code = cli.main([str(snapshot_file), "--agent", "p1", "--phase", "DECISION"])

    out = capsys.readouterr().out
    assert code == 0
    assert "Best:  DASH" in out
    assert "TERMINAL_ESCALATION" in out


def test_unknown_agent_exits_1(snapshot_file, capsys):
    assert cli.main([str(snapshot_file), "--agent", "nobody"]) == 1
    assert "No candidates (UNKNOWN_AGENT)" in capsys.readouterr().out


def test_missing_snapshot_exits_2(tmp_path):
    assert cli.main([str(tmp_path / "missing.json"), "--agent", "p1"]) == 2


def test_missing_phase_exits_2(tmp_path):
    path = tmp_path / "nophase.json"
    path.write_text(json.dumps({"players": []}))
    assert cli.main([str(path), "--agent", "p1"]) == 2
