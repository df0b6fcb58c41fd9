"""
Tests for the reflex-gate command line entry point.
"""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import json

import pytest
import yaml

from codex import CODEX_ENV_VAR
from reflex_gate import main


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    monkeypatch.delenv(CODEX_ENV_VAR, raising=False)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)


@pytest.fixture
def codex_file(tmp_path, codex_data):
    path = tmp_path / "codex.yaml"
    path.write_text(yaml.safe_dump(codex_data), encoding="utf-8")
    return str(path)


def _write_scores(tmp_path, scores):
    path = tmp_path / "scores.json"
    path.write_text(json.dumps(scores), encoding="utf-8")
    return str(path)


class TestScoresInput:
    def test_json_output(self, tmp_path, codex_file, capsys):
        scores = _write_scores(tmp_path, {"vx-ha01": 0.9})
        rc = main(["--scores", scores, "--codex", codex_file,
                   "--tier", "high", "--mode", "careful", "--json"])
        assert rc == 0
        data = json.loads(capsys.readouterr().out)
        assert data["fired"] == [{"reflexId": "vx-ha01", "score": 0.9}]
        assert data["needCitation"] is True
        assert "findings" not in data

    def test_blocked_text_report(self, tmp_path, codex_file, capsys):
        scores = _write_scores(tmp_path, {"vx-ha01": 0.9})
        rc = main(["--scores", scores, "--codex", codex_file, "--tier", "medium"])
        assert rc == 0
        assert "BLOCKED by vx-ha01" in capsys.readouterr().out

    def test_context_age_flags(self, tmp_path, codex_file, capsys):
        scores = _write_scores(tmp_path, {})
        main(["--scores", scores, "--codex", codex_file, "--turns", "13", "--json"])
        assert json.loads(capsys.readouterr().out)["contextExpired"] is True

    def test_cite_off(self, tmp_path, codex_file, capsys):
        scores = _write_scores(tmp_path, {"vx-ha01": 0.82})
        main(["--scores", scores, "--codex", codex_file, "--tier", "medium",
              "--cite", "off", "--json"])
        assert json.loads(capsys.readouterr().out)["needCitation"] is False

    def test_invalid_score_exits_2(self, tmp_path, codex_file, capsys):
        scores = _write_scores(tmp_path, {"vx-ha01": 3})
        assert main(["--scores", scores, "--codex", codex_file]) == 2
        assert "error:" in capsys.readouterr().err

    def test_malformed_json_exits_2(self, tmp_path, codex_file):
        path = tmp_path / "scores.json"
        path.write_text("{not json", encoding="utf-8")
        assert main(["--scores", str(path), "--codex", codex_file]) == 2


class TestTextInput:
    def test_text_flag(self, capsys):
        rc = main(["--text", "Studies show the earth is flat.", "--tier", "high", "--json"])
        assert rc == 0
        data = json.loads(capsys.readouterr().out)
        assert data["blockedBy"] == "vx-ha01"
        assert any(f["reflexId"] == "vx-os01" for f in data["findings"])

    def test_input_file(self, tmp_path, capsys):
        path = tmp_path / "reply.txt"
        path.write_text("The meeting moved to Thursday.", encoding="utf-8")
        rc = main([str(path), "--tier", "low", "--mode", "direct"])
        assert rc == 0
        out = capsys.readouterr().out
        assert "REFLEX GATE EVALUATION" in out
        assert "Not blocked" in out

    def test_missing_input_file_exits_2(self, tmp_path):
        assert main([str(tmp_path / "absent.txt")]) == 2

    def test_no_input(self):
        with pytest.raises(SystemExit):
            main([])


class TestCodexErrors:
    def test_bad_codex_exits_2(self, tmp_path, capsys):
        path = tmp_path / "codex.yaml"
        path.write_text("codex_version: nope\n", encoding="utf-8")
        assert main(["--text", "hi", "--codex", str(path)]) == 2
        assert "Invalid codex" in capsys.readouterr().err

    def test_malformed_redact_fields_exits_2(self, tmp_path, codex_data, capsys):
        codex_data["telemetry"]["redact_fields"] = 5
        path = tmp_path / "codex.yaml"
        path.write_text(yaml.safe_dump(codex_data), encoding="utf-8")
        assert main(["--text", "hi", "--codex", str(path)]) == 2
        assert "redact_fields" in capsys.readouterr().err

    def test_env_codex(self, monkeypatch, tmp_path, codex_file, capsys):
        monkeypatch.setenv(CODEX_ENV_VAR, codex_file)
        scores = _write_scores(tmp_path, {})
        main(["--scores", scores, "--json"])
        assert json.loads(capsys.readouterr().out)["codexVersion"] == "2.1.0"
