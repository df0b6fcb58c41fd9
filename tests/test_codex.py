"""
Tests for src/codex.py — load-time validation and file resolution.
"""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest
import yaml

from codex import (
    parse_codex, load_codex, resolve_codex_path,
    CODEX_ENV_VAR, DEFAULT_CODEX_PATH,
)
from errors import CodexError
from models import RiskTier, Mode, CitationOverride


class TestParseValid:
    def test_version_and_sections(self, codex):
        assert codex.version == "2.1.0"
        assert set(codex.tiers) == set(RiskTier)
        assert set(codex.modes) == set(Mode)
        assert "vx-ha01" in codex.reflexes

    def test_profile_list_and_mapping_forms(self, codex):
        assert codex.profiles["default"].order[0] == "vx-ha01"
        assert codex.profiles["strict"].order[0] == "vx-em09"

    def test_block_rules_keyed_by_tier(self, codex):
        ha = codex.reflex("vx-ha01")
        assert ha.block_threshold(RiskTier.MEDIUM) == 0.85
        assert ha.block_threshold(RiskTier.HIGH) is None

    def test_suppress_below(self, codex):
        fo = codex.reflex("vx-fo01")
        assert not fo.active_at(RiskTier.LOW)
        assert fo.active_at(RiskTier.MEDIUM)
        assert fo.active_at(RiskTier.HIGH)

    def test_defaults_for_optional_sections(self, codex):
        assert codex.handshake_defaults.mode == Mode.CAREFUL
        assert codex.handshake_defaults.cite_policy == CitationOverride.AUTO
        assert codex.omission_overrides_allowed is False

    def test_failure_messages(self, codex):
        assert codex.failure_semantics.messages["refuse"].action == "refuse"

    def test_codex_is_read_only(self, codex):
        with pytest.raises(TypeError):
            codex.reflexes["vx-new"] = None
        with pytest.raises(Exception):
            codex.version = "9.9.9"

    def test_unknown_reflex_lookup(self, codex):
        assert codex.reflex("vx-zz99") is None


class TestParseInvalid:
    def _errors(self, data):
        with pytest.raises(CodexError) as exc:
            parse_codex(data)
        return exc.value.errors

    def test_not_a_mapping(self):
        with pytest.raises(CodexError):
            parse_codex(["nope"])

    def test_missing_tier(self, codex_data):
        del codex_data["tiers"]["high"]
        assert any("high" in e for e in self._errors(codex_data))

    def test_unknown_tier(self, codex_data):
        codex_data["tiers"]["extreme"] = dict(codex_data["tiers"]["high"])
        assert any("extreme" in e for e in self._errors(codex_data))

    def test_missing_mode(self, codex_data):
        del codex_data["modes"]["recap"]
        assert any("recap" in e for e in self._errors(codex_data))

    def test_negative_boost(self, codex_data):
        codex_data["modes"]["careful"]["confidence_boost"] = -0.1
        assert any("confidence_boost" in e for e in self._errors(codex_data))

    def test_direct_boost_must_be_zero(self, codex_data):
        codex_data["modes"]["direct"]["confidence_boost"] = 0.05
        assert any("direct" in e for e in self._errors(codex_data))

    def test_non_monotonic_tiers(self, codex_data):
        codex_data["tiers"]["low"]["min_confidence"] = 0.9
        assert any("non-decreasing" in e for e in self._errors(codex_data))

    def test_threshold_out_of_range(self, codex_data):
        codex_data["reflexes"]["vx-da01"]["trigger_at"] = 1.5
        assert any("vx-da01.trigger_at" in e for e in self._errors(codex_data))

    def test_block_below_trigger(self, codex_data):
        codex_data["reflexes"]["vx-ha01"]["block_if_over"]["medium"] = 0.5
        assert any("below trigger_at" in e for e in self._errors(codex_data))

    def test_profile_references_undefined_reflex(self, codex_data):
        codex_data["profiles"]["default"].append("vx-zz99")
        assert any("vx-zz99" in e for e in self._errors(codex_data))

    def test_profile_duplicate(self, codex_data):
        codex_data["profiles"]["default"].append("vx-ha01")
        assert any("twice" in e for e in self._errors(codex_data))

    def test_missing_default_profile(self, codex_data):
        del codex_data["profiles"]["default"]
        assert any("profiles.default" in e for e in self._errors(codex_data))

    def test_empty_default_profile(self, codex_data):
        codex_data["profiles"]["default"] = []
        assert any("profiles.default" in e for e in self._errors(codex_data))

    def test_bad_version(self, codex_data):
        codex_data["codex_version"] = "v2"
        assert any("semver" in e for e in self._errors(codex_data))

    def test_refuse_above_hedge(self, codex_data):
        codex_data["failure_semantics"]["refuse_threshold"] = 0.5
        assert any("refuse_threshold" in e for e in self._errors(codex_data))

    def test_collects_every_problem(self, codex_data):
        codex_data["codex_version"] = "nope"
        del codex_data["modes"]["recap"]
        codex_data["reflexes"]["vx-da01"]["trigger_at"] = -1
        errors = self._errors(codex_data)
        assert len(errors) >= 3

    def test_message_lists_errors(self, codex_data):
        codex_data["codex_version"] = "nope"
        with pytest.raises(CodexError, match="Invalid codex"):
            parse_codex(codex_data)

    def test_profile_entry_not_a_string(self, codex_data):
        codex_data["profiles"]["default"] = [["vx-ha01"], "vx-em09"]
        assert any("reflex id strings" in e for e in self._errors(codex_data))

    @pytest.mark.parametrize("fields", [5, "text", ["text", 3]])
    def test_redact_fields_must_be_list_of_names(self, codex_data, fields):
        codex_data["telemetry"]["redact_fields"] = fields
        assert any("redact_fields" in e for e in self._errors(codex_data))

    def test_telemetry_not_a_mapping(self, codex_data):
        codex_data["telemetry"] = ["enabled"]
        assert any("telemetry must be a mapping" in e for e in self._errors(codex_data))


class TestLoadCodex:
    def test_shipped_codex_loads(self, shipped_codex):
        assert shipped_codex.version == "1.0.0"
        assert len(shipped_codex.profiles["default"].order) == 7
        assert "input" in shipped_codex.telemetry.redact_fields

    def test_load_from_yaml(self, tmp_path, codex_data):
        path = tmp_path / "codex.yaml"
        path.write_text(yaml.safe_dump(codex_data), encoding="utf-8")
        codex = load_codex(path)
        assert codex.version == "2.1.0"

    def test_missing_file(self, tmp_path):
        with pytest.raises(CodexError, match="cannot read"):
            load_codex(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("tiers: [unclosed", encoding="utf-8")
        with pytest.raises(CodexError, match="not valid YAML"):
            load_codex(path)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        with pytest.raises(CodexError):
            load_codex(path)


class TestResolvePath:
    def test_explicit_path_wins(self, monkeypatch, tmp_path):
        monkeypatch.setenv(CODEX_ENV_VAR, "/elsewhere.yaml")
        assert resolve_codex_path(tmp_path / "x.yaml") == tmp_path / "x.yaml"

    def test_env_var(self, monkeypatch):
        monkeypatch.setenv(CODEX_ENV_VAR, "/etc/reflex/codex.yaml")
        assert str(resolve_codex_path()) == "/etc/reflex/codex.yaml"

    def test_default(self, monkeypatch):
        monkeypatch.delenv(CODEX_ENV_VAR, raising=False)
        assert resolve_codex_path() == DEFAULT_CODEX_PATH

    def test_env_var_used_by_load(self, monkeypatch, tmp_path, codex_data):
        path = tmp_path / "env.yaml"
        path.write_text(yaml.safe_dump(codex_data), encoding="utf-8")
        monkeypatch.setenv(CODEX_ENV_VAR, str(path))
        assert load_codex().version == "2.1.0"
