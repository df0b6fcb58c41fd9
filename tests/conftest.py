"""
Shared fixtures for reflex-gate tests.
"""

import sys
import os
import pytest

# Ensure src/ is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from codex import parse_codex, load_codex


# ---------------------------------------------------------------------------
# Codex fixtures
# ---------------------------------------------------------------------------

def _codex_data():
    return {
        "codex_version": "2.1.0",
        "codex_date": "2025-01-15",
        "tiers": {
            "low": {"min_confidence": 0.5, "citation_required": False,
                    "citation_score_floor": 0.9, "omission_scan": False},
            "medium": {"min_confidence": 0.6, "citation_required": False,
                       "citation_score_floor": 0.8, "omission_scan": True},
            "high": {"min_confidence": 0.75, "citation_required": True,
                     "citation_score_floor": 0.7, "omission_scan": True},
        },
        "modes": {
            "direct": {"confidence_boost": 0.0},
            "careful": {"confidence_boost": 0.1},
            "recap": {"confidence_boost": 0.05},
        },
        "reflexes": {
            # No block rule at high
            "vx-ha01": {"label": "Hallucination", "severity": 8,
                        "trigger_at": 0.6, "block_if_over": {"medium": 0.85}},
            "vx-em09": {"label": "Rhetorical entrapment", "severity": 7,
                        "trigger_at": 0.7, "block_if_over": {"medium": 0.95, "high": 0.9}},
            "vx-da01": {"label": "Data-less claim", "severity": 5, "trigger_at": 0.6},
            "vx-fo01": {"label": "False urgency", "severity": 4, "trigger_at": 0.65,
                        "suppress_below": "medium"},
        },
        "profiles": {
            "default": ["vx-ha01", "vx-em09", "vx-da01", "vx-fo01"],
            "strict": {"prioritization_order": ["vx-em09", "vx-ha01", "vx-da01", "vx-fo01"]},
        },
        "omission_scan": {"allow_override": False},
        "context_decay": {"max_turns_without_recap": 12, "max_tokens_since_recap": 4000,
                          "on_expire": "recap"},
        "failure_semantics": {
            "hedge_threshold": 0.4,
            "refuse_threshold": 0.2,
            "refuse": {"ui_failover_text": "I can't answer that reliably.", "action": "refuse"},
            "hedge": {"ui_failover_text": "I'm not certain, but:", "action": "hedge"},
        },
        "telemetry": {"enabled": True, "redact_fields": ["text"]},
    }


@pytest.fixture
def codex_data():
    """Fresh, valid raw codex mapping. Safe to mutate per test."""
    return _codex_data()


@pytest.fixture
def codex(codex_data):
    """Parsed test codex."""
    return parse_codex(codex_data)


@pytest.fixture
def shipped_codex():
    """The codex bundled at config/codex.yaml."""
    path = os.path.join(os.path.dirname(__file__), "..", "config", "codex.yaml")
    return load_codex(path)


# ---------------------------------------------------------------------------
# Text fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def flat_earth_text():
    """Passage that should trip the hallucination and omission detectors."""
    return (
        "Studies show the earth is flat. Scientists say it has always been "
        "obvious, and you should act now before it's too late."
    )


@pytest.fixture
def plain_text():
    """Neutral passage with no reflex cues."""
    return "The meeting moved to Thursday afternoon in room four."
