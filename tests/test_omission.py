"""
Tests for src/detectors/omission.py — one-sided framing and missing sources.
"""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from detectors.omission import OmissionDetector, OMISSION_MARKERS, KIND_RATIONALE


class TestOmissionDetector:
    def test_every_kind_has_rationale(self):
        assert {kind for _, kind, _ in OMISSION_MARKERS} <= set(KIND_RATIONALE)

    def test_citation_without_source(self):
        findings = OmissionDetector().detect("Studies show coffee is healthy.")
        assert len(findings) == 1
        assert findings[0].score == 0.95
        assert findings[0].label == "Citation omission"
        assert "missing source attribution" in findings[0].rationale

    def test_citation_with_source(self):
        text = "Studies show coffee is healthy (source: https://example.org/coffee)."
        findings = OmissionDetector().detect(text)
        assert findings[0].score == 0.9

    def test_authority(self):
        findings = OmissionDetector().detect("Some say the policy failed.")
        assert findings[0].score == 0.75
        assert "authority" in findings[0].tags

    def test_word_boundaries(self):
        # "unclearly" must not count as "clearly"
        assert OmissionDetector().detect("The rules were written unclearly.") == []

    def test_multiple_markers(self):
        text = "As everyone knows, experts agree and it is clearly true."
        kinds = {f.tags[1] for f in OmissionDetector().detect(text)}
        assert kinds == {"consensus", "citation"}

    def test_buried_admission(self):
        text = "The agency no longer conducts rigorous surveys, yet the trend is real."
        assert OmissionDetector().detect(text)[0].label == "Buried admission omission"

    def test_empty(self):
        assert OmissionDetector().detect("") == []

    def test_reflex_id(self):
        findings = OmissionDetector().detect("It is believed to work.")
        assert all(f.reflex_id == "vx-os01" for f in findings)
