"""
Reflex Gate — Omission Detector
=================================
vx-os01: claims that lean on attribution, consensus or data quality while
leaving out the thing that would let a reader check them.

Citation-type omissions score higher when the passage mentions no source
at all.
"""

import re

from models import ReflexFinding
from detectors.base import BaseDetector, DetectorRegistry


# (phrase, kind, base score)
OMISSION_MARKERS = [
    ("studies show", "citation", 0.9),
    ("experts agree", "citation", 0.9),
    ("research indicates", "citation", 0.75),
    ("no longer conducts rigorous", "buried-admission", 0.9),
    ("fewer people are also", "data-quality", 0.9),
    ("but the data do provide", "contradiction", 0.9),
    ("some say", "authority", 0.75),
    ("it is believed", "authority", 0.75),
    ("as everyone knows", "consensus", 0.9),
    ("clearly", "consensus", 0.6),
]

SOURCE_CUES = re.compile(r"\b(?:source|link|reference|citation|doi|et al)\b|https?://", re.IGNORECASE)

KIND_RATIONALE = {
    "citation": "missing source attribution",
    "authority": "vague appeal to authority",
    "consensus": "implied consensus without justification",
    "buried-admission": "a data limitation stated in passing and then ignored",
    "data-quality": "a data-quality caveat left out of the conclusion",
    "contradiction": "evidence that cuts against the surrounding claim",
}


@DetectorRegistry.register
class OmissionDetector(BaseDetector):
    reflex_id = "vx-os01"

    def detect(self, text: str) -> list[ReflexFinding]:
        findings = []
        if not text:
            return findings

        lower = text.lower()
        has_sources = bool(SOURCE_CUES.search(text))

        for phrase, kind, score in OMISSION_MARKERS:
            if not re.search(r"\b" + re.escape(phrase) + r"\b", lower):
                continue
            if kind == "citation" and not has_sources:
                score = min(score + 0.05, 0.95)
            findings.append(ReflexFinding(
                reflex_id=self.reflex_id,
                score=score,
                label=f"{kind.replace('-', ' ').capitalize()} omission",
                rationale=f'"{phrase}" indicates {KIND_RATIONALE[kind]}',
                tags=["omission", kind],
            ))
        return findings
