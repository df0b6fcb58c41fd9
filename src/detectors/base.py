# src/detectors/base.py
"""
Abstract base class and registry for reflex detectors.

Every detector satisfies one contract: given text, return a list of
ReflexFinding(reflex_id, score, rationale). The policy core only ever sees
the score vector built from those findings, never a detector's internals.

Usage:
    @DetectorRegistry.register
    class MyDetector(BaseDetector):
        reflex_id = "vx-xx01"

        def detect(self, text):
            ...
"""
import logging
import math
import re
from abc import ABC, abstractmethod
from typing import List, Dict, Any, Type

from models import ReflexFinding

logger = logging.getLogger("reflex_gate.detectors")


class BaseDetector(ABC):
    """
    Abstract base class for reflex detectors.

    Accepts an optional config dict for detector-specific tuning and
    enforces a consistent detect() interface.
    """

    reflex_id: str = ""

    def __init__(self, config: Dict[str, Any] | None = None):
        self.config = config or {}

    @abstractmethod
    def detect(self, text: str) -> List[ReflexFinding]:
        """
        Analyze text and return findings for this detector's reflex.
        """
        pass

    @property
    def name(self) -> str:
        return type(self).__name__


class DetectorRegistry:
    """Registry for all lexical detectors that run by default."""
    _detectors: List[Type[BaseDetector]] = []

    @classmethod
    def register(cls, detector_class: Type[BaseDetector]):
        if detector_class not in cls._detectors:
            cls._detectors.append(detector_class)
        return detector_class

    @classmethod
    def get_detectors(cls, config: Dict[str, Any] | None = None) -> List[BaseDetector]:
        return [detector(config) for detector in cls._detectors]

    @classmethod
    def reflex_ids(cls) -> List[str]:
        return [d.reflex_id for d in cls._detectors]


def match_table(reflex_id: str, text: str, table: list, tags: list) -> List[ReflexFinding]:
    """
    Run a (pattern, score, label, rationale) table against text.

    One finding per matching row, with the matched phrase as evidence.
    """
    findings = []
    if not text:
        return findings
    for pattern, score, label, rationale in table:
        match = re.search(pattern, text, re.IGNORECASE)
        if match:
            findings.append(ReflexFinding(
                reflex_id=reflex_id,
                score=score,
                label=label,
                rationale=f'{rationale}. Phrase: "{match.group(0)[:80]}"',
                tags=list(tags),
            ))
    return findings


def run_detectors(text: str, detectors: List[BaseDetector]) -> List[ReflexFinding]:
    """Run every detector over text. A detector that raises contributes nothing."""
    findings = []
    for detector in detectors:
        try:
            findings.extend(detector.detect(text) or [])
        except Exception as e:
            logger.warning("Detector %s failed, scoring as 0: %s", detector.name, e)
    return findings


def collect_scores(findings: List[ReflexFinding]) -> Dict[str, float]:
    """Collapse findings to one score per reflex id (the max), clamped to [0, 1].

    Malformed findings are dropped, so their reflex scores as 0.
    """
    scores: Dict[str, float] = {}
    for f in findings:
        raw = getattr(f, "score", None)
        reflex_id = getattr(f, "reflex_id", None)
        if (not isinstance(reflex_id, str) or isinstance(raw, bool)
                or not isinstance(raw, (int, float)) or math.isnan(raw)):
            logger.warning("Dropping malformed finding %r, scoring as 0", f)
            continue
        score = min(1.0, max(0.0, float(raw)))
        if score > scores.get(f.reflex_id, -1.0):
            scores[f.reflex_id] = score
    return scores
