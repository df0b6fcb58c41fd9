"""
Reflex Gate — Data Models
===========================
Enums and records shared across the evaluation pipeline. The codex schema
itself lives in codex.py.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional

from errors import InputError


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class RiskTier(str, Enum):
    """Risk classification that drives every threshold lookup."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]

    @classmethod
    def parse(cls, value) -> "RiskTier":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InputError(f"Unknown risk tier: {value!r}") from None


_TIER_RANK = {RiskTier.LOW: 0, RiskTier.MEDIUM: 1, RiskTier.HIGH: 2}


class Mode(str, Enum):
    """Evaluation strictness. careful and recap raise the confidence floor."""
    DIRECT = "direct"
    CAREFUL = "careful"
    RECAP = "recap"

    @classmethod
    def parse(cls, value) -> "Mode":
        if isinstance(value, cls):
            return value
        # Older handshakes spell modes as CLI flags ("--careful")
        text = str(value).strip().lower().lstrip("-")
        try:
            return cls(text)
        except ValueError:
            raise InputError(f"Unknown mode: {value!r}") from None


class CitationOverride(str, Enum):
    """Caller override for the citation decision."""
    OFF = "off"
    AUTO = "auto"
    FORCE = "force"

    @classmethod
    def parse(cls, value) -> "CitationOverride":
        if value is None:
            return cls.AUTO
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InputError(f"Unknown citation override: {value!r}") from None


class FailureKind(str, Enum):
    """How a response at a given confidence should degrade."""
    OK = "ok"
    HEDGE = "hedge"
    REFUSE = "refuse"


def parse_omission_override(value) -> Optional[bool]:
    """None / "auto" defer to the tier default; booleans request on/off."""
    if value is None or isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text == "auto":
        return None
    if text in ("true", "on", "yes"):
        return True
    if text in ("false", "off", "no"):
        return False
    raise InputError(f"Unknown omission scan override: {value!r}")


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ContextAge:
    """How far the session has run since the last recap."""
    turns_since_recap: int = 0
    tokens_since_recap: int = 0


@dataclass(frozen=True)
class FiredReflex:
    """A reflex whose score met its trigger threshold without blocking."""
    reflex_id: str
    score: float

    def to_dict(self) -> dict:
        return {"reflexId": self.reflex_id, "score": self.score}


@dataclass(frozen=True)
class TriggerDecision:
    """Per-reflex verdict. trigger and block are never both True."""
    trigger: bool = False
    block: bool = False


@dataclass
class ReflexFinding:
    """One detector hit. Several findings may share a reflex id."""
    reflex_id: str
    score: float                 # 0.0-1.0
    rationale: str = ""
    label: Optional[str] = None
    tags: list = field(default_factory=list)


@dataclass
class EvaluationRequest:
    """Everything a single evaluation pass needs besides the codex.

    Fields may hold raw (unparsed) values; validate_request() in
    reflex_gate.py normalizes them before the pass starts.
    """
    tier: RiskTier
    mode: Mode
    scores: Mapping[str, float] = field(default_factory=dict)
    context_age: ContextAge = field(default_factory=ContextAge)
    external_claim: bool = False
    citation_override: CitationOverride = CitationOverride.AUTO
    omission_override: Optional[bool] = None
    profile: str = "default"

    @classmethod
    def from_dict(cls, data: dict) -> "EvaluationRequest":
        """Build a request from the wire shape (camelCase or snake_case keys)."""
        if not isinstance(data, Mapping):
            raise InputError("Evaluation input must be a mapping")

        def pick(*keys, default=None):
            for key in keys:
                if key in data:
                    return data[key]
            return default

        if pick("tier", "stakes") is None:
            raise InputError("Evaluation input is missing 'tier'")
        if pick("mode") is None:
            raise InputError("Evaluation input is missing 'mode'")

        age = pick("contextAge", "context_age", default={}) or {}
        if not isinstance(age, Mapping):
            raise InputError("contextAge must be a mapping")
        context_age = ContextAge(
            turns_since_recap=age.get("turnsSinceRecap", age.get("turns_since_recap", 0)),
            tokens_since_recap=age.get("tokensSinceRecap", age.get("tokens_since_recap", 0)),
        )

        return cls(
            tier=pick("tier", "stakes"),
            mode=pick("mode"),
            scores=pick("scores", default={}),
            context_age=context_age,
            external_claim=pick("externalClaim", "external_claim", default=False),
            citation_override=pick("citationOverride", "citation_override",
                                   "citePolicyOverride", default="auto"),
            omission_override=pick("omissionOverride", "omission_override", default=None),
            profile=pick("profile", "reflexProfile", "reflex_profile", default="default"),
        )


@dataclass(frozen=True)
class EvaluationOutcome:
    """Result of one evaluation pass. Fresh per call, never mutated."""
    min_confidence: float
    fired: tuple = ()
    blocked_by: Optional[str] = None
    need_citation: bool = False
    run_omission_scan: bool = False
    context_expired: bool = False
    codex_version: str = ""
    profile: str = "default"
    block_score: Optional[float] = None

    @property
    def blocked(self) -> bool:
        return self.blocked_by is not None

    @property
    def fired_ids(self) -> list:
        return [f.reflex_id for f in self.fired]

    def to_dict(self) -> dict:
        data = {
            "minConfidence": self.min_confidence,
            "fired": [f.to_dict() for f in self.fired],
            "needCitation": self.need_citation,
            "runOmissionScan": self.run_omission_scan,
            "contextExpired": self.context_expired,
            "codexVersion": self.codex_version,
            "profile": self.profile,
        }
        if self.blocked_by is not None:
            data["blockedBy"] = self.blocked_by
        return data


def coerce_score(reflex_id: str, value) -> float:
    """Validate one detector score. Booleans and NaN are not scores."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InputError(f"Score for {reflex_id!r} is not numeric: {value!r}")
    score = float(value)
    if math.isnan(score) or score < 0.0 or score > 1.0:
        raise InputError(f"Score for {reflex_id!r} must be within [0, 1], got {value!r}")
    return score
