"""
Reflex Gate — Policy Deciders
===============================
Pure functions over a validated codex. None of them perform I/O or keep
state; the orchestrator in reflex_gate.py sequences them.
"""

from typing import Optional

from codex import Codex, DEFAULT_PROFILE
from errors import CodexError
from models import (
    RiskTier, Mode, CitationOverride, FailureKind,
    ContextAge, TriggerDecision,
)


# Stand-in top score when nothing fired, so citation policy still has
# something to compare against the tier floor.
NEUTRAL_TOP_SCORE = 0.5


# ---------------------------------------------------------------------------
# Confidence
# ---------------------------------------------------------------------------

def resolve_min_confidence(codex: Codex, tier: RiskTier, mode: Mode) -> float:
    """Tier floor plus the mode's additive boost, clamped to 1.0."""
    floor = codex.tier_policy(tier).min_confidence
    boost = codex.mode_policy(mode).confidence_boost
    return round(min(1.0, floor + boost), 6)


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------

def resolve_order(codex: Codex, profile_name: Optional[str] = None) -> tuple:
    """
    Evaluation order for a profile, falling back to the default profile.

    The order is also the tie-break: an earlier reflex may block before a
    later one is looked at, whatever the later one scored.
    """
    profile = codex.profiles.get(profile_name or DEFAULT_PROFILE)
    if profile is None:
        profile = codex.profiles.get(DEFAULT_PROFILE)
    if profile is None:
        raise CodexError(f"codex {codex.version} has no '{DEFAULT_PROFILE}' profile")
    return profile.order


# ---------------------------------------------------------------------------
# Trigger / block
# ---------------------------------------------------------------------------

def evaluate_reflex(codex: Codex, reflex_id: str, score: float,
                    tier: RiskTier) -> TriggerDecision:
    """
    Decide trigger vs. block for one reflex.

    A block absorbs the trigger, so the two are never both set. Reflexes
    without thresholds at this tier (unknown, or suppressed below it) stay
    silent whatever the score.
    """
    reflex = codex.reflex(reflex_id)
    if reflex is None or not reflex.active_at(tier):
        return TriggerDecision(trigger=False, block=False)

    block_at = reflex.block_threshold(tier)
    if block_at is not None and score >= block_at:
        return TriggerDecision(trigger=False, block=True)
    if score >= reflex.trigger_at:
        return TriggerDecision(trigger=True, block=False)
    return TriggerDecision(trigger=False, block=False)


# ---------------------------------------------------------------------------
# Citation
# ---------------------------------------------------------------------------

def top_fired_score(fired) -> float:
    """Highest fired score, or the neutral default when nothing fired."""
    if not fired:
        return NEUTRAL_TOP_SCORE
    return max(f.score for f in fired)


def decide_citation(codex: Codex, tier: RiskTier, top_score: float,
                    external_claim: bool,
                    override: CitationOverride = CitationOverride.AUTO) -> bool:
    """Explicit overrides win; "auto" defers to the tier's citation rule."""
    if override == CitationOverride.FORCE:
        return True
    if override == CitationOverride.OFF:
        return False

    policy = codex.tier_policy(tier)
    return (
        bool(external_claim)
        or top_score >= policy.citation_score_floor
        or policy.citation_required
    )


# ---------------------------------------------------------------------------
# Omission scan
# ---------------------------------------------------------------------------

def decide_omission_scan(codex: Codex, tier: RiskTier,
                         override: Optional[bool] = None) -> bool:
    """Tier default, unless the codex lets callers force it on or off."""
    default = codex.tier_policy(tier).omission_scan
    if override is None or not codex.omission_overrides_allowed:
        return default
    return bool(override)


# ---------------------------------------------------------------------------
# Context decay
# ---------------------------------------------------------------------------

def is_context_expired(codex: Codex, age: ContextAge) -> bool:
    decay = codex.context_decay
    return (
        age.turns_since_recap > decay.max_turns
        or age.tokens_since_recap > decay.max_tokens
    )


# ---------------------------------------------------------------------------
# Failure semantics
# ---------------------------------------------------------------------------

def classify_failure(codex: Codex, confidence: float) -> FailureKind:
    """Map answer confidence to ok / hedge / refuse."""
    semantics = codex.failure_semantics
    if confidence <= semantics.refuse_threshold:
        return FailureKind.REFUSE
    if confidence <= semantics.hedge_threshold:
        return FailureKind.HEDGE
    return FailureKind.OK


def failure_text(codex: Codex, kind) -> tuple:
    """(text, action) for refuse / hedge / ask_clarify. Empty if not configured."""
    key = kind.value if isinstance(kind, FailureKind) else str(kind)
    message = codex.failure_semantics.messages.get(key)
    if message is None:
        return ("", "")
    return (message.text, message.action)
