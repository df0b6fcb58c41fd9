"""
Reflex Gate — Handshake
=========================
The handshake is the slice of codex-derived policy that downstream
collaborators (model calls, text fetchers) receive with each request:
mode, tier, minimum confidence, citation and omission policy, profile and
codex version.

Callers may raise the confidence floor but never lower it below what the
codex resolves for the tier and mode.
"""

from dataclasses import dataclass, replace
from typing import Optional

from codex import Codex, DEFAULT_PROFILE
from errors import InputError
from models import RiskTier, Mode, CitationOverride, parse_omission_override
from policy import resolve_min_confidence


@dataclass(frozen=True)
class Handshake:
    mode: Mode
    tier: RiskTier
    min_confidence: float
    cite_policy: CitationOverride
    omission_scan: Optional[bool]     # None = auto
    reflex_profile: str
    codex_version: str

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "tier": self.tier.value,
            "min_confidence": self.min_confidence,
            "cite_policy": self.cite_policy.value,
            "omission_scan": "auto" if self.omission_scan is None else self.omission_scan,
            "reflex_profile": self.reflex_profile,
            "codex_version": self.codex_version,
        }


def _valid_confidence(value) -> bool:
    # NaN fails the range comparison
    return (isinstance(value, (int, float)) and not isinstance(value, bool)
            and 0.0 <= value <= 1.0)


def _enforce_confidence(codex: Codex, tier: RiskTier, mode: Mode,
                        requested: Optional[float]) -> float:
    floor = resolve_min_confidence(codex, tier, mode)
    if requested is None:
        return floor
    return min(1.0, max(floor, float(requested)))


def build_handshake(codex: Codex, mode=None, tier=None, min_confidence=None,
                    cite_policy=None, omission_scan="auto",
                    reflex_profile=None) -> Handshake:
    """
    Build a handshake from codex defaults plus explicit options.

    Raises InputError for values that do not parse. Use update_handshake()
    to apply untrusted partial updates leniently.
    """
    defaults = codex.handshake_defaults
    mode = Mode.parse(mode) if mode is not None else defaults.mode
    tier = RiskTier.parse(tier) if tier is not None else defaults.tier
    cite = CitationOverride.parse(cite_policy) if cite_policy is not None else defaults.cite_policy
    if omission_scan == "auto" or omission_scan is None:
        omission = defaults.omission_scan
    else:
        omission = parse_omission_override(omission_scan)

    if min_confidence is not None and not _valid_confidence(min_confidence):
        raise InputError(f"min_confidence must be a number in [0, 1], got {min_confidence!r}")

    profile = reflex_profile or defaults.reflex_profile
    if profile not in codex.profiles:
        profile = DEFAULT_PROFILE

    return Handshake(
        mode=mode,
        tier=tier,
        min_confidence=_enforce_confidence(codex, tier, mode, min_confidence),
        cite_policy=cite,
        omission_scan=omission,
        reflex_profile=profile,
        codex_version=codex.version,
    )


def update_handshake(codex: Codex, base: Handshake, **changes):
    """
    Apply a partial update to an existing handshake.

    Invalid values keep the base value and are reported instead of raised.
    Returns (handshake, errors).
    """
    errors = []
    mode, tier, cite = base.mode, base.tier, base.cite_policy
    omission, profile = base.omission_scan, base.reflex_profile
    requested = base.min_confidence

    unknown = set(changes) - {"mode", "tier", "min_confidence", "cite_policy",
                              "omission_scan", "reflex_profile"}
    for key in sorted(unknown):
        errors.append(f"unknown handshake field {key!r}")

    if changes.get("mode") is not None:
        try:
            mode = Mode.parse(changes["mode"])
        except ValueError as e:
            errors.append(str(e))
    if changes.get("tier") is not None:
        try:
            tier = RiskTier.parse(changes["tier"])
        except ValueError as e:
            errors.append(str(e))
    if changes.get("cite_policy") is not None:
        try:
            cite = CitationOverride.parse(changes["cite_policy"])
        except ValueError as e:
            errors.append(str(e))
    if "omission_scan" in changes:
        try:
            omission = parse_omission_override(changes["omission_scan"])
        except ValueError as e:
            errors.append(str(e))
    if changes.get("reflex_profile") is not None:
        if changes["reflex_profile"] in codex.profiles:
            profile = changes["reflex_profile"]
        else:
            errors.append(f"Unknown reflex profile: {changes['reflex_profile']!r}")
    if changes.get("min_confidence") is not None:
        value = changes["min_confidence"]
        if _valid_confidence(value):
            requested = float(value)
        else:
            errors.append(f"min_confidence must be a number in [0, 1], got {value!r}")

    # Re-resolve the floor: a tier or mode change can move it either way
    if tier != base.tier or mode != base.mode:
        if changes.get("min_confidence") is None:
            requested = None

    updated = replace(
        base,
        mode=mode,
        tier=tier,
        cite_policy=cite,
        omission_scan=omission,
        reflex_profile=profile,
        min_confidence=_enforce_confidence(codex, tier, mode, requested),
        codex_version=codex.version,
    )
    return updated, errors
