"""
Reflex Gate — Codex Store
===========================
The codex is the versioned policy document: reflex definitions, per-tier
confidence floors, firing-order profiles, block rules, citation and omission
rules, context-decay limits.

It is parsed and validated exactly once, at load time, into frozen
dataclasses. Every problem found is collected and raised together as a
CodexError; a codex that loads is trusted by the rest of the pipeline.

Resolution order for the codex file:
  1. explicit path argument
  2. REFLEX_GATE_CODEX environment variable
  3. config/codex.yaml at the project root
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

import yaml

from errors import CodexError
from models import RiskTier, Mode, CitationOverride, parse_omission_override


DEFAULT_CODEX_PATH = Path(__file__).resolve().parent.parent / "config" / "codex.yaml"
CODEX_ENV_VAR = "REFLEX_GATE_CODEX"
DEFAULT_PROFILE = "default"

SEMVER_RE = re.compile(r"^\d+\.\d+\.\d+$")


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReflexDefinition:
    """A named detector category and its thresholds."""
    reflex_id: str
    label: str
    severity: int                 # 1-10 base severity
    trigger_at: float             # non-blocking threshold
    block_if_over: Mapping = field(default_factory=dict)  # RiskTier -> float
    suppress_below: Optional[RiskTier] = None

    def active_at(self, tier: RiskTier) -> bool:
        """A suppressed reflex has no configured threshold at this tier."""
        return self.suppress_below is None or tier.rank >= self.suppress_below.rank

    def block_threshold(self, tier: RiskTier) -> Optional[float]:
        return self.block_if_over.get(tier)


@dataclass(frozen=True)
class TierPolicy:
    min_confidence: float
    citation_required: bool
    citation_score_floor: float
    omission_scan: bool


@dataclass(frozen=True)
class ModePolicy:
    confidence_boost: float = 0.0
    description: str = ""


@dataclass(frozen=True)
class ReflexProfile:
    name: str
    order: tuple


@dataclass(frozen=True)
class ContextDecayPolicy:
    max_turns: int
    max_tokens: int
    on_expire: Mode = Mode.RECAP


@dataclass(frozen=True)
class HandshakeDefaults:
    mode: Mode = Mode.CAREFUL
    tier: RiskTier = RiskTier.MEDIUM
    cite_policy: CitationOverride = CitationOverride.AUTO
    omission_scan: Optional[bool] = None      # None = auto
    reflex_profile: str = DEFAULT_PROFILE


@dataclass(frozen=True)
class FailureMessage:
    text: str
    action: str


@dataclass(frozen=True)
class FailureSemantics:
    hedge_threshold: float = 0.4
    refuse_threshold: float = 0.2
    messages: Mapping = field(default_factory=dict)   # kind -> FailureMessage


@dataclass(frozen=True)
class TelemetrySettings:
    enabled: bool = True
    redact_fields: frozenset = frozenset()


@dataclass(frozen=True)
class Codex:
    """Immutable, validated policy document."""
    version: str
    reflexes: Mapping
    tiers: Mapping
    modes: Mapping
    profiles: Mapping
    context_decay: ContextDecayPolicy
    date: str = ""
    description: str = ""
    omission_overrides_allowed: bool = False
    handshake_defaults: HandshakeDefaults = field(default_factory=HandshakeDefaults)
    failure_semantics: FailureSemantics = field(default_factory=FailureSemantics)
    telemetry: TelemetrySettings = field(default_factory=TelemetrySettings)

    def tier_policy(self, tier: RiskTier) -> TierPolicy:
        try:
            return self.tiers[tier]
        except KeyError:
            raise CodexError(f"codex {self.version} has no policy for tier {tier.value!r}") from None

    def mode_policy(self, mode: Mode) -> ModePolicy:
        try:
            return self.modes[mode]
        except KeyError:
            raise CodexError(f"codex {self.version} has no policy for mode {mode.value!r}") from None

    def reflex(self, reflex_id: str) -> Optional[ReflexDefinition]:
        return self.reflexes.get(reflex_id)


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------

def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _unit_float(value, where: str, errors: list, default: float = 0.0) -> float:
    """Read a threshold that must fall in [0, 1]."""
    if not _is_number(value):
        errors.append(f"{where} must be a number in [0, 1] (got {value!r})")
        return default
    if not 0.0 <= float(value) <= 1.0:
        errors.append(f"{where} must be within [0, 1] (got {value!r})")
        return default
    return float(value)


def _section(data: dict, key: str, errors: list) -> dict:
    value = data.get(key)
    if value is None:
        errors.append(f"missing section '{key}'")
        return {}
    if not isinstance(value, dict):
        errors.append(f"section '{key}' must be a mapping")
        return {}
    return value


def _enum_value(enum_cls, raw, where: str, errors: list):
    try:
        return enum_cls.parse(raw)
    except ValueError:
        errors.append(f"{where}: unknown value {raw!r}")
        return None


def _parse_tiers(data: dict, errors: list) -> dict:
    section = _section(data, "tiers", errors)
    tiers = {}
    for tier in RiskTier:
        raw = section.get(tier.value)
        if not isinstance(raw, dict):
            errors.append(f"tiers missing '{tier.value}'")
            continue
        where = f"tiers.{tier.value}"
        tiers[tier] = TierPolicy(
            min_confidence=_unit_float(raw.get("min_confidence"), f"{where}.min_confidence", errors),
            citation_required=bool(raw.get("citation_required", False)),
            citation_score_floor=_unit_float(
                raw.get("citation_score_floor", 1.0), f"{where}.citation_score_floor", errors, 1.0),
            omission_scan=bool(raw.get("omission_scan", False)),
        )
    for name in section:
        if name not in {t.value for t in RiskTier}:
            errors.append(f"tiers: unknown tier {name!r}")

    # Higher risk never lowers the floor
    ordered = [tiers[t].min_confidence for t in RiskTier if t in tiers]
    if len(ordered) == len(RiskTier) and ordered != sorted(ordered):
        errors.append("tiers: min_confidence must be non-decreasing from low to high")
    return tiers


def _parse_modes(data: dict, errors: list) -> dict:
    section = _section(data, "modes", errors)
    modes = {}
    for mode in Mode:
        raw = section.get(mode.value)
        if raw is None:
            errors.append(f"modes missing '{mode.value}'")
            continue
        if not isinstance(raw, dict):
            errors.append(f"modes.{mode.value} must be a mapping")
            continue
        boost = raw.get("confidence_boost", 0.0)
        if not _is_number(boost) or boost < 0:
            errors.append(f"modes.{mode.value}.confidence_boost must be a non-negative number")
            boost = 0.0
        modes[mode] = ModePolicy(confidence_boost=float(boost),
                                 description=str(raw.get("description", "")))
    if Mode.DIRECT in modes and modes[Mode.DIRECT].confidence_boost != 0.0:
        errors.append("modes.direct.confidence_boost must be 0")
    return modes


def _parse_reflexes(data: dict, errors: list) -> dict:
    section = _section(data, "reflexes", errors)
    reflexes = {}
    for reflex_id, raw in section.items():
        where = f"reflexes.{reflex_id}"
        if not isinstance(raw, dict):
            errors.append(f"{where} must be a mapping")
            continue

        trigger_at = _unit_float(raw.get("trigger_at"), f"{where}.trigger_at", errors)

        blocks = {}
        raw_blocks = raw.get("block_if_over") or {}
        if not isinstance(raw_blocks, dict):
            errors.append(f"{where}.block_if_over must map tiers to thresholds")
            raw_blocks = {}
        for tier_name, threshold in raw_blocks.items():
            tier = _enum_value(RiskTier, tier_name, f"{where}.block_if_over", errors)
            if tier is None:
                continue
            value = _unit_float(threshold, f"{where}.block_if_over.{tier.value}", errors, 1.0)
            if value < trigger_at:
                errors.append(
                    f"{where}.block_if_over.{tier.value} ({value}) is below trigger_at ({trigger_at})"
                )
            blocks[tier] = value

        suppress_below = None
        if raw.get("suppress_below") is not None:
            suppress_below = _enum_value(RiskTier, raw["suppress_below"],
                                         f"{where}.suppress_below", errors)

        severity = raw.get("severity", 5)
        if not isinstance(severity, int) or isinstance(severity, bool) or not 1 <= severity <= 10:
            errors.append(f"{where}.severity must be an integer 1-10")
            severity = 5

        reflexes[reflex_id] = ReflexDefinition(
            reflex_id=reflex_id,
            label=str(raw.get("label", reflex_id)),
            severity=severity,
            trigger_at=trigger_at,
            block_if_over=MappingProxyType(blocks),
            suppress_below=suppress_below,
        )
    return reflexes


def _parse_profiles(data: dict, reflexes: dict, errors: list) -> dict:
    section = _section(data, "profiles", errors)
    profiles = {}
    for name, raw in section.items():
        # Accept both a bare list and {prioritization_order: [...]}
        order = raw.get("prioritization_order") if isinstance(raw, dict) else raw
        if not isinstance(order, list):
            errors.append(f"profiles.{name} must list reflex ids")
            continue
        seen = set()
        for reflex_id in order:
            if not isinstance(reflex_id, str):
                errors.append(f"profiles.{name} entries must be reflex id strings (got {reflex_id!r})")
                continue
            if reflex_id not in reflexes:
                errors.append(f"profiles.{name} references undefined reflex {reflex_id!r}")
            if reflex_id in seen:
                errors.append(f"profiles.{name} lists {reflex_id!r} twice")
            seen.add(reflex_id)
        profiles[name] = ReflexProfile(name=name, order=tuple(order))

    default = profiles.get(DEFAULT_PROFILE)
    if default is None or not default.order:
        errors.append(f"profiles.{DEFAULT_PROFILE} must exist and must not be empty")
    return profiles


def _parse_context_decay(data: dict, errors: list) -> ContextDecayPolicy:
    section = _section(data, "context_decay", errors)
    limits = {}
    for key in ("max_turns_without_recap", "max_tokens_since_recap"):
        value = section.get(key)
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            if section:
                errors.append(f"context_decay.{key} must be a non-negative integer")
            value = 0
        limits[key] = value
    on_expire = _enum_value(Mode, section.get("on_expire", "recap"),
                            "context_decay.on_expire", errors) or Mode.RECAP
    return ContextDecayPolicy(
        max_turns=limits["max_turns_without_recap"],
        max_tokens=limits["max_tokens_since_recap"],
        on_expire=on_expire,
    )


def _parse_handshake_defaults(data: dict, profiles: dict, errors: list) -> HandshakeDefaults:
    raw = data.get("handshake_defaults") or {}
    if not isinstance(raw, dict):
        errors.append("handshake_defaults must be a mapping")
        return HandshakeDefaults()
    defaults = HandshakeDefaults()
    mode = _enum_value(Mode, raw.get("mode", defaults.mode.value),
                       "handshake_defaults.mode", errors)
    tier = _enum_value(RiskTier, raw.get("tier", raw.get("stakes", defaults.tier.value)),
                       "handshake_defaults.tier", errors)
    cite = _enum_value(CitationOverride, raw.get("cite_policy", "auto"),
                       "handshake_defaults.cite_policy", errors)
    try:
        omission = parse_omission_override(raw.get("omission_scan", "auto"))
    except ValueError:
        errors.append(f"handshake_defaults.omission_scan: unknown value {raw.get('omission_scan')!r}")
        omission = None
    profile = str(raw.get("reflex_profile", DEFAULT_PROFILE))
    if profiles and profile not in profiles:
        errors.append(f"handshake_defaults.reflex_profile {profile!r} is not a defined profile")
    return HandshakeDefaults(
        mode=mode or defaults.mode,
        tier=tier or defaults.tier,
        cite_policy=cite or defaults.cite_policy,
        omission_scan=omission,
        reflex_profile=profile,
    )


def _parse_failure_semantics(data: dict, errors: list) -> FailureSemantics:
    raw = data.get("failure_semantics") or {}
    if not isinstance(raw, dict):
        errors.append("failure_semantics must be a mapping")
        return FailureSemantics()
    hedge = _unit_float(raw.get("hedge_threshold", 0.4), "failure_semantics.hedge_threshold", errors, 0.4)
    refuse = _unit_float(raw.get("refuse_threshold", 0.2), "failure_semantics.refuse_threshold", errors, 0.2)
    if refuse > hedge:
        errors.append("failure_semantics.refuse_threshold must not exceed hedge_threshold")
    messages = {}
    for kind in ("refuse", "hedge", "ask_clarify"):
        entry = raw.get(kind)
        if isinstance(entry, dict):
            messages[kind] = FailureMessage(
                text=str(entry.get("ui_failover_text", entry.get("text", ""))),
                action=str(entry.get("action", "")),
            )
    return FailureSemantics(hedge_threshold=hedge, refuse_threshold=refuse,
                            messages=MappingProxyType(messages))


def _parse_telemetry(data: dict, errors: list) -> TelemetrySettings:
    raw = data.get("telemetry") or {}
    if not isinstance(raw, dict):
        errors.append("telemetry must be a mapping")
        return TelemetrySettings()
    enabled = raw.get("enabled", True) and raw.get("emit_events", True)
    fields = raw.get("redact_fields") or []
    if not isinstance(fields, list) or not all(isinstance(f, str) for f in fields):
        errors.append(f"telemetry.redact_fields must be a list of field names (got {fields!r})")
        fields = []
    return TelemetrySettings(
        enabled=bool(enabled),
        redact_fields=frozenset(fields),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse_codex(data: dict) -> Codex:
    """Validate a raw codex mapping and freeze it.

    Raises CodexError listing every problem found.
    """
    if not isinstance(data, dict):
        raise CodexError("codex document must be a mapping")

    errors: list = []

    version = str(data.get("codex_version", ""))
    if not SEMVER_RE.match(version):
        errors.append(f'codex_version must be semver (got "{version}")')

    tiers = _parse_tiers(data, errors)
    modes = _parse_modes(data, errors)
    reflexes = _parse_reflexes(data, errors)
    profiles = _parse_profiles(data, reflexes, errors)
    context_decay = _parse_context_decay(data, errors)
    handshake_defaults = _parse_handshake_defaults(data, profiles, errors)
    failure_semantics = _parse_failure_semantics(data, errors)
    telemetry = _parse_telemetry(data, errors)

    omission_section = data.get("omission_scan") or {}
    allow_override = bool(omission_section.get("allow_override", False)) \
        if isinstance(omission_section, dict) else False

    if errors:
        raise CodexError(errors)

    return Codex(
        version=version,
        date=str(data.get("codex_date", "")),
        description=str(data.get("description", "")),
        reflexes=MappingProxyType(reflexes),
        tiers=MappingProxyType(tiers),
        modes=MappingProxyType(modes),
        profiles=MappingProxyType(profiles),
        context_decay=context_decay,
        omission_overrides_allowed=allow_override,
        handshake_defaults=handshake_defaults,
        failure_semantics=failure_semantics,
        telemetry=telemetry,
    )


def resolve_codex_path(path=None) -> Path:
    if path:
        return Path(path)
    env_path = os.environ.get(CODEX_ENV_VAR)
    if env_path:
        return Path(env_path)
    return DEFAULT_CODEX_PATH


def load_codex(path=None) -> Codex:
    """Load and validate a codex YAML file."""
    codex_path = resolve_codex_path(path)
    try:
        with open(codex_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise CodexError(f"cannot read codex file {codex_path}: {e}") from e
    except yaml.YAMLError as e:
        raise CodexError(f"codex file {codex_path} is not valid YAML: {e}") from e
    return parse_codex(data or {})
