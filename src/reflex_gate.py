"""
Reflex Gate — Entry Point
===========================
Evaluation pipeline, text analysis front door, report formatting and CLI.

The pipeline is a pure, synchronous decision function over already-computed
detector scores:

  INIT -> RESOLVING_CONFIDENCE -> EVALUATING_REFLEXES
       -> (BLOCKED | POLICY_DECISIONS) -> DONE

Blocking is terminal: the first reflex that blocks ends the pass, and the
outcome falls back to the conservative defaults (citations and omission scan
on, context decay not evaluated).
"""

import json
import logging
import math
import sys
from enum import Enum
from typing import Mapping, Optional

# --- Models / codex ---
from codex import Codex, load_codex
from errors import ReflexGateError, InputError
from models import (
    RiskTier, Mode, CitationOverride, FailureKind,
    ContextAge, FiredReflex, EvaluationRequest, EvaluationOutcome,
    coerce_score, parse_omission_override,
)

# --- Policy ---
from policy import (
    resolve_min_confidence,
    resolve_order,
    evaluate_reflex,
    top_fired_score,
    decide_citation,
    decide_omission_scan,
    is_context_expired,
    failure_text,
)
from telemetry import TelemetrySink, LoggingSink, emit

# --- Detectors ---
from detectors.base import DetectorRegistry, run_detectors, collect_scores
import detectors.claims
import detectors.rhetoric
import detectors.omission

logger = logging.getLogger("reflex_gate.pipeline")


class PipelineState(str, Enum):
    INIT = "INIT"
    RESOLVING_CONFIDENCE = "RESOLVING_CONFIDENCE"
    EVALUATING_REFLEXES = "EVALUATING_REFLEXES"
    BLOCKED = "BLOCKED"
    POLICY_DECISIONS = "POLICY_DECISIONS"
    DONE = "DONE"


# ---------------------------------------------------------------------------
# INIT: input validation
# ---------------------------------------------------------------------------

def _non_negative_int(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InputError(f"{name} must be a non-negative integer, got {value!r}")
    if isinstance(value, float) and (math.isnan(value) or not value.is_integer()):
        raise InputError(f"{name} must be a whole number, got {value!r}")
    if value < 0:
        raise InputError(f"{name} must be a non-negative integer, got {value!r}")
    return int(value)


def validate_request(request: EvaluationRequest) -> EvaluationRequest:
    """
    Normalize a request into parsed enums and float scores.

    Anything malformed raises InputError; nothing is silently defaulted
    except scores missing for a reflex, which count as 0.
    """
    if not isinstance(request, EvaluationRequest):
        raise InputError(f"Expected EvaluationRequest, got {type(request).__name__}")

    tier = RiskTier.parse(request.tier)
    mode = Mode.parse(request.mode)
    citation = CitationOverride.parse(request.citation_override)
    omission = parse_omission_override(request.omission_override)

    if not isinstance(request.scores, Mapping):
        raise InputError("scores must be a mapping of reflex id to score")
    scores = {}
    for reflex_id, value in request.scores.items():
        if not isinstance(reflex_id, str):
            raise InputError(f"Reflex ids must be strings, got {reflex_id!r}")
        scores[reflex_id] = coerce_score(reflex_id, value)

    age = request.context_age
    if not isinstance(age, ContextAge):
        raise InputError("context_age must be a ContextAge")
    age = ContextAge(
        turns_since_recap=_non_negative_int("turns_since_recap", age.turns_since_recap),
        tokens_since_recap=_non_negative_int("tokens_since_recap", age.tokens_since_recap),
    )

    if not isinstance(request.external_claim, bool):
        raise InputError(f"external_claim must be a boolean, got {request.external_claim!r}")
    if not isinstance(request.profile, str) or not request.profile:
        raise InputError(f"profile must be a non-empty string, got {request.profile!r}")

    return EvaluationRequest(
        tier=tier,
        mode=mode,
        scores=scores,
        context_age=age,
        external_claim=request.external_claim,
        citation_override=citation,
        omission_override=omission,
        profile=request.profile,
    )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

def evaluate(codex: Codex, request: EvaluationRequest,
             sink: Optional[TelemetrySink] = None) -> EvaluationOutcome:
    """
    One evaluation pass.

    Same codex + same request always gives the same outcome. Telemetry goes
    to the sink after the decision is made and cannot change it.
    """
    state = PipelineState.INIT
    req = validate_request(request)

    state = PipelineState.RESOLVING_CONFIDENCE
    min_confidence = resolve_min_confidence(codex, req.tier, req.mode)

    state = PipelineState.EVALUATING_REFLEXES
    order = resolve_order(codex, req.profile)
    profile = req.profile if req.profile in codex.profiles else "default"
    fired = []
    blocked_by = None
    block_score = None

    for reflex_id in order:
        score = req.scores.get(reflex_id, 0.0)
        decision = evaluate_reflex(codex, reflex_id, score, req.tier)
        if decision.block:
            blocked_by, block_score = reflex_id, score
            state = PipelineState.BLOCKED
            break
        if decision.trigger:
            fired.append(FiredReflex(reflex_id=reflex_id, score=score))

    if state == PipelineState.BLOCKED:
        outcome = EvaluationOutcome(
            min_confidence=min_confidence,
            fired=tuple(fired),
            blocked_by=blocked_by,
            need_citation=True,
            run_omission_scan=True,
            context_expired=False,
            codex_version=codex.version,
            profile=profile,
            block_score=block_score,
        )
        logger.debug("Blocked by %s (score %.3f) after %d fired", blocked_by, block_score, len(fired))
        emit(sink, codex, "analysis.blocked", {"reflex_id": blocked_by, "score": block_score})
        return outcome

    state = PipelineState.POLICY_DECISIONS
    need_citation = decide_citation(
        codex, req.tier, top_fired_score(fired), req.external_claim, req.citation_override,
    )
    run_omission_scan = decide_omission_scan(codex, req.tier, req.omission_override)
    expired = is_context_expired(codex, req.context_age)

    state = PipelineState.DONE
    outcome = EvaluationOutcome(
        min_confidence=min_confidence,
        fired=tuple(fired),
        need_citation=need_citation,
        run_omission_scan=run_omission_scan,
        context_expired=expired,
        codex_version=codex.version,
        profile=profile,
    )
    emit(sink, codex, "analysis.complete", {
        "fired_count": len(fired),
        "need_citation": need_citation,
        "run_omission_scan": run_omission_scan,
        "context_expired": expired,
    })
    return outcome


def evaluate_dict(codex: Codex, data: dict,
                  sink: Optional[TelemetrySink] = None) -> dict:
    """Wire-shape convenience: input dict in, output dict out."""
    return evaluate(codex, EvaluationRequest.from_dict(data), sink=sink).to_dict()


def analyze_text(codex: Codex, text: str, tier="medium", mode="careful",
                 context_age: Optional[ContextAge] = None,
                 external_claim: bool = False, citation_override="auto",
                 omission_override=None, profile: str = "default",
                 detectors=None, sink: Optional[TelemetrySink] = None):
    """
    Run the detector layer over raw text, then evaluate the scores.

    Returns (outcome, findings). Detectors default to every registered
    lexical detector.
    """
    if detectors is None:
        detectors = DetectorRegistry.get_detectors()
    findings = run_detectors(text or "", detectors)
    request = EvaluationRequest(
        tier=tier,
        mode=mode,
        scores=collect_scores(findings),
        context_age=context_age or ContextAge(),
        external_claim=external_claim,
        citation_override=citation_override,
        omission_override=omission_override,
        profile=profile,
    )
    return evaluate(codex, request, sink=sink), findings


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

def format_outcome(outcome: EvaluationOutcome, codex: Codex, findings=None) -> str:
    """Format an evaluation outcome as readable text."""
    lines = []
    lines.append("=" * 60)
    lines.append("REFLEX GATE EVALUATION")
    lines.append("=" * 60)
    lines.append(f"Codex: {codex.version} | Profile: {outcome.profile}")
    lines.append(f"Minimum confidence: {outcome.min_confidence:.2f}")
    lines.append("")

    lines.append("-" * 40)
    if outcome.blocked:
        reflex = codex.reflex(outcome.blocked_by)
        label = reflex.label if reflex else outcome.blocked_by
        lines.append(f"BLOCKED by {outcome.blocked_by} ({label}) at score {outcome.block_score:.2f}")
    else:
        lines.append("Not blocked")
    lines.append("-" * 40)

    lines.append(f"FIRED REFLEXES ({len(outcome.fired)})")
    if outcome.fired:
        for f in outcome.fired:
            reflex = codex.reflex(f.reflex_id)
            label = reflex.label if reflex else ""
            lines.append(f"  {f.reflex_id} [{f.score:.2f}] {label}")
    else:
        lines.append("  None.")
    lines.append("")

    lines.append("POLICY")
    lines.append(f"  Citations required: {'YES' if outcome.need_citation else 'no'}")
    lines.append(f"  Omission scan: {'YES' if outcome.run_omission_scan else 'no'}")
    if outcome.context_expired:
        lines.append(f"  Context expired: YES (switch to --{codex.context_decay.on_expire.value})")
    elif outcome.blocked:
        lines.append("  Context expired: not evaluated")
    else:
        lines.append("  Context expired: no")

    if outcome.blocked:
        text, action = failure_text(codex, FailureKind.REFUSE)
        if text:
            lines.append(f"  Failover: {text} [{action}]")

    if findings:
        lines.append("")
        lines.append(f"DETECTOR FINDINGS ({len(findings)})")
        for f in sorted(findings, key=lambda x: (-x.score, x.reflex_id)):
            lines.append(f"  {f.reflex_id} [{f.score:.2f}] {f.label or ''}")
            if f.rationale:
                lines.append(f"    {f.rationale[:100]}")

    lines.append("=" * 60)
    return "\n".join(lines)


def outcome_to_json(outcome: EvaluationOutcome, findings=None) -> str:
    """Export outcome (and optional findings) as JSON."""
    data = outcome.to_dict()
    if findings is not None:
        data["findings"] = [
            {"reflexId": f.reflex_id, "score": f.score, "label": f.label,
             "rationale": f.rationale, "tags": f.tags}
            for f in findings
        ]
    return json.dumps(data, indent=2)


# ---------------------------------------------------------------------------
# CLI Entry Point
# ---------------------------------------------------------------------------

def main(argv=None):
    """Run an evaluation from the command line."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Reflex Gate - reflex policy evaluation"
    )
    parser.add_argument("input_file", nargs="?", help="File containing the text to analyze")
    parser.add_argument("--text", help="Text to analyze (instead of a file)")
    parser.add_argument("--scores", help="JSON file of precomputed {reflex_id: score}; skips detectors")
    parser.add_argument("--codex", default=None, help="Codex YAML path (default: $REFLEX_GATE_CODEX or config/codex.yaml)")
    parser.add_argument("--tier", default=None, choices=[t.value for t in RiskTier])
    parser.add_argument("--mode", default=None, choices=[m.value for m in Mode])
    parser.add_argument("--profile", default=None, help="Reflex firing-order profile")
    parser.add_argument("--cite", default="auto", choices=[c.value for c in CitationOverride],
                        help="Citation override (default: auto)")
    parser.add_argument("--external-claim", action="store_true",
                        help="The text makes claims about the outside world")
    parser.add_argument("--turns", type=int, default=0, help="Turns since last recap")
    parser.add_argument("--tokens", type=int, default=0, help="Tokens since last recap")
    parser.add_argument("--semantic", action="store_true",
                        help="Also score with the model-backed detector (needs ANTHROPIC_API_KEY)")
    parser.add_argument("--json", action="store_true", help="Output as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log telemetry events")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    try:
        codex = load_codex(args.codex)
    except ReflexGateError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    defaults = codex.handshake_defaults
    tier = args.tier or defaults.tier
    mode = args.mode or defaults.mode
    profile = args.profile or defaults.reflex_profile
    age = ContextAge(turns_since_recap=args.turns, tokens_since_recap=args.tokens)

    sink = LoggingSink() if args.verbose else None

    findings = None
    try:
        if args.scores:
            with open(args.scores, "r", encoding="utf-8") as f:
                scores = json.load(f)
            outcome = evaluate(codex, EvaluationRequest(
                tier=tier, mode=mode, scores=scores, context_age=age,
                external_claim=args.external_claim, citation_override=args.cite,
                profile=profile,
            ), sink=sink)
        else:
            if args.text is not None:
                text = args.text
            elif args.input_file:
                with open(args.input_file, "r", encoding="utf-8") as f:
                    text = f.read()
            else:
                parser.error("provide input_file, --text or --scores")

            detectors = DetectorRegistry.get_detectors()
            if args.semantic:
                from detectors.semantic import SemanticDetector
                from handshake import build_handshake
                handshake = build_handshake(codex, mode=mode, tier=tier,
                                            cite_policy=args.cite, reflex_profile=profile)
                detectors.append(SemanticDetector(
                    reflexes={rid: r.label for rid, r in codex.reflexes.items()},
                    handshake=handshake.to_dict(),
                ))

            outcome, findings = analyze_text(
                codex, text, tier=tier, mode=mode, context_age=age,
                external_claim=args.external_claim, citation_override=args.cite,
                profile=profile, detectors=detectors, sink=sink,
            )
    except (ReflexGateError, ValueError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    if args.json:
        print(outcome_to_json(outcome, findings))
    else:
        print(format_outcome(outcome, codex, findings))
    return 0


if __name__ == "__main__":
    sys.exit(main())
