"""
Reflex Gate — Semantic Detector
=================================
Model-backed scoring for every reflex in the codex at once.

Sends the text, the reflex catalogue and the session handshake to a fresh
model context (no conversation history) and asks for one 0-1 score per
reflex. Runs only when an Anthropic API key is available; any client or
parse failure yields no findings, which the policy core reads as score 0.

Not registered by default: build one explicitly and pass it alongside the
lexical detectors.
"""

import json
import logging
import os
from typing import Optional

from models import ReflexFinding
from detectors.base import BaseDetector

logger = logging.getLogger("reflex_gate.detectors.semantic")

DEFAULT_MODEL = "claude-haiku-4-5-20251001"
MODEL_ENV_VAR = "REFLEX_GATE_MODEL"

SCORING_POLICY = """You score a passage for epistemic failure modes ("reflexes").

For each reflex id you are given, return how strongly the passage exhibits it,
from 0.0 (absent) to 1.0 (unmistakable). Judge the passage only; do not use
outside knowledge about its author.

Respond with JSON only:
{"scores": {"<reflex id>": <0.0-1.0>, ...}, "rationale": {"<reflex id>": "one sentence", ...}}"""


class SemanticDetector(BaseDetector):
    reflex_id = "*"

    def __init__(self, config=None, reflexes: Optional[dict] = None,
                 handshake: Optional[dict] = None, api_key: Optional[str] = None,
                 model: Optional[str] = None, client=None):
        """
        Args:
            reflexes: reflex id -> label, the catalogue to score
            handshake: Handshake.to_dict() for the current session
            api_key: Anthropic key; falls back to ANTHROPIC_API_KEY
            model: model name; falls back to REFLEX_GATE_MODEL, then DEFAULT_MODEL
            client: pre-built client (tests, shared connection pools)
        """
        super().__init__(config)
        self._reflexes = dict(reflexes or {})
        self._handshake = dict(handshake or {})
        self._model = model or os.environ.get(MODEL_ENV_VAR) or DEFAULT_MODEL
        self._client = client

        if self._client is None:
            key = api_key or os.environ.get("ANTHROPIC_API_KEY")
            if key:
                try:
                    import anthropic
                    self._client = anthropic.Anthropic(api_key=key)
                except ImportError:
                    logger.warning("anthropic package not installed")
                except Exception as e:
                    logger.warning("Failed to init Anthropic client: %s", e)

    @property
    def is_available(self) -> bool:
        return self._client is not None and bool(self._reflexes)

    def detect(self, text: str) -> list[ReflexFinding]:
        if not self.is_available or not text or not text.strip():
            return []

        catalogue = "\n".join(f"- {rid}: {label}" for rid, label in self._reflexes.items())
        user_msg = (
            f"REFLEXES:\n{catalogue}\n\n"
            f"SESSION POLICY: {json.dumps(self._handshake, sort_keys=True)}\n\n"
            f"PASSAGE:\n{text[:4000]}"
        )

        try:
            response = self._client.messages.create(
                model=self._model,
                max_tokens=400,
                system=SCORING_POLICY,
                messages=[{"role": "user", "content": user_msg}],
            )
            raw = response.content[0].text.strip()
        except Exception as e:
            logger.warning("Semantic scoring failed: %s", e)
            return []

        return self._parse_response(raw)

    def _parse_response(self, raw: str) -> list[ReflexFinding]:
        """Parse the model's JSON answer. Unknown ids and bad values are dropped."""
        text = raw
        if text.startswith("```"):
            lines = [l for l in text.split("\n") if not l.strip().startswith("```")]
            text = "\n".join(lines)

        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            start = text.find("{")
            end = text.rfind("}") + 1
            if start < 0 or end <= start:
                logger.warning("No JSON in semantic scorer response")
                return []
            try:
                data = json.loads(text[start:end])
            except json.JSONDecodeError:
                logger.warning("Failed to parse semantic scorer response")
                return []

        if not isinstance(data, dict):
            return []
        scores = data.get("scores", {})
        rationale = data.get("rationale", {})
        if not isinstance(scores, dict):
            return []
        if not isinstance(rationale, dict):
            rationale = {}

        findings = []
        for reflex_id, value in scores.items():
            if reflex_id not in self._reflexes:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            findings.append(ReflexFinding(
                reflex_id=reflex_id,
                score=min(1.0, max(0.0, float(value))),
                label=self._reflexes[reflex_id],
                rationale=str(rationale.get(reflex_id, "")),
                tags=["semantic"],
            ))
        return findings
