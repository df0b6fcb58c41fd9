"""
Reflex Gate — Claim Detectors
===============================
Lexical detectors for claims that outrun their evidence:
  vx-ha01  hallucination / factually implausible claims
  vx-da01  data-less claims (authority or causation without sources)
  vx-fp01  false precision (numbers asserted with unwarranted exactness)
"""

from models import ReflexFinding
from detectors.base import BaseDetector, DetectorRegistry, match_table


# ---------------------------------------------------------------------------
# vx-ha01: Hallucination
# ---------------------------------------------------------------------------

# (pattern, score, label, rationale)
IMPLAUSIBLE_CLAIMS = [
    (r"\bthe (?:world|earth) is flat\b", 0.95, "Factually implausible claim",
     "Contradicts established scientific consensus"),
    (r"\bthe moon is made of cheese\b", 0.95, "Factually implausible claim",
     "Contradicts established scientific consensus"),
    (r"\bvaccines cause autism\b", 0.95, "Factually implausible claim",
     "Repeats a claim refuted by large-scale studies"),
    (r"\bclimate change is a hoax\b", 0.95, "Factually implausible claim",
     "Contradicts established scientific consensus"),
    (r"\bearth is only \d+ years old\b", 0.95, "Factually implausible claim",
     "Contradicts geological and astronomical dating"),
    (r"until .{0,40}prove (?:me )?otherwise|prove me wrong|burden of proof is on you",
     0.85, "Burden of proof reversal",
     "Demands others disprove the claim instead of supporting it"),
    (r"everyone knows that .{0,60}\b(?:aliens|telepathy|psychic)",
     0.75, "Consensus fallacy on speculative claim",
     "Claims universal agreement on an unverifiable topic"),
    (r"according to (?:unnamed|anonymous) sources", 0.65, "Unverifiable source",
     "Attribution cannot be checked"),
]


@DetectorRegistry.register
class HallucinationDetector(BaseDetector):
    reflex_id = "vx-ha01"

    def detect(self, text: str) -> list[ReflexFinding]:
        return match_table(self.reflex_id, text, IMPLAUSIBLE_CLAIMS, ["hallucination"])


# ---------------------------------------------------------------------------
# vx-da01: Data-less claims
# ---------------------------------------------------------------------------

DATALESS_CLAIMS = [
    (r"\b(?:scientists|experts|researchers|studies) (?:claim|say|show|agree)\b", 0.8,
     "Vague attribution", "Invokes authority without naming a study or researcher"),
    (r"\b(?:is|are) caused by\b", 0.75, "Causal claim without evidence",
     "Asserts causation as fact without citing data"),
    (r"\bit'?s widely accepted\b", 0.8, "Vague consensus",
     "Claims broad acceptance without evidence of it"),
    (r"\bnobody disputes\b|\bno one disagrees\b", 0.85, "False unanimity",
     "Presents a contested issue as settled"),
    (r"\b(?:the )?(?:data|numbers|research) (?:clearly )?(?:shows?|proves?)\b(?![^.]*\b(?:source|study|according|et al)\b)",
     0.65, "Unsourced data reference", "Refers to data that is never identified"),
]


@DetectorRegistry.register
class DatalessClaimDetector(BaseDetector):
    reflex_id = "vx-da01"

    def detect(self, text: str) -> list[ReflexFinding]:
        return match_table(self.reflex_id, text, DATALESS_CLAIMS, ["data-less", "evidence"])


# ---------------------------------------------------------------------------
# vx-fp01: False precision
# ---------------------------------------------------------------------------

FALSE_PRECISION = [
    (r"\b\d{1,3}\.\d{4,}\s*%", 0.8, "False precision",
     "Percentage quoted to more decimals than any measurement supports"),
    (r"\b\d+\.\d{6,}\b", 0.75, "False precision",
     "Overly precise number without meaningful justification"),
    (r"\b(?:exactly|precisely|down to the penny)\s+\d", 0.7, "False precision",
     "Absolute modifier attached to an estimate"),
]


@DetectorRegistry.register
class FalsePrecisionDetector(BaseDetector):
    reflex_id = "vx-fp01"

    def detect(self, text: str) -> list[ReflexFinding]:
        return match_table(self.reflex_id, text, FALSE_PRECISION, ["false-precision", "numerical"])

