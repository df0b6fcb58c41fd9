"""
Reflex Gate — Rhetoric Detectors
==================================
Lexical detectors for persuasion that substitutes pressure for evidence:
  vx-so01  speculative overreach (hedged speculation presented as insight)
  vx-em09  rhetorical entrapment (false binaries, loaded questions)
  vx-fo01  false urgency (manufactured time pressure)
"""

from models import ReflexFinding
from detectors.base import BaseDetector, DetectorRegistry, match_table


# Severity bands map to detector scores
HIGH, MEDIUM, LOW = 0.8, 0.6, 0.4


SPECULATION_MARKERS = [
    (r"\bcould potentially\b", HIGH, "Double speculation",
     "Layered hedging that sounds more authoritative than it is"),
    (r"\blikely growing\b", HIGH, "Speculative certainty",
     "Presents a projection as probable fact without a statistical basis"),
    (r"\bpossibly\b", HIGH, "Speculation",
     "Suggests likelihood without offering any basis for it"),
    (r"\bmight be\b", MEDIUM, "Speculation",
     "Implies knowledge while committing to nothing"),
    (r"\bestimates (?:suggest|show|indicate)\b", MEDIUM, "Data hedging",
     "Builds a definitive conclusion on acknowledged estimates"),
]

ENTRAPMENT_MARKERS = [
    (r"you'?re either with us or against us", 0.9, "False binary",
     "Forces a two-sided choice and erases the middle ground"),
    (r"why are you afraid to answer", 0.9, "Intimidation question",
     "Treats hesitation as fear to pressure a quick response"),
    (r"what do you have to hide", 0.9, "Guilt presumption",
     "Presumes wrongdoing to compel disclosure"),
    (r"\bjust admit it\b", 0.9, "Confession pressure",
     "Demands concession without allowing consideration"),
    (r"\bso you agree,? then\b", 0.75, "False conclusion",
     "Reads hesitation or nuance as agreement"),
]

URGENCY_MARKERS = [
    (r"\bact now\b", 0.85, "Call to immediate action",
     "Pushes for action before the claim can be checked"),
    (r"\blast chance\b", 0.8, "Scarcity pressure",
     "Frames the decision as now-or-never"),
    (r"before it'?s too late", 0.8, "Catastrophic deadline",
     "Invokes an unstated deadline to cut deliberation short"),
    (r"\btime is running out\b", 0.75, "Countdown framing",
     "Asserts a shrinking window without saying why"),
    (r"\blimited time only\b", 0.7, "Limited-time framing",
     "Commercial urgency cue"),
]


@DetectorRegistry.register
class SpeculativeOverreachDetector(BaseDetector):
    reflex_id = "vx-so01"

    def detect(self, text: str) -> list[ReflexFinding]:
        return match_table(self.reflex_id, text, SPECULATION_MARKERS, ["speculation", "overreach"])


@DetectorRegistry.register
class RhetoricalEntrapmentDetector(BaseDetector):
    reflex_id = "vx-em09"

    def detect(self, text: str) -> list[ReflexFinding]:
        return match_table(self.reflex_id, text, ENTRAPMENT_MARKERS,
                           ["rhetorical-entrapment", "manipulation"])


@DetectorRegistry.register
class FalseUrgencyDetector(BaseDetector):
    reflex_id = "vx-fo01"

    def detect(self, text: str) -> list[ReflexFinding]:
        findings = match_table(self.reflex_id, text, URGENCY_MARKERS, ["urgency", "pressure"])
        # Several stacked cues are stronger than any single one
        if len(findings) >= 2:
            top = max(f.score for f in findings)
            findings.append(ReflexFinding(
                reflex_id=self.reflex_id,
                score=min(0.95, top + 0.1),
                label="Stacked urgency cues",
                rationale=f"{len(findings)} separate urgency cues in one passage",
                tags=["urgency", "pressure", "stacked"],
            ))
        return findings
