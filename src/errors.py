"""
Reflex Gate — Errors
======================
Configuration problems and malformed input are real failures and propagate
to the caller. A block is a policy decision, not an error, so it never
appears here.
"""


class ReflexGateError(Exception):
    """Base class for all reflex gate failures."""


class CodexError(ReflexGateError):
    """The codex document is malformed or violates a load-time invariant.

    Validation collects every problem it finds; they are kept on ``errors``
    so a broken codex can be fixed in one pass.
    """

    def __init__(self, errors):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("Invalid codex: " + "; ".join(self.errors))


class InputError(ReflexGateError, ValueError):
    """An evaluation request was rejected before evaluation began."""
