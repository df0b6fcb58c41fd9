"""
Reflex Gate — Telemetry
=========================
Fire-and-forget event emission. A sink is any callable taking
(event_name, payload). Sink failures are swallowed here and never reach
the pipeline.
"""

import logging
import time
from typing import Callable, Optional

from codex import Codex

logger = logging.getLogger("reflex_gate.telemetry")

REDACTED = "[redacted]"

TelemetrySink = Callable[[str, dict], None]


class LoggingSink:
    """Default sink: one INFO line per event."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logger

    def __call__(self, name: str, payload: dict) -> None:
        self._log.info("[telemetry] %s %s", name, payload)


class CollectingSink:
    """Keeps events in memory. Handy for batch runs and inspection."""

    def __init__(self):
        self.events = []

    def __call__(self, name: str, payload: dict) -> None:
        self.events.append((name, payload))

    def names(self) -> list:
        return [name for name, _ in self.events]


def redact(codex: Codex, payload: dict) -> dict:
    """Mask top-level keys listed in the codex's redact_fields."""
    hidden = codex.telemetry.redact_fields
    return {k: (REDACTED if k in hidden else v) for k, v in payload.items()}


def emit(sink: Optional[TelemetrySink], codex: Codex, name: str,
         payload: Optional[dict] = None) -> None:
    """Send one event. Never raises."""
    if sink is None or not codex.telemetry.enabled:
        return
    try:
        data = redact(codex, dict(payload or {}))
        data.setdefault("codex_version", codex.version)
        data.setdefault("timestamp", time.time())
        sink(name, data)
    except Exception as e:
        logger.debug("Telemetry sink failed for %s: %s", name, e)
