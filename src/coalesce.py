"""
Reflex Gate — Request Coalescer
=================================
Per-session debounce plus single-flight for callers that re-evaluate on every
keystroke or message edit.

  - Calls for one session that land inside the wait window collapse into a
    single call made with the most recent arguments. Every waiter gets that
    one result.
  - While a call for the session is running, further submits share its
    result instead of starting another.
  - cancel() abandons a debounced call that has not started yet. A running
    call is never interrupted.

Sessions are independent; nothing is shared between them. The evaluation
core stays synchronous, and this layer only decides when to call it. A
synchronous fn runs in the loop's default executor so a slow call (a model
request, say) does not hold up other sessions' timers; coroutine functions
run on the loop.
"""

import asyncio
import functools
import inspect
import logging
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger("reflex_gate.coalesce")

DEFAULT_WAIT = 0.8   # seconds


def _retrieve_exception(future: asyncio.Future) -> None:
    if not future.cancelled():
        future.exception()


class _Slot:
    """Debounce and in-flight state for one session."""

    __slots__ = ("timer", "pending", "args", "kwargs", "inflight", "task")

    def __init__(self):
        self.timer: Optional[asyncio.TimerHandle] = None
        self.pending: Optional[asyncio.Future] = None
        self.args: tuple = ()
        self.kwargs: dict = {}
        self.inflight: Optional[asyncio.Future] = None
        self.task: Optional[asyncio.Task] = None

    @property
    def idle(self) -> bool:
        return self.pending is None and self.inflight is None


class SessionCoalescer:
    """
    Wraps fn (sync or async) with per-session debounce and single-flight.
    Sync callables run in the default executor.

    Usage:
        coalescer = SessionCoalescer(lambda req: evaluate(codex, req))
        outcome = await coalescer.submit(session_id, request)
    """

    def __init__(self, fn: Callable[..., Any], wait: float = DEFAULT_WAIT):
        if wait < 0:
            raise ValueError(f"wait must be non-negative, got {wait!r}")
        self._fn = fn
        self.wait = wait
        self._slots: Dict[Any, _Slot] = {}

    async def submit(self, session_id, *args, **kwargs):
        slot = self._slots.get(session_id)
        if slot is not None and slot.inflight is not None:
            return await asyncio.shield(slot.inflight)

        loop = asyncio.get_running_loop()
        if slot is None:
            slot = self._slots[session_id] = _Slot()
        if slot.pending is None:
            slot.pending = loop.create_future()
        if slot.timer is not None:
            slot.timer.cancel()

        slot.args, slot.kwargs = args, kwargs
        slot.timer = loop.call_later(self.wait, self._fire, session_id)
        return await asyncio.shield(slot.pending)

    def cancel(self, session_id) -> bool:
        """Drop the pending debounced call. Returns False if there was none."""
        slot = self._slots.get(session_id)
        if slot is None or slot.pending is None:
            return False
        if slot.timer is not None:
            slot.timer.cancel()
            slot.timer = None
        slot.pending.cancel()
        slot.pending = None
        slot.args, slot.kwargs = (), {}
        self._discard_if_idle(session_id, slot)
        logger.debug("Cancelled pending evaluation for session %s", session_id)
        return True

    def pending(self, session_id) -> bool:
        slot = self._slots.get(session_id)
        return slot is not None and slot.pending is not None

    def in_flight(self, session_id) -> bool:
        slot = self._slots.get(session_id)
        return slot is not None and slot.inflight is not None

    # -----------------------------------------------------------------------

    def _fire(self, session_id) -> None:
        slot = self._slots.get(session_id)
        if slot is None or slot.pending is None:
            return
        future = slot.pending
        args, kwargs = slot.args, slot.kwargs
        slot.timer = None
        slot.pending = None
        slot.args, slot.kwargs = (), {}
        slot.inflight = future
        slot.task = asyncio.get_running_loop().create_task(
            self._run(session_id, slot, future, args, kwargs)
        )

    async def _run(self, session_id, slot: _Slot, future: asyncio.Future,
                   args: tuple, kwargs: dict) -> None:
        try:
            if inspect.iscoroutinefunction(self._fn):
                result = await self._fn(*args, **kwargs)
            else:
                loop = asyncio.get_running_loop()
                result = await loop.run_in_executor(
                    None, functools.partial(self._fn, *args, **kwargs))
                if inspect.isawaitable(result):
                    result = await result
            if not future.done():
                future.set_result(result)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            logger.debug("Evaluation for session %s failed: %s", session_id, e)
            if not future.done():
                future.set_exception(e)
                # Waiters may all be gone; mark the exception retrieved
                future.add_done_callback(_retrieve_exception)
        finally:
            slot.inflight = None
            slot.task = None
            self._discard_if_idle(session_id, slot)

    def _discard_if_idle(self, session_id, slot: _Slot) -> None:
        if slot.idle and self._slots.get(session_id) is slot:
            del self._slots[session_id]
