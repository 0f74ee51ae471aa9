"""Deferral primitive: "run this once, after the current synchronous work".

The digest engine never runs an event loop of its own. eval_async's
self-triggered digest and apply_async's coalesced flush both go through a
deferrer: a callable taking a zero-argument function and arranging for it
to run later. The default uses a daemon threading.Timer with zero delay.

Swap it once for the whole process:
    dirtyscope.set_deferrer(loop.call_soon_threadsafe)

or per scope:
    Scope(deferrer=app.call_later)
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

logger = logging.getLogger("dirtyscope.scheduler")

Deferrer = Callable[[Callable[[], None]], Any]

DEFAULT_DELAY = 0.0

# ─── Module-wide deferrer ────────────────────────────────────────────────────
_deferrer: Deferrer | None = None


def timer_deferrer(fn: Callable[[], None]) -> threading.Timer:
    """Run fn on a daemon timer thread after DEFAULT_DELAY seconds."""
    timer = threading.Timer(DEFAULT_DELAY, fn)
    timer.daemon = True
    timer.start()
    return timer


def set_deferrer(deferrer: Deferrer | None) -> None:
    """Install the deferrer used by scopes that don't carry their own.

    Pass None to go back to the timer-based default.
    """
    global _deferrer
    _deferrer = deferrer


def get_deferrer() -> Deferrer:
    return _deferrer if _deferrer is not None else timer_deferrer


class DeferredCall:
    """A scheduled call that can be cancelled before it fires.

    Cancellation works with any deferrer: the call checks its own flag when
    it runs. If the deferrer returned something with a cancel() method
    (threading.Timer, asyncio.Handle), that is cancelled too.
    """

    __slots__ = ("_fn", "_cancelled", "_fired", "_handle")

    def __init__(self, fn: Callable[[], None]) -> None:
        self._fn = fn
        self._cancelled = False
        self._fired = False
        self._handle: Any = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def pending(self) -> bool:
        return not self._cancelled and not self._fired

    def schedule(self, deferrer: Deferrer | None = None) -> DeferredCall:
        """Hand this call to deferrer (or the module-wide one)."""
        self._handle = (deferrer or get_deferrer())(self)
        logger.debug("Deferred %s", getattr(self._fn, "__name__", self._fn))
        return self

    def __call__(self) -> None:
        if not self.pending:
            return
        self._fired = True
        self._fn()

    def cancel(self) -> None:
        if not self.pending:
            return
        self._cancelled = True
        cancel = getattr(self._handle, "cancel", None)
        if cancel is not None:
            cancel()


def defer(fn: Callable[[], None], deferrer: Deferrer | None = None) -> DeferredCall:
    """Schedule fn through deferrer (or the module-wide one). Returns a DeferredCall."""
    return DeferredCall(fn).schedule(deferrer)
