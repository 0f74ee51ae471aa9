"""Exceptions raised by the digest engine.

Errors from caller-supplied watch, listener, eval and apply functions are
never wrapped: they propagate unchanged. Only the engine's own failure
modes live here.
"""

from __future__ import annotations


class ScopeError(Exception):
    """Base class for digest engine errors."""


class RunawayDigestError(ScopeError):
    """The digest did not converge within its iteration budget.

    Usually two watchers dirty each other forever, or something keeps
    re-queuing eval_async work on every pass.
    """

    def __init__(self, ttl: int) -> None:
        super().__init__(f"{ttl} digest iterations reached without converging")
        self.ttl = ttl


class PhaseInProgressError(ScopeError):
    """A digest or apply was started while another one is still unwinding."""

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"cannot start {requested}: {current} already in progress")
        self.current = current
        self.requested = requested
