"""Scope: a property bag with dirty-checked watchers.

Callers hang arbitrary properties on a Scope and register watchers over
them. digest() re-evaluates every watcher until a full pass finds nothing
changed, calling listeners for whatever did change. Listeners may change
more state; the loop keeps going until it settles or the iteration budget
runs out.

Usage:
    scope = Scope()
    scope.name = "Jane"
    scope.watch(lambda s: s.name, lambda new, old, s: print(new))
    scope.digest()                            # prints "Jane"
    scope.apply(lambda s: setattr(s, "name", "Bob"))   # prints "Bob"

Engine state lives in __slots__; caller properties live in the instance
__dict__, so vars(scope) only ever shows caller data.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Iterator

from dirtyscope.equality import snapshot, values_equal
from dirtyscope.errors import PhaseInProgressError, RunawayDigestError
from dirtyscope.scheduler import DeferredCall, Deferrer
from dirtyscope.watcher import INITIAL, Watcher

if TYPE_CHECKING:
    from dirtyscope.watcher import ListenerFn, WatchFn

logger = logging.getLogger("dirtyscope.scope")

DIGEST = "digest"
APPLY = "apply"

# Outer digest iterations allowed before giving up.
DIGEST_TTL = 10

Task = Callable[["Scope"], Any]

_NO_ARG = object()


class Scope:
    """Mutable state plus the watchers observing it."""

    __slots__ = (
        "_watchers",
        "_last_dirty",
        "_cursor",
        "_phase",
        "_async_queue",
        "_apply_async_queue",
        "_digest_call",
        "_apply_async_call",
        "_post_digest_queue",
        "_ttl",
        "_deferrer",
        "_lock",
        "__dict__",
    )

    def __init__(self, *, ttl: int = DIGEST_TTL, deferrer: Deferrer | None = None) -> None:
        if ttl < 1:
            raise ValueError(f"ttl must be at least 1, got {ttl}")
        self._watchers: list[Watcher] = []
        self._last_dirty: Watcher | None = None
        # Index of the watcher being evaluated while a pass runs, else None.
        self._cursor: int | None = None
        self._phase: str | None = None
        self._async_queue: deque[Task] = deque()
        self._digest_call: DeferredCall | None = None
        self._apply_async_queue: deque[Task] = deque()
        self._apply_async_call: DeferredCall | None = None
        self._post_digest_queue: deque[Task] = deque()
        self._ttl = ttl
        self._deferrer = deferrer
        # Deferred work runs on whatever thread the deferrer uses.
        self._lock = threading.RLock()

    # ─── Property bag ────────────────────────────────────────────────────────

    def __setattr__(self, name: str, value: Any) -> None:
        if not name.startswith("_") and hasattr(type(self), name):
            raise AttributeError(f"{name!r} is reserved by Scope")
        object.__setattr__(self, name, value)

    def __getitem__(self, name: str) -> Any:
        return self.__dict__[name]

    def __setitem__(self, name: str, value: Any) -> None:
        setattr(self, name, value)

    def __delitem__(self, name: str) -> None:
        del self.__dict__[name]

    def __contains__(self, name: str) -> bool:
        return name in self.__dict__

    def get(self, name: str, default: Any = None) -> Any:
        """Read a property that may not have been set yet."""
        return self.__dict__.get(name, default)

    def properties(self) -> dict[str, Any]:
        """Shallow copy of the caller-defined properties."""
        return dict(self.__dict__)

    # ─── Introspection ───────────────────────────────────────────────────────

    @property
    def phase(self) -> str | None:
        """DIGEST or APPLY while one is unwinding on this scope, else None."""
        return self._phase

    @property
    def watchers(self) -> tuple[Watcher, ...]:
        """Registered watchers in evaluation order."""
        return tuple(self._watchers)

    @property
    def ttl(self) -> int:
        return self._ttl

    def set_deferrer(self, deferrer: Deferrer | None) -> None:
        """Use deferrer for this scope's deferred digests. None means the module-wide one."""
        self._deferrer = deferrer

    # ─── Watchers ────────────────────────────────────────────────────────────

    def watch(
        self,
        watch_fn: WatchFn,
        listener_fn: ListenerFn | None = None,
        value_eq: bool = False,
    ) -> Callable[[], None]:
        """Register a watcher. Returns a function that removes it again.

        The listener fires on the next digest whatever the watch function
        returns, and afterwards whenever the value changes. With value_eq
        the value is compared structurally, so in-place mutation counts.
        """
        watcher = Watcher(watch_fn, listener_fn, value_eq)
        with self._lock:
            self._watchers.append(watcher)
            # An early exit must not stop short of the newcomer.
            self._last_dirty = None

        def remove_watcher() -> None:
            with self._lock:
                self._remove(watcher)

        return remove_watcher

    def _remove(self, watcher: Watcher) -> None:
        for index, candidate in enumerate(self._watchers):
            if candidate is watcher:
                break
        else:
            return  # already removed

        del self._watchers[index]
        if self._cursor is not None and index <= self._cursor:
            self._cursor -= 1
        if self._last_dirty is watcher:
            self._last_dirty = None

    # ─── Digest ──────────────────────────────────────────────────────────────

    def digest(self) -> None:
        """Run watchers until nothing changes.

        Raises RunawayDigestError if still dirty after ttl iterations, and
        PhaseInProgressError if called from inside a digest or apply.
        """
        with self._lock:
            with self._entered(DIGEST):
                self._last_dirty = None
                self._cancel_deferred_digest()
                self._absorb_apply_async()
                iterations = self._converge()
            logger.debug("Digest settled after %d iteration(s)", iterations)
            self._run_post_digest()

    def _converge(self) -> int:
        ttl = self.ttl
        iterations = 0
        while True:
            self._drain_async_queue()
            dirty = self._digest_once()
            iterations += 1
            if not dirty and not self._async_queue:
                return iterations
            ttl -= 1
            if ttl == 0:
                raise RunawayDigestError(self.ttl)

    def _digest_once(self) -> bool:
        """One pass over the watchers. Returns True if any was dirty."""
        dirty = False
        watchers = self._watchers
        self._cursor = 0
        try:
            while self._cursor < len(watchers):
                watcher = watchers[self._cursor]
                new_value = watcher.watch_fn(self)
                old_value = watcher.last
                if not values_equal(new_value, old_value, watcher.value_eq):
                    self._last_dirty = watcher
                    watcher.last = snapshot(new_value) if watcher.value_eq else new_value
                    watcher.listener_fn(
                        new_value,
                        new_value if old_value is INITIAL else old_value,
                        self,
                    )
                    dirty = True
                elif watcher is self._last_dirty:
                    # Full circuit since the last change: the rest is clean.
                    break
                self._cursor += 1
        finally:
            self._cursor = None
        return dirty

    def _drain_async_queue(self) -> None:
        while self._async_queue:
            task = self._async_queue.popleft()
            task(self)

    def _run_post_digest(self) -> None:
        while self._post_digest_queue:
            task = self._post_digest_queue.popleft()
            task(self)

    @contextmanager
    def _entered(self, phase: str) -> Iterator[None]:
        if self._phase is not None:
            raise PhaseInProgressError(self._phase, phase)
        self._phase = phase
        try:
            yield
        finally:
            self._phase = None

    # ─── Eval / apply ────────────────────────────────────────────────────────

    def eval(self, fn: Callable[..., Any], arg: Any = _NO_ARG) -> Any:
        """Return fn(scope), or fn(scope, arg) when arg is given. No digest."""
        if arg is _NO_ARG:
            return fn(self)
        return fn(self, arg)

    def apply(self, fn: Task) -> Any:
        """Run fn(scope) in the APPLY phase, then digest. Returns fn's result.

        If fn raises, the phase is cleared and the error propagates without
        a digest.
        """
        with self.applying():
            return self.eval(fn)

    @contextmanager
    def applying(self) -> Iterator[Scope]:
        """Context-manager form of apply().

        Usage:
            with scope.applying():
                scope.first = "Bob"
                scope.last = "Jones"
            # watchers have seen both changes here
        """
        with self._lock:
            with self._entered(APPLY):
                yield self
            self.digest()

    # ─── Queues ──────────────────────────────────────────────────────────────

    def eval_async(self, fn: Task) -> None:
        """Run fn(scope) later in the current digest, or in one started soon.

        Never runs fn synchronously. If no digest or apply is unwinding, a
        digest is deferred through the scope's deferrer.
        """
        with self._lock:
            self._async_queue.append(fn)
            if self._phase is not None or self._digest_call is not None:
                return

            def deferred_digest() -> None:
                with self._lock:
                    if self._digest_call is not call:
                        return  # cancelled by a digest in the meantime
                    self._digest_call = None
                    if self._phase is not None or not self._async_queue:
                        return
                    try:
                        self.digest()
                    except Exception:
                        logger.exception("Deferred digest failed")
                        raise

            call = DeferredCall(deferred_digest)
            self._digest_call = call
            call.schedule(self._deferrer)

    def apply_async(self, fn: Task) -> None:
        """Queue fn(scope) for a coalesced apply on a later tick.

        Any number of calls before the flush share a single apply and
        digest. A digest that happens first picks the queue up itself.
        """
        with self._lock:
            self._apply_async_queue.append(fn)
            if self._apply_async_call is not None:
                return

            def flush_apply_async() -> None:
                with self._lock:
                    if self._apply_async_call is not call:
                        return  # absorbed by a digest in the meantime
                    try:
                        self.apply(Scope._flush_apply_async)
                    except Exception:
                        logger.exception("Deferred apply_async flush failed")
                        raise

            call = DeferredCall(flush_apply_async)
            self._apply_async_call = call
            call.schedule(self._deferrer)

    def post_digest(self, fn: Task) -> None:
        """Run fn(scope) once, after the next digest has finished."""
        with self._lock:
            self._post_digest_queue.append(fn)

    def _cancel_deferred_digest(self) -> None:
        call = self._digest_call
        if call is not None:
            call.cancel()
            self._digest_call = None

    def _absorb_apply_async(self) -> None:
        call = self._apply_async_call
        if call is not None:
            call.cancel()
            self._apply_async_call = None
        if self._apply_async_queue:
            logger.debug("Digest absorbing %d apply_async task(s)", len(self._apply_async_queue))
            self._flush_apply_async()

    def _flush_apply_async(self) -> None:
        try:
            while self._apply_async_queue:
                task = self._apply_async_queue.popleft()
                task(self)
        finally:
            self._apply_async_call = None

    def __repr__(self) -> str:
        props = ", ".join(sorted(self.__dict__))
        return f"Scope(watchers={len(self._watchers)}, phase={self._phase!r}, properties=[{props}])"
