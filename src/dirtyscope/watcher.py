"""Watcher records.

A watcher pairs a watch function (scope -> value) with a listener
(new_value, old_value, scope) -> None. The scope owns the ordered list of
watchers; instances here are plain records the digest loop reads and
updates in place.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from dirtyscope.scope import Scope

    WatchFn = Callable[[Scope], Any]
    ListenerFn = Callable[[Any, Any, Scope], None]


class _Initial:
    """Type of the INITIAL marker. There is only ever one instance."""

    __slots__ = ()
    _instance: _Initial | None = None

    def __new__(cls) -> _Initial:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "INITIAL"

    def __reduce__(self) -> str:
        return "INITIAL"


# Recorded value of a watcher that has never been digested. Compared by
# identity only, so it differs from every watch value, None and NaN included.
INITIAL = _Initial()


def _noop(new_value: Any, old_value: Any, scope: Scope) -> None:
    pass


class Watcher:
    """One registered watch function and its listener."""

    __slots__ = ("watch_fn", "listener_fn", "value_eq", "last")

    def __init__(
        self,
        watch_fn: WatchFn,
        listener_fn: ListenerFn | None = None,
        value_eq: bool = False,
    ) -> None:
        self.watch_fn = watch_fn
        self.listener_fn = listener_fn if listener_fn is not None else _noop
        self.value_eq = value_eq
        self.last: Any = INITIAL

    def __repr__(self) -> str:
        name = getattr(self.watch_fn, "__name__", repr(self.watch_fn))
        mode = "value" if self.value_eq else "reference"
        return f"Watcher({name}, {mode}, last={self.last!r})"
