"""Actions and transactions: state changes applied to a scope.

Wrapping mutations in an @action(scope) or `with transaction(scope)` runs
them in the APPLY phase and digests once at the end, so watchers see all
of the changes together rather than one digest per mutation.
"""

from __future__ import annotations

import functools
from contextlib import contextmanager
from typing import TYPE_CHECKING, Callable, Iterator, ParamSpec, TypeVar

if TYPE_CHECKING:
    from dirtyscope.scope import Scope

P = ParamSpec("P")
R = TypeVar("R")


def action(scope: Scope) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Decorator factory: run the decorated function through scope.apply.

    Usage:
        scope = Scope()

        @action(scope)
        def rename(first, last):
            scope.first = first
            scope.last = last
            # watchers run once, after both are set

        rename("Bob", "Jones")
    """

    def decorator(fn: Callable[P, R]) -> Callable[P, R]:
        @functools.wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            return scope.apply(lambda _scope: fn(*args, **kwargs))

        return wrapper

    return decorator


@contextmanager
def transaction(scope: Scope) -> Iterator[Scope]:
    """Context manager for applying several changes with one digest.

    Usage:
        with transaction(scope) as s:
            s.first = "Bob"
            s.last = "Jones"
            # digest runs here, after both are set

    If the block raises, the phase is released and no digest runs.
    """
    with scope.applying() as applied:
        yield applied
