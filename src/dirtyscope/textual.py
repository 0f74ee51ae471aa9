"""Textual integration for dirtyscope. Opt-in: requires textual.

bind() routes a scope's deferred digests through the app's message loop
instead of timer threads. watch() registers a watcher whose listener only
touches widgets while the widget tree is queryable.
"""

import threading
from contextlib import contextmanager

from textual.css.query import NoMatches

# Module-owned pause state, keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Suspend guarded listeners during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def deferrer(app):
    """A deferrer that runs callbacks on the app's thread once pending messages are handled.

    Calls made from other threads are marshaled with call_from_thread.
    """
    _main = threading.get_ident()

    def _defer(fn):
        if threading.get_ident() != _main:
            app.call_from_thread(app.call_later, fn)
        else:
            app.call_later(fn)

    return _defer


def bind(scope, app):
    """Run scope's eval_async digests and apply_async flushes on the app's loop."""
    scope.set_deferrer(deferrer(app))
    return scope


def watch(app, scope, watch_fn, listener_fn=None, value_eq=False):
    """scope.watch() whose listener is safe to point at Textual widgets.

    The listener is skipped while the app is paused or not running, and
    NoMatches from widget queries is swallowed. A digest running on another
    thread (the default timer deferrer, or a direct digest() call) hands the
    listener to the app thread with call_from_thread. The watched value is
    still recorded, so a skipped change is not replayed later. Returns the
    remove function from scope.watch().
    """
    _main = threading.get_ident()

    def _guarded(new_value, old_value, scope):
        if listener_fn is None or not is_safe(app):
            return
        if threading.get_ident() != _main:
            app.call_from_thread(_safe, new_value, old_value, scope)
        else:
            _safe(new_value, old_value, scope)

    def _safe(new_value, old_value, scope):
        try:
            listener_fn(new_value, old_value, scope)
        except NoMatches:
            pass

    return scope.watch(watch_fn, _guarded, value_eq)
