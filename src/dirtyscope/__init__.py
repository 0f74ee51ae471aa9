"""dirtyscope: dirty-checking change propagation for Python."""

from importlib.metadata import version as _version

__version__ = _version("dirtyscope")

from dirtyscope.errors import ScopeError, RunawayDigestError, PhaseInProgressError
from dirtyscope.equality import values_equal, deep_equal, snapshot
from dirtyscope.watcher import Watcher, INITIAL
from dirtyscope.scheduler import DeferredCall, defer, set_deferrer, get_deferrer
from dirtyscope.scope import Scope, DIGEST, APPLY, DIGEST_TTL
from dirtyscope.action import action, transaction
# textual NOT auto-imported: opt-in only

__all__ = [
    "Scope",
    "Watcher",
    "INITIAL",
    "DIGEST",
    "APPLY",
    "DIGEST_TTL",
    "action",
    "transaction",
    "DeferredCall",
    "defer",
    "set_deferrer",
    "get_deferrer",
    "ScopeError",
    "RunawayDigestError",
    "PhaseInProgressError",
    "values_equal",
    "deep_equal",
    "snapshot",
]
