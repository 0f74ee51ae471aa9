"""Change detection for watch values.

Two strategies, picked per watcher:

- reference: identity, except that immutable scalars (numbers, strings,
  bytes, None) compare by value. A bool never equals a non-bool.
- value (deep): structural comparison of mappings, lists, tuples, sets and
  plain objects (through their attributes). Objects that define their own
  __eq__ decide for themselves.

Both treat NaN as equal to NaN. Plain float comparison would report a NaN
watch value as changed on every pass and the digest would never converge.

Value watchers keep a snapshot() of the last value rather than a reference,
otherwise in-place mutation of the watched structure would go unnoticed.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from numbers import Number
from types import ModuleType
from typing import Any

_SCALARS = (str, bytes, Number, type(None))


def is_nan(value: Any) -> bool:
    return isinstance(value, Number) and value != value


def _scalar_equal(a: Any, b: Any) -> bool:
    if isinstance(a, bool) is not isinstance(b, bool):
        return False
    if a == b:
        return True
    return is_nan(a) and is_nan(b)


def _is_plain_object(value: Any) -> bool:
    """Instances compared and copied attribute by attribute."""
    return (
        hasattr(value, "__dict__")
        and not callable(value)
        and not isinstance(value, ModuleType)
        and type(value).__eq__ is object.__eq__
    )


def values_equal(new: Any, old: Any, value_eq: bool = False) -> bool:
    """Compare a fresh watch value against the recorded one."""
    if value_eq:
        return deep_equal(new, old)
    if new is old:
        return True
    if isinstance(new, _SCALARS) and isinstance(old, _SCALARS):
        return _scalar_equal(new, old)
    return False


def deep_equal(a: Any, b: Any) -> bool:
    """Structural equality with NaN == NaN at every depth. Cycle-safe."""
    return _deep_equal(a, b, set())


def _deep_equal(a: Any, b: Any, seen: set[tuple[int, int]]) -> bool:
    if a is b:
        return True
    if isinstance(a, _SCALARS) and isinstance(b, _SCALARS):
        return _scalar_equal(a, b)
    if type(a) is not type(b):
        return False

    # A pair already under comparison higher up the stack is assumed equal;
    # any real difference is reported by the outer frame.
    pair = (id(a), id(b))
    if pair in seen:
        return True
    seen.add(pair)

    if isinstance(a, Mapping):
        if a.keys() != b.keys():
            return False
        return all(_deep_equal(a[key], b[key], seen) for key in a)
    if isinstance(a, (list, tuple)):
        if len(a) != len(b):
            return False
        return all(_deep_equal(x, y, seen) for x, y in zip(a, b))
    if isinstance(a, (set, frozenset)):
        return a == b
    if _is_plain_object(a):
        return _deep_equal(vars(a), vars(b), seen)
    if type(a).__eq__ is not object.__eq__:
        return bool(a == b)
    return False


def snapshot(value: Any) -> Any:
    """Deep copy of value, built by the same rules deep_equal compares by.

    Opaque objects (no attributes, identity equality) are kept by
    reference, so a snapshot of them stays equal to the live value.
    """
    return _snapshot(value, {})


def _snapshot(value: Any, memo: dict[int, Any]) -> Any:
    if isinstance(value, _SCALARS):
        return value
    key = id(value)
    if key in memo:
        return memo[key]

    if isinstance(value, dict):
        clone = copy.copy(value)
        memo[key] = clone
        for k, v in value.items():
            clone[k] = _snapshot(v, memo)
        return clone
    if isinstance(value, list):
        clone = copy.copy(value)
        memo[key] = clone
        for index, item in enumerate(value):
            clone[index] = _snapshot(item, memo)
        return clone
    if isinstance(value, tuple):
        items = [_snapshot(item, memo) for item in value]
        # namedtuples rebuild through _make
        clone = value._make(items) if hasattr(value, "_make") else type(value)(items)
        memo[key] = clone
        return clone
    if isinstance(value, (set, frozenset)):
        clone = copy.copy(value)
        memo[key] = clone
        return clone
    if _is_plain_object(value):
        clone = copy.copy(value)
        if clone is value:
            return value
        memo[key] = clone
        for name, attr in vars(value).items():
            setattr(clone, name, _snapshot(attr, memo))
        return clone
    if type(value).__eq__ is not object.__eq__:
        return copy.deepcopy(value, memo)
    return value
