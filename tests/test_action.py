"""Tests for action batching and transaction context manager."""

import pytest

from dirtyscope import APPLY, PhaseInProgressError, Scope, action, transaction


def _logging_scope():
    scope = Scope()
    scope.a = 0
    scope.b = 0
    log = []
    scope.watch(lambda s: (s.a, s.b), lambda new, old, s: log.append(new), value_eq=True)
    scope.digest()
    return scope, log


class TestAction:
    def test_batches_updates(self):
        scope, log = _logging_scope()
        assert log == [(0, 0)]

        @action(scope)
        def update_both():
            scope.a = 1
            scope.b = 2

        update_both()
        # Should see (1, 2) not intermediate (1, 0)
        assert log == [(0, 0), (1, 2)]

    def test_runs_in_apply_phase(self):
        scope = Scope()

        @action(scope)
        def current_phase():
            return scope.phase

        assert current_phase() == APPLY
        assert scope.phase is None

    def test_preserves_arguments_and_return_value(self):
        scope = Scope()

        @action(scope)
        def compute(x, *, y):
            return x + y

        assert compute(40, y=2) == 42

    def test_preserves_metadata(self):
        scope = Scope()

        @action(scope)
        def documented():
            """Docstring."""

        assert documented.__name__ == "documented"
        assert documented.__doc__ == "Docstring."


class TestTransaction:
    def test_batches_updates(self):
        scope, log = _logging_scope()

        with transaction(scope) as s:
            s.a = 10
            s.b = 20

        assert log == [(0, 0), (10, 20)]

    def test_error_skips_digest(self):
        scope, log = _logging_scope()

        with pytest.raises(RuntimeError):
            with transaction(scope):
                scope.a = 5
                raise RuntimeError("oops")

        assert scope.phase is None
        assert log == [(0, 0)]

    def test_nested_transaction_is_rejected(self):
        scope, _ = _logging_scope()

        with pytest.raises(PhaseInProgressError):
            with transaction(scope):
                with transaction(scope):
                    pass

        assert scope.phase is None
