# tests/test_z3_session.py
"""
Tests for the Z3 session protocol: checkpoints, assertions and verdicts.
"""

import threading

import pytest
import z3

from smtlower import (
    BacktrackError,
    NotBooleanTermError,
    SmtResult,
    SolverConfig,
    Z3Solver,
)
from smtlower.expression import (
    Add,
    Equals,
    ExpressionType,
    GreaterThan,
    LessThan,
    constant,
    variable,
)
from smtlower import z3_solver as z3_solver_module


class _UndecidedSolver:
    """Stands in for z3.Solver and never reaches a verdict."""

    def check(self):
        return z3.unknown

    def reason_unknown(self):
        return "timeout"


class TestSessionConstruction:

    def test_default_config(self):
        session = Z3Solver()
        assert session.config.timeout_ms == 100
        assert session.backtrack_depth == 0

    def test_sessions_are_independent(self):
        first = Z3Solver()
        second = Z3Solver()
        assert first.ctx is not second.ctx
        x = variable("x", ExpressionType.I32)
        first.assert_(first.get_as_smt_predicate(LessThan(x, constant(0))))
        second.assert_(second.get_as_smt_predicate(GreaterThan(x, constant(0))))
        assert first.solve() is SmtResult.SATISFIABLE
        assert second.solve() is SmtResult.SATISFIABLE

    def test_concurrent_construction(self):
        sessions = []
        errors = []

        def build():
            try:
                sessions.append(Z3Solver(SolverConfig(timeout_ms=5000)))
            except Exception as exc:  # noqa: BLE001
                errors.append(exc)

        threads = [threading.Thread(target=build) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(sessions) == 8
        assert not z3_solver_module._Z3_LOCK.locked()
        for session in sessions:
            assert session.solve() is SmtResult.SATISFIABLE


class TestCheckpoints:

    def test_empty_session_is_sat(self, solver):
        assert solver.solve() is SmtResult.SATISFIABLE

    def test_backtrack_restores_previous_state(self, solver):
        solver.set_backtrack_position()
        solver.assert_(z3.BoolVal(False, solver.ctx))
        assert solver.solve() is SmtResult.UNSATISFIABLE
        solver.backtrack()
        assert solver.solve() is SmtResult.SATISFIABLE

    def test_nested_checkpoints(self, solver):
        x = variable("x", ExpressionType.I32)
        solver.assert_(solver.get_as_smt_predicate(GreaterThan(x, constant(5))))
        solver.set_backtrack_position()
        solver.set_backtrack_position()
        assert solver.backtrack_depth == 2
        solver.assert_(solver.get_as_smt_predicate(LessThan(x, constant(3))))
        assert solver.solve() is SmtResult.UNSATISFIABLE
        solver.backtrack()
        assert solver.backtrack_depth == 1
        assert solver.solve() is SmtResult.SATISFIABLE
        solver.backtrack()
        # the assertion made before the first checkpoint survives
        solver.assert_(solver.get_as_smt_predicate(Equals(x, constant(5))))
        assert solver.solve() is SmtResult.UNSATISFIABLE

    def test_backtrack_without_checkpoint(self, solver):
        with pytest.raises(BacktrackError):
            solver.backtrack()

    def test_backtrack_past_last_checkpoint(self, solver):
        solver.set_backtrack_position()
        solver.backtrack()
        with pytest.raises(BacktrackError):
            solver.backtrack()


class TestAssertions:

    def test_non_boolean_term_rejected(self, solver):
        x = variable("x", ExpressionType.I32)
        term = solver.get_as_z3_ast(Add(x, constant(1)))
        with pytest.raises(NotBooleanTermError) as excinfo:
            solver.assert_(term)
        assert excinfo.value.sort_name == "Int"

    def test_non_term_rejected(self, solver):
        with pytest.raises(NotBooleanTermError):
            solver.assert_(True)

    def test_debug_string(self, solver):
        x = variable("x", ExpressionType.I32)
        term = solver.get_as_smt_predicate(GreaterThan(x, constant(5)))
        rendered = solver.as_debug_string(term)
        # operand order and operator choice vary between Z3 releases
        assert isinstance(rendered, str) and rendered
        assert "x" in rendered and "5" in rendered
        assert rendered == term.sexpr()

    def test_undecided_check(self, solver):
        solver._solver = _UndecidedSolver()
        assert solver.solve() is SmtResult.UNDEFINED
