# tests/conftest.py
"""
Shared fixtures for the smtlower test suite.

Sessions created here use a generous timeout so that slow CI machines do
not turn a decidable query into ``UNDEFINED``.
"""

import pytest
import z3

from smtlower import SmtResult, SolverConfig, Z3Solver
from smtlower.expression import ExpressionType, Path, Variable

TEST_TIMEOUT_MS = 10_000


@pytest.fixture
def solver():
    return Z3Solver(SolverConfig(timeout_ms=TEST_TIMEOUT_MS))


@pytest.fixture
def verdict(solver):
    """Check *terms* inside a checkpoint and leave the session untouched."""

    def _verdict(*terms):
        solver.set_backtrack_position()
        try:
            for term in terms:
                solver.assert_(term)
            return solver.solve()
        finally:
            solver.backtrack()

    return _verdict


@pytest.fixture
def valid(solver, verdict):
    """True when *term* holds in every model (its negation is unsat)."""

    def _valid(term):
        return verdict(z3.Not(term, solver.ctx)) is SmtResult.UNSATISFIABLE

    return _valid


@pytest.fixture
def i32_x():
    return Variable(Path("x"), ExpressionType.I32)


@pytest.fixture
def f64_x():
    return Variable(Path("fx"), ExpressionType.F64)
