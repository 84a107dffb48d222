# tests/test_overflow.py
"""
Tests for the exact overflow predicates.

Constant operands are checked against Python's unbounded arithmetic; the
symbolic tests prove each predicate equivalent to a range check on the
widened result.
"""

import itertools

import pytest
import z3

from smtlower import SmtResult
from smtlower.expression import (
    Add,
    AddOverflows,
    ExpressionType,
    MulOverflows,
    SubOverflows,
    constant,
    variable,
)

SAT = SmtResult.SATISFIABLE
UNSAT = SmtResult.UNSATISFIABLE

I8_EDGES = [-128, -127, -65, -64, -1, 0, 1, 63, 64, 100, 126, 127]
U8_EDGES = [0, 1, 15, 16, 127, 128, 200, 255]

_PYTHON_OPS = {
    AddOverflows: lambda a, b: a + b,
    SubOverflows: lambda a, b: a - b,
    MulOverflows: lambda a, b: a * b,
}


def _overflows(kind, a, b, lo, hi):
    result = _PYTHON_OPS[kind](a, b)
    return not lo <= result <= hi


class TestConstantOperands:

    @pytest.mark.parametrize("kind", [AddOverflows, SubOverflows, MulOverflows])
    def test_signed_8_bit(self, solver, verdict, kind):
        for a, b in itertools.product(I8_EDGES, repeat=2):
            predicate = solver.get_as_smt_predicate(
                kind(constant(a), constant(b), ExpressionType.I8))
            expected = SAT if _overflows(kind, a, b, -128, 127) else UNSAT
            assert verdict(predicate) is expected, (kind.__name__, a, b)

    @pytest.mark.parametrize("kind", [AddOverflows, SubOverflows, MulOverflows])
    def test_unsigned_8_bit(self, solver, verdict, kind):
        for a, b in itertools.product(U8_EDGES, repeat=2):
            predicate = solver.get_as_smt_predicate(
                kind(constant(a), constant(b), ExpressionType.U8))
            expected = SAT if _overflows(kind, a, b, 0, 255) else UNSAT
            assert verdict(predicate) is expected, (kind.__name__, a, b)

    @pytest.mark.parametrize("kind, a, b, overflows", [
        (AddOverflows, 2**31 - 1, 1, True),
        (AddOverflows, -2**31, -1, True),
        (AddOverflows, 2**30, 2**30 - 1, False),
        (SubOverflows, -2**31, 1, True),
        (SubOverflows, 0, -2**31, True),
        (SubOverflows, -1, -2**31, False),
        (MulOverflows, 2**16, 2**15, True),
        (MulOverflows, -2**16, 2**15, False),
        (MulOverflows, -1, -2**31, True),
    ])
    def test_signed_32_bit_boundaries(self, solver, verdict, kind, a, b, overflows):
        predicate = solver.get_as_smt_predicate(
            kind(constant(a), constant(b), ExpressionType.I32))
        assert verdict(predicate) is (SAT if overflows else UNSAT)

    @pytest.mark.parametrize("kind, a, b, overflows", [
        (AddOverflows, 2**64 - 1, 1, True),
        (AddOverflows, 2**63, 2**63 - 1, False),
        (SubOverflows, 0, 1, True),
        (SubOverflows, 1, 1, False),
        (MulOverflows, 2**32, 2**32, True),
        (MulOverflows, 2**32, 2**31, False),
    ])
    def test_unsigned_64_bit_boundaries(self, solver, verdict, kind, a, b, overflows):
        predicate = solver.get_as_smt_predicate(
            kind(constant(a), constant(b), ExpressionType.U64))
        assert verdict(predicate) is (SAT if overflows else UNSAT)


class TestSymbolicOperands:

    @pytest.mark.parametrize("kind, widened", [
        (AddOverflows, lambda a, b: z3.SignExt(1, a) + z3.SignExt(1, b)),
        (SubOverflows, lambda a, b: z3.SignExt(1, a) - z3.SignExt(1, b)),
    ])
    @pytest.mark.parametrize("ty", [ExpressionType.I8, ExpressionType.I32])
    def test_signed_matches_widened_range(self, solver, verdict, kind, widened, ty):
        bits = ty.bit_length()
        x = variable("x", ty)
        y = variable("y", ty)
        predicate = solver.get_as_smt_predicate(kind(x, y, ty))
        result = widened(solver.get_as_bv_z3_ast(x, bits), solver.get_as_bv_z3_ast(y, bits))
        out_of_range = z3.Or(
            result > 2 ** (bits - 1) - 1, result < -(2 ** (bits - 1)), solver.ctx)
        assert verdict(predicate != out_of_range) is UNSAT

    def test_signed_mul_matches_widened_range(self, solver, verdict):
        x = variable("x", ExpressionType.I8)
        y = variable("y", ExpressionType.I8)
        predicate = solver.get_as_smt_predicate(MulOverflows(x, y, ExpressionType.I8))
        product = (z3.SignExt(8, solver.get_as_bv_z3_ast(x, 8))
                   * z3.SignExt(8, solver.get_as_bv_z3_ast(y, 8)))
        out_of_range = z3.Or(product > 127, product < -128, solver.ctx)
        assert verdict(predicate != out_of_range) is UNSAT

    @pytest.mark.parametrize("kind, widened", [
        (AddOverflows, lambda a, b: z3.ZeroExt(8, a) + z3.ZeroExt(8, b)),
        (SubOverflows, lambda a, b: z3.ZeroExt(8, a) - z3.ZeroExt(8, b)),
        (MulOverflows, lambda a, b: z3.ZeroExt(8, a) * z3.ZeroExt(8, b)),
    ])
    def test_unsigned_matches_widened_range(self, solver, verdict, kind, widened):
        x = variable("x", ExpressionType.U8)
        y = variable("y", ExpressionType.U8)
        predicate = solver.get_as_smt_predicate(kind(x, y, ExpressionType.U8))
        result = widened(solver.get_as_bv_z3_ast(x, 8), solver.get_as_bv_z3_ast(y, 8))
        # a negative difference wraps to a huge 16-bit value
        out_of_range = z3.UGT(result, 255)
        assert verdict(predicate != out_of_range) is UNSAT

    def test_arithmetic_operand(self, solver, verdict):
        x = variable("x", ExpressionType.I8)
        predicate = solver.get_as_smt_predicate(
            AddOverflows(Add(x, constant(1)), constant(3), ExpressionType.I8))
        x_int = solver.get_as_z3_ast(x)
        assert verdict(predicate, x_int == 123) is UNSAT
        assert verdict(predicate, x_int == 124) is SAT

    def test_overflow_as_operand(self, solver, valid):
        node = AddOverflows(constant(100), constant(100), ExpressionType.I8)
        _, as_int = solver.get_as_numeric_z3_ast(node)
        assert valid(as_int == 1)
        assert valid(solver.get_as_bv_z3_ast(node, 8) == 1)

    def test_overflow_is_reachable_from_constraints(self, solver, verdict):
        x = variable("x", ExpressionType.I8)
        predicate = solver.get_as_smt_predicate(
            AddOverflows(x, constant(1), ExpressionType.I8))
        x_bv = solver.get_as_bv_z3_ast(x, 8)
        assert verdict(predicate, x_bv == 127) is SAT
        assert verdict(predicate, x_bv < 127) is UNSAT
