"""
smtlower.z3_solver
==================

Lowers :mod:`smtlower.expression` trees to Z3 terms and drives Z3's
incremental assert / push / pop / check protocol.

Views
-----
An expression is lowered through one of four mutually recursive *views*,
each committing to a target sort:

- **any** (:meth:`Z3Solver.get_as_z3_ast`): the sort natural to the node:
  boolean nodes give Bool terms, arithmetic gives Int or FP terms, opaque or
  unknown nodes give a fresh constant of the uninterpreted ``Any`` sort.
- **numeric** (:meth:`Z3Solver.get_as_numeric_z3_ast`): an
  ``(is_float, term)`` pair, where the term is either a mathematical
  integer or an IEEE float.  Boolean nodes become ``If(b, 1, 0)``.
- **boolean** (:meth:`Z3Solver.get_as_bool_z3_ast`): a Bool term.
  Bitwise results are tested against zero.
- **bit-vector** (:meth:`Z3Solver.get_as_bv_z3_ast`): a bit-vector of an
  explicitly requested width.  Boolean nodes become ``If(b, 1, 0)`` at that
  width.

::

            ┌───────────── any ─────────────┐
            │               │               │
         boolean  ◄──►   numeric   ◄──►  bit-vector
            │    ite 1/0    │   bv2int      │
            └──────── ite over bv 1/0 ──────┘

Numeric semantics
-----------------
- Integer arithmetic is unbounded; only the bit-vector view models width.
- Float arithmetic rounds to nearest, ties to even.
- ``Ne`` on floats is ``isNaN(l) ∨ isNaN(r) ∨ ¬fpEQ(l, r)`` so that a NaN
  operand is unequal to everything, itself included.
- Bitwise operators and ``Shl`` are always encoded at 128 bits; ``Shr``
  uses the width and signedness of its result type.
- Overflow predicates are exact: they use Z3's no-overflow/no-underflow
  predicates at the result type's width.

Unsupported nodes never raise.  They are logged and lowered to a fresh
unconstrained constant of the requesting view's sort (``Any``, Int, Bool or
a bit-vector of the requested width), so they compose with their parent
operator and nothing false can be derived from them.

Usage example
-------------
::

    from smtlower import Z3Solver, SmtResult
    from smtlower.expression import GreaterThan, ExpressionType, constant, variable

    solver = Z3Solver()
    x = variable("x", ExpressionType.I32)
    solver.assert_(solver.get_as_smt_predicate(GreaterThan(x, constant(5))))
    assert solver.solve() is SmtResult.SATISFIABLE
"""

from __future__ import annotations

import logging
import operator
import threading
from typing import Any, Optional, Tuple

try:
    import z3
except ImportError as exc:
    raise ImportError(
        "Z3 Python bindings ('z3-solver') are required for smtlower.z3_solver"
    ) from exc

from .constant_domain import (
    Char,
    F32,
    F64,
    FalseConst,
    I128,
    TrueConst,
    U128,
)
from .errors import (
    BacktrackError,
    ConfigurationError,
    NotBooleanTermError,
    SortMismatchError,
)
from .expression import (
    Add,
    AddOverflows,
    And,
    BitAnd,
    BitOr,
    BitXor,
    CompileTimeConstant,
    ConditionalExpression,
    Div,
    Equals,
    Expression,
    ExpressionType,
    GreaterOrEqual,
    GreaterThan,
    LessOrEqual,
    LessThan,
    Mul,
    MulOverflows,
    Ne,
    Neg,
    Not,
    Or,
    Reference,
    Rem,
    Shl,
    ShlOverflows,
    Shr,
    ShrOverflows,
    Sub,
    SubOverflows,
    Top,
    Variable,
)
from .smt_solver import SmtResult, SmtSolver, SolverConfig

logger = logging.getLogger(__name__)

# ===================================================================
# CONSTANTS
# ===================================================================

# Width used for bitwise operators and Shl, whatever their operand types.
BITWISE_WIDTH = 128

# Z3 context construction is not safe to race with other constructions.
_Z3_LOCK = threading.Lock()

_ARITHMETIC = (Add, Sub, Mul, Div, Rem)
_BITWISE = (BitAnd, BitOr, BitXor)
_SHIFTS = (Shl, Shr)
_COMPARISONS = (Equals, Ne, GreaterThan, GreaterOrEqual, LessThan, LessOrEqual)
_BOOLEAN_SHAPED = (And, Or, Not) + _COMPARISONS
_ARITHMETIC_OVERFLOWS = (AddOverflows, SubOverflows, MulOverflows)
_SHIFT_OVERFLOWS = (ShlOverflows, ShrOverflows)
_OVERFLOWS = _ARITHMETIC_OVERFLOWS + _SHIFT_OVERFLOWS
# shapes the any view interprets; everything else is a fresh unknown
_ANY_VIEW_SHAPES = (
    _ARITHMETIC + _OVERFLOWS + _BOOLEAN_SHAPED + _BITWISE + _SHIFTS
    + (Neg, ConditionalExpression, CompileTimeConstant, Variable, Reference, Top)
)
_INTERPRETED_CONSTANTS = (TrueConst, FalseConst, Char, I128, U128, F32, F64)

_INT_COMPARISONS = {
    Equals: operator.eq,
    GreaterThan: operator.gt,
    GreaterOrEqual: operator.ge,
    LessThan: operator.lt,
    LessOrEqual: operator.le,
}

_FLOAT_COMPARISONS = {
    Equals: z3.fpEQ,
    GreaterThan: z3.fpGT,
    GreaterOrEqual: z3.fpGEQ,
    LessThan: z3.fpLT,
    LessOrEqual: z3.fpLEQ,
}

_INT_ARITHMETIC = {
    Add: operator.add,
    Sub: operator.sub,
    Mul: operator.mul,
    Div: operator.truediv,   # Int / Int is SMT-LIB div
}

_FLOAT_ARITHMETIC = {
    Add: z3.fpAdd,
    Sub: z3.fpSub,
    Mul: z3.fpMul,
    Div: z3.fpDiv,
}

_BITWISE_OPS = {
    BitAnd: operator.and_,
    BitOr: operator.or_,
    BitXor: operator.xor,
}

_BOOL_TYPES = (ExpressionType.BOOL,)
_FLOAT_TYPES = (ExpressionType.F32, ExpressionType.F64)


# ===================================================================
# SOLVER SESSION
# ===================================================================

class Z3Solver(SmtSolver):
    """An incremental Z3 session plus the expression encoder.

    Parameters
    ----------
    config : SolverConfig, optional
        Session settings; defaults to a 100 ms per-check timeout.

    Raises
    ------
    ConfigurationError
        If *config* fails validation.

    Notes
    -----
    A session must be used from one thread at a time.  Only construction
    is serialized across the process.
    """

    def __init__(self, config: Optional[SolverConfig] = None) -> None:
        self.config = config if config is not None else SolverConfig()
        problems = self.config.validate()
        if problems:
            raise ConfigurationError(problems)

        with _Z3_LOCK:
            timeout = self.config.timeout_ms
            self.ctx = z3.Context("timeout", timeout)
            self._solver = z3.Solver(ctx=self.ctx)
            self._solver.set("timeout", timeout)

            self.any_sort = z3.DeclareSort("Any", self.ctx)
            self.bool_sort = z3.BoolSort(self.ctx)
            self.int_sort = z3.IntSort(self.ctx)
            self.f32_sort = z3.Float32(self.ctx)
            self.f64_sort = z3.Float64(self.ctx)
            self.nearest_even = z3.RNE(self.ctx)
            self.zero = z3.IntVal(0, self.ctx)
            self.one = z3.IntVal(1, self.ctx)
        logger.debug("Created Z3 session (timeout=%d ms)", timeout)

    # ---------------------------------------------------------------
    # Session protocol
    # ---------------------------------------------------------------

    @property
    def backtrack_depth(self) -> int:
        """Number of checkpoints currently open."""
        return self._solver.num_scopes()

    def as_debug_string(self, term: z3.ExprRef) -> str:
        return term.sexpr()

    def assert_(self, term: z3.ExprRef) -> None:
        if not z3.is_expr(term):
            raise NotBooleanTermError(type(term).__name__)
        if not z3.is_bool(term):
            raise NotBooleanTermError(str(term.sort()))
        self._solver.add(term)

    def backtrack(self) -> None:
        if self._solver.num_scopes() == 0:
            raise BacktrackError()
        self._solver.pop(1)
        logger.debug("backtrack -> depth %d", self._solver.num_scopes())

    def get_as_smt_predicate(self, expression: Expression) -> z3.BoolRef:
        return self.get_as_bool_z3_ast(expression)

    def set_backtrack_position(self) -> None:
        self._solver.push()
        logger.debug("checkpoint -> depth %d", self._solver.num_scopes())

    def solve(self) -> SmtResult:
        result = self._solver.check()
        if result == z3.sat:
            verdict = SmtResult.SATISFIABLE
        elif result == z3.unsat:
            verdict = SmtResult.UNSATISFIABLE
        else:
            logger.debug("solver undecided: %s", self._solver.reason_unknown())
            verdict = SmtResult.UNDEFINED
        logger.debug("check -> %s", verdict.value)
        return verdict

    # ---------------------------------------------------------------
    # Term helpers
    # ---------------------------------------------------------------

    def _fresh(self, sort: z3.SortRef) -> z3.ExprRef:
        """A new constant no other term can be equal to by construction."""
        return z3.FreshConst(sort, "fresh")

    def _named(self, name: str, sort: z3.SortRef) -> z3.ExprRef:
        return z3.Const(name, sort)

    def _bv_sort(self, num_bits: int) -> z3.BitVecSortRef:
        return z3.BitVecSort(num_bits, self.ctx)

    def _int_numeral(self, value: int, fits_in_64_bits: bool) -> z3.ArithRef:
        if fits_in_64_bits:
            return z3.IntVal(value, self.ctx)
        return z3.IntVal(str(value), self.ctx)

    def _float_numeral(self, constant) -> z3.FPNumRef:
        if isinstance(constant, F32):
            ast = z3.Z3_mk_fpa_numeral_float(
                self.ctx.ref(), constant.as_float(), self.f32_sort.ast)
        else:
            ast = z3.Z3_mk_fpa_numeral_double(
                self.ctx.ref(), constant.as_float(), self.f64_sort.ast)
        return z3.FPNumRef(ast, self.ctx)

    def _int_rem(self, left: z3.ArithRef, right: z3.ArithRef) -> z3.ArithRef:
        """SMT-LIB ``rem``; z3py's ``%`` operator builds ``mod`` instead."""
        return z3.ArithRef(
            z3.Z3_mk_rem(self.ctx.ref(), left.as_ast(), right.as_ast()), self.ctx)

    def _bv_one_zero(self, num_bits: int) -> Tuple[z3.BitVecRef, z3.BitVecRef]:
        return z3.Int2BV(self.one, num_bits), z3.Int2BV(self.zero, num_bits)

    def _uninterpreted(self, expression: Expression, sort: z3.SortRef) -> z3.ExprRef:
        """Log a shape the encoder cannot interpret; stand in a fresh *sort* constant."""
        if isinstance(expression, CompileTimeConstant):
            logger.info("uninterpreted constant: %r", expression.value)
        else:
            logger.info("uninterpreted expression: %r", expression)
        return self._fresh(sort)

    def _numeric_pair(self, expression, operator_name: str) -> Tuple[bool, Any, Any]:
        """Lower both operands numerically; they must agree on float-ness."""
        lf, left_ast = self.get_as_numeric_z3_ast(expression.left)
        rf, right_ast = self.get_as_numeric_z3_ast(expression.right)
        if lf != rf:
            raise SortMismatchError(operator_name, lf, rf)
        return lf, left_ast, right_ast

    # ---------------------------------------------------------------
    # Any view
    # ---------------------------------------------------------------

    def get_as_z3_ast(self, expression: Expression) -> z3.ExprRef:
        """Lower *expression* to a term of its natural sort."""
        if isinstance(expression, _ARITHMETIC) or isinstance(expression, Reference):
            return self.get_as_numeric_z3_ast(expression)[1]

        if isinstance(expression, _ARITHMETIC_OVERFLOWS):
            return self._arithmetic_overflows(expression)

        if isinstance(expression, _SHIFT_OVERFLOWS):
            f, right_ast = self.get_as_numeric_z3_ast(expression.right)
            if f:
                raise SortMismatchError(type(expression).__name__, f)
            num_bits = expression.result_type.bit_length()
            return right_ast >= z3.IntVal(num_bits, self.ctx)

        if isinstance(expression, And):
            left_ast = self.get_as_bool_z3_ast(expression.left)
            right_ast = self.get_as_bool_z3_ast(expression.right)
            return z3.And(left_ast, right_ast, self.ctx)

        if isinstance(expression, Or):
            left_ast = self.get_as_bool_z3_ast(expression.left)
            right_ast = self.get_as_bool_z3_ast(expression.right)
            return z3.Or(left_ast, right_ast, self.ctx)

        if isinstance(expression, Not):
            return z3.Not(self.get_as_bool_z3_ast(expression.operand), self.ctx)

        if isinstance(expression, _BITWISE):
            return self.get_as_bv_z3_ast(expression, BITWISE_WIDTH)

        if isinstance(expression, Shl):
            left_ast = self.get_as_bv_z3_ast(expression.left, BITWISE_WIDTH)
            right_ast = self.get_as_bv_z3_ast(expression.right, BITWISE_WIDTH)
            return left_ast << right_ast

        if isinstance(expression, Shr):
            num_bits = expression.result_type.bit_length()
            left_ast = self.get_as_bv_z3_ast(expression.left, num_bits)
            right_ast = self.get_as_bv_z3_ast(expression.right, num_bits)
            return self._shift_right(expression, left_ast, right_ast)

        if isinstance(expression, _COMPARISONS):
            return self._comparison(expression)

        if isinstance(expression, Neg):
            return self._negate(expression)

        if isinstance(expression, ConditionalExpression):
            condition_ast = self.get_as_bool_z3_ast(expression.condition)
            consequent_ast = self.get_as_z3_ast(expression.consequent)
            alternate_ast = self.get_as_z3_ast(expression.alternate)
            return z3.If(condition_ast, consequent_ast, alternate_ast, self.ctx)

        if isinstance(expression, CompileTimeConstant):
            return self._constant(expression)

        if isinstance(expression, Variable):
            return self._variable(expression)

        if isinstance(expression, Top):
            return self._fresh(self.any_sort)

        return self._uninterpreted(expression, self.any_sort)

    def _arithmetic_overflows(self, expression) -> z3.BoolRef:
        num_bits = expression.result_type.bit_length()
        is_signed = expression.result_type.is_signed_integer()
        left_bv = self.get_as_bv_z3_ast(expression.left, num_bits)
        right_bv = self.get_as_bv_z3_ast(expression.right, num_bits)

        if isinstance(expression, AddOverflows):
            in_range = z3.BVAddNoOverflow(left_bv, right_bv, is_signed)
            if is_signed:
                in_range = z3.And(
                    in_range, z3.BVAddNoUnderflow(left_bv, right_bv), self.ctx)
        elif isinstance(expression, SubOverflows):
            # unsigned subtraction can only wrap below zero
            in_range = z3.BVSubNoUnderflow(left_bv, right_bv, is_signed)
            if is_signed:
                in_range = z3.And(
                    z3.BVSubNoOverflow(left_bv, right_bv), in_range, self.ctx)
        else:
            in_range = z3.BVMulNoOverflow(left_bv, right_bv, is_signed)
            if is_signed:
                in_range = z3.And(
                    in_range, z3.BVMulNoUnderflow(left_bv, right_bv), self.ctx)
        return z3.Not(in_range, self.ctx)

    def _shift_right(self, expression: Shr, left_ast, right_ast) -> z3.BitVecRef:
        if expression.result_type.is_signed_integer():
            return left_ast >> right_ast
        return z3.LShR(left_ast, right_ast)

    def _comparison(self, expression) -> z3.BoolRef:
        kind = type(expression)
        is_float, left_ast, right_ast = self._numeric_pair(expression, kind.__name__)

        if kind is Ne:
            if is_float:
                return z3.Or(
                    z3.fpIsNaN(left_ast, ctx=self.ctx),
                    z3.fpIsNaN(right_ast, ctx=self.ctx),
                    z3.Not(z3.fpEQ(left_ast, right_ast, ctx=self.ctx), self.ctx),
                    self.ctx,
                )
            return z3.Not(left_ast == right_ast, self.ctx)

        if is_float:
            return _FLOAT_COMPARISONS[kind](left_ast, right_ast, ctx=self.ctx)
        return _INT_COMPARISONS[kind](left_ast, right_ast)

    def _negate(self, expression: Neg) -> z3.ExprRef:
        is_float, operand_ast = self.get_as_numeric_z3_ast(expression.operand)
        if is_float:
            return z3.fpNeg(operand_ast, ctx=self.ctx)
        return -operand_ast

    def _constant(self, expression: CompileTimeConstant) -> z3.ExprRef:
        value = expression.value
        if isinstance(value, Char):
            return z3.IntVal(value.code_unit, self.ctx)
        if isinstance(value, FalseConst):
            return z3.BoolVal(False, self.ctx)
        if isinstance(value, TrueConst):
            return z3.BoolVal(True, self.ctx)
        if isinstance(value, (I128, U128)):
            return self._int_numeral(value.value, value.fits_in_64_bits)
        if isinstance(value, (F32, F64)):
            return self._float_numeral(value)
        return self._uninterpreted(expression, self.any_sort)

    def _variable(self, expression: Variable) -> z3.ExprRef:
        var_type = expression.var_type
        name = repr(expression.path)
        if var_type in _BOOL_TYPES:
            return self._named(name, self.bool_sort)
        if var_type is ExpressionType.F32:
            return self._named(name, self.f32_sort)
        if var_type is ExpressionType.F64:
            return self._named(name, self.f64_sort)
        if var_type.is_integer() or var_type is ExpressionType.CHAR:
            return self._named(name, self.int_sort)
        # each occurrence of a non-primitive value is a distinct unknown
        return self._fresh(self.any_sort)

    # ---------------------------------------------------------------
    # Numeric view
    # ---------------------------------------------------------------

    def get_as_numeric_z3_ast(self, expression: Expression) -> Tuple[bool, z3.ExprRef]:
        """Lower *expression* to ``(is_float, term)``.

        Raises
        ------
        SortMismatchError
            If the operands of a binary operator disagree on float-ness.
        """
        if isinstance(expression, _ARITHMETIC):
            kind = type(expression)
            is_float, left_ast, right_ast = self._numeric_pair(expression, kind.__name__)
            if is_float:
                if kind is Rem:
                    return True, z3.fpRem(left_ast, right_ast, ctx=self.ctx)
                return True, _FLOAT_ARITHMETIC[kind](
                    self.nearest_even, left_ast, right_ast, ctx=self.ctx)
            if kind is Rem:
                return False, self._int_rem(left_ast, right_ast)
            return False, _INT_ARITHMETIC[kind](left_ast, right_ast)

        if isinstance(expression, _BOOLEAN_SHAPED + _OVERFLOWS):
            ast = self.get_as_z3_ast(expression)
            return False, z3.If(ast, self.one, self.zero, self.ctx)

        if isinstance(expression, _BITWISE + _SHIFTS):
            ast = self.get_as_bv_z3_ast(expression, BITWISE_WIDTH)
            return False, z3.BV2Int(ast, is_signed=False)

        if isinstance(expression, CompileTimeConstant):
            value = expression.value
            if isinstance(value, FalseConst):
                return False, self.zero
            if isinstance(value, TrueConst):
                return False, self.one
            if not isinstance(value, _INTERPRETED_CONSTANTS):
                return False, self._uninterpreted(expression, self.int_sort)
            return value.is_float, self.get_as_z3_ast(expression)

        if isinstance(expression, ConditionalExpression):
            condition_ast = self.get_as_bool_z3_ast(expression.condition)
            cf, consequent_ast = self.get_as_numeric_z3_ast(expression.consequent)
            af, alternate_ast = self.get_as_numeric_z3_ast(expression.alternate)
            if cf != af:
                raise SortMismatchError("ConditionalExpression", cf, af)
            return cf, z3.If(condition_ast, consequent_ast, alternate_ast, self.ctx)

        if isinstance(expression, Neg):
            is_float, operand_ast = self.get_as_numeric_z3_ast(expression.operand)
            if is_float:
                return True, z3.fpNeg(operand_ast, ctx=self.ctx)
            return False, -operand_ast

        if isinstance(expression, Reference):
            return False, self._named("&" + repr(expression.path), self.int_sort)

        if isinstance(expression, Variable):
            var_type = expression.var_type
            if var_type in _BOOL_TYPES or var_type is ExpressionType.NON_PRIMITIVE:
                return False, self._named(repr(expression.path), self.int_sort)
            return var_type in _FLOAT_TYPES, self.get_as_z3_ast(expression)

        if isinstance(expression, Top):
            return False, self._fresh(self.int_sort)

        return False, self._uninterpreted(expression, self.int_sort)

    # ---------------------------------------------------------------
    # Boolean view
    # ---------------------------------------------------------------

    def get_as_bool_z3_ast(self, expression: Expression) -> z3.BoolRef:
        """Lower *expression* to a Bool term."""
        if isinstance(expression, _BITWISE):
            bv = self.get_as_bv_z3_ast(expression, BITWISE_WIDTH)
            as_int = z3.BV2Int(bv, is_signed=False)
            return z3.Not(as_int == self.zero, self.ctx)

        if isinstance(expression, CompileTimeConstant):
            if isinstance(expression.value, FalseConst):
                return z3.BoolVal(False, self.ctx)
            if isinstance(expression.value, TrueConst):
                return z3.BoolVal(True, self.ctx)
            if not isinstance(expression.value, _INTERPRETED_CONSTANTS):
                return self._uninterpreted(expression, self.bool_sort)
            return self.get_as_z3_ast(expression)

        if isinstance(expression, Top):
            return self._fresh(self.bool_sort)

        if isinstance(expression, _ANY_VIEW_SHAPES):
            return self.get_as_z3_ast(expression)
        return self._uninterpreted(expression, self.bool_sort)

    # ---------------------------------------------------------------
    # Bit-vector view
    # ---------------------------------------------------------------

    def get_as_bv_z3_ast(self, expression: Expression, num_bits: int) -> z3.BitVecRef:
        """Lower *expression* to a bit-vector of width *num_bits*.

        Arithmetic, negation, references and constants are lowered
        numerically and wrapped with ``Int2BV``, so the result is the
        unbounded value taken modulo ``2**num_bits``.

        Raises
        ------
        SortMismatchError
            If a numerically lowered operand is a float.
        """
        if isinstance(expression, _BOOLEAN_SHAPED + _OVERFLOWS):
            ast = self.get_as_z3_ast(expression)
            bv_one, bv_zero = self._bv_one_zero(num_bits)
            return z3.If(ast, bv_one, bv_zero, self.ctx)

        if isinstance(expression, _BITWISE):
            left_ast = self.get_as_bv_z3_ast(expression.left, num_bits)
            right_ast = self.get_as_bv_z3_ast(expression.right, num_bits)
            return _BITWISE_OPS[type(expression)](left_ast, right_ast)

        if isinstance(expression, _ARITHMETIC + (Neg, Reference, CompileTimeConstant)):
            f, num_ast = self.get_as_numeric_z3_ast(expression)
            if f:
                raise SortMismatchError(type(expression).__name__, f)
            return z3.Int2BV(num_ast, num_bits)

        if isinstance(expression, ConditionalExpression):
            condition_ast = self.get_as_bool_z3_ast(expression.condition)
            consequent_ast = self.get_as_bv_z3_ast(expression.consequent, num_bits)
            alternate_ast = self.get_as_bv_z3_ast(expression.alternate, num_bits)
            return z3.If(condition_ast, consequent_ast, alternate_ast, self.ctx)

        if isinstance(expression, Shl):
            left_ast = self.get_as_bv_z3_ast(expression.left, num_bits)
            right_ast = self.get_as_bv_z3_ast(expression.right, num_bits)
            return left_ast << right_ast

        if isinstance(expression, Shr):
            left_ast = self.get_as_bv_z3_ast(expression.left, num_bits)
            right_ast = self.get_as_bv_z3_ast(expression.right, num_bits)
            return self._shift_right(expression, left_ast, right_ast)

        if isinstance(expression, Variable):
            return self._named(repr(expression.path), self._bv_sort(num_bits))

        if isinstance(expression, Top):
            return self._fresh(self._bv_sort(num_bits))

        return self._uninterpreted(expression, self._bv_sort(num_bits))
