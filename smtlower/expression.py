"""
smtlower.expression
===================

The symbolic expression tree consumed by the SMT encoder.

Nodes are immutable dataclasses.  The tree carries no semantics of its
own: there is no constant folding and no simplification here, only the
shapes the encoder in :mod:`smtlower.z3_solver` reads.

Expression language
-------------------
::

    e ::= c                                   CompileTimeConstant
        | x : τ                               Variable(path, τ)
        | &p                                  Reference(path)
        | ⊤                                   Top
        | e + e | e - e | e * e | e / e | e % e
        | e & e | e | e | e ^ e | e << e | e >> e
        | e && e | e || e | !e | -e
        | e == e | e != e | e < e | e <= e | e > e | e >= e
        | c ? e : e
        | overflows(e op e : τ)               AddOverflows, SubOverflows, ...

Node kinds the encoder does not interpret (``Bottom``, ``BitNot``,
``Cast``, ``Join``) are defined as well; the encoder lowers them to fresh
unconstrained values.

Usage example
-------------
::

    from smtlower.expression import ExpressionType, Path, Variable, constant

    x = Variable(Path("x"), ExpressionType.I32)
    guard = GreaterThan(x, constant(5)) & LessThan(x, constant(10))
"""

from __future__ import annotations

import enum
from abc import ABC
from dataclasses import dataclass
from typing import Tuple, Union

from .constant_domain import (
    FALSE,
    I128,
    TRUE,
    U128,
    ConstantDomain,
    F32,
    F64,
)


# ===================================================================
# TYPES
# ===================================================================

class ExpressionType(enum.Enum):
    """Primitive types of the analysed language, plus ``NON_PRIMITIVE``."""
    BOOL = "bool"
    CHAR = "char"
    F32 = "f32"
    F64 = "f64"
    I8 = "i8"
    I16 = "i16"
    I32 = "i32"
    I64 = "i64"
    I128 = "i128"
    ISIZE = "isize"
    U8 = "u8"
    U16 = "u16"
    U32 = "u32"
    U64 = "u64"
    U128 = "u128"
    USIZE = "usize"
    NON_PRIMITIVE = "non_primitive"

    def bit_length(self) -> int:
        return _BIT_LENGTHS[self]

    def is_signed_integer(self) -> bool:
        return self in _SIGNED_INTEGERS

    def is_unsigned_integer(self) -> bool:
        return self in _UNSIGNED_INTEGERS

    def is_integer(self) -> bool:
        return self in _SIGNED_INTEGERS or self in _UNSIGNED_INTEGERS

    def is_floating_point(self) -> bool:
        return self in (ExpressionType.F32, ExpressionType.F64)

    def is_primitive(self) -> bool:
        return self is not ExpressionType.NON_PRIMITIVE


_BIT_LENGTHS = {
    ExpressionType.BOOL: 1,
    ExpressionType.CHAR: 16,
    ExpressionType.F32: 32,
    ExpressionType.F64: 64,
    ExpressionType.I8: 8,
    ExpressionType.I16: 16,
    ExpressionType.I32: 32,
    ExpressionType.I64: 64,
    ExpressionType.I128: 128,
    ExpressionType.ISIZE: 64,
    ExpressionType.U8: 8,
    ExpressionType.U16: 16,
    ExpressionType.U32: 32,
    ExpressionType.U64: 64,
    ExpressionType.U128: 128,
    ExpressionType.USIZE: 64,
    ExpressionType.NON_PRIMITIVE: 128,
}

_SIGNED_INTEGERS = frozenset({
    ExpressionType.I8, ExpressionType.I16, ExpressionType.I32,
    ExpressionType.I64, ExpressionType.I128, ExpressionType.ISIZE,
})

_UNSIGNED_INTEGERS = frozenset({
    ExpressionType.U8, ExpressionType.U16, ExpressionType.U32,
    ExpressionType.U64, ExpressionType.U128, ExpressionType.USIZE,
})


# ===================================================================
# PATHS
# ===================================================================

@dataclass(frozen=True)
class Path:
    """A memory location: a root name qualified by selectors.

    ``repr(path)`` is the debug form used as the solver symbol name, so two
    equal paths always map to the same solver constant.  Segments are joined
    with ``.``; a ``\\``, ``.`` or ``&`` inside a segment is escaped with a
    backslash, so distinct paths never share a name and no path collides
    with the ``&``-prefixed name of a reference.

    Parameters
    ----------
    root : str
        Local, parameter or static name.
    selectors : tuple[str, ...]
        Field names, tuple indices or deref markers applied to the root.
    """
    root: str
    selectors: Tuple[str, ...] = ()

    def select(self, selector: Union[str, int]) -> "Path":
        """Return the path of a sub-location."""
        return Path(self.root, self.selectors + (str(selector),))

    def __repr__(self) -> str:
        return ".".join(_escape_segment(s) for s in (self.root,) + self.selectors)


def _escape_segment(segment: str) -> str:
    for special in ("\\", ".", "&"):
        segment = segment.replace(special, "\\" + special)
    return segment


# ===================================================================
# EXPRESSION NODES
# ===================================================================

class Expression(ABC):
    """Base class for expression nodes.

    ``&``, ``|`` and ``~`` build ``And``, ``Or`` and ``Not`` nodes.
    """

    @property
    def children(self) -> Tuple["Expression", ...]:
        return ()

    def __and__(self, other: "Expression") -> "Expression":
        return And(self, other)

    def __or__(self, other: "Expression") -> "Expression":
        return Or(self, other)

    def __invert__(self) -> "Expression":
        return Not(self)


@dataclass(frozen=True)
class BinaryExpression(Expression):
    left: Expression
    right: Expression

    @property
    def children(self) -> Tuple[Expression, ...]:
        return (self.left, self.right)


@dataclass(frozen=True)
class TypedBinaryExpression(Expression):
    """A binary node whose meaning depends on the declared result type."""
    left: Expression
    right: Expression
    result_type: ExpressionType

    @property
    def children(self) -> Tuple[Expression, ...]:
        return (self.left, self.right)


@dataclass(frozen=True)
class UnaryExpression(Expression):
    operand: Expression

    @property
    def children(self) -> Tuple[Expression, ...]:
        return (self.operand,)


# ---- Arithmetic -----------------------------------------------------------

@dataclass(frozen=True)
class Add(BinaryExpression):
    pass


@dataclass(frozen=True)
class Sub(BinaryExpression):
    pass


@dataclass(frozen=True)
class Mul(BinaryExpression):
    pass


@dataclass(frozen=True)
class Div(BinaryExpression):
    pass


@dataclass(frozen=True)
class Rem(BinaryExpression):
    pass


@dataclass(frozen=True)
class Neg(UnaryExpression):
    pass


# ---- Overflow checks ------------------------------------------------------

@dataclass(frozen=True)
class AddOverflows(TypedBinaryExpression):
    """True when ``left + right`` does not fit in ``result_type``."""


@dataclass(frozen=True)
class SubOverflows(TypedBinaryExpression):
    """True when ``left - right`` does not fit in ``result_type``."""


@dataclass(frozen=True)
class MulOverflows(TypedBinaryExpression):
    """True when ``left * right`` does not fit in ``result_type``."""


@dataclass(frozen=True)
class ShlOverflows(TypedBinaryExpression):
    """True when the shift amount ``right`` is at least the type's width."""


@dataclass(frozen=True)
class ShrOverflows(TypedBinaryExpression):
    """True when the shift amount ``right`` is at least the type's width."""


# ---- Boolean connectives --------------------------------------------------

@dataclass(frozen=True)
class And(BinaryExpression):
    pass


@dataclass(frozen=True)
class Or(BinaryExpression):
    pass


@dataclass(frozen=True)
class Not(UnaryExpression):
    pass


# ---- Bitwise operations and shifts ----------------------------------------

@dataclass(frozen=True)
class BitAnd(BinaryExpression):
    pass


@dataclass(frozen=True)
class BitOr(BinaryExpression):
    pass


@dataclass(frozen=True)
class BitXor(BinaryExpression):
    pass


@dataclass(frozen=True)
class BitNot(UnaryExpression):
    pass


@dataclass(frozen=True)
class Shl(BinaryExpression):
    pass


@dataclass(frozen=True)
class Shr(TypedBinaryExpression):
    """Right shift; arithmetic when ``result_type`` is signed."""


# ---- Comparisons ----------------------------------------------------------

@dataclass(frozen=True)
class Equals(BinaryExpression):
    pass


@dataclass(frozen=True)
class Ne(BinaryExpression):
    pass


@dataclass(frozen=True)
class GreaterThan(BinaryExpression):
    pass


@dataclass(frozen=True)
class GreaterOrEqual(BinaryExpression):
    pass


@dataclass(frozen=True)
class LessThan(BinaryExpression):
    pass


@dataclass(frozen=True)
class LessOrEqual(BinaryExpression):
    pass


# ---- Other operators ------------------------------------------------------

@dataclass(frozen=True)
class ConditionalExpression(Expression):
    condition: Expression
    consequent: Expression
    alternate: Expression

    @property
    def children(self) -> Tuple[Expression, ...]:
        return (self.condition, self.consequent, self.alternate)


@dataclass(frozen=True)
class Cast(Expression):
    operand: Expression
    target_type: ExpressionType

    @property
    def children(self) -> Tuple[Expression, ...]:
        return (self.operand,)


@dataclass(frozen=True)
class Join(Expression):
    """The merge of two values flowing into the same location."""
    left: Expression
    right: Expression
    path: Path

    @property
    def children(self) -> Tuple[Expression, ...]:
        return (self.left, self.right)


# ---- Leaves ---------------------------------------------------------------

@dataclass(frozen=True)
class CompileTimeConstant(Expression):
    value: ConstantDomain


@dataclass(frozen=True)
class Variable(Expression):
    path: Path
    var_type: ExpressionType


@dataclass(frozen=True)
class Reference(Expression):
    """The address of the location ``path``."""
    path: Path


@dataclass(frozen=True)
class Top(Expression):
    """A value about which nothing is known."""

    def __repr__(self) -> str:
        return "TOP"


@dataclass(frozen=True)
class Bottom(Expression):
    """The value of an unreachable program point."""

    def __repr__(self) -> str:
        return "BOTTOM"


# ===================================================================
# CONSTRUCTION HELPERS
# ===================================================================

def constant(value: Union[bool, int, float, ConstantDomain],
             float_type: ExpressionType = ExpressionType.F64) -> CompileTimeConstant:
    """Wrap a Python value in a ``CompileTimeConstant`` node.

    ``bool`` maps to ``TRUE``/``FALSE``, non-negative ``int`` values above
    the signed 128-bit range map to ``U128``, other ints to ``I128``, and
    ``float`` to ``F32`` or ``F64`` depending on *float_type*.
    """
    if isinstance(value, ConstantDomain):
        return CompileTimeConstant(value)
    if isinstance(value, bool):
        return CompileTimeConstant(TRUE if value else FALSE)
    if isinstance(value, int):
        if value > (1 << 127) - 1:
            return CompileTimeConstant(U128(value))
        return CompileTimeConstant(I128(value))
    if isinstance(value, float):
        if float_type is ExpressionType.F32:
            return CompileTimeConstant(F32.from_float(value))
        return CompileTimeConstant(F64.from_float(value))
    raise TypeError(f"cannot make a constant from {type(value).__name__}")


def variable(name: str, var_type: ExpressionType) -> Variable:
    """Shorthand for ``Variable(Path(name), var_type)``."""
    return Variable(Path(name), var_type)


def expression_size(expression: Expression) -> int:
    """Number of nodes in the tree (shared subtrees counted each time)."""
    return 1 + sum(expression_size(c) for c in expression.children)


def expression_depth(expression: Expression) -> int:
    """Height of the tree; a leaf has depth 1."""
    if not expression.children:
        return 1
    return 1 + max(expression_depth(c) for c in expression.children)
