"""
smtlower.constant_domain
========================

Compile-time constant values carried by ``CompileTimeConstant`` expression
nodes.

Every variant is an immutable dataclass.  Integers are stored widened to
128 bits (signed in :class:`I128`, unsigned in :class:`U128`); floats are
stored as their raw IEEE-754 bit patterns so that NaN payloads and signed
zeros survive a round trip through the analysis.

Variants
--------
    TrueConst, FalseConst  - boolean literals (``TRUE``, ``FALSE``)
    Char  - a single character
    I128, U128  - 128-bit signed / unsigned integers
    F32, F64  - IEEE single / double, as bit patterns
    Str, Function, Bottom  - values the SMT encoder does not interpret
"""

from __future__ import annotations

import struct
from abc import ABC
from dataclasses import dataclass

# ===================================================================
# CONSTANTS
# ===================================================================

I128_MIN = -(1 << 127)
I128_MAX = (1 << 127) - 1
U128_MAX = (1 << 128) - 1

I64_MIN = -(1 << 63)
I64_MAX = (1 << 63) - 1
U64_MAX = (1 << 64) - 1


class ConstantDomain(ABC):
    """Base class for constant values."""

    @property
    def is_float(self) -> bool:
        return False


@dataclass(frozen=True)
class TrueConst(ConstantDomain):
    def __repr__(self) -> str:
        return "true"


@dataclass(frozen=True)
class FalseConst(ConstantDomain):
    def __repr__(self) -> str:
        return "false"


TRUE = TrueConst()
FALSE = FalseConst()


@dataclass(frozen=True)
class Char(ConstantDomain):
    """A character constant.  ``value`` must be a string of length one."""
    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or len(self.value) != 1:
            raise ValueError(f"Char expects a single character, got {self.value!r}")

    @property
    def code_unit(self) -> int:
        """The code point truncated to 16 bits."""
        return ord(self.value) & 0xFFFF


@dataclass(frozen=True)
class I128(ConstantDomain):
    """A signed integer constant in the 128-bit two's-complement range."""
    value: int

    def __post_init__(self) -> None:
        if not I128_MIN <= self.value <= I128_MAX:
            raise ValueError(f"{self.value} does not fit in a signed 128-bit integer")

    @property
    def fits_in_64_bits(self) -> bool:
        return I64_MIN <= self.value <= I64_MAX


@dataclass(frozen=True)
class U128(ConstantDomain):
    """An unsigned integer constant in ``[0, 2**128)``."""
    value: int

    def __post_init__(self) -> None:
        if not 0 <= self.value <= U128_MAX:
            raise ValueError(f"{self.value} does not fit in an unsigned 128-bit integer")

    @property
    def fits_in_64_bits(self) -> bool:
        return self.value <= U64_MAX


@dataclass(frozen=True)
class F32(ConstantDomain):
    """An IEEE-754 single precision constant stored as its 32-bit pattern."""
    bits: int

    def __post_init__(self) -> None:
        if not 0 <= self.bits < (1 << 32):
            raise ValueError(f"F32 bit pattern out of range: {self.bits:#x}")

    @classmethod
    def from_float(cls, value: float) -> "F32":
        return cls(struct.unpack("<I", struct.pack("<f", value))[0])

    @property
    def is_float(self) -> bool:
        return True

    def as_float(self) -> float:
        return struct.unpack("<f", struct.pack("<I", self.bits))[0]


@dataclass(frozen=True)
class F64(ConstantDomain):
    """An IEEE-754 double precision constant stored as its 64-bit pattern."""
    bits: int

    def __post_init__(self) -> None:
        if not 0 <= self.bits < (1 << 64):
            raise ValueError(f"F64 bit pattern out of range: {self.bits:#x}")

    @classmethod
    def from_float(cls, value: float) -> "F64":
        return cls(struct.unpack("<Q", struct.pack("<d", value))[0])

    @property
    def is_float(self) -> bool:
        return True

    def as_float(self) -> float:
        return struct.unpack("<d", struct.pack("<Q", self.bits))[0]


@dataclass(frozen=True)
class Str(ConstantDomain):
    value: str


@dataclass(frozen=True)
class Function(ConstantDomain):
    """A reference to a function, identified by its qualified name."""
    name: str


@dataclass(frozen=True)
class Bottom(ConstantDomain):
    """The constant of an unreachable program point."""

    def __repr__(self) -> str:
        return "bottom"
