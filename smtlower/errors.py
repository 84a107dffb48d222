# smtlower/errors.py
"""
Error types raised by smtlower.

Error Hierarchy:
────────────────
    SmtLowerError (base)
    ├── ConfigurationError      - invalid SolverConfig values
    └── ContractViolation       - caller bugs, never recovered internally
        ├── SortMismatchError   - float/integer operands mixed, or a float
        │                         where an integer term is required
        ├── BacktrackError      - backtrack() without a matching push
        └── NotBooleanTermError - assert_() given a non-boolean term

Unsupported expression shapes are *not* errors: the encoder logs them and
lowers them to a fresh unconstrained constant.  Solver indecision is not an
error either; it is reported as ``SmtResult.UNDEFINED``.
"""

from __future__ import annotations

from typing import Optional


class SmtLowerError(Exception):
    """Base exception for all smtlower errors."""

    def __init__(self, message: str, hint: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint

    def with_hint(self, hint: str) -> "SmtLowerError":
        """Attach a hint to this error."""
        self.hint = hint
        return self

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message


class ConfigurationError(SmtLowerError):
    """Raised when a SolverConfig fails validation."""

    def __init__(self, problems: list) -> None:
        super().__init__("invalid solver configuration: " + "; ".join(problems))
        self.problems = list(problems)


# ───────────────────────────────────────────────────────────────────────────
# CONTRACT VIOLATIONS
# ───────────────────────────────────────────────────────────────────────────

class ContractViolation(SmtLowerError):
    """The caller broke a precondition of an encoder or session operation."""


class SortMismatchError(ContractViolation):
    """Numeric-view operands disagree on float-ness."""

    def __init__(
        self,
        operator: str,
        left_is_float: bool,
        right_is_float: Optional[bool] = None,
    ) -> None:
        if right_is_float is None:
            message = (
                f"{operator}: expected an integer operand, "
                f"got a {'float' if left_is_float else 'integer'} one"
            )
        else:
            message = (
                f"{operator}: operands disagree on float-ness "
                f"(left is_float={left_is_float}, right is_float={right_is_float})"
            )
        super().__init__(message)
        self.operator = operator
        self.left_is_float = left_is_float
        self.right_is_float = right_is_float


class BacktrackError(ContractViolation):
    """backtrack() was called with no open checkpoint."""

    def __init__(self) -> None:
        super().__init__(
            "backtrack() called without a matching set_backtrack_position()",
            hint="wrap speculative assertions in a push/pop pair",
        )


class NotBooleanTermError(ContractViolation):
    """A term of a non-boolean sort was asserted."""

    def __init__(self, sort_name: str) -> None:
        super().__init__(f"only boolean terms can be asserted, got sort {sort_name}")
        self.sort_name = sort_name
