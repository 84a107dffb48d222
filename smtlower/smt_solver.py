"""
smtlower.smt_solver
===================

The solver protocol a driver programs against.

A driver lowers program predicates with :meth:`SmtSolver.get_as_smt_predicate`,
asserts them, and asks for a verdict.  Speculative assertions are wrapped in
a checkpoint pair::

    solver.set_backtrack_position()
    solver.assert_(solver.get_as_smt_predicate(condition))
    verdict = solver.solve()
    solver.backtrack()

Two implementations exist: :class:`smtlower.z3_solver.Z3Solver`, and
:class:`SolverStub`, which never decides anything.
"""

from __future__ import annotations

import abc
import enum
import logging
import os
from dataclasses import dataclass
from typing import Any, List, Optional

from .errors import BacktrackError
from .expression import Expression

logger = logging.getLogger(__name__)

# ===================================================================
# CONSTANTS
# ===================================================================

DEFAULT_TIMEOUT_MS = 100
TIMEOUT_ENV_VAR = "SMTLOWER_TIMEOUT_MS"


# ===================================================================
# RESULTS AND CONFIGURATION
# ===================================================================

class SmtResult(enum.Enum):
    """Three-valued verdict of a satisfiability check.

    ``UNDEFINED`` covers both genuine solver indecision and a timeout.  It
    must not be read as ``UNSATISFIABLE``.
    """
    SATISFIABLE = "sat"
    UNSATISFIABLE = "unsat"
    UNDEFINED = "unknown"


@dataclass
class SolverConfig:
    """Settings fixed once when a solver session is constructed."""
    timeout_ms: int = DEFAULT_TIMEOUT_MS

    def validate(self) -> List[str]:
        """Return a list of problems (empty if valid)."""
        problems: List[str] = []
        if not isinstance(self.timeout_ms, int) or isinstance(self.timeout_ms, bool):
            problems.append("timeout_ms must be an integer")
        elif self.timeout_ms <= 0:
            problems.append("timeout_ms must be positive")
        return problems

    @classmethod
    def from_env(cls) -> "SolverConfig":
        """Build a config, taking the timeout from ``SMTLOWER_TIMEOUT_MS`` if set."""
        raw = os.environ.get(TIMEOUT_ENV_VAR, "")
        if not raw:
            return cls()
        try:
            return cls(timeout_ms=int(raw))
        except ValueError:
            logger.warning("Ignoring non-integer %s=%r", TIMEOUT_ENV_VAR, raw)
            return cls()


# ===================================================================
# SOLVER PROTOCOL
# ===================================================================

class SmtSolver(abc.ABC):
    """Abstract interface of an incremental SMT solver session."""

    @abc.abstractmethod
    def as_debug_string(self, term: Any) -> str:
        """Render a solver term for diagnostics.  Not a stable format."""
        ...

    @abc.abstractmethod
    def assert_(self, term: Any) -> None:
        """Add a boolean constraint to the current checkpoint frame."""
        ...

    @abc.abstractmethod
    def backtrack(self) -> None:
        """Discard everything asserted since the last checkpoint.

        Raises
        ------
        BacktrackError
            If there is no open checkpoint.
        """
        ...

    @abc.abstractmethod
    def get_as_smt_predicate(self, expression: Expression) -> Any:
        """Lower *expression* to a term that can be passed to :meth:`assert_`."""
        ...

    @abc.abstractmethod
    def set_backtrack_position(self) -> None:
        """Open a new checkpoint frame."""
        ...

    @abc.abstractmethod
    def solve(self) -> SmtResult:
        """Check the conjunction of all asserted constraints."""
        ...


class SolverStub(SmtSolver):
    """A solver that records nothing and never reaches a verdict.

    Lets a driver run its full pipeline without an SMT backend: every
    check answers ``UNDEFINED``.
    """

    def __init__(self) -> None:
        self._depth = 0

    @property
    def backtrack_depth(self) -> int:
        return self._depth

    def as_debug_string(self, term: Any) -> str:
        return ""

    def assert_(self, term: Any) -> None:
        pass

    def backtrack(self) -> None:
        if self._depth == 0:
            raise BacktrackError()
        self._depth -= 1

    def get_as_smt_predicate(self, expression: Expression) -> Optional[Any]:
        return None

    def set_backtrack_position(self) -> None:
        self._depth += 1

    def solve(self) -> SmtResult:
        return SmtResult.UNDEFINED
