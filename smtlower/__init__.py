"""
smtlower: Sort-correct lowering of symbolic expressions to Z3
==============================================================

This package translates the symbolic expression trees of a program
analyser into Z3 formulas and drives Z3's incremental
assert / push / pop / check protocol.

Core modules
------------
expression
    The expression tree: node classes, ``Path``, ``ExpressionType``.
constant_domain
    Compile-time constant values (booleans, chars, 128-bit integers,
    IEEE float bit patterns).
smt_solver
    ``SmtResult``, the ``SmtSolver`` protocol, ``SolverStub`` and
    ``SolverConfig``.
z3_solver
    ``Z3Solver``: the Z3 session and the any / numeric / boolean /
    bit-vector encoders.
errors
    Exception hierarchy for contract violations.

Quick start
-----------
>>> from smtlower import Z3Solver, SmtResult
>>> from smtlower.expression import GreaterThan, ExpressionType, constant, variable
>>> solver = Z3Solver()
>>> x = variable("x", ExpressionType.I32)
>>> solver.assert_(solver.get_as_smt_predicate(GreaterThan(x, constant(5))))
>>> solver.solve()
<SmtResult.SATISFIABLE: 'sat'>

Package layout
--------------
::

    smtlower/
    ├── __init__.py            ← this file
    ├── constant_domain.py
    ├── errors.py
    ├── expression.py
    ├── smt_solver.py
    └── z3_solver.py
"""

from __future__ import annotations

import importlib
import logging
import sys
from typing import TYPE_CHECKING, List

# ---------------------------------------------------------------------------
# Package metadata
# ---------------------------------------------------------------------------

__version__ = "0.1.0"
__author__ = "smtlower contributors"
__license__ = "MIT"
__all__: List[str] = []          # populated incrementally below

_log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Internal registry: (module_name, list_of_names_to_import)
# ---------------------------------------------------------------------------

_CORE_MODULES = {
    "errors": [
        "SmtLowerError",
        "ConfigurationError",
        "ContractViolation",
        "SortMismatchError",
        "BacktrackError",
        "NotBooleanTermError",
    ],
    "expression": [
        "Expression",
        "ExpressionType",
        "Path",
    ],
    "smt_solver": [
        "SmtResult",
        "SmtSolver",
        "SolverStub",
        "SolverConfig",
    ],
    "z3_solver": [
        "Z3Solver",
    ],
}

# ---------------------------------------------------------------------------
# Import helper
# ---------------------------------------------------------------------------

def _import_names(module_rel_name: str, names: List[str]) -> None:
    """Import *names* from a submodule and bind them in the package namespace.

    An ``ImportError`` (for example a missing ``z3-solver``) propagates with
    the submodule named in the message.
    """
    fq_name = f"{__name__}.{module_rel_name}"
    try:
        mod = importlib.import_module(fq_name)
    except ImportError as exc:
        raise ImportError(
            f"smtlower: required submodule '{module_rel_name}' "
            f"failed to import: {exc}"
        ) from exc

    current_module = sys.modules[__name__]
    for name in names:
        obj = getattr(mod, name, None)
        if obj is None:
            raise AttributeError(f"smtlower.{module_rel_name} does not export '{name}'")
        setattr(current_module, name, obj)
        __all__.append(name)

    setattr(current_module, module_rel_name, mod)
    if module_rel_name not in __all__:
        __all__.append(module_rel_name)


for _mod, _names in _CORE_MODULES.items():
    _import_names(_mod, _names)

del _mod, _names

# ---------------------------------------------------------------------------
# Package-level utilities
# ---------------------------------------------------------------------------

def list_submodules() -> List[str]:
    """Return the names of all submodules in the package."""
    return sorted(_CORE_MODULES)


def package_info() -> dict:
    """Return a dict of metadata about the package and the Z3 build in use.

    Useful for logging/diagnostics inside drivers.
    """
    import z3

    return {
        "package": __name__,
        "version": __version__,
        "python": sys.version,
        "z3": z3.get_version_string(),
        "loaded_submodules": [m for m in list_submodules()
                              if f"{__name__}.{m}" in sys.modules],
        "all_exports": list(__all__),
    }


__all__ += ["list_submodules", "package_info", "__version__"]

# ---------------------------------------------------------------------------
# TYPE_CHECKING block: gives IDEs full visibility without runtime cost
# ---------------------------------------------------------------------------

if TYPE_CHECKING:
    from .errors import (
        SmtLowerError as SmtLowerError,
        ConfigurationError as ConfigurationError,
        ContractViolation as ContractViolation,
        SortMismatchError as SortMismatchError,
        BacktrackError as BacktrackError,
        NotBooleanTermError as NotBooleanTermError,
    )
    from .expression import (
        Expression as Expression,
        ExpressionType as ExpressionType,
        Path as Path,
    )
    from .smt_solver import (
        SmtResult as SmtResult,
        SmtSolver as SmtSolver,
        SolverStub as SolverStub,
        SolverConfig as SolverConfig,
    )
    from .z3_solver import Z3Solver as Z3Solver
