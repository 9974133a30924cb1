"""Exterior-point layout optimizer: autodiff energies, L-BFGS, line search."""

from .errors import ConfigurationError, NumericError, UnresolvedFunctionError
from .optimizer import (
    ExteriorPointOptimizer,
    OptimizationState,
    current_energy,
    current_variables,
    is_terminal,
)
from .terms import Fn, Varying, constraint, objective

__all__ = [
    "ConfigurationError",
    "NumericError",
    "UnresolvedFunctionError",
    "ExteriorPointOptimizer",
    "OptimizationState",
    "current_energy",
    "current_variables",
    "is_terminal",
    "Fn",
    "Varying",
    "constraint",
    "objective",
]
