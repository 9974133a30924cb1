"""Error taxonomy for the layout optimizer.

Configuration problems are raised eagerly when a problem is initialized.
Numeric problems are detected per iteration and turned into a terminal
``Error`` status by the optimizer instead of propagating to the caller.
"""

from __future__ import annotations

__all__ = [
    "ConfigurationError",
    "UnresolvedFunctionError",
    "NumericError",
]


class ConfigurationError(ValueError):
    """Problem description cannot be compiled (bad arity, bad references, ...)."""


class UnresolvedFunctionError(ConfigurationError):
    """A named objective or constraint has no entry in its function dictionary."""

    def __init__(self, name: str, kind: str) -> None:
        self.name = name
        self.kind = kind
        super().__init__(f"{kind} '{name}' not found in dictionary")


class NumericError(ArithmeticError):
    """Non-finite energy, gradient or iterate encountered during a step."""
