"""Interfaces between the optimizer and its external collaborators.

Exposes typed Protocols for term functions and for the shape store that
receives updated variable values.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Protocol, runtime_checkable

import numpy as np

__all__ = [
    "TermFunction",
    "FunctionDict",
    "ValueFn",
    "GradientFn",
    "VaryingProjector",
]

# A term function maps graph handles (or sequences of them) to a scalar handle.
TermFunction = Callable[..., Any]
FunctionDict = Mapping[str, TermFunction]

ValueFn = Callable[[np.ndarray], float]
GradientFn = Callable[[np.ndarray], np.ndarray]


@runtime_checkable
class VaryingProjector(Protocol):
    """External shape representation driven by the varying variables."""

    def insert_varyings(self, values: Mapping[str, float]) -> None:
        """Write each ``path -> value`` pair into the shape representation."""
        ...
