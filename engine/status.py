"""Exterior-point optimizer status, one class per state.

    NewIter -> UnconstrainedRunning <-> UnconstrainedConverged -> EPConverged
                        \\___________________________________-> Error
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Optional, Union

__all__ = [
    "NewIter",
    "UnconstrainedRunning",
    "UnconstrainedConverged",
    "EPConverged",
    "Error",
    "Status",
]


@dataclass(frozen=True)
class NewIter:
    tag: ClassVar[str] = "NewIter"
    terminal: ClassVar[bool] = False


@dataclass(frozen=True)
class UnconstrainedRunning:
    tag: ClassVar[str] = "UnconstrainedRunning"
    terminal: ClassVar[bool] = False


@dataclass(frozen=True)
class UnconstrainedConverged:
    tag: ClassVar[str] = "UnconstrainedConverged"
    terminal: ClassVar[bool] = False


@dataclass(frozen=True)
class EPConverged:
    tag: ClassVar[str] = "EPConverged"
    terminal: ClassVar[bool] = True


@dataclass(frozen=True)
class Error:
    """Terminal failure; shown to users as "could not find a valid layout"."""

    message: Optional[str] = None
    tag: ClassVar[str] = "Error"
    terminal: ClassVar[bool] = True


Status = Union[NewIter, UnconstrainedRunning, UnconstrainedConverged, EPConverged, Error]
