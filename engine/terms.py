"""Named objective / constraint terms and their argument expressions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence, Tuple

import numpy as np

from .autodiff import Graph
from .errors import ConfigurationError

__all__ = ["Varying", "Fn", "objective", "constraint", "pretty_print_fn", "varying_indices", "bind_args"]


@dataclass(frozen=True)
class Varying:
    """Reference to entry ``index`` of the varying-variable vector."""

    index: int

    def __repr__(self) -> str:
        return f"x[{self.index}]"


@dataclass(frozen=True)
class Fn:
    """A named term: ``name(*args)`` resolved against a function dictionary.

    ``args`` entries are floats (fixed shape properties), ``Varying``
    references, or nested sequences of those (vectors).
    """

    name: str
    args: Tuple[Any, ...] = ()
    opt_type: str = "objective"

    def __post_init__(self) -> None:
        assert isinstance(self.name, str) and len(self.name) > 0, "term name must be a non-empty string"
        assert self.opt_type in ("objective", "constraint"), "opt_type must be 'objective' or 'constraint'"
        object.__setattr__(self, "args", tuple(_freeze(a) for a in self.args))


def objective(name: str, *args: Any) -> Fn:
    return Fn(name=name, args=tuple(args), opt_type="objective")


def constraint(name: str, *args: Any) -> Fn:
    return Fn(name=name, args=tuple(args), opt_type="constraint")


def _freeze(arg: Any) -> Any:
    if isinstance(arg, np.ndarray):
        return tuple(_freeze(a) for a in arg.tolist())
    if isinstance(arg, (list, tuple)):
        return tuple(_freeze(a) for a in arg)
    return arg


def _format_arg(arg: Any) -> str:
    if isinstance(arg, tuple):
        return "[" + ", ".join(_format_arg(a) for a in arg) + "]"
    if isinstance(arg, float):
        return f"{arg:g}"
    return repr(arg)


def pretty_print_fn(fn: Fn) -> str:
    return f"{fn.name}(" + ", ".join(_format_arg(a) for a in fn.args) + ")"


def varying_indices(fn: Fn) -> Tuple[int, ...]:
    """All varying indices referenced by ``fn``, in argument order."""
    found = []

    def _walk(arg: Any) -> None:
        if isinstance(arg, Varying):
            found.append(arg.index)
        elif isinstance(arg, tuple):
            for a in arg:
                _walk(a)

    for a in fn.args:
        _walk(a)
    return tuple(found)


def bind_args(graph: Graph, args: Sequence[Any]) -> list:
    """Replace ``Varying`` references with input nodes and floats with constants."""

    def _bind(arg: Any) -> Any:
        if isinstance(arg, Varying):
            return graph.input(arg.index)
        if isinstance(arg, tuple):
            return [_bind(a) for a in arg]
        if isinstance(arg, (bool, str)) or arg is None:
            raise ConfigurationError(f"unsupported term argument {arg!r}")
        try:
            return graph.lift(arg)
        except TypeError as exc:
            raise ConfigurationError(f"unsupported term argument {arg!r}") from exc

    return [_bind(a) for a in args]
