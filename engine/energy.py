"""Energy compiler: named terms -> one differentiable scalar energy.

    F(x; w) = Σ objective_i(x) + c0 * w * Σ penalty(constraint_j(x))

``c0`` is a fixed constraint scale and ``w`` the exterior-point weight, held
in a graph slot so that ``value(w)`` / ``gradient(w)`` re-parameterize the
compiled graph without rebuilding it.
"""

from __future__ import annotations

import inspect
import warnings
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Sequence, Tuple

import numpy as np

from .autodiff import Graph, Scalar, Var, add, add_n, maximum, mul, squared
from .errors import ConfigurationError, UnresolvedFunctionError
from .interfaces import FunctionDict, GradientFn, TermFunction, ValueFn
from .terms import Fn, bind_args, pretty_print_fn, varying_indices

__all__ = [
    "CONSTRAINT_SCALE",
    "EP_WEIGHT_SLOT",
    "to_penalty",
    "CompiledEnergy",
    "TermEnergy",
    "resolve_terms",
    "compile_energy",
    "compile_terms",
]

# Constant constraint weight; with w > ~1e-5 the constraints dominate the objectives.
CONSTRAINT_SCALE = 1e5
EP_WEIGHT_SLOT = "ep_weight"

PenaltyFn = Callable[[Scalar], Scalar]


def to_penalty(c: Scalar) -> Scalar:
    """One-sided quadratic penalty max(c, 0)^2."""
    return squared(maximum(c, 0.0))


@dataclass
class CompiledEnergy:
    """Compiled overall energy; closures are cheap to create and to call."""

    graph: Graph
    output: Var
    num_varying: int
    term_names: Tuple[str, ...] = ()
    constraint_scale: float = CONSTRAINT_SCALE

    def _slots(self, weight: float) -> Dict[str, float]:
        assert np.isfinite(weight), "weight must be finite"
        return {EP_WEIGHT_SLOT: float(weight)}

    def _check(self, xs: np.ndarray) -> np.ndarray:
        arr = np.asarray(xs, dtype=float)
        assert arr.shape == (self.num_varying,), "input vector has the wrong length"
        return arr

    def value(self, weight: float) -> ValueFn:
        slots = self._slots(weight)

        def f(xs: np.ndarray) -> float:
            return self.graph.forward(self.output, self._check(xs), slots)

        return f

    def gradient(self, weight: float) -> GradientFn:
        slots = self._slots(weight)

        def gradf(xs: np.ndarray) -> np.ndarray:
            _, grad = self.graph.gradient(self.output, self._check(xs), slots)
            return grad

        return gradf


@dataclass
class TermEnergy:
    """A single term compiled on its own graph (no weights, no penalty)."""

    fn: Fn
    graph: Graph
    output: Var
    num_varying: int
    name: str = field(init=False)

    def __post_init__(self) -> None:
        self.name = pretty_print_fn(self.fn)

    def value(self, xs: np.ndarray) -> float:
        return self.graph.forward(self.output, np.asarray(xs, dtype=float))

    def gradient(self, xs: np.ndarray) -> np.ndarray:
        arr = np.asarray(xs, dtype=float)
        _, grad = self.graph.gradient(self.output, arr)
        return grad


def _resolve(fn: Fn, dictionary: FunctionDict, kind: str, num_varying: int) -> TermFunction:
    func = dictionary.get(fn.name)
    if func is None:
        raise UnresolvedFunctionError(fn.name, kind)
    for idx in varying_indices(fn):
        if not 0 <= idx < num_varying:
            raise ConfigurationError(
                f"{kind} {pretty_print_fn(fn)} references varying index {idx} "
                f"outside [0, {num_varying})"
            )
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError):
        return func
    try:
        sig.bind(*fn.args)
    except TypeError as exc:
        raise ConfigurationError(f"{kind} {pretty_print_fn(fn)}: bad arity ({exc})") from exc
    return func


def resolve_terms(
    objectives: Sequence[Fn],
    constraints: Sequence[Fn],
    num_varying: int,
    objective_dict: FunctionDict,
    constraint_dict: FunctionDict,
) -> Tuple[List[TermFunction], List[TermFunction]]:
    """Look up every term before any graph is built; raises ConfigurationError."""
    objs = [_resolve(f, objective_dict, "objective", num_varying) for f in objectives]
    constrs = [_resolve(f, constraint_dict, "constraint", num_varying) for f in constraints]
    return objs, constrs


def _apply_term(graph: Graph, fn: Fn, func: TermFunction) -> Var:
    args = bind_args(graph, fn.args)
    try:
        out = func(*args)
    except (TypeError, ValueError, AssertionError, IndexError) as exc:
        raise ConfigurationError(f"could not build {pretty_print_fn(fn)}: {exc}") from exc
    if isinstance(out, (list, tuple)):
        raise ConfigurationError(f"{pretty_print_fn(fn)} must return a scalar")
    return graph.lift(out)


def compile_energy(
    objectives: Sequence[Fn],
    constraints: Sequence[Fn],
    num_varying: int,
    objective_dict: FunctionDict,
    constraint_dict: FunctionDict,
    constraint_scale: float = CONSTRAINT_SCALE,
    penalty: PenaltyFn = to_penalty,
) -> CompiledEnergy:
    assert num_varying >= 0, "num_varying must be non-negative"
    assert constraint_scale > 0.0, "constraint_scale must be > 0"
    obj_funcs, constr_funcs = resolve_terms(
        objectives, constraints, num_varying, objective_dict, constraint_dict
    )
    if not objectives and not constraints:
        warnings.warn("no objectives and no constraints; energy is identically zero", UserWarning, stacklevel=2)

    graph = Graph()
    obj_engs = [_apply_term(graph, fn, func) for fn, func in zip(objectives, obj_funcs)]
    constr_engs = [penalty(_apply_term(graph, fn, func)) for fn, func in zip(constraints, constr_funcs)]

    constr_weight = graph.constant(constraint_scale)
    ep_weight = graph.slot(EP_WEIGHT_SLOT, default=1.0)
    obj_eng = add_n(obj_engs)
    constr_eng = add_n(constr_engs)
    overall = graph.lift(add(obj_eng, mul(constr_eng, mul(constr_weight, ep_weight))))

    names = tuple(pretty_print_fn(f) for f in list(objectives) + list(constraints))
    return CompiledEnergy(
        graph=graph,
        output=overall,
        num_varying=int(num_varying),
        term_names=names,
        constraint_scale=float(constraint_scale),
    )


def compile_terms(
    objectives: Sequence[Fn],
    constraints: Sequence[Fn],
    num_varying: int,
    objective_dict: FunctionDict,
    constraint_dict: FunctionDict,
) -> Dict[str, TermEnergy]:
    """Compile every term separately, keyed by its pretty-printed form.

    Keys are ``obj:<term>`` or ``constr:<term>``; constraint entries evaluate
    the raw constraint value (<= 0 when satisfied).
    """
    obj_funcs, constr_funcs = resolve_terms(
        objectives, constraints, num_varying, objective_dict, constraint_dict
    )
    compiled: Dict[str, TermEnergy] = {}
    pairs = [("obj", fn, func) for fn, func in zip(objectives, obj_funcs)]
    pairs += [("constr", fn, func) for fn, func in zip(constraints, constr_funcs)]
    for prefix, fn, func in pairs:
        graph = Graph()
        out = _apply_term(graph, fn, func)
        term = TermEnergy(fn=fn, graph=graph, output=out, num_varying=int(num_varying))
        compiled[f"{prefix}:{term.name}"] = term
    return compiled
