"""Armijo / weak-Wolfe bracketing line search.

Bracket [a, b] starts at [0, inf) with trial t = 1. A trial failing Armijo
shrinks b; one failing the curvature condition raises a. The next trial bisects
a finite bracket or doubles a. The search gives up after ``max_steps`` or when
the bracket collapses and returns the current trial, so callers must tolerate
an imperfect step.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import numpy as np

from .interfaces import GradientFn, ValueFn

__all__ = ["LineSearchParams", "LineSearchTrial", "armijo_wolfe"]

LineSearchTrial = Dict[str, Any]


@dataclass(frozen=True)
class LineSearchParams:
    c1: float = 0.001  # Armijo
    c2: float = 0.9  # weak Wolfe
    min_interval: float = 1e-10
    max_steps: int = 10
    initial_step: float = 1.0

    def __post_init__(self) -> None:
        assert 0.0 < self.c1 < self.c2 < 1.0, "need 0 < c1 < c2 < 1"
        assert self.min_interval > 0.0, "min_interval must be > 0"
        assert self.max_steps >= 0, "max_steps must be non-negative"
        assert self.initial_step > 0.0, "initial_step must be > 0"


def armijo_wolfe(
    x0: np.ndarray,
    f: ValueFn,
    gradf: GradientFn,
    descent_dir: np.ndarray,
    fx0: float,
    max_steps: Optional[int] = None,
    params: LineSearchParams = LineSearchParams(),
    grad_at_x0: Optional[np.ndarray] = None,
    on_trial: Optional[Callable[[LineSearchTrial], None]] = None,
) -> float:
    """Step length t along ``descent_dir`` from ``x0``.

    Args:
        x0: Current point.
        f, gradf: Objective and gradient at the current penalty weight.
        descent_dir: Search direction (e.g. minus the preconditioned gradient).
        fx0: f(x0), already known by the caller.
        max_steps: Overrides ``params.max_steps`` when given.
        grad_at_x0: gradf(x0) if already known; recomputed otherwise.
        on_trial: Receives one row per evaluated trial (tracing).
    Returns:
        Step length t > 0.
    """
    x0 = np.asarray(x0, dtype=float)
    d = np.asarray(descent_dir, dtype=float)
    limit = params.max_steps if max_steps is None else int(max_steps)
    g0 = gradf(x0) if grad_at_x0 is None else np.asarray(grad_at_x0, dtype=float)
    slope0 = float(np.dot(d, g0))

    def armijo(t: float) -> bool:
        return f(x0 + t * d) <= fx0 + params.c1 * t * slope0

    def weak_wolfe(t: float) -> bool:
        return float(np.dot(d, gradf(x0 + t * d))) >= params.c2 * slope0

    a = 0.0
    b = np.inf
    t = float(params.initial_step)
    i = 0
    while True:
        if abs(b - a) < params.min_interval or i > limit:
            break
        is_armijo = armijo(t)
        # curvature is only checked once sufficient decrease holds
        is_wolfe = weak_wolfe(t) if is_armijo else False
        if on_trial is not None:
            on_trial({"iter": i, "a": a, "b": float(b), "t": t, "armijo": is_armijo, "wolfe": is_wolfe})
        if not is_armijo:
            b = t
        elif not is_wolfe:
            a = t
        else:
            break
        if b < np.inf:
            t = (a + b) / 2.0
        else:
            t = 2.0 * a
        i += 1
    return t
