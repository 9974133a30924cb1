from __future__ import annotations

import numpy as np
import pytest

from engine.line_search import LineSearchParams, armijo_wolfe


def _f(x: np.ndarray) -> float:
    return float(np.dot(x, x))


def _gradf(x: np.ndarray) -> np.ndarray:
    return 2.0 * np.asarray(x, dtype=float)


def test_quadratic_step_satisfies_armijo_and_weak_wolfe():
    params = LineSearchParams()
    x0 = np.array([10.0])
    d = -_gradf(x0)
    fx0 = _f(x0)
    t = armijo_wolfe(x0, _f, _gradf, d, fx0)
    slope0 = float(np.dot(_gradf(x0), d))
    x1 = x0 + t * d
    assert _f(x1) <= fx0 + params.c1 * t * slope0
    assert float(np.dot(_gradf(x1), d)) >= params.c2 * slope0
    assert _f(x1) < fx0


def test_unit_step_is_accepted_when_both_conditions_hold():
    # f = x^2 / 4 from x = 1 along -grad: t = 1 lands at 0.5
    f = lambda x: float(0.25 * np.dot(x, x))
    gradf = lambda x: 0.5 * np.asarray(x, dtype=float)
    x0 = np.array([1.0])
    t = armijo_wolfe(x0, f, gradf, -gradf(x0), f(x0))
    assert t == 1.0


def test_expansion_doubles_lower_bound_when_curvature_fails():
    # very flat quadratic: t = 1 is too short, the search expands
    f = lambda x: float(1e-3 * np.dot(x, x))
    gradf = lambda x: 2e-3 * np.asarray(x, dtype=float)
    x0 = np.array([1.0])
    trials = []
    t = armijo_wolfe(x0, f, gradf, -gradf(x0), f(x0), on_trial=trials.append)
    assert t > 1.0
    assert trials[0]["t"] == 1.0 and trials[0]["armijo"] and not trials[0]["wolfe"]
    assert trials[1]["t"] == 2.0


def test_gives_up_after_max_steps():
    # ascent direction: Armijo never holds, the bracket keeps shrinking
    x0 = np.array([1.0])
    trials = []
    t = armijo_wolfe(x0, _f, _gradf, _gradf(x0), _f(x0), max_steps=4, on_trial=trials.append)
    assert len(trials) == 5
    assert all(not row["armijo"] for row in trials)
    assert t == pytest.approx(2.0 ** -5)


def test_params_are_validated():
    with pytest.raises(AssertionError):
        LineSearchParams(c1=0.9, c2=0.1)


def test_stops_when_bracket_collapses():
    # ascent direction with a generous step cap: only the bracket width ends the search
    params = LineSearchParams(max_steps=100)
    x0 = np.array([1.0])
    trials = []
    t = armijo_wolfe(x0, _f, _gradf, _gradf(x0), _f(x0), params=params, on_trial=trials.append)
    assert len(trials) == 35
    last = trials[-1]
    assert last["t"] == pytest.approx(2.0 ** -34)
    # the final trial shrinks b to t, so the bracket is now narrower than min_interval
    assert last["t"] - last["a"] < params.min_interval
    assert t == pytest.approx(2.0 ** -35)
