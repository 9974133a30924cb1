"""Small layout problems solved to exterior-point convergence."""

from __future__ import annotations

import numpy as np
import pytest

from engine.optimizer import ExteriorPointOptimizer, current_variables, is_terminal
from engine.status import EPConverged
from engine.terms import Varying, constraint, objective
from engine.translation import Translation


def test_equal_objective_pulls_values_together():
    opt = ExteriorPointOptimizer()
    state = opt.initialize([objective("equal", Varying(0), Varying(1))], [], [0.0, 5.0])
    state = opt.run(state, steps=100, max_calls=50)
    assert isinstance(state.status, EPConverged)
    x = current_variables(state)
    assert abs(x[0] - x[1]) < 1e-2


def test_contains_constraint_is_satisfied():
    tr = Translation({
        "A": {"center": [0.0, 0.0], "r": 5.0},
        "B": {"center": [10.0, 0.0], "r": 1.0},
    })
    tr.declare_varying("B.center.0", "B.center.1")
    contains = constraint("contains", tr.arg("A.center"), tr.arg("A.r"), tr.arg("B.center"), tr.arg("B.r"))

    opt = ExteriorPointOptimizer(projector=tr)
    state = opt.initialize([], [contains], tr.varying_values(), varying_paths=tr.varying_paths)
    state = opt.run(state, steps=100, max_calls=100)

    assert isinstance(state.status, EPConverged)
    x = current_variables(state)
    assert np.linalg.norm(x) + 1.0 - 5.0 <= 1e-2
    # results were written back to the shape store
    assert tr.get("B.center.0") == pytest.approx(x[0])
    assert tr.get("B.center.1") == pytest.approx(x[1])
    energies = opt.term_energies(state)
    assert list(energies) == ["constr:contains([0, 0], 5, [x[0], x[1]], 1)"]
    assert energies["constr:contains([0, 0], 5, [x[0], x[1]], 1)"] <= 1e-2


def test_unconstrained_energy_is_monotone_within_a_round():
    opt = ExteriorPointOptimizer()
    trace = []
    opt.on_iteration.append(lambda info: trace.append(info))
    objs = [
        objective("equal", Varying(0), Varying(1)),
        objective("near", (Varying(0), Varying(1)), (3.0, 4.0)),
    ]
    state = opt.initialize(objs, [], [-20.0, 15.0])
    while not is_terminal(state):
        state = opt.step(state, 1)
    assert isinstance(state.status, EPConverged)

    first_round = [info.energy for info in trace if info.ep_round == 0]
    assert first_round
    assert all(b <= a + 1e-12 for a, b in zip(first_round, first_round[1:]))
    assert all(info.step_length > 0.0 for info in trace)
    # minimizer of (a-b)^2 + (a-3)^2 + (b-4)^2
    np.testing.assert_allclose(current_variables(state), [10.0 / 3.0, 11.0 / 3.0], atol=0.1)


def test_without_line_search_fixed_steps_are_taken():
    opt = ExteriorPointOptimizer(use_line_search=False, fixed_step=0.1)
    lengths = []
    opt.on_iteration.append(lambda info: lengths.append(info.step_length))
    state = opt.initialize([objective("near", (Varying(0),), (1.0,))], [], [0.0])
    state = opt.run(state, steps=200, max_calls=50)
    assert isinstance(state.status, EPConverged)
    assert set(lengths) == {0.1}
    assert current_variables(state)[0] == pytest.approx(1.0, abs=0.1)
