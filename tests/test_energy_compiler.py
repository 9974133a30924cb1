from __future__ import annotations

import numpy as np
import pytest

from engine.catalog import CONSTRAINTS, OBJECTIVES
from engine.energy import CONSTRAINT_SCALE, compile_energy, compile_terms, to_penalty
from engine.errors import ConfigurationError, UnresolvedFunctionError
from engine.terms import Varying, constraint, objective


def _circle_problem():
    objs = [objective("equal", Varying(0), Varying(1))]
    constrs = [constraint("lessThan", Varying(0), 1.0)]
    return objs, constrs


def test_energy_combines_objectives_and_weighted_penalties():
    objs, constrs = _circle_problem()
    energy = compile_energy(objs, constrs, 2, OBJECTIVES, CONSTRAINTS)
    xs = np.array([3.0, 0.5])
    # (3 - 0.5)^2 + max(3 - 1, 0)^2 * c0 * w
    for w in (1e-2, 1.0, 10.0):
        expected = 2.5 ** 2 + 4.0 * CONSTRAINT_SCALE * w
        assert energy.value(w)(xs) == pytest.approx(expected)


def test_satisfied_constraints_contribute_nothing():
    objs, constrs = _circle_problem()
    energy = compile_energy(objs, constrs, 2, OBJECTIVES, CONSTRAINTS)
    xs = np.array([0.5, 0.5])
    assert energy.value(1e3)(xs) == pytest.approx(0.0)
    np.testing.assert_allclose(energy.gradient(1e3)(xs), [0.0, 0.0])


def test_weight_reparameterizes_without_rebuilding_graph():
    objs, constrs = _circle_problem()
    energy = compile_energy(objs, constrs, 2, OBJECTIVES, CONSTRAINTS)
    size = len(energy.graph)
    xs = np.array([2.0, 0.0])
    g_small = energy.gradient(1e-2)(xs)
    g_large = energy.gradient(1.0)(xs)
    assert len(energy.graph) == size
    # objective part 2*(x0 - x1) = 4; penalty part 2*max(x0-1,0)*c0*w
    assert g_small[0] == pytest.approx(4.0 + 2.0 * CONSTRAINT_SCALE * 1e-2)
    assert g_large[0] == pytest.approx(4.0 + 2.0 * CONSTRAINT_SCALE * 1.0)
    assert g_large[1] == pytest.approx(-4.0)


def test_to_penalty_is_one_sided():
    assert to_penalty(-3.0) == 0.0
    assert to_penalty(2.0) == 4.0


def test_unresolved_function_is_reported_before_building():
    with pytest.raises(UnresolvedFunctionError, match="nosuchthing"):
        compile_energy([objective("nosuchthing", Varying(0))], [], 1, OBJECTIVES, CONSTRAINTS)
    with pytest.raises(ConfigurationError):
        compile_energy([], [constraint("overlapping", Varying(0))], 1, OBJECTIVES, CONSTRAINTS)


def test_arity_and_index_errors_are_configuration_errors():
    with pytest.raises(ConfigurationError, match="arity"):
        compile_energy([objective("equal", Varying(0))], [], 1, OBJECTIVES, CONSTRAINTS)
    with pytest.raises(ConfigurationError, match="varying index 3"):
        compile_energy([objective("equal", Varying(0), Varying(3))], [], 2, OBJECTIVES, CONSTRAINTS)


def test_empty_problem_warns_and_is_zero():
    with pytest.warns(UserWarning, match="no objectives and no constraints"):
        energy = compile_energy([], [], 2, OBJECTIVES, CONSTRAINTS)
    assert energy.value(1.0)(np.array([1.0, 2.0])) == 0.0
    np.testing.assert_allclose(energy.gradient(1.0)(np.array([1.0, 2.0])), [0.0, 0.0])


def test_custom_dictionary_functions_are_used():
    objs = {"offset": lambda a, k: (a - k) ** 2}
    energy = compile_energy([objective("offset", Varying(0), 4.0)], [], 1, objs, {})
    assert energy.value(1.0)(np.array([1.0])) == pytest.approx(9.0)
    assert energy.gradient(1.0)(np.array([1.0]))[0] == pytest.approx(-6.0)


def test_compile_terms_reports_raw_values():
    objs, constrs = _circle_problem()
    terms = compile_terms(objs, constrs, 2, OBJECTIVES, CONSTRAINTS)
    assert set(terms) == {"obj:equal(x[0], x[1])", "constr:lessThan(x[0], 1)"}
    xs = np.array([3.0, 0.5])
    assert terms["obj:equal(x[0], x[1])"].value(xs) == pytest.approx(6.25)
    assert terms["constr:lessThan(x[0], 1)"].value(xs) == pytest.approx(2.0)
    np.testing.assert_allclose(terms["constr:lessThan(x[0], 1)"].gradient(xs), [1.0, 0.0])
