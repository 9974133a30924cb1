from __future__ import annotations

import pytest

from engine.errors import ConfigurationError
from engine.interfaces import VaryingProjector
from engine.terms import Varying
from engine.translation import Translation


def _store() -> Translation:
    return Translation({"A": {"center": [1.0, 2.0], "r": 3.0}})


def test_get_and_set_paths():
    tr = _store()
    assert tr.get("A.center") == [1.0, 2.0]
    assert tr.get("A.center.1") == 2.0
    tr.set("A.center.0", 7.0)
    tr.set("A.r", 4.0)
    assert tr.get("A.center") == [7.0, 2.0]
    assert tr.get("A.r") == 4.0


def test_arg_resolves_varyings_and_constants():
    tr = _store()
    tr.declare_varying("A.center.1", "A.r")
    assert tr.varying_paths == ["A.center.1", "A.r"]
    assert tr.varying_values() == [2.0, 3.0]
    assert tr.arg("A.center") == (1.0, Varying(0))
    assert tr.arg("A.r") == Varying(1)
    assert tr.arg("A.center.0") == 1.0


def test_insert_varyings_writes_back():
    tr = _store()
    assert isinstance(tr, VaryingProjector)
    tr.insert_varyings({"A.center.0": -1.0, "A.r": 0.5})
    assert tr.get("A.center") == [-1.0, 2.0]
    assert tr.get("A.r") == 0.5


@pytest.mark.parametrize("path", ["A", "A.center.x", "B.r", "A.center.5", "A.r.0"])
def test_bad_paths_raise(path):
    with pytest.raises(ConfigurationError):
        _store().get(path)


def test_declare_varying_rejects_vectors_and_duplicates():
    tr = _store()
    with pytest.raises(ConfigurationError):
        tr.declare_varying("A.center")
    tr.declare_varying("A.r")
    with pytest.raises(ConfigurationError):
        tr.declare_varying("A.r")
