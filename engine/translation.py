"""Minimal shape store addressed by dotted paths.

Shapes are nested dicts of properties; vector properties are lists. A path is
``"<shape>.<property>"`` or ``"<shape>.<property>.<component>"``:

    tr = Translation({"A": {"center": [0.0, 0.0], "r": 5.0}})
    tr.declare_varying("A.center.0", "A.center.1")
    contains = constraint("contains", tr.arg("A.center"), tr.arg("A.r"), ...)

``arg`` resolves a path to a ``Varying`` reference when the path is declared
varying and to the stored constant otherwise, so the optimizer never reads
the store while stepping. ``insert_varyings`` writes results back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple

from .errors import ConfigurationError
from .interfaces import VaryingProjector
from .terms import Varying

__all__ = ["Translation"]


def _split(path: str) -> Tuple[str, str, int | None]:
    parts = path.split(".")
    if len(parts) == 2:
        return parts[0], parts[1], None
    if len(parts) == 3 and parts[2].isdigit():
        return parts[0], parts[1], int(parts[2])
    raise ConfigurationError(f"malformed path '{path}'")


@dataclass
class Translation(VaryingProjector):
    shapes: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    varying_paths: List[str] = field(default_factory=list)

    def get(self, path: str) -> Any:
        shape, prop, comp = _split(path)
        try:
            value = self.shapes[shape][prop]
        except KeyError as exc:
            raise ConfigurationError(f"unknown path '{path}'") from exc
        if comp is None:
            return value
        try:
            return value[comp]
        except (IndexError, TypeError) as exc:
            raise ConfigurationError(f"unknown path '{path}'") from exc

    def set(self, path: str, value: float) -> None:
        shape, prop, comp = _split(path)
        if comp is None:
            self.shapes.setdefault(shape, {})[prop] = float(value)
            return
        vec = self.shapes.get(shape, {}).get(prop)
        if not isinstance(vec, list) or comp >= len(vec):
            raise ConfigurationError(f"unknown path '{path}'")
        vec[comp] = float(value)

    def declare_varying(self, *paths: str) -> None:
        for path in paths:
            if path in self.varying_paths:
                raise ConfigurationError(f"path '{path}' declared varying twice")
            value = self.get(path)
            if isinstance(value, list):
                raise ConfigurationError(f"varying path '{path}' must name a scalar")
            self.varying_paths.append(path)

    def varying_values(self) -> List[float]:
        return [float(self.get(p)) for p in self.varying_paths]

    def arg(self, path: str) -> Any:
        """Term argument for ``path``: Varying refs for varying scalars, constants otherwise."""
        if path in self.varying_paths:
            return Varying(self.varying_paths.index(path))
        value = self.get(path)
        if isinstance(value, list):
            return tuple(self.arg(f"{path}.{i}") for i in range(len(value)))
        return float(value)

    def insert_varyings(self, values: Mapping[str, float]) -> None:
        for path, value in values.items():
            self.set(path, value)
