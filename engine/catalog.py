"""Default objective and constraint dictionaries.

Objectives return an energy to minimize. Constraints return a value ``c`` that
must satisfy ``c <= 0``; the energy compiler turns it into a one-sided penalty.
Points are 2D sequences of scalars; circles are given as (center, radius).
"""

from __future__ import annotations

from typing import Dict, Sequence

from .autodiff import (
    EPS_DENOM,
    Scalar,
    absval,
    add,
    div,
    neg,
    squared,
    sub,
    vdist,
    vnorm_sq,
    vsub,
)
from .interfaces import TermFunction

__all__ = ["OBJECTIVES", "CONSTRAINTS"]

Point = Sequence[Scalar]


# ----------------------------------------------------------------------
# objectives


def equal_obj(a: Scalar, b: Scalar) -> Scalar:
    """(a - b)^2"""
    return squared(sub(a, b))


def minimal(x: Scalar) -> Scalar:
    return x


def maximal(x: Scalar) -> Scalar:
    return neg(x)


def near(p: Point, q: Point, offset: Scalar = 0.0) -> Scalar:
    """Squared distance between two points, shifted by ``offset``."""
    return add(vnorm_sq(vsub(p, q)), offset)


def same_center(c1: Point, c2: Point) -> Scalar:
    return vnorm_sq(vsub(c1, c2))


def repel(p: Point, q: Point, weight: Scalar = 1.0) -> Scalar:
    """Inverse squared distance; pushes two points apart."""
    return div(weight, add(vnorm_sq(vsub(p, q)), EPS_DENOM))


# ----------------------------------------------------------------------
# constraints (c <= 0 when satisfied)


def equal_constr(a: Scalar, b: Scalar) -> Scalar:
    return absval(sub(a, b))


def less_than(a: Scalar, b: Scalar, padding: Scalar = 0.0) -> Scalar:
    """a + padding <= b"""
    return add(sub(a, b), padding)


def greater_than(a: Scalar, b: Scalar, padding: Scalar = 0.0) -> Scalar:
    """a >= b + padding"""
    return add(sub(b, a), padding)


def contains(big_center: Point, big_radius: Scalar, small_center: Point, small_radius: Scalar, padding: Scalar = 0.0) -> Scalar:
    """Circle (small) lies inside circle (big): dist + r_small - r_big <= 0."""
    return add(sub(add(vdist(big_center, small_center), small_radius), big_radius), padding)


def disjoint(c1: Point, r1: Scalar, c2: Point, r2: Scalar, padding: Scalar = 0.0) -> Scalar:
    """Circles do not overlap: r1 + r2 - dist <= 0."""
    return add(sub(add(r1, r2), vdist(c1, c2)), padding)


def at_dist(p: Point, q: Point, distance: Scalar) -> Scalar:
    """Two points are exactly ``distance`` apart."""
    return absval(sub(vdist(p, q), distance))


OBJECTIVES: Dict[str, TermFunction] = {
    "equal": equal_obj,
    "minimal": minimal,
    "maximal": maximal,
    "near": near,
    "sameCenter": same_center,
    "repel": repel,
}

CONSTRAINTS: Dict[str, TermFunction] = {
    "equal": equal_constr,
    "lessThan": less_than,
    "greaterThan": greater_than,
    "contains": contains,
    "disjoint": disjoint,
    "atDist": at_dist,
}
