"""Reverse-mode automatic differentiation over an index-addressed node arena.

A ``Graph`` owns every node created while an energy is built. Nodes never
reference each other directly: each node stores the indices of its operands,
which are always strictly smaller than its own index, so index order is a
topological order. Per-pass values and adjoints live in numpy arrays owned by
the graph and are reset at the start of every pass, which lets one graph be
evaluated many times without being rebuilt.

Term functions are written against ``Var`` handles with ordinary arithmetic:

    def equal(a, b):
        return squared(a - b)

Non-finite values never raise here; callers inspect the returned numbers.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

__all__ = [
    "EPS_DENOM",
    "Op",
    "Graph",
    "Var",
    "Scalar",
    "add",
    "add_n",
    "sub",
    "mul",
    "div",
    "neg",
    "squared",
    "sqrt",
    "absval",
    "maximum",
    "minimum",
    "exp",
    "log",
    "sin",
    "cos",
    "lt",
    "if_cond",
    "vsum",
    "vadd",
    "vsub",
    "vmul",
    "vdot",
    "vnorm_sq",
    "vnorm",
    "vdist",
    "vnormalize",
    "rot90",
]

# Lower bound on the sqrt derivative denominator; keeps |v| differentiable at 0.
EPS_DENOM = 1e-5


class Op(IntEnum):
    CONST = 0
    INPUT = 1
    SLOT = 2
    ADD = 3
    SUM = 4
    SUB = 5
    MUL = 6
    DIV = 7
    NEG = 8
    SQUARED = 9
    SQRT = 10
    ABS = 11
    MAX = 12
    MIN = 13
    EXP = 14
    LOG = 15
    SIN = 16
    COS = 17
    LT = 18
    IF = 19


def _forward_op(op: Op, xs: Sequence[float]) -> float:
    if op == Op.ADD:
        return xs[0] + xs[1]
    if op == Op.SUM:
        total = np.float64(0.0)
        for x in xs:
            total = total + x
        return total
    if op == Op.SUB:
        return xs[0] - xs[1]
    if op == Op.MUL:
        return xs[0] * xs[1]
    if op == Op.DIV:
        return np.float64(xs[0]) / np.float64(xs[1])
    if op == Op.NEG:
        return -xs[0]
    if op == Op.SQUARED:
        return xs[0] * xs[0]
    if op == Op.SQRT:
        return np.sqrt(np.float64(xs[0]))
    if op == Op.ABS:
        return np.abs(xs[0])
    if op == Op.MAX:
        return np.maximum(xs[0], xs[1])
    if op == Op.MIN:
        return np.minimum(xs[0], xs[1])
    if op == Op.EXP:
        return np.exp(np.float64(xs[0]))
    if op == Op.LOG:
        return np.log(np.float64(xs[0]))
    if op == Op.SIN:
        return np.sin(xs[0])
    if op == Op.COS:
        return np.cos(xs[0])
    if op == Op.LT:
        return 1.0 if xs[0] < xs[1] else 0.0
    if op == Op.IF:
        return xs[1] if xs[0] != 0.0 else xs[2]
    raise ValueError(f"no forward rule for {op!r}")


def _local_partials(op: Op, xs: Sequence[float], out: float) -> Tuple[float, ...]:
    """Partial derivatives of one node w.r.t. each of its operands."""
    if op == Op.ADD:
        return (1.0, 1.0)
    if op == Op.SUM:
        return (1.0,) * len(xs)
    if op == Op.SUB:
        return (1.0, -1.0)
    if op == Op.MUL:
        return (xs[1], xs[0])
    if op == Op.DIV:
        b = np.float64(xs[1])
        return (1.0 / b, -xs[0] / (b * b))
    if op == Op.NEG:
        return (-1.0,)
    if op == Op.SQUARED:
        return (2.0 * xs[0],)
    if op == Op.SQRT:
        return (0.5 / np.maximum(out, EPS_DENOM),)
    if op == Op.ABS:
        return (float(np.sign(xs[0])),)
    if op == Op.MAX:
        return (1.0, 0.0) if xs[0] > xs[1] else (0.0, 1.0)
    if op == Op.MIN:
        return (1.0, 0.0) if xs[0] < xs[1] else (0.0, 1.0)
    if op == Op.EXP:
        return (out,)
    if op == Op.LOG:
        return (1.0 / np.float64(xs[0]),)
    if op == Op.SIN:
        return (np.cos(xs[0]),)
    if op == Op.COS:
        return (-np.sin(xs[0]),)
    if op == Op.LT:
        return (0.0, 0.0)
    if op == Op.IF:
        taken = xs[0] != 0.0
        return (0.0, 1.0 if taken else 0.0, 0.0 if taken else 1.0)
    raise ValueError(f"no derivative rule for {op!r}")


class Graph:
    """Arena of computation nodes shared by every term of one energy."""

    def __init__(self) -> None:
        self._ops: List[Op] = []
        self._args: List[Tuple[int, ...]] = []
        self._payload: List[Any] = []
        self._inputs: Dict[int, int] = {}
        self._slots: Dict[str, int] = {}
        self._values = np.zeros(0, dtype=float)
        self._adjoints = np.zeros(0, dtype=float)

    def __len__(self) -> int:
        return len(self._ops)

    # ------------------------------------------------------------------
    # construction

    def _push(self, op: Op, args: Tuple[int, ...] = (), payload: Any = None) -> "Var":
        index = len(self._ops)
        assert all(0 <= a < index for a in args), "operands must precede their node"
        self._ops.append(op)
        self._args.append(args)
        self._payload.append(payload)
        return Var(self, index)

    def constant(self, value: float) -> "Var":
        return self._push(Op.CONST, payload=float(value))

    def input(self, index: int) -> "Var":
        """Handle for entry ``index`` of the input vector (one node per index)."""
        assert index >= 0, "input index must be non-negative"
        node = self._inputs.get(index)
        if node is None:
            var = self._push(Op.INPUT, payload=int(index))
            self._inputs[index] = var.index
            return var
        return Var(self, node)

    def slot(self, name: str, default: float = 0.0) -> "Var":
        """Named scalar input substitutable per evaluation (e.g. a penalty weight)."""
        node = self._slots.get(name)
        if node is None:
            var = self._push(Op.SLOT, payload=(str(name), float(default)))
            self._slots[name] = var.index
            return var
        return Var(self, node)

    def lift(self, x: Any) -> Any:
        """Turn floats into constant nodes, recursing into sequences."""
        if isinstance(x, Var):
            assert x.graph is self, "cannot mix nodes from different graphs"
            return x
        if isinstance(x, (int, float, np.floating, np.integer)):
            return self.constant(float(x))
        if isinstance(x, np.ndarray):
            return [self.lift(v) for v in x.tolist()]
        if isinstance(x, (list, tuple)):
            return [self.lift(v) for v in x]
        raise TypeError(f"cannot lift {type(x).__name__} into the graph")

    def apply(self, op: Op, *operands: Any) -> "Var":
        args = tuple(self.lift(o).index for o in operands)
        return self._push(op, args)

    @property
    def num_inputs(self) -> int:
        return (max(self._inputs) + 1) if self._inputs else 0

    @property
    def slot_names(self) -> Tuple[str, ...]:
        return tuple(self._slots)

    # ------------------------------------------------------------------
    # evaluation

    def reset(self) -> None:
        """Clear the forward and backward caches of every node."""
        n = len(self._ops)
        self._values = np.zeros(n, dtype=float)
        self._adjoints = np.zeros(n, dtype=float)

    def forward(
        self,
        output: Union["Var", int],
        inputs: Sequence[float],
        slots: Optional[Mapping[str, float]] = None,
    ) -> float:
        """Evaluate every node up to ``output``; returns the output value."""
        out = output.index if isinstance(output, Var) else int(output)
        xs = np.asarray(inputs, dtype=float)
        slots = slots or {}
        self.reset()
        values = self._values
        with np.errstate(all="ignore"):
            for i in range(out + 1):
                op = self._ops[i]
                if op == Op.CONST:
                    values[i] = self._payload[i]
                elif op == Op.INPUT:
                    values[i] = xs[self._payload[i]]
                elif op == Op.SLOT:
                    name, default = self._payload[i]
                    values[i] = float(slots.get(name, default))
                else:
                    values[i] = _forward_op(op, [values[a] for a in self._args[i]])
        return float(values[out])

    def backward(self, output: Union["Var", int], num_inputs: int) -> np.ndarray:
        """Propagate d(output)/d(node) from the cached forward pass.

        Must follow ``forward`` on the same output without interleaved passes.
        """
        out = output.index if isinstance(output, Var) else int(output)
        adjoints = self._adjoints
        adjoints[:] = 0.0
        adjoints[out] = 1.0
        values = self._values
        grad = np.zeros(int(num_inputs), dtype=float)
        with np.errstate(all="ignore"):
            for i in range(out, -1, -1):
                adj = adjoints[i]
                if adj == 0.0:
                    continue
                op = self._ops[i]
                if op == Op.INPUT:
                    grad[self._payload[i]] += adj
                    continue
                args = self._args[i]
                if not args:
                    continue
                partials = _local_partials(op, [values[a] for a in args], values[i])
                for a, p in zip(args, partials):
                    if p != 0.0:
                        adjoints[a] += adj * p
        return grad

    def gradient(
        self,
        output: Union["Var", int],
        inputs: Sequence[float],
        slots: Optional[Mapping[str, float]] = None,
    ) -> Tuple[float, np.ndarray]:
        """One forward and one reverse pass; returns (value, gradient)."""
        value = self.forward(output, inputs, slots)
        return value, self.backward(output, len(inputs))

    def value_of(self, node: Union["Var", int]) -> float:
        """Cached forward value of ``node`` from the last pass."""
        idx = node.index if isinstance(node, Var) else int(node)
        return float(self._values[idx])


class Var:
    """Handle to a node of a ``Graph``; supports Python arithmetic."""

    __slots__ = ("graph", "index")

    def __init__(self, graph: Graph, index: int) -> None:
        self.graph = graph
        self.index = index

    def __repr__(self) -> str:
        return f"Var({self.graph._ops[self.index].name}, #{self.index})"

    def __add__(self, other: Any) -> "Var":
        return add(self, other)

    def __radd__(self, other: Any) -> "Var":
        return add(other, self)

    def __sub__(self, other: Any) -> "Var":
        return sub(self, other)

    def __rsub__(self, other: Any) -> "Var":
        return sub(other, self)

    def __mul__(self, other: Any) -> "Var":
        return mul(self, other)

    def __rmul__(self, other: Any) -> "Var":
        return mul(other, self)

    def __truediv__(self, other: Any) -> "Var":
        return div(self, other)

    def __rtruediv__(self, other: Any) -> "Var":
        return div(other, self)

    def __neg__(self) -> "Var":
        return neg(self)

    def __abs__(self) -> "Var":
        return absval(self)

    def __pow__(self, power: Any) -> "Var":
        if power == 2:
            return squared(self)
        if power == 0.5:
            return sqrt(self)
        if isinstance(power, int) and power >= 1:
            result = self
            for _ in range(power - 1):
                result = mul(result, self)
            return result
        return NotImplemented


Scalar = Union[Var, float]


def _graph_of(xs: Sequence[Any]) -> Optional[Graph]:
    for x in xs:
        if isinstance(x, Var):
            return x.graph
    return None


def _apply(op: Op, *xs: Any) -> Scalar:
    graph = _graph_of(xs)
    if graph is None:
        with np.errstate(all="ignore"):
            return float(_forward_op(op, [float(x) for x in xs]))
    return graph.apply(op, *xs)


def add(a: Scalar, b: Scalar) -> Scalar:
    return _apply(Op.ADD, a, b)


def add_n(xs: Sequence[Scalar]) -> Scalar:
    """n-ary sum; the empty sum is 0.0."""
    if len(xs) == 0:
        return 0.0
    if len(xs) == 1:
        return xs[0]
    return _apply(Op.SUM, *xs)


def sub(a: Scalar, b: Scalar) -> Scalar:
    return _apply(Op.SUB, a, b)


def mul(a: Scalar, b: Scalar) -> Scalar:
    return _apply(Op.MUL, a, b)


def div(a: Scalar, b: Scalar) -> Scalar:
    return _apply(Op.DIV, a, b)


def neg(a: Scalar) -> Scalar:
    return _apply(Op.NEG, a)


def squared(a: Scalar) -> Scalar:
    return _apply(Op.SQUARED, a)


def sqrt(a: Scalar) -> Scalar:
    return _apply(Op.SQRT, a)


def absval(a: Scalar) -> Scalar:
    return _apply(Op.ABS, a)


def maximum(a: Scalar, b: Scalar) -> Scalar:
    return _apply(Op.MAX, a, b)


def minimum(a: Scalar, b: Scalar) -> Scalar:
    return _apply(Op.MIN, a, b)


def exp(a: Scalar) -> Scalar:
    return _apply(Op.EXP, a)


def log(a: Scalar) -> Scalar:
    return _apply(Op.LOG, a)


def sin(a: Scalar) -> Scalar:
    return _apply(Op.SIN, a)


def cos(a: Scalar) -> Scalar:
    return _apply(Op.COS, a)


def lt(a: Scalar, b: Scalar) -> Scalar:
    """1.0 when a < b else 0.0; carries no gradient."""
    return _apply(Op.LT, a, b)


def if_cond(cond: Scalar, then: Scalar, otherwise: Scalar) -> Scalar:
    return _apply(Op.IF, cond, then, otherwise)


# ----------------------------------------------------------------------
# vector helpers (vectors are plain sequences of scalars)


def vsum(v: Sequence[Scalar]) -> Scalar:
    return add_n(list(v))


def vadd(u: Sequence[Scalar], v: Sequence[Scalar]) -> List[Scalar]:
    assert len(u) == len(v), "vector length mismatch"
    return [add(a, b) for a, b in zip(u, v)]


def vsub(u: Sequence[Scalar], v: Sequence[Scalar]) -> List[Scalar]:
    assert len(u) == len(v), "vector length mismatch"
    return [sub(a, b) for a, b in zip(u, v)]


def vmul(c: Scalar, v: Sequence[Scalar]) -> List[Scalar]:
    return [mul(c, a) for a in v]


def vdot(u: Sequence[Scalar], v: Sequence[Scalar]) -> Scalar:
    assert len(u) == len(v), "vector length mismatch"
    return add_n([mul(a, b) for a, b in zip(u, v)])


def vnorm_sq(v: Sequence[Scalar]) -> Scalar:
    return add_n([squared(a) for a in v])


def vnorm(v: Sequence[Scalar]) -> Scalar:
    return sqrt(vnorm_sq(v))


def vdist(u: Sequence[Scalar], v: Sequence[Scalar]) -> Scalar:
    return vnorm(vsub(u, v))


def vnormalize(v: Sequence[Scalar]) -> List[Scalar]:
    n = add(vnorm(v), EPS_DENOM)
    return [div(a, n) for a in v]


def rot90(v: Sequence[Scalar]) -> List[Scalar]:
    """Rotate a 2D vector by 90 degrees counter-clockwise."""
    assert len(v) == 2, "rot90 expects a 2D vector"
    return [neg(v[1]), v[0]]
