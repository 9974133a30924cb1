"""L-BFGS direction estimator (two-loop recursion, Nocedal & Wright Alg. 7.4).

Only the last ``mem_size`` state/gradient difference pairs are kept; the
inverse Hessian is never formed. The memory record is immutable: every call
returns an updated copy.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Sequence, Tuple

import numpy as np

__all__ = ["EPSD", "DEFAULT_MEM_SIZE", "LbfgsMemory", "two_loop", "precondition"]

EPSD = 1e-11
DEFAULT_MEM_SIZE = 17


@dataclass(frozen=True)
class LbfgsMemory:
    """Correction pairs, newest first, plus the last state/gradient seen."""

    mem_size: int = DEFAULT_MEM_SIZE
    last_state: Optional[np.ndarray] = None
    last_grad: Optional[np.ndarray] = None
    s_list: Tuple[np.ndarray, ...] = ()
    y_list: Tuple[np.ndarray, ...] = ()
    num_steps: int = 0

    def __post_init__(self) -> None:
        assert self.mem_size >= 0, "mem_size must be non-negative"
        assert len(self.s_list) == len(self.y_list), "s/y history length mismatch"
        assert len(self.s_list) <= self.mem_size, "history longer than mem_size"

    def reset(self) -> "LbfgsMemory":
        """Fresh-phase memory with the same capacity."""
        return LbfgsMemory(mem_size=self.mem_size)


def two_loop(grad: np.ndarray, ss: Sequence[np.ndarray], ys: Sequence[np.ndarray]) -> np.ndarray:
    """Approximate H_k @ grad from pairs ordered newest (k-1) to oldest (k-m)."""
    q = np.array(grad, dtype=float)
    if len(ss) == 0:
        return q
    rhos = [1.0 / (float(np.dot(y, s)) + EPSD) for s, y in zip(ss, ys)]
    alphas = []
    # backward: newest -> oldest
    for rho, s, y in zip(rhos, ss, ys):
        alpha = rho * float(np.dot(s, q))
        q = q - alpha * y
        alphas.append(alpha)
    s0, y0 = ss[0], ys[0]
    gamma = float(np.dot(s0, y0)) / (float(np.dot(y0, y0)) + EPSD)
    r = gamma * q
    # forward: oldest -> newest
    for rho, alpha, s, y in reversed(list(zip(rhos, alphas, ss, ys))):
        beta = rho * float(np.dot(y, r))
        r = r + (alpha - beta) * s
    return r


def precondition(
    state: np.ndarray,
    grad: np.ndarray,
    memory: LbfgsMemory,
) -> Tuple[np.ndarray, LbfgsMemory]:
    """Return (H_k @ grad, updated memory).

    The first call of a phase returns ``grad`` unchanged. If the estimate is
    not a descent direction the history is dropped and ``grad`` is returned.
    """
    x_k = np.array(state, dtype=float)
    g_k = np.array(grad, dtype=float)
    assert x_k.shape == g_k.shape, "state and gradient must have the same shape"

    if memory.num_steps == 0:
        return g_k.copy(), replace(
            memory, last_state=x_k, last_grad=g_k, s_list=(), y_list=(), num_steps=1
        )

    assert memory.last_state is not None and memory.last_grad is not None, "invalid L-BFGS memory"
    s_km1 = x_k - memory.last_state
    y_km1 = g_k - memory.last_grad
    ss = ((s_km1,) + memory.s_list)[: memory.mem_size]
    ys = ((y_km1,) + memory.y_list)[: memory.mem_size]
    r = two_loop(g_k, ss, ys)

    # -r must be a descent direction: <-r, g> < 0
    if not -float(np.dot(r, g_k)) < 0.0:
        return g_k.copy(), replace(
            memory, last_state=x_k, last_grad=g_k, s_list=(), y_list=(), num_steps=1
        )

    return r, replace(
        memory,
        last_state=x_k,
        last_grad=g_k,
        s_list=ss,
        y_list=ys,
        num_steps=memory.num_steps + 1,
    )
