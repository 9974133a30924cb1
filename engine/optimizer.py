"""Exterior-point optimizer for diagram layout.

Solves a sequence of unconstrained problems

    min_x  F(x; w) = objectives(x) + c0 * w * penalties(x)

with L-BFGS + Armijo/Wolfe line search, multiplying the penalty weight ``w`` by
a fixed growth factor after every converged unconstrained phase until the
outer (exterior-point) convergence test passes.

``step`` performs a bounded amount of work and returns a new immutable state,
so an interactive caller can redraw between calls:

    opt = ExteriorPointOptimizer()
    state = opt.initialize(objectives, constraints, x0)
    while not is_terminal(state):
        state = opt.step(state, steps=100)
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .catalog import CONSTRAINTS, OBJECTIVES
from .energy import CONSTRAINT_SCALE, CompiledEnergy, compile_energy, compile_terms
from .errors import ConfigurationError, NumericError
from .interfaces import FunctionDict, GradientFn, ValueFn, VaryingProjector
from .lbfgs import DEFAULT_MEM_SIZE, LbfgsMemory, precondition
from .line_search import LineSearchParams, LineSearchTrial, armijo_wolfe
from .status import (
    EPConverged,
    Error,
    NewIter,
    Status,
    UnconstrainedConverged,
    UnconstrainedRunning,
)
from .terms import Fn

__all__ = [
    "WEIGHT_GROWTH_FACTOR",
    "INIT_CONSTRAINT_WEIGHT",
    "UO_STOP",
    "EP_STOP",
    "IterationInfo",
    "OptimizationState",
    "ExteriorPointOptimizer",
    "unconstrained_converged",
    "ep_converged",
    "is_terminal",
    "current_variables",
    "current_energy",
    "project_varyings",
]

WEIGHT_GROWTH_FACTOR = 10.0
INIT_CONSTRAINT_WEIGHT = 1e-2
# Unconstrained convergence on <grad, H grad>; smaller values make the line
# search run into collapsed brackets.
UO_STOP = 1e-2
EP_STOP = 1e-3

IterationCallback = Callable[["IterationInfo"], None]
StatusCallback = Callable[[Status, Status], None]
LineSearchCallback = Callable[[LineSearchTrial], None]


@dataclass(frozen=True)
class IterationInfo:
    """One inner (unconstrained) iteration, emitted before the update is applied."""

    ep_round: int
    uo_round: int
    iteration: int
    weight: float
    energy: float
    grad_norm: float
    step_length: float
    varying_values: np.ndarray


@dataclass(frozen=True, eq=False)
class OptimizationState:
    """Immutable record threaded through ``ExteriorPointOptimizer.step``."""

    varying_values: np.ndarray
    objectives: Tuple[Fn, ...]
    constraints: Tuple[Fn, ...]
    varying_paths: Tuple[str, ...] = ()
    energy: Optional[CompiledEnergy] = None
    status: Status = NewIter()
    weight: float = INIT_CONSTRAINT_WEIGHT
    ep_round: int = 0
    uo_round: int = 0
    curr_objective: Optional[ValueFn] = None
    curr_gradient: Optional[GradientFn] = None
    last_uo_state: Optional[np.ndarray] = None
    last_uo_energy: Optional[float] = None
    last_ep_state: Optional[np.ndarray] = None
    last_ep_energy: Optional[float] = None
    last_gradient: Optional[np.ndarray] = None
    last_gradient_preconditioned: Optional[np.ndarray] = None
    lbfgs: LbfgsMemory = LbfgsMemory()

    @property
    def num_varying(self) -> int:
        return int(self.varying_values.shape[0])


def _frozen(values: Sequence[float]) -> np.ndarray:
    arr = np.array(values, dtype=float)
    arr.setflags(write=False)
    return arr


def unconstrained_converged(norm_grad: float, tol: float = UO_STOP) -> bool:
    return norm_grad < tol


def ep_converged(xs0: np.ndarray, xs1: np.ndarray, fxs0: float, fxs1: float, tol: float = EP_STOP) -> bool:
    """Outer test: state change or energy change below ``tol`` (unscaled)."""
    state_change = float(np.linalg.norm(np.asarray(xs1) - np.asarray(xs0)))
    energy_change = abs(float(fxs1) - float(fxs0))
    return state_change < tol or energy_change < tol


def is_terminal(state: OptimizationState) -> bool:
    return bool(state.status.terminal)


def current_variables(state: OptimizationState) -> np.ndarray:
    return np.array(state.varying_values, dtype=float)


def current_energy(state: OptimizationState) -> float:
    """Energy of the current variables at the current penalty weight."""
    if state.energy is None:
        return float("nan")
    return float(state.energy.value(state.weight)(state.varying_values))


def project_varyings(state: OptimizationState) -> Dict[str, float]:
    """Map each varying path to its current value (empty without paths)."""
    return {path: float(v) for path, v in zip(state.varying_paths, state.varying_values)}


def _ensure_finite(what: str, value: np.ndarray | float) -> None:
    arr = np.asarray(value, dtype=float)
    if not np.all(np.isfinite(arr)):
        bad = np.flatnonzero(~np.isfinite(np.atleast_1d(arr))).tolist()
        raise NumericError(f"non-finite {what} (entries {bad})")


@dataclass
class _MinimizeResult:
    xs: np.ndarray
    energy: float
    norm_grad: float
    lbfgs: LbfgsMemory
    gradient: np.ndarray
    gradient_preconditioned: np.ndarray


@dataclass
class ExteriorPointOptimizer:
    """Configuration, function dictionaries and event hooks for the EP method."""

    objective_dict: FunctionDict = field(default_factory=lambda: dict(OBJECTIVES))
    constraint_dict: FunctionDict = field(default_factory=lambda: dict(CONSTRAINTS))
    constraint_scale: float = CONSTRAINT_SCALE
    init_weight: float = INIT_CONSTRAINT_WEIGHT
    weight_growth_factor: float = WEIGHT_GROWTH_FACTOR
    uo_stop: float = UO_STOP
    ep_stop: float = EP_STOP
    lbfgs_mem_size: int = DEFAULT_MEM_SIZE
    line_search: LineSearchParams = field(default_factory=LineSearchParams)
    use_line_search: bool = True
    fixed_step: float = 1e-4  # used only without line search
    break_early: bool = True
    projector: Optional[VaryingProjector] = None

    on_iteration: List[IterationCallback] = field(default_factory=list)
    on_status_changed: List[StatusCallback] = field(default_factory=list)
    on_line_search: List[LineSearchCallback] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._validate_configuration()

    def _validate_configuration(self) -> None:
        assert self.constraint_scale > 0.0, "constraint_scale must be > 0"
        assert self.init_weight > 0.0, "init_weight must be > 0"
        assert self.weight_growth_factor > 1.0, "weight_growth_factor must be > 1"
        assert self.uo_stop > 0.0, "uo_stop must be > 0"
        assert self.ep_stop > 0.0, "ep_stop must be > 0"
        assert self.lbfgs_mem_size >= 0, "lbfgs_mem_size must be non-negative"
        assert self.fixed_step > 0.0, "fixed_step must be > 0"
        if self.projector is not None:
            assert isinstance(self.projector, VaryingProjector), "projector must implement insert_varyings"

    # ------------------------------------------------------------------
    # problem setup

    def compile(self, objectives: Sequence[Fn], constraints: Sequence[Fn], num_varying: int) -> CompiledEnergy:
        return compile_energy(
            objectives,
            constraints,
            num_varying,
            self.objective_dict,
            self.constraint_dict,
            constraint_scale=self.constraint_scale,
        )

    def initialize(
        self,
        objectives: Sequence[Fn],
        constraints: Sequence[Fn],
        initial_values: Sequence[float],
        varying_paths: Optional[Sequence[str]] = None,
    ) -> OptimizationState:
        """Compile the problem; raises ConfigurationError before any stepping."""
        xs = np.asarray(initial_values, dtype=float)
        if xs.ndim != 1:
            raise ConfigurationError(f"initial values must be a flat vector, got shape {xs.shape}")
        paths: Tuple[str, ...] = tuple(str(p) for p in varying_paths) if varying_paths is not None else ()
        if varying_paths is not None and len(paths) != xs.shape[0]:
            raise ConfigurationError(f"{len(paths)} varying paths for {xs.shape[0]} varying values")
        energy = self.compile(objectives, constraints, xs.shape[0])
        return OptimizationState(
            varying_values=_frozen(xs),
            objectives=tuple(objectives),
            constraints=tuple(constraints),
            varying_paths=paths,
            energy=energy,
            status=NewIter(),
            weight=self.init_weight,
            lbfgs=LbfgsMemory(mem_size=self.lbfgs_mem_size),
        )

    def resample(self, state: OptimizationState, values: Sequence[float]) -> OptimizationState:
        """Restart from new variable values, reusing the compiled energy."""
        xs = np.asarray(values, dtype=float)
        if xs.shape != state.varying_values.shape:
            raise ConfigurationError(
                f"expected {state.num_varying} varying values, got shape {xs.shape}"
            )
        fresh = replace(
            state,
            varying_values=_frozen(xs),
            status=NewIter(),
            weight=self.init_weight,
            ep_round=0,
            uo_round=0,
            curr_objective=None,
            curr_gradient=None,
            last_uo_state=None,
            last_uo_energy=None,
            last_ep_state=None,
            last_ep_energy=None,
            last_gradient=None,
            last_gradient_preconditioned=None,
            lbfgs=state.lbfgs.reset(),
        )
        self._emit_status(state.status, fresh.status)
        return fresh

    def term_energies(self, state: OptimizationState) -> Dict[str, float]:
        """Per-term values at the current variables (constraints unpenalized)."""
        terms = compile_terms(
            state.objectives,
            state.constraints,
            state.num_varying,
            self.objective_dict,
            self.constraint_dict,
        )
        return {key: term.value(state.varying_values) for key, term in terms.items()}

    # ------------------------------------------------------------------
    # stepping

    def step(self, state: OptimizationState, steps: int) -> OptimizationState:
        """Advance the state machine by at most ``steps`` inner iterations."""
        assert steps >= 0, "steps must be non-negative"
        status = state.status
        if status.terminal:
            return state
        try:
            _ensure_finite("varying values", state.varying_values)
            if isinstance(status, NewIter):
                new_state = self._start_round(state)
            elif isinstance(status, UnconstrainedRunning):
                new_state = self._step_unconstrained(state, steps)
            elif isinstance(status, UnconstrainedConverged):
                new_state = self._step_exterior_point(state)
            else:
                raise AssertionError(f"unknown optimizer status {status!r}")
        except NumericError as exc:
            warnings.warn(
                f"could not find a valid layout: {exc} (EP round {state.ep_round}, weight {state.weight:g})",
                RuntimeWarning,
                stacklevel=2,
            )
            new_state = replace(state, status=Error(str(exc)))
        self._emit_status(status, new_state.status)
        return new_state

    def run(self, state: OptimizationState, steps: int = 100, max_calls: int = 1000) -> OptimizationState:
        """Call ``step`` until terminal or ``max_calls`` calls have been made."""
        assert max_calls >= 0, "max_calls must be non-negative"
        for _ in range(max_calls):
            if is_terminal(state):
                break
            state = self.step(state, steps)
        return state

    def _start_round(self, state: OptimizationState) -> OptimizationState:
        energy = state.energy
        if energy is None:
            energy = self.compile(state.objectives, state.constraints, state.num_varying)
        weight = self.init_weight
        return replace(
            state,
            energy=energy,
            weight=weight,
            ep_round=0,
            uo_round=0,
            curr_objective=energy.value(weight),
            curr_gradient=energy.gradient(weight),
            last_gradient=_frozen(np.zeros(state.num_varying)),
            last_gradient_preconditioned=_frozen(np.zeros(state.num_varying)),
            lbfgs=LbfgsMemory(mem_size=self.lbfgs_mem_size),
            status=UnconstrainedRunning(),
        )

    def _step_unconstrained(self, state: OptimizationState, steps: int) -> OptimizationState:
        if steps == 0:
            return state
        res = self._minimize(state, steps)
        converged = unconstrained_converged(res.norm_grad, self.uo_stop)
        new_state = replace(
            state,
            varying_values=_frozen(res.xs),
            last_uo_state=_frozen(res.xs),
            last_uo_energy=res.energy,
            uo_round=state.uo_round + 1,
            lbfgs=res.lbfgs.reset() if converged else res.lbfgs,
            last_gradient=_frozen(res.gradient),
            last_gradient_preconditioned=_frozen(res.gradient_preconditioned),
            status=UnconstrainedConverged() if converged else UnconstrainedRunning(),
        )
        self._project(new_state)
        return new_state

    def _step_exterior_point(self, state: OptimizationState) -> OptimizationState:
        assert state.energy is not None, "energy must be compiled before the EP update"
        # at least two rounds: the first comparison is between rounds 1 and 2
        if (
            state.ep_round > 1
            and state.last_ep_state is not None
            and state.last_ep_energy is not None
            and state.last_uo_state is not None
            and state.last_uo_energy is not None
            and ep_converged(
                state.last_ep_state,
                state.last_uo_state,
                state.last_ep_energy,
                state.last_uo_energy,
                self.ep_stop,
            )
        ):
            return replace(
                state,
                status=EPConverged(),
                last_ep_state=state.last_uo_state,
                last_ep_energy=state.last_uo_energy,
            )
        weight = self.weight_growth_factor * state.weight
        assert weight >= state.weight, "penalty weight must not decrease"
        return replace(
            state,
            status=UnconstrainedRunning(),
            weight=weight,
            ep_round=state.ep_round + 1,
            uo_round=0,
            curr_objective=state.energy.value(weight),
            curr_gradient=state.energy.gradient(weight),
            last_ep_state=state.last_uo_state,
            last_ep_energy=state.last_uo_energy,
        )

    def _minimize(self, state: OptimizationState, num_steps: int) -> _MinimizeResult:
        assert state.curr_objective is not None and state.curr_gradient is not None, "objective not compiled"
        f = state.curr_objective
        gradf = state.curr_gradient
        xs = np.array(state.varying_values, dtype=float)
        fxs = 0.0
        gradfxs = np.zeros_like(xs)
        preconditioned = gradfxs.copy()
        norm_grad = 0.0
        lbfgs = state.lbfgs
        on_trial = self._emit_line_search if self.on_line_search else None

        for i in range(num_steps):
            _ensure_finite("varying values", xs)
            fxs = f(xs)
            gradfxs = gradf(xs)
            _ensure_finite("energy", fxs)
            _ensure_finite("gradient", gradfxs)

            preconditioned, lbfgs = precondition(xs, gradfxs, lbfgs)
            # Newton decrement <g, H g> rather than the Euclidean gradient norm
            norm_grad = float(np.dot(gradfxs, preconditioned))
            if self.break_early and unconstrained_converged(norm_grad, self.uo_stop):
                break

            if self.use_line_search:
                t = armijo_wolfe(
                    xs,
                    f,
                    gradf,
                    -preconditioned,
                    fxs,
                    params=self.line_search,
                    grad_at_x0=gradfxs,
                    on_trial=on_trial,
                )
            else:
                t = self.fixed_step

            xs_next = xs - t * preconditioned
            _ensure_finite("varying values after update", xs_next)
            self._emit_iteration(
                IterationInfo(
                    ep_round=state.ep_round,
                    uo_round=state.uo_round,
                    iteration=i,
                    weight=state.weight,
                    energy=float(fxs),
                    grad_norm=norm_grad,
                    step_length=float(t),
                    varying_values=xs.copy(),
                )
            )
            xs = xs_next

        return _MinimizeResult(
            xs=xs,
            energy=float(fxs),
            norm_grad=norm_grad,
            lbfgs=lbfgs,
            gradient=np.asarray(gradfxs, dtype=float),
            gradient_preconditioned=np.asarray(preconditioned, dtype=float),
        )

    # ------------------------------------------------------------------
    # hooks

    def _project(self, state: OptimizationState) -> None:
        if self.projector is None or not state.varying_paths:
            return
        self.projector.insert_varyings(project_varyings(state))

    def _emit_iteration(self, info: IterationInfo) -> None:
        for cb in self.on_iteration:
            cb(info)

    def _emit_status(self, old: Status, new: Status) -> None:
        if old.tag == new.tag:
            return
        for cb in self.on_status_changed:
            cb(old, new)

    def _emit_line_search(self, trial: LineSearchTrial) -> None:
        for cb in self.on_line_search:
            cb(trial)
