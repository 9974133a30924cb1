from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import time

from engine.optimizer import ExteriorPointOptimizer, IterationInfo
from engine.status import Status
from opt_logging.metrics_log import log_records


@dataclass
class OptimizationTracker:
    """Attach to ExteriorPointOptimizer callbacks and log energy/state traces to Polars CSV.

    Usage:
        tracker = OptimizationTracker(name="optimization_trace", run_id="demo")
        tracker.attach(opt)
        state = opt.run(state)
        tracker.flush()

    Iteration rows go to ``<name>.csv``; status transitions to ``<name>_status.csv``.
    """
    name: str = "optimization_trace"
    run_id: str = "default"
    buffer: List[Dict[str, Any]] = field(default_factory=list)
    status_buffer: List[Dict[str, Any]] = field(default_factory=list)
    step: int = 0
    status: str = "NewIter"
    prev_energy: Optional[float] = None
    prev_round: Optional[int] = None
    last_timestamp: Optional[float] = None
    log_per_varying: bool = False

    def attach(self, opt: ExteriorPointOptimizer) -> None:
        opt.on_iteration.append(self.on_iteration)
        opt.on_status_changed.append(self.on_status)
        self.last_timestamp = time.perf_counter()

    def on_iteration(self, info: IterationInfo) -> None:
        self.step += 1
        # energies are only comparable at equal penalty weight
        same_round = self.prev_round == info.ep_round and self.prev_energy is not None
        delta = float(info.energy - self.prev_energy) if same_round else float("nan")  # type: ignore[operator]
        self.prev_energy = float(info.energy)
        self.prev_round = int(info.ep_round)
        now = time.perf_counter()
        compute_cost = float("nan") if self.last_timestamp is None else float(now - self.last_timestamp)
        self.last_timestamp = now
        row: Dict[str, Any] = {
            "run_id": self.run_id,
            "step": int(self.step),
            "status": self.status,
            "ep_round": int(info.ep_round),
            "uo_round": int(info.uo_round),
            "iteration": int(info.iteration),
            "weight": float(info.weight),
            "energy": float(info.energy),
            "delta_energy": delta,
            "grad_norm": float(info.grad_norm),
            "step_length": float(info.step_length),
            "compute_cost": compute_cost,
        }
        if self.log_per_varying:
            for idx, val in enumerate(info.varying_values.tolist()):
                row[f"x:{idx}"] = float(val)
        self.buffer.append(row)

    def on_status(self, old: Status, new: Status) -> None:
        self.status = new.tag
        self.status_buffer.append({
            "run_id": self.run_id,
            "step": int(self.step),
            "from": old.tag,
            "to": new.tag,
            "message": getattr(new, "message", None) or "",
        })

    def flush(self) -> None:
        if self.buffer:
            log_records(self.name, self.buffer)
            self.buffer.clear()
        if self.status_buffer:
            log_records(f"{self.name}_status", self.status_buffer)
            self.status_buffer.clear()


@dataclass
class LineSearchTracker:
    """Per-trial line-search trace (bracket, trial step, Armijo/Wolfe outcome)."""

    name: str = "line_search_trace"
    run_id: str = "default"
    buffer: List[Dict[str, Any]] = field(default_factory=list)
    search: int = 0

    def attach(self, opt: ExteriorPointOptimizer) -> None:
        opt.on_line_search.append(self.on_trial)

    def on_trial(self, trial: Dict[str, Any]) -> None:
        if int(trial["iter"]) == 0:
            self.search += 1
        self.buffer.append({
            "run_id": self.run_id,
            "search": int(self.search),
            "iter": int(trial["iter"]),
            "a": float(trial["a"]),
            "b": float(trial["b"]),
            "t": float(trial["t"]),
            "armijo": bool(trial["armijo"]),
            "wolfe": bool(trial["wolfe"]),
        })

    def flush(self) -> None:
        if not self.buffer:
            return
        log_records(self.name, self.buffer)
        self.buffer.clear()
