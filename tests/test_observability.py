from __future__ import annotations

import math

import polars as pl

from engine.optimizer import ExteriorPointOptimizer
from engine.terms import Varying, objective
from opt_logging.metrics_log import log_record
from opt_logging.observability import LineSearchTracker, OptimizationTracker


def _solve(opt: ExteriorPointOptimizer) -> None:
    state = opt.initialize([objective("equal", Varying(0), Varying(1))], [], [0.0, 5.0])
    opt.run(state, steps=100, max_calls=50)


def test_optimization_tracker_writes_iterations_and_statuses(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    opt = ExteriorPointOptimizer()
    tracker = OptimizationTracker(run_id="test_equal", log_per_varying=True)
    tracker.attach(opt)
    _solve(opt)

    rows = list(tracker.buffer)
    assert rows, "Expected at least one iteration row"
    assert math.isnan(rows[0]["delta_energy"])
    assert rows[0]["energy"] == 25.0
    assert rows[0]["x:0"] == 0.0 and rows[0]["x:1"] == 5.0
    assert [r["step"] for r in rows] == list(range(1, len(rows) + 1))
    transitions = [(r["from"], r["to"]) for r in tracker.status_buffer]
    assert transitions[0] == ("NewIter", "UnconstrainedRunning")
    assert transitions[-1] == ("UnconstrainedConverged", "EPConverged")

    tracker.flush()
    assert not tracker.buffer and not tracker.status_buffer
    df = pl.read_csv("logs/optimization_trace.csv")
    assert df.height == len(rows)
    assert set(df["run_id"].to_list()) == {"test_equal"}
    assert {"ep_round", "uo_round", "weight", "grad_norm", "step_length", "x:0", "x:1"} <= set(df.columns)
    status = pl.read_csv("logs/optimization_trace_status.csv")
    assert status["to"].to_list()[-1] == "EPConverged"


def test_tracker_flush_appends_across_runs(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    counts = []
    for run_id in ("a", "b"):
        opt = ExteriorPointOptimizer()
        tracker = OptimizationTracker(run_id=run_id)
        tracker.attach(opt)
        _solve(opt)
        counts.append(len(tracker.buffer))
        tracker.flush()
    df = pl.read_csv("logs/optimization_trace.csv")
    assert df.height == sum(counts)
    assert df["run_id"].unique().sort().to_list() == ["a", "b"]


def test_line_search_tracker_counts_searches(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    opt = ExteriorPointOptimizer()
    tracker = LineSearchTracker(run_id="ls")
    tracker.attach(opt)
    iterations = []
    opt.on_iteration.append(iterations.append)
    _solve(opt)
    assert tracker.search == len(iterations)
    assert all(r["iter"] >= 0 for r in tracker.buffer)
    accepted = [r for r in tracker.buffer if r["armijo"] and r["wolfe"]]
    assert accepted
    written = len(tracker.buffer)
    tracker.flush()
    df = pl.read_csv("logs/line_search_trace.csv")
    assert df.height == written


def test_log_record_creates_directory(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = log_record("single", {"a": 1, "b": "x"})
    assert path.exists()
    log_record("single", {"a": 2.5, "c": "extra"})
    df = pl.read_csv(path)
    assert df.height == 2
    assert set(df.columns) == {"a", "b", "c"}
