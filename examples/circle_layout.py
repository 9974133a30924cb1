"""Lay out two small circles inside a large one and plot the result.

Usage:
    python -m examples.circle_layout --gap 0.5 --save plots/circles.png

B and C are pulled together but must stay disjoint (with ``--gap`` padding)
and inside A. Iteration and status traces go to ``logs/`` when ``--log`` is
given. If --save is omitted we open an interactive window (matplotlib).
Install extras:
    pip install -e .[examples]
"""

from __future__ import annotations

import argparse
from pathlib import Path

try:
    import matplotlib.pyplot as plt
except ImportError as exc:  # pragma: no cover - import guard
    raise SystemExit(
        "matplotlib is required for examples. Install with `pip install -e .[examples]`."
    ) from exc

from engine import ExteriorPointOptimizer, constraint, current_energy, objective
from engine.translation import Translation
from opt_logging.observability import OptimizationTracker


def build_scene(gap: float) -> tuple[Translation, list, list]:
    tr = Translation({
        "A": {"center": [0.0, 0.0], "r": 5.0},
        "B": {"center": [9.0, 4.0], "r": 1.5},
        "C": {"center": [-8.0, -6.0], "r": 2.0},
    })
    tr.declare_varying("A.center.0", "A.center.1", "B.center.0", "B.center.1", "C.center.0", "C.center.1")
    a, b, c = (tr.arg(f"{s}.center") for s in "ABC")
    ra, rb, rc = (tr.arg(f"{s}.r") for s in "ABC")
    objectives = [
        objective("near", b, c),
        objective("near", a, (0.0, 0.0)),
    ]
    constraints = [
        constraint("contains", a, ra, b, rb),
        constraint("contains", a, ra, c, rc),
        constraint("disjoint", b, rb, c, rc, gap),
    ]
    return tr, objectives, constraints


def plot_scene(tr: Translation, out: Path | None) -> None:
    fig, ax = plt.subplots(figsize=(5, 5))
    colors = {"A": "#005bbb", "B": "#ffd500", "C": "#d62728"}
    for name, shape in tr.shapes.items():
        ax.add_patch(plt.Circle(tuple(shape["center"]), shape["r"], fill=False, color=colors[name], linewidth=2.0))
        ax.annotate(name, tuple(shape["center"]), ha="center", va="center")
    ax.set_xlim(-8, 8)
    ax.set_ylim(-8, 8)
    ax.set_aspect("equal")
    ax.grid(alpha=0.3)
    ax.set_title("Exterior-point circle layout")
    fig.tight_layout()
    if out:
        out.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(out, dpi=200)
        print(f"Saved plot to {out}")
    else:
        plt.show()


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--gap", type=float, default=0.5, help="Padding kept between B and C")
    parser.add_argument("--steps", type=int, default=100, help="Inner iterations per step call")
    parser.add_argument("--max-calls", type=int, default=500)
    parser.add_argument("--log", action="store_true", help="Write CSV traces under logs/")
    parser.add_argument("--save", type=Path, default=None, help="Optional path to save PNG instead of showing")
    args = parser.parse_args()
    if args.gap < 0.0:
        raise SystemExit("gap must be non-negative.")

    tr, objectives, constraints = build_scene(args.gap)
    opt = ExteriorPointOptimizer(projector=tr)
    tracker = OptimizationTracker(run_id="circle_layout", log_per_varying=True)
    if args.log:
        tracker.attach(opt)
    state = opt.initialize(objectives, constraints, tr.varying_values(), varying_paths=tr.varying_paths)
    state = opt.run(state, steps=args.steps, max_calls=args.max_calls)
    if args.log:
        tracker.flush()

    print(f"status={state.status.tag} ep_round={state.ep_round} energy={current_energy(state):.6g}")
    for key, value in opt.term_energies(state).items():
        print(f"  {key}: {value:.4g}")
    plot_scene(tr, args.save)


if __name__ == "__main__":
    main()
