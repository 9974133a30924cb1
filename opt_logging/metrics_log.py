"""Lightweight metrics logging using Polars."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import polars as pl

LOG_DIR = Path("logs")


def _align(frames: List[pl.DataFrame]) -> pl.DataFrame:
    """Concatenate frames whose columns or dtypes differ."""
    prev, new = frames
    all_cols = sorted(set(prev.columns) | set(new.columns))
    target: Dict[str, Any] = {}
    for c in all_cols:
        dt_prev = prev.schema.get(c)
        dt_new = new.schema.get(c)
        if dt_prev is None or dt_new is None:
            target[c] = dt_new if dt_prev is None else dt_prev
        elif dt_prev == dt_new:
            target[c] = dt_prev
        elif dt_prev == pl.Utf8 or dt_new == pl.Utf8:
            target[c] = pl.Utf8
        else:
            target[c] = pl.Float64

    def _conform(frame: pl.DataFrame) -> pl.DataFrame:
        out = frame
        for c in all_cols:
            if c not in out.columns:
                out = out.with_columns(pl.lit(None, dtype=target[c]).alias(c))
            elif out.schema[c] != target[c]:
                out = out.with_columns(pl.col(c).cast(target[c]))
        return out.select(all_cols)

    return pl.concat([_conform(prev), _conform(new)], how="vertical")


def log_records(name: str, records: List[Dict[str, Any]]) -> Path:
    """Append records to a CSV file under logs/.

    Args:
        name: Base filename without extension.
        records: List of dict rows.
    Returns:
        Path to the written CSV file.
    """
    assert isinstance(name, str) and len(name) > 0, "Invalid log name"
    assert isinstance(records, list), "records must be a list"
    out = LOG_DIR / f"{name}.csv"
    if not records:
        return out
    out.parent.mkdir(parents=True, exist_ok=True)
    df = pl.DataFrame(records)
    if out.exists():
        prev = pl.read_csv(out)
        try:
            df = pl.concat([prev, df], how="vertical_relaxed")
        except pl.exceptions.PolarsError:
            df = _align([prev, df])
    df.write_csv(out)
    return out


def log_record(name: str, record: Dict[str, Any]) -> Path:
    """Append a single record to a CSV file."""
    return log_records(name, [record])
