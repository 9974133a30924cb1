"""Polars-backed metrics logging for optimizer runs."""
