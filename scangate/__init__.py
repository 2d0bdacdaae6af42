"""Aggregation, correlation and merge gating for CI security scanner reports."""
