"""Bench suite orchestration.

Walks engines, tests and runs against a shared paced server and writes the
per-run, aggregated and trace artifacts for reporting tools to pick up.
"""
