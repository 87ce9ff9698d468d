"""Expiry worker tasks."""

from __future__ import annotations

from workers.expiry_worker.worker import (
    ExpiryWorkerSettings,
    SweepResult,
    load_settings,
    run_sweep_with_retries,
)


def sweep_tick(settings: ExpiryWorkerSettings | None = None) -> SweepResult:
    """Run a single expiry sweep, for cron-style scheduling."""
    return run_sweep_with_retries(settings or load_settings())
