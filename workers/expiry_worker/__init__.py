"""Expiry worker module exports."""

from .worker import (
    ExpiryWorkerSettings,
    SweepResult,
    load_settings,
    run_forever,
    run_sweep_once,
    run_sweep_with_retries,
)

__all__ = [
    "ExpiryWorkerSettings",
    "SweepResult",
    "load_settings",
    "run_forever",
    "run_sweep_once",
    "run_sweep_with_retries",
]
