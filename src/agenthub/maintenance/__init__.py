"""Scheduled retention maintenance."""

from .scheduler import (
    MaintenanceConfig,
    MaintenanceScheduler,
    MaintenanceState,
    SweepResult,
)

__all__ = [
    "MaintenanceConfig",
    "MaintenanceScheduler",
    "MaintenanceState",
    "SweepResult",
]
