"""Domain models for clone repair.

This package contains type-safe domain objects shared by the repair engine,
its collaborators and the CLI.
"""

from __future__ import annotations

from .models import (
    ClonePlan,
    RepairOutcome,
    RepairReport,
    RepairStatus,
    RuntimeObservation,
)


__all__ = [
    "ClonePlan",
    "RepairOutcome",
    "RepairReport",
    "RepairStatus",
    "RuntimeObservation",
]
