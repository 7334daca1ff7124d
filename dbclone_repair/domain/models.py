"""Domain model for clone repair.

Type-safe objects for the registered clone state (ClonePlan), the transient
facts gathered while repairing one clone (RuntimeObservation), and the
per-item results of a run (RepairOutcome, RepairReport).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


# ==============================================================================
# Registered Clone Domain
# ==============================================================================


@dataclass(frozen=True)
class ClonePlan:
    """A clone registered in the metadata store for one host.

    Immutable for the duration of one repair pass.
    """

    host_name: str
    image_location: str  # Parent image (.vhdx) path or UNC share
    clone_location: str  # Differencing disk file
    access_path: str  # Folder the mounted disk is exposed through
    sql_instance: str
    database_name: str
    is_enabled: bool = True
    clone_id: int | None = None
    image_id: int | None = None
    image_name: str | None = None

    def label(self) -> str:
        """Format a short label for logs, e.g. "db1@SQL01"."""
        return f"{self.database_name}@{self.sql_instance}"

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> ClonePlan:
        """Convert a joined Clone/Image/Host record to a ClonePlan.

        Args:
            record: Mapping keyed by the store column names (HostName,
                ImageLocation, CloneLocation, AccessPath, SqlInstance,
                DatabaseName, IsEnabled, CloneID, ImageID, ImageName)

        Returns:
            ClonePlan domain object

        Raises:
            KeyError: If a required column is missing
        """
        return cls(
            host_name=str(record["HostName"]),
            image_location=str(record["ImageLocation"]),
            clone_location=str(record["CloneLocation"]),
            access_path=str(record["AccessPath"]),
            sql_instance=str(record["SqlInstance"]),
            database_name=str(record["DatabaseName"]),
            is_enabled=as_bool(record.get("IsEnabled", True)),
            clone_id=record.get("CloneID"),
            image_id=record.get("ImageID"),
            image_name=record.get("ImageName"),
        )


def as_bool(value: Any) -> bool:
    # bit columns come back as bool/int, JSON files sometimes hold strings
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


@dataclass
class RuntimeObservation:
    """Facts gathered while repairing one clone. Never persisted."""

    image_reachable: bool | None = None
    disk_mounted: bool | None = None
    database_attached: bool | None = None
    discovered_files: list[str] = field(default_factory=list)


# ==============================================================================
# Repair Outcome Domain
# ==============================================================================


class RepairStatus(Enum):
    """Terminal status of one repair item."""

    REPAIRED = "Repaired"
    ALREADY_HEALTHY = "AlreadyHealthy"
    SKIPPED = "Skipped"
    FAILED = "Failed"


@dataclass(frozen=True)
class RepairOutcome:
    """Result for one clone, or for a whole host whose plans could not be fetched.

    Host-level outcomes carry no clone identity.
    """

    host_name: str
    status: RepairStatus
    clone_location: str | None = None
    sql_instance: str | None = None
    database_name: str | None = None
    message: str | None = None
    observation: RuntimeObservation | None = field(default=None, compare=False)

    @classmethod
    def for_clone(
        cls,
        plan: ClonePlan,
        status: RepairStatus,
        message: str | None = None,
        observation: RuntimeObservation | None = None,
    ) -> RepairOutcome:
        return cls(
            host_name=plan.host_name,
            status=status,
            clone_location=plan.clone_location,
            sql_instance=plan.sql_instance,
            database_name=plan.database_name,
            message=message,
            observation=observation,
        )

    @classmethod
    def for_host(cls, host_name: str, message: str) -> RepairOutcome:
        return cls(host_name=host_name, status=RepairStatus.FAILED, message=message)

    @property
    def is_host_level(self) -> bool:
        return self.clone_location is None

    @property
    def is_failure(self) -> bool:
        return self.status is RepairStatus.FAILED

    def label(self) -> str:
        if self.is_host_level:
            return "(host)"
        return f"{self.database_name}@{self.sql_instance}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "host_name": self.host_name,
            "clone_location": self.clone_location,
            "sql_instance": self.sql_instance,
            "database_name": self.database_name,
            "status": self.status.value,
            "message": self.message,
        }


@dataclass
class RepairReport:
    """Ordered outcome set of one run, keyed by (host, clone)."""

    outcomes: list[RepairOutcome] = field(default_factory=list)
    cancelled: bool = False

    def __iter__(self):
        return iter(self.outcomes)

    def __len__(self) -> int:
        return len(self.outcomes)

    def extend(self, outcomes) -> None:
        self.outcomes.extend(outcomes)

    def counts(self) -> dict[str, int]:
        counts = {status.value: 0 for status in RepairStatus}
        for outcome in self.outcomes:
            counts[outcome.status.value] += 1
        return counts

    def failed_hosts(self) -> list[str]:
        """Hosts whose clone plans could not be fetched."""
        return [o.host_name for o in self.outcomes if o.is_host_level]

    @property
    def ok(self) -> bool:
        return not any(o.is_failure for o in self.outcomes)

    def summary_line(self) -> str:
        counts = self.counts()
        parts = [f"{name}={count}" for name, count in counts.items()]
        line = f"{len(self.outcomes)} outcome(s): " + ", ".join(parts)
        if self.cancelled:
            line += " (cancelled)"
        return line

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "cancelled": self.cancelled,
            "counts": self.counts(),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }
