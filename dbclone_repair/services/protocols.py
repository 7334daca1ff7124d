"""Collaborator interfaces consumed by the repair engine.

The engine depends only on these narrow capabilities; concrete adapters live
in metadata_store, sql_instance and storage.mount, and tests substitute
deterministic fakes.
"""

from __future__ import annotations

from typing import Iterable, Optional, Protocol, Sequence

from dbclone_repair.domain import ClonePlan


class MetadataStore(Protocol):
    """Registry of expected clone state.

    Raises StoreUnavailableError on connectivity or query failure.
    """

    def fetch_clone_plans(self, host_name: str) -> Sequence[ClonePlan]: ...


class RuntimeProbe(Protocol):
    """Lists the databases currently attached to a server instance.

    Raises ProbeError on connectivity failure.
    """

    def list_attached_databases(self, sql_instance: str) -> Iterable[str]: ...


class DiskMount(Protocol):
    """Idempotent virtual disk mount. Already-mounted is not an error.

    Raises MountError for any other failure.
    """

    def mount(self, clone_location: str, host_name: Optional[str] = None) -> bool: ...


class DatabaseAttach(Protocol):
    """Attaches a database from an explicit list of data and log files.

    Raises AttachError on failure.
    """

    def attach(
        self, sql_instance: str, database_name: str, files: Sequence[str]
    ) -> None: ...
