"""Custom exceptions for clone repair operations.

This module defines a hierarchy of exceptions so that each collaborator can
report failures with enough context for a per-clone or per-host outcome.

Exception Hierarchy:
    RepairError (base)
        ├── InvalidInvocationError
        ├── StoreUnavailableError
        ├── UnreachableParentError
        ├── MountError
        │   └── AlreadyMountedError
        ├── ProbeError
        └── AttachError

Scope:
    StoreUnavailableError is host-scoped. Every other runtime error is
    clone-scoped. InvalidInvocationError is the only error allowed to abort a
    whole run.

Usage:
    from dbclone_repair.storage.exceptions import MountError

    if result.returncode != 0:
        raise MountError(clone_location, result.stderr.strip())
"""

from __future__ import annotations


class RepairError(Exception):
    """Base exception for all clone repair operations."""



class InvalidInvocationError(RepairError):
    """The run cannot start: no hosts given or no usable store configuration."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid invocation: {reason}")


class StoreUnavailableError(RepairError):
    """Clone plans could not be fetched from the metadata store."""

    def __init__(self, host_name: str | None, reason: str):
        self.host_name = host_name
        self.reason = reason
        if host_name:
            msg = f"Metadata store unavailable for host {host_name}: {reason}"
        else:
            msg = f"Metadata store unavailable: {reason}"
        super().__init__(msg)


class UnreachableParentError(RepairError):
    """The parent image of a clone cannot be reached."""

    def __init__(self, image_location: str):
        self.image_location = image_location
        super().__init__(f"Parent image unreachable: {image_location}")


class MountError(RepairError):
    """Virtual disk mount failed."""

    def __init__(self, clone_location: str, reason: str = ""):
        self.clone_location = clone_location
        self.reason = reason
        msg = f"Failed to mount {clone_location}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class AlreadyMountedError(MountError):
    """Virtual disk is already mounted. Not a failure for repair purposes."""

    def __init__(self, clone_location: str):
        super().__init__(clone_location, "already mounted")


class ProbeError(RepairError):
    """Attached databases could not be enumerated on a server instance."""

    def __init__(self, sql_instance: str, reason: str):
        self.sql_instance = sql_instance
        self.reason = reason
        super().__init__(
            f"Could not list databases on {sql_instance}: {reason}"
        )


class AttachError(RepairError):
    """Database attach failed."""

    def __init__(self, sql_instance: str, database_name: str, reason: str):
        self.sql_instance = sql_instance
        self.database_name = database_name
        self.reason = reason
        super().__init__(
            f"Failed to attach {database_name} to {sql_instance}: {reason}"
        )
