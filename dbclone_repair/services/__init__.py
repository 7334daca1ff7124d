"""Repair engine and the adapters it talks to."""

from .metadata_store import FileMetadataStore, SqlMetadataStore, create_metadata_store
from .repair import RepairEngine, build_engine, normalize_hostnames
from .sql_instance import SqlInstanceClient


__all__ = [
    "FileMetadataStore",
    "RepairEngine",
    "SqlInstanceClient",
    "SqlMetadataStore",
    "build_engine",
    "create_metadata_store",
    "normalize_hostnames",
]
