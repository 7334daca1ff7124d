"""Per-instance operation locks for clone repairs.

Concurrent attach attempts against one SQL Server instance are not safe, so
every mount/probe/attach sequence runs while holding the lock of its target
instance. Repairs of different instances proceed independently.

Usage:
    from dbclone_repair.storage.instance_lock import instance_operation

    with instance_operation("SQL01\\DEV"):
        # mount, probe, attach
        ...
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Generator

from dbclone_repair.logging import LoggerFactory


log = LoggerFactory.for_repair(job_id="-")

# Guards the lock table
_lock = threading.Lock()

_instance_locks: dict[str, threading.Lock] = {}


def _key(sql_instance: str) -> str:
    return sql_instance.strip().lower()


def _lock_for(sql_instance: str) -> threading.Lock:
    key = _key(sql_instance)
    with _lock:
        instance_lock = _instance_locks.get(key)
        if instance_lock is None:
            instance_lock = threading.Lock()
            _instance_locks[key] = instance_lock
        return instance_lock


@contextmanager
def instance_operation(sql_instance: str) -> Generator[None, None, None]:
    """Context manager that serializes repairs targeting one instance.

    Args:
        sql_instance: Target instance name (case-insensitive)
    """
    instance_lock = _lock_for(sql_instance)
    with instance_lock:
        log.trace(f"Instance operation started on {sql_instance}")
        try:
            yield
        finally:
            log.trace(f"Instance operation completed on {sql_instance}")
