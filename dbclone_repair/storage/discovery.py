"""Discovery of the database files exposed by a mounted clone."""

from __future__ import annotations

from pathlib import Path

from dbclone_repair.logging import LoggerFactory


log = LoggerFactory.for_mount()


def list_database_files(root: str | Path) -> list[str]:
    """List every non-directory file under a clone's access path.

    The walk is recursive and the result is sorted so that discovery order is
    stable between runs. No filtering by extension is applied: the attach
    primitive identifies data and log files by their content.

    Args:
        root: Folder the mounted differencing disk is exposed through

    Returns:
        Absolute file paths as strings

    Raises:
        FileNotFoundError: If the root does not exist
        NotADirectoryError: If the root is not a directory
    """
    root_path = Path(root)
    if not root_path.exists():
        raise FileNotFoundError(f"Clone access path not found: {root_path}")
    if not root_path.is_dir():
        raise NotADirectoryError(f"Clone access path is not a directory: {root_path}")

    files = sorted(
        str(path.absolute()) for path in root_path.rglob("*") if not path.is_dir()
    )
    log.debug(f"Discovered {len(files)} file(s) under {root_path}")
    return files
