"""Clone registry clients.

The registry joins three record sets: hosts, parent images and clones. It is
kept either in a SQL Server database (``dbo.Host``, ``dbo.Image``,
``dbo.Clone``) or in a directory of JSON files with the same columns
(``hosts.json``, ``images.json``, ``clones.json``).

Host names match case-insensitively in both modes, like the default SQL Server
collation. A host with no registered clones yields an empty list, not an error.
"""

from __future__ import annotations

import json
from contextlib import closing
from pathlib import Path
from typing import Any

import pyodbc

from dbclone_repair.config.settings import STORE_MODE_FILE, StoreConfig
from dbclone_repair.domain import ClonePlan
from dbclone_repair.logging import LoggerFactory
from dbclone_repair.storage.exceptions import (
    InvalidInvocationError,
    StoreUnavailableError,
)

from .sql_instance import build_connection_string


log = LoggerFactory.for_store()

CLONE_PLANS_SQL = """
SELECT h.HostName,
       i.ImageID,
       i.ImageName,
       i.ImageLocation,
       c.CloneID,
       c.CloneLocation,
       c.AccessPath,
       c.SqlInstance,
       c.DatabaseName,
       c.IsEnabled
FROM dbo.Clone AS c
    INNER JOIN dbo.Host AS h ON h.HostID = c.HostID
    INNER JOIN dbo.Image AS i ON i.ImageID = c.ImageID
WHERE h.HostName = ?
ORDER BY c.CloneID
"""

HOSTS_FILE = "hosts.json"
IMAGES_FILE = "images.json"
CLONES_FILE = "clones.json"


def _plans_from_records(host_name: str, records: list[dict[str, Any]]) -> list[ClonePlan]:
    try:
        return [ClonePlan.from_record(record) for record in records]
    except (KeyError, TypeError) as error:
        raise StoreUnavailableError(host_name, f"malformed clone record: {error}") from error


class SqlMetadataStore:
    """Clone registry stored in a SQL Server database."""

    def __init__(self, config: StoreConfig, login_timeout: int = 15):
        self.config = config
        self.login_timeout = login_timeout

    def fetch_clone_plans(self, host_name: str) -> list[ClonePlan]:
        """Fetch the registered clones of one host.

        Raises:
            StoreUnavailableError: If the store cannot be reached or queried
        """
        connection_string = build_connection_string(
            self.config, self.config.server, self.config.database
        )
        try:
            with closing(
                pyodbc.connect(connection_string, timeout=self.login_timeout)
            ) as connection:
                with closing(connection.cursor()) as cursor:
                    cursor.execute(CLONE_PLANS_SQL, host_name)
                    columns = [column[0] for column in cursor.description]
                    records = [dict(zip(columns, row)) for row in cursor.fetchall()]
        except pyodbc.Error as error:
            raise StoreUnavailableError(host_name, str(error)) from error

        log.debug(
            f"Retrieved {len(records)} clone(s) for {host_name} "
            f"from {self.config.server}/{self.config.database}"
        )
        return _plans_from_records(host_name, records)


class FileMetadataStore:
    """Clone registry stored as JSON files in a directory."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self, host_name: str, filename: str) -> list[dict[str, Any]]:
        file_path = self.path / filename
        try:
            data = json.loads(file_path.read_text(encoding="utf-8"))
        except OSError as error:
            raise StoreUnavailableError(host_name, f"cannot read {file_path}: {error}") from error
        except json.JSONDecodeError as error:
            raise StoreUnavailableError(host_name, f"invalid JSON in {file_path}: {error}") from error
        # A single record may be stored unwrapped
        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
            raise StoreUnavailableError(host_name, f"{file_path} must contain a list of records")
        return data

    def fetch_clone_plans(self, host_name: str) -> list[ClonePlan]:
        """Fetch the registered clones of one host.

        Raises:
            StoreUnavailableError: If a registry file is missing or invalid
        """
        hosts = self._load(host_name, HOSTS_FILE)
        images = self._load(host_name, IMAGES_FILE)
        clones = self._load(host_name, CLONES_FILE)

        wanted = host_name.lower()
        try:
            host_ids = {
                host["HostID"]: host["HostName"]
                for host in hosts
                if str(host["HostName"]).lower() == wanted
            }
            images_by_id = {image["ImageID"]: image for image in images}
            records = []
            for clone in sorted(clones, key=lambda item: item.get("CloneID") or 0):
                if clone.get("HostID") not in host_ids:
                    continue
                image = images_by_id.get(clone.get("ImageID"))
                if image is None:
                    continue
                records.append(
                    {
                        **clone,
                        "HostName": host_ids[clone["HostID"]],
                        "ImageName": image.get("ImageName"),
                        "ImageLocation": image["ImageLocation"],
                    }
                )
        except (KeyError, TypeError) as error:
            raise StoreUnavailableError(host_name, f"malformed registry record: {error}") from error

        log.debug(f"Retrieved {len(records)} clone(s) for {host_name} from {self.path}")
        return _plans_from_records(host_name, records)


def create_metadata_store(config: StoreConfig):
    """Create the registry client for a validated StoreConfig.

    Raises:
        InvalidInvocationError: If the configuration is unusable
    """
    config.validate()
    if config.mode == STORE_MODE_FILE:
        if not config.path.is_dir():
            raise InvalidInvocationError(f"store path {config.path} is not a directory")
        return FileMetadataStore(config.path)
    return SqlMetadataStore(config)
