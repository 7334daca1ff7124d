"""Settings storage and resolution of the explicit store configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from dbclone_repair.domain.models import as_bool
from dbclone_repair.storage.exceptions import InvalidInvocationError


SETTINGS_PATH = Path(
    os.environ.get(
        "DBCLONE_REPAIR_SETTINGS_PATH",
        Path.home() / ".config" / "dbclone-repair" / "settings.json",
    )
)

STORE_MODE_SQL = "sql"
STORE_MODE_FILE = "file"
STORE_MODES = (STORE_MODE_SQL, STORE_MODE_FILE)

DEFAULT_ODBC_DRIVER = "ODBC Driver 18 for SQL Server"
DEFAULT_MOUNT_SHELL = "powershell.exe"

DEFAULT_SETTINGS: dict[str, Any] = {
    "store_mode": STORE_MODE_SQL,
    "store_server": None,
    "store_database": None,
    "store_path": None,
    "odbc_driver": DEFAULT_ODBC_DRIVER,
    "trusted_connection": True,
    "trust_server_certificate": True,
    "sql_username": None,
    "sql_password": None,
    "mount_shell": DEFAULT_MOUNT_SHELL,
    "parallel_hosts": 1,
}


@dataclass
class SettingsStore:
    values: dict[str, Any] = field(default_factory=dict)


settings_store = SettingsStore()


def load_settings() -> None:
    settings_store.values = dict(DEFAULT_SETTINGS)
    if not SETTINGS_PATH.exists():
        return
    try:
        data = json.loads(SETTINGS_PATH.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return
    if isinstance(data, dict):
        settings_store.values.update(data)


def get_setting(key: str, default: Any | None = None) -> Any:
    return settings_store.values.get(key, default)


@dataclass(frozen=True)
class StoreConfig:
    """Where the clone registry lives and how to reach SQL Server.

    Built once per run and passed into the engine factory.
    """

    mode: str = STORE_MODE_SQL
    server: str | None = None
    database: str | None = None
    path: Path | None = None
    odbc_driver: str = DEFAULT_ODBC_DRIVER
    trusted_connection: bool = True
    trust_server_certificate: bool = True
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    mount_shell: str = DEFAULT_MOUNT_SHELL

    def validate(self) -> None:
        """Check that the configuration can reach a store.

        Raises:
            InvalidInvocationError: If the mode is unknown or required
                location settings are missing
        """
        if self.mode not in STORE_MODES:
            raise InvalidInvocationError(
                f"unknown store mode {self.mode!r} (expected one of {', '.join(STORE_MODES)})"
            )
        if self.mode == STORE_MODE_SQL:
            if not self.server or not self.database:
                raise InvalidInvocationError(
                    "store_server and store_database must be configured for sql mode"
                )
        elif not self.path:
            raise InvalidInvocationError("store_path must be configured for file mode")
        if not self.trusted_connection and not self.username:
            raise InvalidInvocationError(
                "sql_username is required when trusted_connection is disabled"
            )


def resolve_store_config(overrides: Mapping[str, Any] | None = None) -> StoreConfig:
    """Merge loaded settings with explicit overrides into a StoreConfig.

    Overrides with a value of None are ignored so that unset CLI options fall
    back to the settings file.

    Raises:
        InvalidInvocationError: If the resulting configuration is unusable
    """
    values = dict(DEFAULT_SETTINGS)
    values.update(settings_store.values)
    for key, value in (overrides or {}).items():
        if value is not None:
            values[key] = value

    store_path = values.get("store_path")
    config = StoreConfig(
        mode=str(values.get("store_mode") or STORE_MODE_SQL).lower(),
        server=values.get("store_server"),
        database=values.get("store_database"),
        path=Path(store_path) if store_path else None,
        odbc_driver=values.get("odbc_driver") or DEFAULT_ODBC_DRIVER,
        trusted_connection=as_bool(values.get("trusted_connection", True)),
        trust_server_certificate=as_bool(values.get("trust_server_certificate", True)),
        username=values.get("sql_username"),
        password=values.get("sql_password") or os.environ.get("DBCLONE_REPAIR_SQL_PASSWORD"),
        mount_shell=values.get("mount_shell") or DEFAULT_MOUNT_SHELL,
    )
    config.validate()
    return config


def resolve_parallel_hosts(override: int | None = None) -> int:
    """Return the number of hosts to repair at once.

    Raises:
        InvalidInvocationError: If the value is not a positive integer
    """
    value = override if override is not None else get_setting("parallel_hosts", 1)
    if value is None:
        return 1
    try:
        count = int(value)
    except (TypeError, ValueError):
        count = 0
    if isinstance(value, bool) or count < 1:
        raise InvalidInvocationError(f"parallel_hosts must be a positive integer, got {value!r}")
    return count
