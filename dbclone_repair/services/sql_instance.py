"""SQL Server access over ODBC: connection strings, probing and attach.

One short-lived connection is opened per call. Connections run in autocommit
mode because ``CREATE DATABASE ... FOR ATTACH`` cannot run inside a user
transaction.
"""

from __future__ import annotations

from contextlib import closing
from typing import Optional, Sequence

import pyodbc

from dbclone_repair.config.settings import StoreConfig
from dbclone_repair.logging import LoggerFactory
from dbclone_repair.storage.exceptions import AttachError, ProbeError


LIST_DATABASES_SQL = "SELECT name FROM sys.databases"

DEFAULT_LOGIN_TIMEOUT = 15


def _odbc_value(value: str) -> str:
    """Quote a connection string value when it contains separators."""
    if any(char in value for char in ";{}=") or value != value.strip():
        return "{" + value.replace("}", "}}") + "}"
    return value


def build_connection_string(
    config: StoreConfig, server: str, database: Optional[str] = None
) -> str:
    """Build an ODBC connection string for a server and optional database."""
    parts = [
        f"DRIVER={{{config.odbc_driver}}}",
        f"SERVER={_odbc_value(server)}",
    ]
    if database:
        parts.append(f"DATABASE={_odbc_value(database)}")
    if config.trusted_connection:
        parts.append("Trusted_Connection=yes")
    else:
        parts.append(f"UID={_odbc_value(config.username or '')}")
        parts.append(f"PWD={_odbc_value(config.password or '')}")
    if config.trust_server_certificate:
        parts.append("TrustServerCertificate=yes")
    return ";".join(parts) + ";"


def quote_identifier(name: str) -> str:
    """Bracket-quote a SQL Server identifier."""
    return "[" + name.replace("]", "]]") + "]"


def quote_literal(value: str) -> str:
    """Quote a SQL Server Unicode string literal."""
    return "N'" + value.replace("'", "''") + "'"


def build_attach_statement(database_name: str, files: Sequence[str]) -> str:
    """Build ``CREATE DATABASE ... ON (FILENAME = ...) FOR ATTACH``.

    DDL does not accept parameter markers, so names and paths are quoted.

    Raises:
        ValueError: If the database name or the file list is empty
    """
    if not database_name or not database_name.strip():
        raise ValueError("database name must not be empty")
    if not files:
        raise ValueError("at least one database file is required")
    file_specs = ",\n    ".join(f"(FILENAME = {quote_literal(path)})" for path in files)
    return (
        f"CREATE DATABASE {quote_identifier(database_name)} ON\n"
        f"    {file_specs}\n"
        "FOR ATTACH"
    )


def _error_text(error: pyodbc.Error) -> str:
    # pyodbc errors carry (sqlstate, message)
    if len(error.args) > 1:
        return str(error.args[1])
    return str(error)


class SqlInstanceClient:
    """Runtime probe and database attach adapter for SQL Server instances."""

    def __init__(self, config: StoreConfig, login_timeout: int = DEFAULT_LOGIN_TIMEOUT):
        self.config = config
        self.login_timeout = login_timeout

    def connect(self, sql_instance: str, database: Optional[str] = "master"):
        return pyodbc.connect(
            build_connection_string(self.config, sql_instance, database),
            autocommit=True,
            timeout=self.login_timeout,
        )

    def list_attached_databases(self, sql_instance: str) -> set[str]:
        """Return the names of all databases present on an instance.

        Raises:
            ProbeError: If the instance cannot be reached or queried
        """
        log = LoggerFactory.for_sql(sql_instance)
        try:
            with closing(self.connect(sql_instance)) as connection:
                with closing(connection.cursor()) as cursor:
                    log.trace(f"Executing {LIST_DATABASES_SQL}")
                    cursor.execute(LIST_DATABASES_SQL)
                    names = {row[0] for row in cursor.fetchall()}
        except pyodbc.Error as error:
            raise ProbeError(sql_instance, _error_text(error)) from error
        log.debug(f"{len(names)} database(s) present on {sql_instance}")
        return names

    def attach(self, sql_instance: str, database_name: str, files: Sequence[str]) -> None:
        """Attach a database using the given data and log files (no copy).

        Raises:
            AttachError: If the statement cannot be built or fails
        """
        log = LoggerFactory.for_sql(sql_instance)
        try:
            statement = build_attach_statement(database_name, list(files))
        except ValueError as error:
            raise AttachError(sql_instance, database_name, str(error)) from error
        try:
            with closing(self.connect(sql_instance)) as connection:
                with closing(connection.cursor()) as cursor:
                    log.trace(f"Executing {statement}")
                    cursor.execute(statement)
        except pyodbc.Error as error:
            raise AttachError(sql_instance, database_name, _error_text(error)) from error
        log.info(f"Attached {database_name} to {sql_instance} from {len(files)} file(s)")
