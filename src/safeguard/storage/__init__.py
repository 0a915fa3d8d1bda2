"""
Storage connections for protected tables.

The production backends are MySQL and SQL Server, both reached through
pyodbc. SQLite (sqlite3) is supported for local runs and tests.

Every reconciler gets its own connection from create_connection(); no
connection is shared between reconcilers.
"""

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

from ..core.exceptions import ConfigurationError
from .sql import (
    MYSQL,
    SQLSERVER,
    SQLITE,
    Dialect,
    build_delete,
    build_delete_except,
    build_insert,
    build_update,
    get_dialect,
)


logger = logging.getLogger(__name__)


DEFAULT_DRIVERS = {
    "mysql": "MySQL ODBC 8.0 Unicode Driver",
    "sqlserver": "ODBC Driver 18 for SQL Server",
}


@dataclass
class DatabaseSettings:
    """
    Resolved connection settings for one backend.

    Attributes:
        backend: 'mysql', 'sqlserver' or 'sqlite'
        address: host:port of the server
        username: Login name
        password: Login password
        database: Database (schema) holding the protected tables
        driver: ODBC driver name
        connection_string: Full ODBC connection string (overrides discrete values)
        path: SQLite database file
        timeout: Login timeout in seconds
    """
    backend: str = "mysql"
    address: str = "127.0.0.1:3306"
    username: str = "root"
    password: str = ""
    database: str = "faka"
    driver: Optional[str] = None
    connection_string: Optional[str] = None
    path: Optional[str] = None
    timeout: int = 10

    @property
    def dialect(self) -> Dialect:
        return get_dialect(self.backend)

    def host_port(self):
        host, _, port = self.address.partition(":")
        return host or "127.0.0.1", port or None

    def odbc_connection_string(self) -> str:
        """Build the ODBC connection string for the configured backend."""
        if self.connection_string:
            return self.connection_string

        driver = self.driver or DEFAULT_DRIVERS[self.backend]
        host, port = self.host_port()

        if self.backend == "mysql":
            return (
                f"Driver={{{driver}}};"
                f"Server={host};"
                f"Port={port or 3306};"
                f"Database={self.database};"
                f"User={self.username};"
                f"Password={self.password};"
                f"charset=utf8mb4"
            )

        return (
            f"Driver={{{driver}}};"
            f"Server={host},{port or 1433};"
            f"Database={self.database};"
            f"UID={self.username};"
            f"PWD={self.password};"
            f"TrustServerCertificate=yes"
        )


def _connect_odbc(settings: DatabaseSettings):
    import pyodbc

    conn = pyodbc.connect(
        settings.odbc_connection_string(),
        autocommit=False,
        timeout=settings.timeout,
    )
    logger.debug(f"Connected to {settings.backend} at {settings.address}")
    return conn


def _connect_sqlite(settings: DatabaseSettings) -> sqlite3.Connection:
    if settings.path is None:
        raise ConfigurationError("SQLite backend requires database.path")

    if settings.path != ":memory:":
        Path(settings.path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(
        settings.path,
        timeout=settings.timeout,
        check_same_thread=False,
    )
    logger.debug(f"Connected to SQLite database: {settings.path}")
    return conn


def create_connection(settings: Union[DatabaseSettings, dict]) -> Any:
    """
    Open a new DB-API connection with autocommit off.

    Args:
        settings: DatabaseSettings or a dict of its fields

    Returns:
        An open DB-API 2.0 connection using qmark parameters

    Raises:
        ConfigurationError: If the backend is not recognized
        Exception: Driver errors propagate (pyodbc.Error, sqlite3.Error)
    """
    if isinstance(settings, dict):
        settings = DatabaseSettings(**settings)

    backend = settings.backend.lower()
    if backend in ("mysql", "sqlserver"):
        return _connect_odbc(settings)
    if backend == "sqlite":
        return _connect_sqlite(settings)

    raise ConfigurationError(
        f"Unknown backend: {settings.backend}. "
        "Supported backends: 'mysql' (default), 'sqlserver', 'sqlite'"
    )


__all__ = [
    "DatabaseSettings",
    "create_connection",
    "Dialect",
    "get_dialect",
    "MYSQL",
    "SQLSERVER",
    "SQLITE",
    "build_delete",
    "build_delete_except",
    "build_insert",
    "build_update",
]
