"""
Shared test fixtures and configuration for pytest.
"""

import logging
import os
import sqlite3
import sys
from pathlib import Path
from typing import Iterable, Mapping

import pytest

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


logger = logging.getLogger(__name__)


# ============================================================================
# Environment detection
# ============================================================================

def get_mysql_settings() -> dict:
    """Connection settings for the integration MySQL server, from the environment."""
    return {
        "backend": "mysql",
        "address": os.environ.get("SAFEGUARD_DB_ADDRESS", "127.0.0.1:3306"),
        "username": os.environ.get("SAFEGUARD_DB_USERNAME", "root"),
        "password": os.environ.get("SAFEGUARD_DB_PASSWORD", ""),
        "database": os.environ.get("SAFEGUARD_DB_NAME", "safeguard_test"),
        "driver": os.environ.get("SAFEGUARD_DB_DRIVER") or None,
        "connection_string": os.environ.get("SAFEGUARD_DB_CONN_STR") or None,
        "timeout": 5,
    }


def is_mysql_available() -> bool:
    """Check if a MySQL server is available for testing."""
    if not os.environ.get("SAFEGUARD_DB_PASSWORD") and not os.environ.get("SAFEGUARD_DB_CONN_STR"):
        return False

    try:
        from safeguard.storage import create_connection

        conn = create_connection(get_mysql_settings())
        conn.close()
        return True

    except Exception as e:
        logger.debug(f"MySQL not available: {e}")
        return False


# ============================================================================
# Pytest hooks
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (requires MySQL)")
    config.addinivalue_line("markers", "slow: Tests that take a long time to run")


def pytest_collection_modifyitems(config, items):
    """Automatically skip integration tests if MySQL is not available."""
    if not any("integration" in item.keywords for item in items):
        return
    if is_mysql_available():
        return

    skip_mysql = pytest.mark.skip(
        reason="MySQL not available (set SAFEGUARD_DB_PASSWORD and ensure MySQL is running)"
    )

    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_mysql)


# ============================================================================
# Helpers
# ============================================================================

class SqliteHelper:
    """Test-side access to the SQLite database the reconcilers work on."""

    def __init__(self, conn):
        self.conn = conn

    def create_table(self, table: str, columns: str, rows: Iterable[Mapping] = ()) -> None:
        """Create a table and commit the given rows."""
        self.execute(f'CREATE TABLE "{table}" ({columns})')
        for row in rows:
            self.insert(table, row)

    def insert(self, table: str, row: Mapping) -> None:
        names = list(row)
        self.execute(
            f'INSERT INTO "{table}" ({", ".join(names)}) VALUES ({", ".join("?" for _ in names)})',
            [row[n] for n in names],
        )

    def execute(self, sql: str, params=()) -> None:
        """Run one statement in its own committed transaction."""
        cursor = self.conn.cursor()
        cursor.execute(sql, params)
        self.conn.commit()
        cursor.close()

    def rows(self, table: str, key: str = "id") -> list:
        """All rows of a table as dicts, ordered by key."""
        cursor = self.conn.cursor()
        cursor.execute(f'SELECT * FROM "{table}" ORDER BY "{key}"')
        names = [d[0] for d in cursor.description]
        rows = [dict(zip(names, r)) for r in cursor.fetchall()]
        cursor.close()
        self.conn.rollback()
        return rows


def write_file(path: Path, content) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, str):
        content = content.encode("utf-8")
    path.write_bytes(content)
    return path


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(scope="session")
def mysql_settings() -> dict:
    """Session-scoped fixture providing MySQL connection settings."""
    return get_mysql_settings()


@pytest.fixture
def sqlite_path(tmp_path: Path) -> Path:
    """Path of a fresh SQLite database file."""
    return tmp_path / "safeguard.db"


@pytest.fixture
def sqlite_conn(sqlite_path: Path):
    """
    Connection used by the test to set up and mutate tables.

    Reconcilers get their own connection to the same file, as they would
    in production.
    """
    conn = sqlite3.connect(sqlite_path)
    yield conn
    conn.close()


@pytest.fixture
def db(sqlite_conn) -> SqliteHelper:
    return SqliteHelper(sqlite_conn)


@pytest.fixture
def open_store(sqlite_path: Path):
    """Factory for RowSnapshotStores on their own SQLite connections."""
    from safeguard.snapshot import RowSnapshotStore
    from safeguard.storage import create_connection

    stores = []

    def _open(table: str, key_column: str = "id") -> "RowSnapshotStore":
        conn = create_connection({"backend": "sqlite", "path": str(sqlite_path)})
        store = RowSnapshotStore(conn, table, key_column=key_column)
        stores.append(store)
        return store

    yield _open

    for store in stores:
        store.close()


@pytest.fixture
def files():
    """The write_file helper, for tests that build directory trees."""
    return write_file


@pytest.fixture
def dir_pair(tmp_path: Path):
    """Empty source and target directory paths (target not created)."""
    source = tmp_path / "source"
    target = tmp_path / "target"
    source.mkdir()
    return source, target
