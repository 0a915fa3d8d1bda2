"""
Full-table snapshots over a DB-API connection.

Captures the complete current state of one table as a RowSnapshot keyed
by primary key, and exposes the transaction boundary the table
reconcilers write through.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator

from ..core.exceptions import SnapshotError, UnsupportedValueError
from ..core.models import RowSnapshot, Scalar
from ..storage.sql import SQLITE, Dialect, build_select_all, column_names, is_valid_identifier

logger = logging.getLogger(__name__)


class RowSnapshotStore:
    """
    Reads and writes one protected table through an already-open connection.

    The connection must be used by this store only; one transaction is
    open at a time.
    """

    def __init__(
        self,
        conn: Any,
        table: str,
        key_column: str = "id",
        dialect: Dialect = None,
    ):
        """
        Initialize the store.

        Args:
            conn: Open DB-API connection (autocommit off, qmark parameters)
            table: Table name, optionally schema-qualified
            key_column: Primary key column
            dialect: Identifier quoting for the backend

        Raises:
            ValueError: If table or key column is not a safe identifier
        """
        for part in table.split("."):
            if not is_valid_identifier(part):
                raise ValueError(f"Invalid table name: {table}")
        if not is_valid_identifier(key_column):
            raise ValueError(f"Invalid key column: {key_column}")

        self.conn = conn
        self.table = table
        self.key_column = key_column
        self.dialect = dialect or SQLITE

    def capture(self) -> RowSnapshot:
        """
        Capture the full current row set.

        Returns:
            RowSnapshot keyed by the primary key

        Raises:
            SnapshotError: If the query fails, the key column is missing,
                or two rows share a key
            UnsupportedValueError: If a column holds an unsupported type
        """
        sql = build_select_all(self.dialect, self.table, self.key_column)
        try:
            cursor = self.conn.cursor()
            cursor.execute(sql)
            columns = column_names(cursor)
            raw_rows = cursor.fetchall()
            cursor.close()
        except Exception as e:
            self._end_read()
            raise SnapshotError(f"Failed to read table {self.table}: {e}", table=self.table) from e

        self._end_read()

        if self.key_column not in columns:
            raise SnapshotError(
                f"Key column {self.key_column!r} not found in {self.table} "
                f"(columns: {', '.join(columns)})",
                table=self.table,
            )
        key_index = columns.index(self.key_column)

        rows: Dict[Scalar, Dict[str, Scalar]] = {}
        for raw in raw_rows:
            try:
                row = {name: Scalar.from_db(raw[i]) for i, name in enumerate(columns)}
            except UnsupportedValueError as e:
                raise UnsupportedValueError(
                    f"{e} in table {self.table}", table=self.table
                ) from e

            key = Scalar.from_db(raw[key_index])
            if key in rows:
                raise SnapshotError(
                    f"Duplicate key {key} in table {self.table}",
                    table=self.table,
                )
            rows[key] = row

        snapshot = RowSnapshot(
            table=self.table,
            key_column=self.key_column,
            columns=columns,
            rows=rows,
            captured_at=datetime.now(timezone.utc),
        )
        logger.debug(f"Captured {len(snapshot)} rows from {self.table}")
        return snapshot

    def _end_read(self) -> None:
        # Release the read transaction so later snapshots see fresh data
        try:
            self.conn.rollback()
        except Exception as e:
            logger.debug(f"Rollback after read failed on {self.table}: {e}")

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """
        Yield a cursor inside one transaction.

        Commits if the block completes, rolls back and re-raises otherwise.
        """
        cursor = self.conn.cursor()
        try:
            yield cursor
            self.conn.commit()
        except BaseException:
            self.conn.rollback()
            raise
        finally:
            cursor.close()

    def close(self) -> None:
        """Close the underlying connection."""
        if self.conn is not None:
            self.conn.close()
            self.conn = None
            logger.debug(f"Closed connection for {self.table}")
