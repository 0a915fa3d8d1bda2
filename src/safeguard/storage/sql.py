"""
SQL dialects and statement builders for corrective writes.

Every statement binds values as qmark parameters; only validated
identifiers are ever interpolated. Column lists are sorted so the shape
of a statement depends only on the column set.
"""

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple

from ..core.models import Scalar


Statement = Tuple[str, List[Any]]


def is_valid_identifier(name: str) -> bool:
    """Validate that a name is a safe SQL identifier."""
    return bool(name and name.replace('_', '').isalnum() and not name[0].isdigit())


@dataclass(frozen=True)
class Dialect:
    """Identifier quoting for one database family."""
    name: str
    quote_open: str
    quote_close: str

    def quote(self, identifier: str) -> str:
        if not is_valid_identifier(identifier):
            raise ValueError(f"Invalid SQL identifier: {identifier!r}")
        return f"{self.quote_open}{identifier}{self.quote_close}"

    def quote_table(self, table: str) -> str:
        """Quote a table name, allowing a schema-qualified `schema.table`."""
        return ".".join(self.quote(part) for part in table.split("."))


MYSQL = Dialect("mysql", "`", "`")
SQLSERVER = Dialect("sqlserver", "[", "]")
SQLITE = Dialect("sqlite", '"', '"')

DIALECTS = {d.name: d for d in (MYSQL, SQLSERVER, SQLITE)}


def get_dialect(name: str) -> Dialect:
    try:
        return DIALECTS[name.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown dialect: {name}. Supported: {', '.join(sorted(DIALECTS))}"
        ) from None


def _param(value: Any) -> Any:
    return value.to_param() if isinstance(value, Scalar) else value


def build_select_all(dialect: Dialect, table: str, key_column: str) -> str:
    return (
        f"SELECT * FROM {dialect.quote_table(table)} "
        f"ORDER BY {dialect.quote(key_column)}"
    )


def build_delete(dialect: Dialect, table: str, key_column: str, key: Any) -> Statement:
    """DELETE one row by primary key."""
    sql = f"DELETE FROM {dialect.quote_table(table)} WHERE {dialect.quote(key_column)} = ?"
    return sql, [_param(key)]


def build_delete_except(dialect: Dialect, table: str, key_column: str, keep: Any) -> Statement:
    """DELETE every row except the one with the given key."""
    sql = f"DELETE FROM {dialect.quote_table(table)} WHERE {dialect.quote(key_column)} <> ?"
    return sql, [_param(keep)]


def build_insert(dialect: Dialect, table: str, row: Mapping[str, Any]) -> Statement:
    """INSERT a full row, columns in sorted order."""
    columns = sorted(row)
    if not columns:
        raise ValueError("Cannot build INSERT for an empty row")
    column_list = ", ".join(dialect.quote(c) for c in columns)
    placeholders = ", ".join("?" for _ in columns)
    sql = f"INSERT INTO {dialect.quote_table(table)} ({column_list}) VALUES ({placeholders})"
    return sql, [_param(row[c]) for c in columns]


def build_update(
    dialect: Dialect,
    table: str,
    key_column: str,
    row: Mapping[str, Any],
) -> Statement:
    """
    UPDATE every non-key column of a row back to the given values.

    The key column is the match condition and is not rewritten.
    """
    columns = sorted(c for c in row if c != key_column)
    if key_column not in row:
        raise ValueError(f"Row has no value for key column {key_column!r}")
    if not columns:
        raise ValueError("Cannot build UPDATE for a row with only a key column")
    assignments = ", ".join(f"{dialect.quote(c)} = ?" for c in columns)
    sql = (
        f"UPDATE {dialect.quote_table(table)} SET {assignments} "
        f"WHERE {dialect.quote(key_column)} = ?"
    )
    params = [_param(row[c]) for c in columns]
    params.append(_param(row[key_column]))
    return sql, params


def build_identity_insert(dialect: Dialect, table: str, enabled: bool) -> Optional[Statement]:
    """
    Allow or forbid explicit key values on a SQL Server IDENTITY table.

    Returns None for other dialects, and the statement is a no-op on
    tables without an IDENTITY column. It carries no parameters: SET
    inside a parameterized batch is reverted when the batch ends.
    """
    if dialect.name != SQLSERVER.name:
        return None
    quoted = dialect.quote_table(table)
    state = "ON" if enabled else "OFF"
    sql = (
        f"IF OBJECTPROPERTY(OBJECT_ID(N'{quoted}'), 'TableHasIdentity') = 1 "
        f"SET IDENTITY_INSERT {quoted} {state}"
    )
    return sql, []


def column_names(cursor) -> Tuple[str, ...]:
    """Column names of the last executed query (DB-API cursor.description)."""
    if cursor.description is None:
        return ()
    return tuple(desc[0] for desc in cursor.description)


def execute(cursor, statement: Statement) -> int:
    """Execute a built statement; returns the driver's rowcount."""
    sql, params = statement
    if params:
        cursor.execute(sql, params)
    else:
        cursor.execute(sql)
    return cursor.rowcount


__all__ = [
    "Dialect",
    "MYSQL",
    "SQLSERVER",
    "SQLITE",
    "get_dialect",
    "is_valid_identifier",
    "build_select_all",
    "build_delete",
    "build_delete_except",
    "build_insert",
    "build_update",
    "build_identity_insert",
    "column_names",
    "execute",
]
