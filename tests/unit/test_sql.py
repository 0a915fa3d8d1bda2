"""
Unit tests for SQL dialects and statement builders.
"""

import pytest

from safeguard.core.models import Scalar
from safeguard.storage import DatabaseSettings, create_connection
from safeguard.storage.sql import (
    MYSQL,
    SQLITE,
    SQLSERVER,
    build_delete,
    build_delete_except,
    build_identity_insert,
    build_insert,
    build_select_all,
    build_update,
    get_dialect,
    is_valid_identifier,
)
from safeguard.core.exceptions import ConfigurationError


@pytest.mark.unit
class TestIdentifiers:
    @pytest.mark.parametrize("name", ["acg_pay", "id", "_x", "Table1"])
    def test_valid(self, name):
        assert is_valid_identifier(name)

    @pytest.mark.parametrize("name", ["", "1abc", "a-b", "a b", "x;DROP", "a`b"])
    def test_invalid(self, name):
        assert not is_valid_identifier(name)

    def test_quote_rejects_invalid(self):
        with pytest.raises(ValueError):
            MYSQL.quote("bad name")


@pytest.mark.unit
class TestDialects:
    def test_quoting(self):
        assert MYSQL.quote("id") == "`id`"
        assert SQLSERVER.quote("id") == "[id]"
        assert SQLITE.quote("id") == '"id"'

    def test_schema_qualified_table(self):
        assert SQLSERVER.quote_table("dbo.acg_pay") == "[dbo].[acg_pay]"

    def test_get_dialect(self):
        assert get_dialect("MySQL") is MYSQL
        with pytest.raises(ValueError):
            get_dialect("oracle")


@pytest.mark.unit
class TestStatementBuilders:
    def test_select_all_ordered_by_key(self):
        assert build_select_all(MYSQL, "acg_pay", "id") == "SELECT * FROM `acg_pay` ORDER BY `id`"

    def test_delete(self):
        sql, params = build_delete(MYSQL, "acg_pay", "id", Scalar.from_db(4))
        assert sql == "DELETE FROM `acg_pay` WHERE `id` = ?"
        assert params == [4]

    def test_delete_except(self):
        sql, params = build_delete_except(MYSQL, "acg_manage", "id", Scalar.from_db(1))
        assert sql == "DELETE FROM `acg_manage` WHERE `id` <> ?"
        assert params == [1]

    def test_insert_sorted_columns(self):
        row = {"name": Scalar.from_db("x"), "id": Scalar.from_db(2), "amount": Scalar.from_db(None)}
        sql, params = build_insert(MYSQL, "acg_pay", row)
        assert sql == "INSERT INTO `acg_pay` (`amount`, `id`, `name`) VALUES (?, ?, ?)"
        assert params == [None, 2, "x"]

    def test_update_excludes_key_from_set(self):
        row = {"id": Scalar.from_db(3), "name": Scalar.from_db("x"), "amount": Scalar.from_db(5)}
        sql, params = build_update(SQLSERVER, "acg_pay", "id", row)
        assert sql == "UPDATE [acg_pay] SET [amount] = ?, [name] = ? WHERE [id] = ?"
        assert params == [5, "x", 3]

    def test_update_without_key_rejected(self):
        with pytest.raises(ValueError):
            build_update(MYSQL, "t", "id", {"name": Scalar.from_db("x")})

    def test_update_key_only_rejected(self):
        with pytest.raises(ValueError):
            build_update(MYSQL, "t", "id", {"id": Scalar.from_db(1)})

    def test_insert_empty_row_rejected(self):
        with pytest.raises(ValueError):
            build_insert(MYSQL, "t", {})

    def test_plain_values_accepted(self):
        _, params = build_delete(SQLITE, "t", "id", 7)
        assert params == [7]

    def test_identity_insert_sqlserver_only(self):
        sql, params = build_identity_insert(SQLSERVER, "dbo.acg_pay", True)
        assert sql == (
            "IF OBJECTPROPERTY(OBJECT_ID(N'[dbo].[acg_pay]'), 'TableHasIdentity') = 1 "
            "SET IDENTITY_INSERT [dbo].[acg_pay] ON"
        )
        assert params == []
        assert build_identity_insert(SQLSERVER, "acg_pay", False)[0].endswith("[acg_pay] OFF")
        assert build_identity_insert(MYSQL, "acg_pay", True) is None
        assert build_identity_insert(SQLITE, "acg_pay", True) is None


@pytest.mark.unit
class TestDatabaseSettings:
    def test_mysql_connection_string(self):
        settings = DatabaseSettings(
            address="db.local:3307", username="u", password="p", database="faka"
        )
        conn_str = settings.odbc_connection_string()
        assert "Driver={MySQL ODBC 8.0 Unicode Driver};" in conn_str
        assert "Server=db.local;" in conn_str
        assert "Port=3307;" in conn_str
        assert "Database=faka;" in conn_str
        assert "User=u;" in conn_str

    def test_sqlserver_connection_string(self):
        settings = DatabaseSettings(backend="sqlserver", address="sql.local", database="x")
        conn_str = settings.odbc_connection_string()
        assert "Server=sql.local,1433;" in conn_str
        assert "TrustServerCertificate=yes" in conn_str

    def test_explicit_connection_string_wins(self):
        settings = DatabaseSettings(connection_string="DSN=faka")
        assert settings.odbc_connection_string() == "DSN=faka"

    def test_dialect(self):
        assert DatabaseSettings(backend="sqlserver").dialect is SQLSERVER

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError):
            create_connection({"backend": "oracle"})

    def test_sqlite_requires_path(self):
        with pytest.raises(ConfigurationError):
            create_connection({"backend": "sqlite"})

    def test_sqlite_connection(self, tmp_path):
        conn = create_connection({"backend": "sqlite", "path": str(tmp_path / "x.db")})
        try:
            cursor = conn.cursor()
            cursor.execute("SELECT 1")
            assert cursor.fetchone() == (1,)
        finally:
            conn.close()
