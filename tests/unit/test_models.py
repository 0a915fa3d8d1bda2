"""
Unit tests for core models and canonical row serialization.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from safeguard.core.exceptions import UnsupportedValueError
from safeguard.core.models import (
    DriftKind,
    RowSnapshot,
    Scalar,
    ScalarKind,
    SentinelRule,
)
from safeguard.snapshot import canonicalize, serialize_row


def _snapshot(rows):
    columns = tuple(sorted(rows[0])) if rows else ("id",)
    return RowSnapshot(
        table="t",
        key_column="id",
        columns=columns,
        rows={
            Scalar.from_db(r["id"]): {k: Scalar.from_db(v) for k, v in r.items()}
            for r in rows
        },
    )


@pytest.mark.unit
class TestScalar:
    """Tests for the tagged Scalar value."""

    @pytest.mark.parametrize(
        "value,kind",
        [
            (None, ScalarKind.NULL),
            (1, ScalarKind.INTEGER),
            (True, ScalarKind.INTEGER),
            (1.5, ScalarKind.FLOAT),
            (Decimal("9.99"), ScalarKind.FLOAT),
            ("x", ScalarKind.TEXT),
            (b"\x00", ScalarKind.BYTES),
            (datetime(2024, 1, 1, 12, 0), ScalarKind.TIMESTAMP),
        ],
    )
    def test_from_db_kinds(self, value, kind):
        assert Scalar.from_db(value).kind is kind

    def test_null_not_equal_empty_string(self):
        assert Scalar.from_db(None) != Scalar.from_db("")

    def test_integer_not_equal_float(self):
        assert Scalar.from_db(1) != Scalar.from_db(1.0)

    def test_integer_not_equal_text(self):
        assert Scalar.from_db(1) != Scalar.from_db("1")

    def test_equal_values_hash_equal(self):
        assert hash(Scalar.from_db(5)) == hash(Scalar.from_db(5))
        assert {Scalar.from_db("a"): 1}[Scalar.from_db("a")] == 1

    def test_unsupported_type_raises(self):
        with pytest.raises(UnsupportedValueError):
            Scalar.from_db(object())

    def test_bytearray_normalized_to_bytes(self):
        scalar = Scalar.from_db(bytearray(b"ab"))
        assert scalar.value == b"ab"
        assert scalar == Scalar.from_db(b"ab")

    def test_to_param_returns_value(self):
        assert Scalar.from_db("abc").to_param() == "abc"
        assert Scalar.from_db(None).to_param() is None

    def test_sort_key_orders_across_kinds(self):
        values = [Scalar.from_db(v) for v in ["b", 2, None, "a", 1]]
        ordered = sorted(values, key=Scalar.sort_key)
        assert [s.value for s in ordered] == [None, 1, 2, "a", "b"]

    def test_str(self):
        assert str(Scalar.from_db(None)) == "NULL"
        assert str(Scalar.from_db(42)) == "42"


@pytest.mark.unit
class TestRowSnapshot:
    """Tests for RowSnapshot."""

    def test_keys_sorted(self):
        snap = _snapshot([{"id": 3, "v": "c"}, {"id": 1, "v": "a"}, {"id": 2, "v": "b"}])
        assert [k.value for k in snap.keys()] == [1, 2, 3]
        assert [k.value for k in snap] == [1, 2, 3]

    def test_lookup(self):
        snap = _snapshot([{"id": 1, "v": "a"}])
        assert Scalar.from_db(1) in snap
        assert Scalar.from_db(2) not in snap
        assert snap.get(Scalar.from_db(1))["v"] == Scalar.from_db("a")
        assert snap.get(Scalar.from_db(2)) is None

    def test_rows_are_read_only(self):
        snap = _snapshot([{"id": 1, "v": "a"}])
        with pytest.raises(TypeError):
            snap.rows[Scalar.from_db(2)] = {}
        with pytest.raises(TypeError):
            snap.get(Scalar.from_db(1))["v"] = Scalar.from_db("b")

    def test_source_dict_mutation_does_not_leak(self):
        rows = {Scalar.from_db(1): {"id": Scalar.from_db(1)}}
        snap = RowSnapshot("t", "id", ("id",), rows)
        rows[Scalar.from_db(2)] = {"id": Scalar.from_db(2)}
        assert len(snap) == 1

    def test_to_plain(self):
        snap = _snapshot([{"id": 2, "v": None}, {"id": 1, "v": "a"}])
        assert snap.to_plain() == [{"id": 1, "v": "a"}, {"id": 2, "v": None}]


@pytest.mark.unit
class TestSentinelRule:
    def test_defaults(self):
        rule = SentinelRule()
        assert rule.key_column == "id"
        assert rule.is_sentinel(Scalar.from_db(1))
        assert not rule.is_sentinel(Scalar.from_db(2))

    def test_text_key_does_not_match_integer_sentinel(self):
        assert not SentinelRule().is_sentinel(Scalar.from_db("1"))


@pytest.mark.unit
class TestDriftKind:
    def test_values(self):
        assert DriftKind.ADDED.value == "added"
        assert DriftKind.REMOVED.value == "removed"
        assert DriftKind.MODIFIED.value == "modified"


@pytest.mark.unit
class TestCanonicalRows:
    """Tests for canonical serialization of audited rows."""

    def test_key_order_does_not_matter(self):
        assert canonicalize({"b": 1, "a": 2}) == canonicalize({"a": 2, "b": 1})

    def test_compact_output(self):
        assert canonicalize({"a": 1, "b": [1, 2]}) == '{"a":1,"b":[1,2]}'

    def test_scalars_unwrapped(self):
        row = {"id": Scalar.from_db(1), "name": Scalar.from_db("x"), "note": Scalar.from_db(None)}
        assert serialize_row(row) == '{"id":1,"name":"x","note":null}'

    def test_bytes_base64(self):
        assert serialize_row({"blob": Scalar.from_db(b"\x00\x01")}) == '{"blob":"AAE="}'

    def test_decimal_and_timestamp(self):
        row = {
            "amount": Scalar.from_db(Decimal("9.90")),
            "at": Scalar.from_db(datetime(2024, 5, 1, 10, 0, 0)),
        }
        assert serialize_row(row) == '{"amount":"9.90","at":"2024-05-01T10:00:00"}'

    def test_column_order_irrelevant(self):
        a = {"id": Scalar.from_db(1), "v": Scalar.from_db("x")}
        b = {"v": Scalar.from_db("x"), "id": Scalar.from_db(1)}
        assert serialize_row(a) == serialize_row(b) == '{"id":1,"v":"x"}'
