"""Tests for row projection."""

import datetime
import decimal
import math

import pytest

from querygate.errors import ProjectionError
from querygate.projector import project
from querygate.types import Column, ScalarType


class TestProject:
    """Test projecting engine rows onto their schema."""

    def test_schema_order(self):
        """Test keys follow schema order, not row order."""
        schema = [Column("b", ScalarType.STRING), Column("a", ScalarType.INTEGER)]
        projected = project(schema, {"a": 1, "b": "x"})

        assert projected == {"b": "x", "a": 1}
        assert list(projected) == ["b", "a"]

    def test_extra_row_keys_dropped(self):
        """Test only schema columns appear in the output."""
        projected = project([("a", ScalarType.INTEGER)], {"a": 1, "extra": 2})
        assert projected == {"a": 1}

    def test_nulls(self):
        """Test null values project to None for every type."""
        schema = [(t.value.lower(), t) for t in ScalarType]
        projected = project(schema, {name: None for name, _ in schema})
        assert projected == {"integer": None, "float": None, "boolean": None, "string": None}

    def test_absent_column_is_null(self):
        """Test a schema column missing from the row projects to None."""
        assert project([("a", ScalarType.INTEGER)], {}) == {"a": None}

    def test_empty_schema(self):
        """Test an empty schema projects to an empty mapping."""
        assert project([], {"a": 1}) == {}

    def test_all_scalars(self):
        """Test matching values pass through unchanged."""
        schema = [
            Column("id", ScalarType.INTEGER),
            Column("score", ScalarType.FLOAT),
            Column("active", ScalarType.BOOLEAN),
            Column("name", ScalarType.STRING),
        ]
        row = {"id": 2**63 - 1, "score": 1.5, "active": False, "name": ""}
        assert project(schema, row) == row

    def test_engine_type_names(self):
        """Test engine type names resolve to scalar checks."""
        schema = [("n", "BIGINT"), ("x", "DOUBLE"), ("s", "VARCHAR"), ("b", "BOOL")]
        row = {"n": 5, "x": 0.5, "s": "y", "b": True}
        assert project(schema, row) == row

        with pytest.raises(ProjectionError):
            project([("n", "BIGINT")], {"n": "5"})

    def test_pass_through_types(self):
        """Test columns outside the scalar set keep their values."""
        day = datetime.date(2024, 1, 2)
        amount = decimal.Decimal("1.10")
        schema = [Column("day", "DATE"), Column("amount", "DECIMAL(18,2)")]

        projected = project(schema, {"day": day, "amount": amount})

        assert projected["day"] is day
        assert projected["amount"] is amount


class TestProjectionErrors:
    """Test values that do not match their column type."""

    @pytest.mark.parametrize(
        "column_type,value",
        [
            (ScalarType.INTEGER, "1"),
            (ScalarType.INTEGER, 1.0),
            (ScalarType.INTEGER, True),
            (ScalarType.FLOAT, "1.5"),
            (ScalarType.FLOAT, 1),
            (ScalarType.BOOLEAN, 1),
            (ScalarType.BOOLEAN, "true"),
            (ScalarType.STRING, 1),
            (ScalarType.STRING, b"bytes"),
        ],
    )
    def test_mismatch(self, column_type, value):
        """Test mismatched values raise with column details."""
        with pytest.raises(ProjectionError) as exc_info:
            project([("c", column_type)], {"c": value})

        error = exc_info.value
        assert error.column == "c"
        assert error.expected == column_type
        assert error.value == value
        assert str(error).startswith(f"Column 'c' declared {column_type}")

    def test_integer_out_of_range(self):
        """Test integers beyond 64 bits are rejected."""
        with pytest.raises(ProjectionError, match="64-bit"):
            project([("c", ScalarType.INTEGER)], {"c": 2**63})

    @pytest.mark.parametrize("value", [math.nan, math.inf, -math.inf])
    def test_non_finite_float(self, value):
        """Test floats JSON cannot represent are rejected."""
        with pytest.raises(ProjectionError, match="JSON"):
            project([("c", ScalarType.FLOAT)], {"c": value})

    def test_status_code(self):
        """Test projection failures are server errors."""
        with pytest.raises(ProjectionError) as exc_info:
            project([("c", ScalarType.STRING)], {"c": 1})
        assert exc_info.value.status_code == 500
