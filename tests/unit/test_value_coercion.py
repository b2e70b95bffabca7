"""
Tests para la conversion de celdas de hoja a valores tipados.
"""
from datetime import date, datetime, time, timezone
from decimal import Decimal

import pytest

from app.application.services.value_coercion import (
    CoercionError,
    coerce_boolean,
    coerce_decimal,
    coerce_integer,
    coerce_list,
    coerce_value,
    comparable,
    is_empty,
    to_storage_value,
    values_equal,
)
from app.domain.entities.sync_schema import FieldDescriptor
from app.shared.constants.sync_constants import FieldType


class TestCoerceDecimal:

    @pytest.mark.parametrize("raw,expected", [
        ("1200.50", Decimal("1200.50")),
        ("$1,200.50", Decimal("1200.50")),
        ("₩12,000", Decimal("12000")),
        ("12,000원", Decimal("12000")),
        ("USD 99", Decimal("99")),
        ("(1,200)", Decimal("-1200")),
        ("-5", Decimal("-5")),
        (" 7 ", Decimal("7")),
    ])
    def test_accepts_currency_formats(self, raw, expected):
        assert coerce_decimal(raw) == expected

    @pytest.mark.parametrize("raw", ["abc", "1,20", "12.3.4", "1,2345"])
    def test_rejects_malformed_numbers(self, raw):
        with pytest.raises(CoercionError):
            coerce_decimal(raw)


class TestCoerceInteger:

    def test_integral_decimal_is_accepted(self):
        assert coerce_integer("3") == 3
        assert coerce_integer("3.0") == 3

    def test_fraction_is_rejected(self):
        with pytest.raises(CoercionError):
            coerce_integer("2.5")


class TestCoerceBoolean:

    @pytest.mark.parametrize("raw", ["TRUE", "yes", "Y", "1", "o", "예", "✓"])
    def test_truthy(self, raw):
        assert coerce_boolean(raw) is True

    @pytest.mark.parametrize("raw", ["FALSE", "no", "0", "x", "아니오"])
    def test_falsy(self, raw):
        assert coerce_boolean(raw) is False

    def test_unknown_token(self):
        with pytest.raises(CoercionError):
            coerce_boolean("maybe")


def test_coerce_list_from_json_and_commas():
    assert coerce_list('["R1", "R2"]') == ["R1", "R2"]
    assert coerce_list("R1, R2 ,,R3") == ["R1", "R2", "R3"]


class TestCoerceValue:

    def test_choices_are_case_insensitive_and_lowercased(self):
        descriptor = FieldDescriptor("status", choices=("active", "inactive"))
        assert coerce_value("ACTIVE", descriptor) == "active"

    def test_value_outside_choices_fails(self):
        descriptor = FieldDescriptor("status", choices=("active", "inactive"))
        with pytest.raises(CoercionError, match="active, inactive"):
            coerce_value("deleted", descriptor)

    def test_min_value_inclusive(self):
        descriptor = FieldDescriptor("adults", FieldType.INTEGER, min_value=Decimal("0"))
        assert coerce_value("0", descriptor) == 0
        with pytest.raises(CoercionError):
            coerce_value("-1", descriptor)

    def test_min_value_exclusive(self):
        descriptor = FieldDescriptor(
            "amount", FieldType.DECIMAL, min_value=Decimal("0"), exclusive_min=True
        )
        assert coerce_value("0.01", descriptor) == Decimal("0.01")
        with pytest.raises(CoercionError):
            coerce_value("0", descriptor)

    def test_datetime_field(self):
        descriptor = FieldDescriptor("modified_at", FieldType.DATETIME)
        assert coerce_value("2024-01-05 10:00", descriptor) == datetime(2024, 1, 5, 10, 0, tzinfo=timezone.utc)


class TestComparable:

    def test_empty_values_are_none(self):
        assert comparable("", FieldType.STRING) is None
        assert comparable("   ", FieldType.STRING) is None
        assert comparable([], FieldType.LIST) is None
        assert comparable(None, FieldType.DECIMAL) is None

    def test_money_compared_at_cents(self):
        assert values_equal(Decimal("10.004"), "10.00", FieldType.DECIMAL)
        assert values_equal(Decimal("10.005"), "10.01", FieldType.DECIMAL)
        assert not values_equal(Decimal("10.00"), "10.02", FieldType.DECIMAL)

    def test_integer_and_decimal_storage_match(self):
        assert values_equal(3, Decimal("3.00"), FieldType.INTEGER)

    def test_strings_are_trimmed(self):
        assert values_equal(" Seoul ", "Seoul", FieldType.STRING)

    def test_datetime_naive_storage_value_is_utc(self):
        stored = datetime(2024, 1, 5, 10, 0)
        incoming = datetime(2024, 1, 5, 19, 0, tzinfo=timezone.utc).replace(hour=10)
        assert values_equal(stored, incoming, FieldType.DATETIME)

    def test_date_from_datetime(self):
        assert comparable(datetime(2024, 1, 5, 23, 0), FieldType.DATE) == date(2024, 1, 5)

    def test_time_from_string(self):
        assert comparable("2:30 PM", FieldType.TIME) == time(14, 30)

    def test_unparseable_stored_value_is_returned_as_is(self):
        assert comparable("n/a", FieldType.DECIMAL) == "n/a"


def test_is_empty_and_to_storage_value():
    assert is_empty(None)
    assert is_empty(" ")
    assert not is_empty(0)
    assert not is_empty(False)
    assert to_storage_value("  ") is None
    assert to_storage_value(0) == 0
