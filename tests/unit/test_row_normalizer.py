"""
Tests para el normalizador de filas de hoja.
"""
from datetime import date, datetime, time, timezone
from decimal import Decimal

from app.application.services.row_normalizer import RowNormalizer, normalize
from app.application.services.table_schemas import RESERVATION_EXPENSES, RESERVATIONS
from app.domain.entities.sync_records import ExternalRow


RESERVATION_MAPPING = {
    "Reservation Number": "reservation_number",
    "Name": "customer_name",
    "Adults": "adults",
    "Child": "child",
    "Tour Date": "tour_date",
    "Tour Time": "tour_time",
    "Product": "product_id",
    "Private": "is_private_tour",
    "Modified": "modified_at",
}


def _row(row_number: int = 2, **overrides) -> ExternalRow:
    values = {
        "Reservation Number": "R-100",
        "Name": "  Kim Minji ",
        "Adults": "2",
        "Child": "",
        "Tour Date": "2024. 3. 9.",
        "Tour Time": "오전 9:30",
        "Product": "MDGC1D",
        "Private": "TRUE",
        "Modified": "2024-03-01 08:00",
    }
    values.update(overrides)
    return ExternalRow(row_number=row_number, values=values)


def test_normalize_valid_row():
    result = normalize(_row(), RESERVATION_MAPPING, RESERVATIONS)

    assert result.ok
    record = result.record
    assert record.external_key == "R-100"
    assert record.row_number == 2
    assert record.values["customer_name"] == "Kim Minji"
    assert record.values["adults"] == 2
    assert record.values["tour_date"] == date(2024, 3, 9)
    assert record.values["tour_time"] == time(9, 30)
    assert record.values["is_private_tour"] is True
    assert record.modified_at == datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)


def test_empty_optional_cell_takes_default():
    result = normalize(_row(), RESERVATION_MAPPING, RESERVATIONS)
    assert result.record.values["child"] == 0
    assert "child" in result.record.empty_fields
    assert "adults" not in result.record.empty_fields


def test_unmapped_fields_are_not_in_values():
    result = normalize(_row(), RESERVATION_MAPPING, RESERVATIONS)

    assert "customer_email" not in result.record.values
    assert "status" not in result.record.values


def test_derive_hook_runs_after_coercion():
    result = normalize(_row(Product="mdgc1d_x"), RESERVATION_MAPPING, RESERVATIONS)

    assert result.record.values["product_id"] == "MDGC1D"
    assert result.record.values["choice"] == "Antelope X Canyon"


def test_all_field_errors_are_reported():
    result = normalize(
        _row(row_number=7, Adults="two", **{"Tour Date": "someday"}),
        RESERVATION_MAPPING,
        RESERVATIONS,
    )

    assert not result.ok
    assert result.record is None
    assert {issue.field for issue in result.errors} == {"adults", "tour_date"}
    assert all(issue.row_number == 7 for issue in result.errors)
    assert all(issue.external_key == "R-100" for issue in result.errors)


def test_required_empty_key_is_an_error():
    result = normalize(_row(**{"Reservation Number": "  "}), RESERVATION_MAPPING, RESERVATIONS)

    assert not result.ok
    assert result.errors[0].field == "reservation_number"
    assert result.errors[0].external_key is None


def test_required_field_without_column():
    mapping = {"ID": "expense_code", "Paid to": "paid_to"}
    row = ExternalRow(row_number=3, values={"ID": "E-1", "Paid to": "Gas station"})

    result = normalize(row, mapping, RESERVATION_EXPENSES)

    assert not result.ok
    assert [issue.field for issue in result.errors] == ["amount"]
    assert "no tiene columna" in result.errors[0].message


def test_constraint_violation_is_field_error():
    mapping = {"ID": "expense_code", "Amount": "amount", "Status": "status"}
    row = ExternalRow(row_number=4, values={"ID": "E-1", "Amount": "0", "Status": "paid"})

    result = normalize(row, mapping, RESERVATION_EXPENSES)

    assert {issue.field for issue in result.errors} == {"amount", "status"}


def test_normalize_rows_keeps_valid_and_collects_issues():
    normalizer = RowNormalizer(RESERVATIONS, RESERVATION_MAPPING)
    rows = [
        _row(row_number=2),
        _row(row_number=3, **{"Reservation Number": "R-101", "Adults": "-1"}),
        _row(row_number=4, **{"Reservation Number": "R-102"}),
    ]

    records, issues = normalizer.normalize_rows(rows)

    assert [r.external_key for r in records] == ["R-100", "R-102"]
    assert len(issues) == 1
    assert issues[0].row_number == 3
    assert issues[0].field == "adults"


def test_expense_amount_with_currency():
    mapping = {"ID": "expense_code", "Amount": "amount"}
    row = ExternalRow(row_number=2, values={"ID": "E-9", "Amount": "₩45,000"})

    result = normalize(row, mapping, RESERVATION_EXPENSES)

    assert result.record.values["amount"] == Decimal("45000")
    assert result.record.values.get("status") is None
