"""
Tests para el registro de esquemas y los hooks de enriquecimiento.
"""
import pytest

from app.application.services.table_schemas import (
    SYNC_SCHEMAS,
    derive_payment_method,
    derive_reservation,
    detect_card_type,
    detect_method_type,
    extract_card_last4,
    get_schema,
    list_schemas,
)
from app.shared.exceptions.sync import UnknownTargetTableException


def test_registered_tables():
    assert set(SYNC_SCHEMAS) == {"reservations", "tours", "payment_methods", "reservation_expenses", "tour_expenses"}
    assert [s.table for s in list_schemas()] == list(SYNC_SCHEMAS)


def test_every_schema_declares_its_key_as_required_field():
    for schema in list_schemas():
        descriptor = schema.get_field(schema.key_field)
        assert descriptor is not None
        assert descriptor.required


def test_get_schema_unknown_table():
    with pytest.raises(UnknownTargetTableException) as exc_info:
        get_schema("customers")
    assert exc_info.value.status_code == 404
    assert "reservations" in exc_info.value.details["available_tables"]


@pytest.mark.parametrize("product,expected", [
    ("MDGCSUNRISE_X", ("MDGCSUNRISE", "Antelope X Canyon")),
    ("MDGC1D_X", ("MDGC1D", "Antelope X Canyon")),
    ("MDGCSUNRISE", ("MDGCSUNRISE", "Lower Antelope Canyon")),
    ("MDGC1D", ("MDGC1D", "Lower Antelope Canyon")),
])
def test_derive_reservation_variants(product, expected):
    values = derive_reservation({"product_id": product})
    assert (values["product_id"], values["choice"]) == expected


def test_derive_reservation_other_products_untouched():
    values = derive_reservation({"product_id": "GRAND01"})
    assert values == {"product_id": "GRAND01"}


@pytest.mark.parametrize("method,expected", [
    ("CC 4321", "card"),
    ("법인카드", "card"),
    ("Cash", "cash"),
    ("현금", "cash"),
    ("Bank transfer", "transfer"),
    ("계좌이체", "transfer"),
    ("Mobile pay", "mobile"),
    ("Voucher", "other"),
])
def test_detect_method_type(method, expected):
    assert detect_method_type(method) == expected


def test_card_details():
    assert extract_card_last4("Visa ending 1234") == "1234"
    assert extract_card_last4("Cash") is None
    assert detect_card_type("MasterCard corp") == "mastercard"
    assert detect_card_type("American Express") == "amex"
    assert detect_card_type("Cash") is None


def test_derive_payment_method():
    values = derive_payment_method({"method_code": "PM-1", "method": "Visa 9876"})

    assert values["method_type"] == "card"
    assert values["card_number_last4"] == "9876"
    assert values["card_type"] == "visa"
