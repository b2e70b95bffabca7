"""
Tests para la sugerencia y validacion de mapeos columna -> campo.
"""
import pytest

from app.application.services.column_mapper import (
    default_mapping,
    fields_to_columns,
    normalize_header,
    suggest_mapping,
    validate_mapping,
)
from app.application.services.table_schemas import PAYMENT_METHODS, RESERVATIONS
from app.domain.entities.sync_schema import FieldDescriptor, TableSchema
from app.shared.constants.sync_constants import FieldType, MatchConfidence
from app.shared.exceptions.sync import MappingException


@pytest.fixture
def small_schema() -> TableSchema:
    return TableSchema(
        table="tours",
        key_field="tour_number",
        fields=(
            FieldDescriptor("tour_number", required=True),
            FieldDescriptor("tour_date", FieldType.DATE),
            FieldDescriptor("guide", synonyms=("가이드",)),
            FieldDescriptor("pickup_hotel"),
        ),
    )


def test_normalize_header_ignores_case_spaces_and_punctuation():
    assert normalize_header("Tour_Date ") == "tourdate"
    assert normalize_header("tour date") == "tourdate"
    assert normalize_header("E-Mail") == "email"
    # Forma de compatibilidad: caracteres de ancho completo
    assert normalize_header("ＩＤ") == "id"


def test_normalize_header_strips_accents():
    assert normalize_header("Teléfono") == "telefono"
    assert normalize_header("Número de reserva") == "numerodereserva"
    assert normalize_header("예약 번호") == "예약번호"
    assert normalize_header("상태") == "상태"


def test_accented_header_matches_unaccented_synonym():
    schema = TableSchema(
        table="tours",
        key_field="tour_number",
        fields=(
            FieldDescriptor("tour_number", required=True),
            FieldDescriptor("phone", synonyms=("telefono",)),
        ),
    )

    suggestions = suggest_mapping(["Tour Number", "Teléfono"], "tours", schema.fields)

    assert suggestions["phone"].column == "Teléfono"
    assert suggestions["phone"].confidence == MatchConfidence.SYNONYM


def test_suggest_mapping_tiers(small_schema):
    columns = ["Tour Number", "Tour Date", "가이드", "Pickup Hotel Name"]

    suggestions = suggest_mapping(columns, "tours", small_schema.fields)

    assert suggestions["tour_number"].column == "Tour Number"
    assert suggestions["tour_number"].confidence == MatchConfidence.EXACT
    assert suggestions["guide"].column == "가이드"
    assert suggestions["guide"].confidence == MatchConfidence.SYNONYM
    assert suggestions["pickup_hotel"].column == "Pickup Hotel Name"
    assert suggestions["pickup_hotel"].confidence == MatchConfidence.FUZZY


def test_suggest_mapping_keeps_schema_order_and_marks_unmapped(small_schema):
    suggestions = suggest_mapping(["Tour Number"], "tours", small_schema.fields)

    assert list(suggestions) == ["tour_number", "tour_date", "guide", "pickup_hotel"]
    assert suggestions["tour_date"].unmapped
    assert suggestions["tour_date"].confidence == MatchConfidence.NONE
    assert suggestions["tour_date"].to_dict() == {"column": None, "confidence": "none"}


def test_exact_tie_prefers_shortest_column(small_schema):
    suggestions = suggest_mapping(["tour date ", "Tour_Date"], "tours", small_schema.fields)
    assert suggestions["tour_date"].column == "Tour_Date"


def test_fuzzy_requires_minimum_length():
    schema = (FieldDescriptor("id"),)
    suggestions = suggest_mapping(["Guide ID"], "tours", schema)
    assert suggestions["id"].unmapped


def test_fuzzy_does_not_take_columns_claimed_by_exact_match():
    schema = (FieldDescriptor("name"), FieldDescriptor("customer_name"))
    suggestions = suggest_mapping(["Customer Name"], "reservations", schema)

    assert suggestions["customer_name"].confidence == MatchConfidence.EXACT
    assert suggestions["name"].unmapped


def test_default_mapping_excludes_fuzzy(small_schema):
    columns = ["Tour Number", "Tour Date", "가이드", "Pickup Hotel Name"]
    mapping = default_mapping(suggest_mapping(columns, "tours", small_schema.fields))

    assert mapping == {
        "Tour Number": "tour_number",
        "Tour Date": "tour_date",
        "가이드": "guide",
    }


def test_korean_reservation_headers():
    columns = ["예약번호", "고객명", "이메일", "성인", "투어날짜", "상품코드", "비고"]

    suggestions = suggest_mapping(columns, "reservations", RESERVATIONS.fields)
    mapping = default_mapping(suggestions)

    assert suggestions["reservation_number"].column == "예약번호"
    assert suggestions["reservation_number"].confidence == MatchConfidence.SYNONYM
    assert suggestions["customer_phone"].unmapped
    assert mapping == {
        "예약번호": "reservation_number",
        "고객명": "customer_name",
        "이메일": "customer_email",
        "성인": "adults",
        "투어날짜": "tour_date",
        "상품코드": "product_id",
        "비고": "event_note",
    }


def test_fields_to_columns_inverts_mapping():
    assert fields_to_columns({"ID": "method_code", "결제방법": "method"}) == {
        "method_code": "ID",
        "method": "결제방법",
    }


class TestValidateMapping:

    def test_valid_mapping_passes(self):
        validate_mapping({"ID": "method_code", "결제방법": "method"}, PAYMENT_METHODS)

    def test_missing_required_field(self):
        with pytest.raises(MappingException) as exc_info:
            validate_mapping({"ID": "method_code"}, PAYMENT_METHODS)

        assert exc_info.value.unmapped_fields == ["method"]
        assert exc_info.value.status_code == 400
        assert exc_info.value.to_dict()["error"] == "MAPPING_ERROR"

    def test_unknown_field(self):
        with pytest.raises(MappingException) as exc_info:
            validate_mapping({"ID": "method_code", "M": "method", "X": "nope"}, PAYMENT_METHODS)
        assert exc_info.value.details["unknown_fields"] == ["nope"]

    def test_field_mapped_twice(self):
        with pytest.raises(MappingException) as exc_info:
            validate_mapping({"ID": "method_code", "A": "method", "B": "method"}, PAYMENT_METHODS)
        assert exc_info.value.details["duplicated_fields"] == ["method"]

    def test_column_missing_in_sheet_counts_as_unmapped(self):
        with pytest.raises(MappingException) as exc_info:
            validate_mapping(
                {"ID": "method_code", "결제방법": "method"},
                PAYMENT_METHODS,
                columns=["ID", "User"],
            )
        assert exc_info.value.details["missing_columns"] == ["결제방법"]
        assert exc_info.value.unmapped_fields == ["method"]
