"""
Esquemas de sync por tabla destino.

Punto unico para definir:
- que campos de cada tabla se pueden alimentar desde la hoja
- con que tipo se convierte cada celda (y defaults/restricciones)
- los encabezados conocidos (ko/en) que usa el mapeador de columnas
- el enriquecimiento por entidad despues de la conversion (derive)

Las columnas tecnicas (id, source, updated_at) no se describen aca: las
maneja el adaptador de storage.
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Any, Dict, List

from app.domain.entities.sync_schema import FieldDescriptor, FieldReference, TableSchema
from app.shared.constants.sync_constants import FieldType
from app.shared.exceptions.sync import UnknownTargetTableException

F = FieldDescriptor

# ---------------------------------------------------------------------------
# Derive hooks
# ---------------------------------------------------------------------------

LOWER_ANTELOPE = "Lower Antelope Canyon"
ANTELOPE_X = "Antelope X Canyon"

# Codigos de producto variante -> (codigo base, choice)
PRODUCT_VARIANTS = {
    "MDGCSUNRISE_X": ("MDGCSUNRISE", ANTELOPE_X),
    "MDGC1D_X": ("MDGC1D", ANTELOPE_X),
    "MDGCSUNRISE": ("MDGCSUNRISE", LOWER_ANTELOPE),
    "MDGC1D": ("MDGC1D", LOWER_ANTELOPE),
}

_CARD_LAST4_RE = re.compile(r"\b(\d{4})\b")
_HAS_4_DIGITS_RE = re.compile(r"\d{4}")

_CARD_TYPES = (
    ("visa", ("visa",)),
    ("mastercard", ("master", "mastercard")),
    ("amex", ("amex", "american express")),
    ("discover", ("discover",)),
    ("jcb", ("jcb",)),
)


def derive_reservation(values: Dict[str, Any]) -> Dict[str, Any]:
    """Resuelve variantes de producto: MDGC1D_X -> MDGC1D + choice Antelope X."""
    product_id = values.get("product_id")
    if product_id:
        variant = PRODUCT_VARIANTS.get(str(product_id).strip().upper())
        if variant:
            values["product_id"], values["choice"] = variant
    return values


def detect_method_type(method: str) -> str:
    text = method.lower()
    if "cc" in text or "card" in text or "카드" in text or _HAS_4_DIGITS_RE.search(method):
        return "card"
    if "cash" in text or "현금" in text:
        return "cash"
    if "transfer" in text or "계좌" in text or "이체" in text:
        return "transfer"
    if "mobile" in text or "모바일" in text:
        return "mobile"
    return "other"


def extract_card_last4(method: str):
    match = _CARD_LAST4_RE.search(method)
    return match.group(1) if match else None


def detect_card_type(method: str):
    text = method.lower()
    for card_type, tokens in _CARD_TYPES:
        if any(token in text for token in tokens):
            return card_type
    return None


def derive_payment_method(values: Dict[str, Any]) -> Dict[str, Any]:
    """Deriva tipo de metodo y datos de tarjeta desde el texto del metodo."""
    method = values.get("method")
    if method:
        values["method_type"] = detect_method_type(method)
        values["card_number_last4"] = extract_card_last4(method)
        values["card_type"] = detect_card_type(method)
    return values


# ---------------------------------------------------------------------------
# Esquemas
# ---------------------------------------------------------------------------

MODIFIED_AT = F(
    "modified_at", FieldType.DATETIME,
    synonyms=("수정일시", "수정일", "last modified", "modified", "updated at"),
    description="Marca de modificacion de la fila (habilita modo incremental)",
)

RESERVATIONS = TableSchema(
    table="reservations",
    display_name="Reservas",
    key_field="reservation_number",
    modified_field="modified_at",
    derive=derive_reservation,
    derived_fields=("choice", "customer_id"),
    links_customer=True,
    fields=(
        F("reservation_number", required=True,
          synonyms=("예약번호", "예약ID", "id", "reservation id", "reservation no", "booking number")),
        F("customer_name", synonyms=("고객명", "이름", "name", "customer")),
        F("customer_email", synonyms=("이메일", "email", "e-mail")),
        F("customer_phone", synonyms=("전화번호", "연락처", "phone", "tel")),
        F("adults", FieldType.INTEGER, default=0, min_value=Decimal("0"),
          synonyms=("성인수", "성인", "adult")),
        F("child", FieldType.INTEGER, default=0, min_value=Decimal("0"),
          synonyms=("아동수", "아동", "children", "kids")),
        F("infant", FieldType.INTEGER, default=0, min_value=Decimal("0"),
          synonyms=("유아수", "유아", "infants")),
        F("total_people", FieldType.INTEGER, min_value=Decimal("0"),
          synonyms=("총인원", "인원", "pax", "total")),
        F("tour_date", FieldType.DATE, synonyms=("투어날짜", "투어일", "date")),
        F("tour_time", FieldType.TIME, synonyms=("투어시간", "time")),
        F("product_id", synonyms=("상품ID", "상품코드", "product", "product code")),
        F("tour_id", synonyms=("투어ID",)),
        F("pickup_hotel", synonyms=("픽업호텔", "호텔", "hotel")),
        F("pickup_time", FieldType.TIME, synonyms=("픽업시간",)),
        F("channel", synonyms=("채널", "channel id")),
        F("channel_rn", synonyms=("채널RN", "channel reservation number")),
        F("added_by", synonyms=("추가자", "작성자")),
        F("status", default="pending", synonyms=("상태", "예약상태")),
        F("event_note", synonyms=("특이사항", "비고", "notes", "note")),
        F("is_private_tour", FieldType.BOOLEAN, default=False,
          synonyms=("개인투어", "private tour", "private")),
        F("selected_options", FieldType.JSON, synonyms=("옵션", "선택옵션", "options")),
        MODIFIED_AT,
    ),
)

TOURS = TableSchema(
    table="tours",
    display_name="Tours",
    key_field="tour_number",
    modified_field="modified_at",
    fields=(
        F("tour_number", required=True, synonyms=("투어ID", "투어번호", "tour id", "id")),
        F("product_id", synonyms=("상품ID", "상품코드", "product")),
        F("tour_date", FieldType.DATE, synonyms=("투어날짜", "투어일", "date")),
        F("tour_status", default="Recruiting", synonyms=("투어상태", "상태", "status")),
        F("tour_guide_id", synonyms=("가이드이메일", "가이드", "guide")),
        F("assistant_id", synonyms=("어시스턴트이메일", "어시스턴트", "assistant")),
        F("tour_car_id", synonyms=("차량ID", "차량", "vehicle", "car")),
        F("is_private_tour", FieldType.BOOLEAN, default=False,
          synonyms=("개인투어", "private tour", "private")),
        F("reservation_ids", FieldType.LIST, synonyms=("예약ID", "예약번호", "reservations")),
        MODIFIED_AT,
    ),
)

PAYMENT_METHODS = TableSchema(
    table="payment_methods",
    display_name="Metodos de pago",
    key_field="method_code",
    modified_field="modified_at",
    derive=derive_payment_method,
    derived_fields=("method_type", "card_number_last4", "card_type"),
    fields=(
        F("method_code", required=True, synonyms=("ID", "결제방법ID", "method id")),
        F("method", required=True, synonyms=("결제방법", "결제수단", "payment method")),
        F("user_email", synonyms=("User", "사용자", "email")),
        F("limit_amount", FieldType.DECIMAL, default=Decimal("0"), min_value=Decimal("0"),
          synonyms=("Limit", "한도", "limit")),
        F("status", default="active", choices=("active", "inactive", "suspended", "expired"),
          synonyms=("Status", "상태")),
        MODIFIED_AT,
    ),
)

RESERVATION_EXPENSES = TableSchema(
    table="reservation_expenses",
    display_name="Gastos de reservas",
    key_field="expense_code",
    modified_field="modified_at",
    fields=(
        F("expense_code", required=True, synonyms=("ID", "지출ID", "expense id")),
        F("submit_on", FieldType.DATETIME, synonyms=("Submit on", "제출일", "submitted at")),
        F("submitted_by", synonyms=("Submitted by", "제출자")),
        F("paid_to", synonyms=("Paid to", "지급처")),
        F("paid_for", synonyms=("Paid for", "지급항목")),
        F("amount", FieldType.DECIMAL, required=True, min_value=Decimal("0"), exclusive_min=True,
          synonyms=("Amount", "금액")),
        F("payment_method", synonyms=("Payment Method", "결제방법")),
        F("note", synonyms=("Note", "메모", "비고")),
        F("image_url", synonyms=("Image", "이미지")),
        F("file_path", synonyms=("File", "파일")),
        F("status", default="pending", choices=("pending", "approved", "rejected"),
          synonyms=("Status", "상태")),
        F("reservation_id", synonyms=("Reservation ID", "예약ID", "예약번호")),
        F("event_id", synonyms=("Event ID",)),
        MODIFIED_AT,
    ),
)

TOUR_EXPENSES = TableSchema(
    table="tour_expenses",
    display_name="Gastos de tours",
    key_field="expense_code",
    modified_field="modified_at",
    references=(FieldReference("tour_id", "tours", "tour_number"),),
    fields=(
        F("expense_code", required=True, synonyms=("ID", "지출ID", "expense id")),
        F("tour_id", synonyms=("Tour ID", "투어ID", "투어번호")),
        F("product_id", synonyms=("Product ID", "상품ID", "상품코드")),
        F("tour_date", FieldType.DATE, required=True, synonyms=("Tour Date", "투어날짜", "투어일")),
        F("submit_on", FieldType.DATETIME, synonyms=("Submit on", "제출일", "submitted at")),
        F("submitted_by", required=True, synonyms=("Submitted by", "제출자")),
        F("paid_to", synonyms=("Paid to", "지급처")),
        F("paid_for", required=True, synonyms=("Paid for", "지급항목")),
        F("amount", FieldType.DECIMAL, required=True, min_value=Decimal("0"), exclusive_min=True,
          synonyms=("Amount", "금액")),
        F("payment_method", synonyms=("Payment Method", "결제방법")),
        F("note", synonyms=("Note", "메모", "비고")),
        F("image_url", synonyms=("Image", "이미지")),
        F("file_path", synonyms=("File", "파일")),
        F("audited_by", synonyms=("Audited by", "감사자")),
        F("checked_by", synonyms=("Checked by", "확인자")),
        F("checked_on", FieldType.DATETIME, synonyms=("Checked on", "확인일")),
        F("status", default="pending", choices=("pending", "approved", "rejected"),
          synonyms=("Status", "상태")),
        MODIFIED_AT,
    ),
)

SYNC_SCHEMAS: Dict[str, TableSchema] = {
    schema.table: schema
    for schema in (RESERVATIONS, TOURS, PAYMENT_METHODS, RESERVATION_EXPENSES, TOUR_EXPENSES)
}


def get_schema(table: str) -> TableSchema:
    """
    Retorna el esquema de sync de la tabla.

    Raises:
        UnknownTargetTableException: si la tabla no es sincronizable
    """
    schema = SYNC_SCHEMAS.get(table)
    if schema is None:
        raise UnknownTargetTableException(table, sorted(SYNC_SCHEMAS))
    return schema


def list_schemas() -> List[TableSchema]:
    return list(SYNC_SCHEMAS.values())
