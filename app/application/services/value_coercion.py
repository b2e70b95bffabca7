"""
Conversion de celdas (strings) a valores tipados, y normalizacion de valores
para comparacion.

Las hojas se editan a mano en locales ko_KR y en_US: montos con simbolos de
moneda y separadores de miles, booleanos como "예"/"TRUE"/"o", fechas en
varios formatos. Cada conversion falla con CoercionError; el normalizador la
traduce a un error de campo.
"""
from __future__ import annotations

import json
import re
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, List, Optional

from app.domain.entities.sync_schema import FieldDescriptor
from app.shared.constants.sync_constants import FieldType
from app.shared.utils.date_utils import parse_sheet_date, parse_sheet_datetime, parse_sheet_time
from app.shared.utils.datetime_utils import DateTimeUtils


class CoercionError(ValueError):
    """La celda no se puede convertir al tipo del campo."""


TRUTHY_TOKENS = frozenset({
    "true", "t", "yes", "y", "1", "o", "on", "checked", "✓", "✔",
    "예", "네", "참", "ㅇ",
})
FALSY_TOKENS = frozenset({
    "false", "f", "no", "n", "0", "x", "off", "unchecked",
    "아니오", "아니요", "거짓", "ㄴ",
})

# Precision de comparacion para montos
MONEY_QUANTUM = Decimal("0.01")

_CURRENCY_RE = re.compile(r"(US\$|USD|KRW|EUR|JPY|GBP|[$₩€¥£]|원)", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"[\s ]+")
_PLAIN_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")
_GROUPED_NUMBER_RE = re.compile(r"^[+-]?\d{1,3}(,\d{3})+(\.\d*)?$")


def is_empty(value: Any) -> bool:
    """None, string vacio o solo espacios."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


def coerce_string(raw: str) -> str:
    return str(raw).strip()


def coerce_decimal(raw: str) -> Decimal:
    """
    Convierte montos: "$1,200.50", "₩12,000", "12,000원", "(1,200)" -> -1200.
    """
    value = _WHITESPACE_RE.sub("", _CURRENCY_RE.sub("", str(raw)))
    negative = False
    if value.startswith("(") and value.endswith(")"):
        negative = True
        value = value[1:-1]

    if "," in value:
        if not _GROUPED_NUMBER_RE.match(value):
            raise CoercionError(f"'{raw}' no es un numero valido")
        value = value.replace(",", "")

    if not _PLAIN_NUMBER_RE.match(value):
        raise CoercionError(f"'{raw}' no es un numero valido")

    try:
        number = Decimal(value)
    except InvalidOperation as e:
        raise CoercionError(f"'{raw}' no es un numero valido") from e
    return -number if negative else number


def coerce_integer(raw: str) -> int:
    number = coerce_decimal(raw)
    if number != number.to_integral_value():
        raise CoercionError(f"'{raw}' no es un entero")
    return int(number)


def coerce_boolean(raw: str) -> bool:
    token = str(raw).strip().lower()
    if token in TRUTHY_TOKENS:
        return True
    if token in FALSY_TOKENS:
        return False
    raise CoercionError(f"'{raw}' no es un valor booleano reconocido")


def coerce_date(raw: str) -> date:
    parsed = parse_sheet_date(str(raw))
    if parsed is None:
        raise CoercionError(f"'{raw}' no es una fecha reconocida")
    return parsed


def coerce_datetime(raw: str) -> datetime:
    parsed = parse_sheet_datetime(str(raw))
    if parsed is None:
        raise CoercionError(f"'{raw}' no es una fecha/hora reconocida")
    return parsed


def coerce_time(raw: str) -> time:
    parsed = parse_sheet_time(str(raw))
    if parsed is None:
        raise CoercionError(f"'{raw}' no es una hora reconocida")
    return parsed


def coerce_list(raw: str) -> List[str]:
    """
    Lista de strings desde un arreglo JSON ('["R1","R2"]') o texto separado
    por comas ('R1, R2').
    """
    text = str(raw).strip()
    if text.startswith("[") and text.endswith("]"):
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            return [str(item).strip() for item in parsed if str(item).strip()]

    parts = [part.strip().strip("[]\"' ") for part in text.split(",")]
    return [part for part in parts if part]


def coerce_json(raw: str) -> Any:
    try:
        return json.loads(str(raw))
    except json.JSONDecodeError as e:
        raise CoercionError(f"JSON invalido: {e.msg}") from e


_COERCERS = {
    FieldType.STRING: coerce_string,
    FieldType.INTEGER: coerce_integer,
    FieldType.DECIMAL: coerce_decimal,
    FieldType.DATE: coerce_date,
    FieldType.DATETIME: coerce_datetime,
    FieldType.TIME: coerce_time,
    FieldType.BOOLEAN: coerce_boolean,
    FieldType.LIST: coerce_list,
    FieldType.JSON: coerce_json,
}


def coerce_value(raw: str, descriptor: FieldDescriptor) -> Any:
    """
    Convierte una celda no vacia segun el descriptor y aplica choices/minimos.

    Raises:
        CoercionError: si la celda no es convertible o viola una restriccion
    """
    value = _COERCERS[descriptor.field_type](raw)

    if descriptor.choices:
        allowed = [choice.lower() for choice in descriptor.choices]
        if str(value).lower() not in allowed:
            raise CoercionError(
                f"'{raw}' debe ser uno de: {', '.join(descriptor.choices)}"
            )
        value = str(value).lower()

    if descriptor.min_value is not None and isinstance(value, (int, Decimal)):
        bound = Decimal(descriptor.min_value)
        if descriptor.exclusive_min and value <= bound:
            raise CoercionError(f"debe ser mayor que {bound}")
        if not descriptor.exclusive_min and value < bound:
            raise CoercionError(f"debe ser mayor o igual que {bound}")

    return value


def comparable(value: Any, field_type: FieldType) -> Any:
    """
    Normaliza un valor (de la hoja o del storage) para comparar por igualdad
    semantica: strings recortados, numeros con la misma precision, fechas
    como date, datetimes en UTC. Vacio se normaliza a None.
    """
    if is_empty(value):
        return None

    try:
        if field_type == FieldType.STRING:
            return str(value).strip()
        if field_type in (FieldType.DECIMAL, FieldType.INTEGER):
            number = value if isinstance(value, Decimal) else (
                Decimal(value) if isinstance(value, int) else coerce_decimal(str(value))
            )
            return number.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)
        if field_type == FieldType.DATE:
            if isinstance(value, datetime):
                return value.date()
            return value if isinstance(value, date) else coerce_date(str(value))
        if field_type == FieldType.DATETIME:
            if isinstance(value, datetime):
                return DateTimeUtils.ensure_utc(value).replace(microsecond=0)
            return coerce_datetime(str(value)).replace(microsecond=0)
        if field_type == FieldType.TIME:
            return value if isinstance(value, time) else coerce_time(str(value))
        if field_type == FieldType.BOOLEAN:
            return value if isinstance(value, bool) else coerce_boolean(str(value))
        if field_type == FieldType.LIST:
            items = value if isinstance(value, list) else coerce_list(str(value))
            return [str(item).strip() for item in items] or None
        if field_type == FieldType.JSON:
            parsed = coerce_json(value) if isinstance(value, str) else value
            return None if is_empty(parsed) else parsed
    except (CoercionError, InvalidOperation, TypeError, ValueError):
        # Valor persistido con formato inesperado: se compara tal cual
        return value
    return value


def values_equal(left: Any, right: Any, field_type: FieldType) -> bool:
    return comparable(left, field_type) == comparable(right, field_type)


def to_storage_value(value: Any) -> Optional[Any]:
    """Valor listo para persistir: strings vacios como None."""
    if isinstance(value, str) and value.strip() == "":
        return None
    return value
