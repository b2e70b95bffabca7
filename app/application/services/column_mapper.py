"""
Inferencia de mapeo columna de hoja -> campo interno.

Compara encabezados normalizados contra el nombre canonico del campo, su
lista de sinonimos (ko/en) y, como ultimo recurso, contencion de substrings.
Funciones puras: persistir un mapeo confirmado es responsabilidad del caso
de uso.
"""
from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from loguru import logger

from app.domain.entities.sync_schema import FieldDescriptor, TableSchema
from app.shared.constants.sync_constants import MatchConfidence
from app.shared.exceptions.sync import MappingException

# Largo minimo de la cadena mas corta para aceptar un match por substring
MIN_FUZZY_LENGTH = 3

_NON_WORD_RE = re.compile(r"[\W_]+", re.UNICODE)

# Tiers que pueden aplicarse sin confirmacion humana
AUTO_CONFIDENCES = (MatchConfidence.EXACT, MatchConfidence.SYNONYM)


@dataclass(frozen=True)
class MappingSuggestion:
    """Mejor columna candidata para un campo, con su nivel de confianza."""

    field: str
    column: Optional[str]
    confidence: MatchConfidence

    @property
    def unmapped(self) -> bool:
        return self.column is None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"column": self.column, "confidence": self.confidence.value}


def normalize_header(value: str) -> str:
    """
    Normaliza un encabezado para comparar: forma de compatibilidad, sin
    acentos, casefold, sin espacios, puntuacion ni guiones bajos.
    "Tour_Date " y "tour date" -> "tourdate"; "Teléfono" -> "telefono".
    """
    decomposed = unicodedata.normalize("NFKD", value or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    # NFC recompone las silabas hangul que NFKD separo en jamo
    text = unicodedata.normalize("NFC", stripped).casefold()
    return _NON_WORD_RE.sub("", text)


def _shortest(candidates: Iterable[Tuple[int, str]]) -> Optional[str]:
    """Entre columnas candidatas (posicion, nombre) elige la mas corta; empate -> la primera."""
    ordered = sorted(candidates, key=lambda item: (len(item[1]), item[0]))
    return ordered[0][1] if ordered else None


def _is_fuzzy_match(column_key: str, target_key: str) -> bool:
    if not column_key or not target_key:
        return False
    shorter = min(len(column_key), len(target_key))
    if shorter < MIN_FUZZY_LENGTH:
        return False
    return column_key in target_key or target_key in column_key


def _match_field(
    descriptor: FieldDescriptor,
    columns: Sequence[Tuple[int, str, str]],
    claimed: Set[str],
) -> MappingSuggestion:
    """
    Busca la mejor columna para un campo recorriendo los tiers en orden.

    Args:
        descriptor: Campo destino
        columns: Tuplas (posicion, columna original, columna normalizada)
        claimed: Columnas ya tomadas por un match exacto/sinonimo de otro campo
    """
    name_key = normalize_header(descriptor.name)
    synonym_keys = {normalize_header(s) for s in descriptor.synonyms} - {""}

    exact = [(pos, col) for pos, col, key in columns if key == name_key]
    if exact:
        return MappingSuggestion(descriptor.name, _shortest(exact), MatchConfidence.EXACT)

    synonym = [(pos, col) for pos, col, key in columns if key in synonym_keys]
    if synonym:
        return MappingSuggestion(descriptor.name, _shortest(synonym), MatchConfidence.SYNONYM)

    targets = {name_key} | synonym_keys
    fuzzy = [
        (pos, col)
        for pos, col, key in columns
        if col not in claimed and any(_is_fuzzy_match(key, target) for target in targets)
    ]
    if fuzzy:
        return MappingSuggestion(descriptor.name, _shortest(fuzzy), MatchConfidence.FUZZY)

    return MappingSuggestion(descriptor.name, None, MatchConfidence.NONE)


def suggest_mapping(
    external_columns: Sequence[str],
    target_table: str,
    target_schema: Sequence[FieldDescriptor],
) -> Dict[str, MappingSuggestion]:
    """
    Sugiere, para cada campo del esquema, la columna de la hoja que le
    corresponde.

    Los matches exactos y por sinonimo se resuelven primero y reservan su
    columna; los matches por substring solo consideran columnas libres. Un
    campo sin candidato queda con confidence "none" y column None.

    Returns:
        Dict campo -> MappingSuggestion, en el orden del esquema
    """
    columns = [
        (pos, col, normalize_header(col))
        for pos, col in enumerate(external_columns)
        if col and normalize_header(col)
    ]

    suggestions: Dict[str, MappingSuggestion] = {}
    claimed: Set[str] = set()

    # Primera pasada: exact/synonym
    for descriptor in target_schema:
        suggestion = _match_field(descriptor, columns, claimed=set())
        if suggestion.confidence in AUTO_CONFIDENCES:
            suggestions[descriptor.name] = suggestion
            claimed.add(suggestion.column)

    # Segunda pasada: fuzzy sobre columnas no reservadas
    for descriptor in target_schema:
        if descriptor.name in suggestions:
            continue
        suggestion = _match_field(descriptor, columns, claimed)
        if suggestion.confidence == MatchConfidence.FUZZY:
            claimed.add(suggestion.column)
        suggestions[descriptor.name] = suggestion

    ordered = {descriptor.name: suggestions[descriptor.name] for descriptor in target_schema}
    unmapped = [name for name, s in ordered.items() if s.unmapped]
    logger.debug(
        f"Mapeo sugerido para {target_table}: "
        f"{len(ordered) - len(unmapped)}/{len(ordered)} campos, sin mapear: {unmapped}"
    )
    return ordered


def default_mapping(suggestions: Dict[str, MappingSuggestion]) -> Dict[str, str]:
    """
    Mapeo columna -> campo que puede aplicarse sin confirmacion: solo
    sugerencias exact/synonym. Si dos campos apuntan a la misma columna
    gana el de mayor confianza (y en empate, el primero del esquema).
    """
    mapping: Dict[str, str] = {}
    chosen: Dict[str, MappingSuggestion] = {}
    for suggestion in suggestions.values():
        if suggestion.confidence not in AUTO_CONFIDENCES or suggestion.column is None:
            continue
        current = chosen.get(suggestion.column)
        if current is None or (
            current.confidence == MatchConfidence.SYNONYM
            and suggestion.confidence == MatchConfidence.EXACT
        ):
            chosen[suggestion.column] = suggestion
            mapping[suggestion.column] = suggestion.field
    return mapping


def fields_to_columns(mapping: Dict[str, str]) -> Dict[str, str]:
    """Invierte un mapeo columna -> campo."""
    return {field_name: column for column, field_name in mapping.items()}


def validate_mapping(
    mapping: Dict[str, str],
    schema: TableSchema,
    columns: Optional[Sequence[str]] = None,
) -> None:
    """
    Verifica que un mapeo columna -> campo se pueda ejecutar.

    Raises:
        MappingException: si falta un campo requerido, un campo no existe en
            el esquema, dos columnas apuntan al mismo campo o (si se pasan
            las columnas de la hoja) una columna mapeada no existe en la hoja.
    """
    known_fields = set(schema.field_names)
    unknown_fields = sorted({f for f in mapping.values() if f not in known_fields})

    seen: Dict[str, str] = {}
    duplicated_fields: List[str] = []
    for column, field_name in mapping.items():
        if field_name in seen and field_name not in duplicated_fields:
            duplicated_fields.append(field_name)
        seen[field_name] = column

    missing_columns: List[str] = []
    if columns is not None:
        available = set(columns)
        missing_columns = [column for column in mapping if column not in available]

    mapped_fields = {f for column, f in mapping.items() if column not in missing_columns}
    unmapped = [name for name in schema.required_fields if name not in mapped_fields]

    if unmapped or unknown_fields or duplicated_fields or missing_columns:
        problems = []
        if unmapped:
            problems.append(f"campos requeridos sin mapear: {', '.join(unmapped)}")
        if unknown_fields:
            problems.append(f"campos inexistentes en {schema.table}: {', '.join(unknown_fields)}")
        if duplicated_fields:
            problems.append(f"campos mapeados mas de una vez: {', '.join(duplicated_fields)}")
        if missing_columns:
            problems.append(f"columnas ausentes en la hoja: {', '.join(missing_columns)}")
        raise MappingException(
            f"Mapeo de columnas invalido para {schema.table}: " + "; ".join(problems),
            unmapped_fields=unmapped,
            unknown_fields=unknown_fields,
            duplicated_fields=duplicated_fields,
            missing_columns=missing_columns,
        )
