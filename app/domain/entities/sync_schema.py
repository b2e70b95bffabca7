"""
Descripcion de esquema de las tablas destino del sync.

Cada tabla sincronizable se describe con una lista de FieldDescriptor en
lugar de filas/columnas "any": el normalizador valida y convierte cada celda
segun su descriptor, y el mapeador de columnas usa nombres y sinonimos.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

from app.shared.constants.sync_constants import FieldType


# Enriquecimiento por entidad despues de la conversion de tipos.
# Recibe los valores ya tipados y devuelve los valores finales.
DeriveHook = Callable[[Dict[str, Any]], Dict[str, Any]]


@dataclass(frozen=True)
class FieldDescriptor:
    """
    Define un campo interno de una tabla destino.

    - name: nombre de la columna en la base de datos
    - field_type: tipo al que se convierte la celda
    - required: si True, una celda vacia invalida la fila
    - default: valor cuando la celda esta vacia (solo campos opcionales)
    - synonyms: encabezados alternativos conocidos (ko/en)
    - choices: conjunto cerrado de valores validos (se comparan en minusculas)
    - min_value / exclusive_min: cota inferior para numericos
    """

    name: str
    field_type: FieldType = FieldType.STRING
    required: bool = False
    default: Any = None
    synonyms: Tuple[str, ...] = ()
    choices: Tuple[str, ...] = ()
    min_value: Optional[Decimal] = None
    exclusive_min: bool = False
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.field_type.value,
            "required": self.required,
            "default": self.default,
            "synonyms": list(self.synonyms),
            "choices": list(self.choices),
            "description": self.description,
        }


@dataclass(frozen=True)
class FieldReference:
    """Campo que debe existir como valor de una columna de otra tabla destino."""

    field: str
    table: str
    column: str


@dataclass(frozen=True)
class TableSchema:
    """
    Esquema de sync de una tabla destino.

    key_field es la clave externa estable (ej. numero de reserva del canal)
    usada para unir filas de la hoja con registros persistidos.
    modified_field, si existe, es el campo que trae la marca de modificacion
    de la fila y habilita el modo incremental.
    references lista los campos que apuntan a otra tabla; una fila cuyo valor
    no existe alla se reporta como error y no se escribe.
    links_customer activa la vinculacion por email con la tabla customers.
    """

    table: str
    key_field: str
    fields: Tuple[FieldDescriptor, ...]
    display_name: str = ""
    modified_field: Optional[str] = None
    track_history: bool = True
    derive: Optional[DeriveHook] = None
    # Campos calculados por derive (no se mapean desde la hoja)
    derived_fields: Tuple[str, ...] = ()
    references: Tuple[FieldReference, ...] = ()
    links_customer: bool = False

    def get_field(self, name: str) -> Optional[FieldDescriptor]:
        for descriptor in self.fields:
            if descriptor.name == name:
                return descriptor
        return None

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    @property
    def required_fields(self) -> List[str]:
        return [f.name for f in self.fields if f.required]

    @property
    def value_fields(self) -> List[str]:
        """Todos los campos persistidos: mapeables + derivados."""
        return self.field_names + [name for name in self.derived_fields if name not in self.field_names]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "display_name": self.display_name or self.table,
            "key_field": self.key_field,
            "modified_field": self.modified_field,
            "track_history": self.track_history,
            "fields": [f.to_dict() for f in self.fields],
            "derived_fields": list(self.derived_fields),
            "references": [
                {"field": r.field, "table": r.table, "column": r.column} for r in self.references
            ],
        }
