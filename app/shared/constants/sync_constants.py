"""
Constantes del motor de sincronizacion de hojas de calculo.
"""
from enum import Enum


class SyncMode(str, Enum):
    """Modo de corrida."""
    FULL = "full"
    INCREMENTAL = "incremental"


class RecordSource(str, Enum):
    """Origen de un registro persistido."""
    SYNC = "sync"                        # Creado/actualizado por el sync
    MANUAL = "manual"                    # Creado a mano desde la UI
    MANUAL_OVERRIDE = "manual-override"  # Registro de sync editado a mano


class FieldType(str, Enum):
    """Tipos de campo soportados por el normalizador."""
    STRING = "string"
    INTEGER = "integer"
    DECIMAL = "decimal"
    DATE = "date"
    DATETIME = "datetime"
    TIME = "time"
    BOOLEAN = "boolean"
    LIST = "list"
    JSON = "json"


class MatchConfidence(str, Enum):
    """Nivel de confianza de una sugerencia de mapeo de columna."""
    EXACT = "exact"
    SYNONYM = "synonym"
    FUZZY = "fuzzy"
    NONE = "none"


class ProgressEventType(str, Enum):
    """Variantes de evento de progreso."""
    START = "start"
    INFO = "info"
    PROGRESS = "progress"
    ERROR = "error"
    COMPLETE = "complete"


# Columna tecnica de origen que toda tabla destino tiene ademas de sus campos
SOURCE_COLUMN = "source"

# Tamaño por defecto de batch de escritura
DEFAULT_BATCH_SIZE = 200
