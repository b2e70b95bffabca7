"""
Configuracion del servicio de sincronizacion.
Variables de entorno (o .env) para base de datos, lectura de hojas y motor de sync.
"""
import json
from typing import List
from pydantic_settings import BaseSettings
from pydantic import Field, computed_field


class Settings(BaseSettings):
    """
    Clase de configuracion de la aplicacion.
    Lee variables de entorno y proporciona valores por defecto.

    - ENVIRONMENT: 'development' o 'production'
    - DATABASE_URL se puede especificar completa o por componentes
    - SHEETS_*: cliente de Google Sheets (token ya emitido, sin flujo OAuth)
    - SYNC_*: parametros del motor de sincronizacion
    """

    # Configuracion de la aplicacion
    APP_NAME: str = Field(default="Tour Ops Sync")
    APP_VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="production")

    # Configuracion del servidor
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000)

    # Base de datos - Componentes separados (recomendado para flexibilidad)
    DATABASE_HOST: str = Field(default="localhost")
    DATABASE_PORT: int = Field(default=5432)
    DATABASE_USER: str = Field(default="tour_user")
    DATABASE_PASSWORD: str = Field(default="tour_pass")
    DATABASE_NAME: str = Field(default="tour_db")

    # Base de datos - URL completa (override de componentes si se proporciona)
    DATABASE_URL: str = Field(default="")
    DB_POOL_SIZE: int = Field(default=5)
    DB_MAX_OVERFLOW: int = Field(default=10)

    # CORS (acepta lista JSON o "*" para todos los origenes)
    CORS_ORIGINS: str = Field(default="*")

    # Google Sheets (lectura)
    SHEETS_API_BASE_URL: str = Field(default="https://sheets.googleapis.com/v4/spreadsheets")
    SHEETS_ACCESS_TOKEN: str = Field(default="")
    SHEETS_API_KEY: str = Field(default="")
    SHEETS_TIMEOUT_S: int = Field(default=30)
    SHEETS_MAX_RETRIES: int = Field(default=4)
    # Cache de lecturas: 2 horas por defecto
    SHEETS_CACHE_TTL_S: float = Field(default=7200.0)
    SHEETS_CACHE_MAX_ENTRIES: int = Field(default=1000)

    # Motor de sincronizacion
    SYNC_BATCH_SIZE: int = Field(default=200)
    SYNC_MAX_RETRIES: int = Field(default=3)
    SYNC_RETRY_BACKOFF_S: float = Field(default=0.5)
    SYNC_STORAGE_TIMEOUT_S: float = Field(default=30.0)

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE: str = Field(default="logs/app.log")

    @computed_field
    @property
    def effective_database_url(self) -> str:
        """
        Retorna la URL de base de datos efectiva.
        Si DATABASE_URL esta definida, la usa directamente.
        Si no, construye la URL desde los componentes individuales.
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}"
            f"@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}"
        )

    @computed_field
    @property
    def is_development(self) -> bool:
        """Indica si el entorno es de desarrollo."""
        return self.ENVIRONMENT.lower() == "development"

    class Config:
        """Configuracion de Pydantic."""
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignorar campos extra del .env


def get_cors_origins(cors_string: str) -> List[str]:
    """
    Parsea la configuracion de CORS.
    Acepta "*" para todos los origenes o una lista JSON.
    """
    if cors_string == "*":
        return ["*"]
    try:
        return json.loads(cors_string)
    except json.JSONDecodeError:
        # Si no es JSON valido, retornar como lista simple
        return [origin.strip() for origin in cors_string.split(",")]


# Instancia global de configuracion
settings = Settings()
