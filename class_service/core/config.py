import os
from typing import Any, List, Optional, Union
from functools import lru_cache
import logging

from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Configurar el logger
logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Permitir campos extra en .env
    )

    # Configuración básica
    API_V1_STR: str = "/api/v1"

    # Información del proyecto
    PROJECT_NAME: str = "GymClassService"
    PROJECT_DESCRIPTION: str = "Servicio de clases y reservas del gimnasio"
    VERSION: str = "1.0.0"

    # Debug mode
    DEBUG_MODE: bool = os.getenv("DEBUG_MODE", "False").lower() in ("true", "1", "t")

    # CORS
    BACKEND_CORS_ORIGINS: List[AnyHttpUrl] = []

    @field_validator("BACKEND_CORS_ORIGINS", mode='before')
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # Base de datos
    DATABASE_URL: str = "sqlite+aiosqlite:///./class_service.db"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    @field_validator("DATABASE_URL", mode="before")
    def ensure_async_driver(cls, v: Optional[str]) -> str:
        """Asegura que DATABASE_URL use un driver async (asyncpg para PostgreSQL)."""
        # No loguear el valor completo por seguridad
        if not v:
            return "sqlite+aiosqlite:///./class_service.db"
        if v.startswith("postgres://"):
            logger.info("Corrigiendo formato de postgres:// a postgresql+asyncpg://")
            return "postgresql+asyncpg://" + v[len("postgres://"):]
        if v.startswith("postgresql://"):
            logger.info("Añadiendo driver asyncpg a DATABASE_URL")
            return "postgresql+asyncpg://" + v[len("postgresql://"):]
        return v

    # Configuración de Redis (cache de identidades verificadas)
    REDIS_URL: str = ""
    REDIS_POOL_MAX_CONNECTIONS: int = 50
    REDIS_POOL_SOCKET_TIMEOUT: int = 5
    REDIS_POOL_HEALTH_CHECK_INTERVAL: int = 30
    IDENTITY_CACHE_TTL_SECONDS: int = 60

    @field_validator("REDIS_URL", mode="before")
    def clean_redis_url(cls, v: Optional[str]) -> Any:
        if not v:
            return ""
        # Eliminar comentarios (todo lo que sigue a #) y espacios
        if '#' in v:
            v = v.split('#')[0]
        return v.strip()

    # Servicios externos
    AUTH_SERVICE_URL: str = "http://localhost:3001"
    PAYMENT_SERVICE_URL: str = "http://localhost:3003"
    EXTERNAL_SERVICE_TIMEOUT_SECONDS: float = 5.0

    @field_validator("AUTH_SERVICE_URL", "PAYMENT_SERVICE_URL")
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    # Reglas de negocio
    GYM_TIMEZONE: str = "Europe/Madrid"
    BOOKING_CANCELLATION_CUTOFF_MINUTES: int = 60

    # Barrido periódico de clases finalizadas (0 = desactivado)
    COMPLETION_SWEEP_INTERVAL_MINUTES: int = 5


# Usar una función con caché para obtener la configuración
@lru_cache()
def get_settings() -> Settings:
    settings = Settings()
    logger.info("Configuración cargada correctamente")
    return settings
