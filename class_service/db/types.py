from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator

from class_service.core.timezone_utils import ensure_aware_utc


class UTCDateTime(TypeDecorator):
    """
    Columna de fecha/hora que siempre se guarda en UTC y se devuelve aware.

    PostgreSQL la guarda como TIMESTAMP WITH TIME ZONE. SQLite no conserva la
    zona horaria, así que allí se guarda el valor UTC sin tzinfo y se vuelve
    a marcar como UTC al leerlo.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        return ensure_aware_utc(value)
