"""
Utilidades para el manejo de zonas horarias en el servicio.

Todos los instantes se guardan y comparan en UTC. Una fecha sin zona horaria
que llegue por la API se interpreta como hora local del gimnasio.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
import pytz

from class_service.core.config import get_settings


def utc_now() -> datetime:
    """Instante actual como datetime aware en UTC."""
    return datetime.now(timezone.utc)


def convert_gym_time_to_utc(naive_dt: datetime, gym_timezone: str) -> datetime:
    """
    Convierte un datetime naive (hora local del gimnasio) a UTC.

    Args:
        naive_dt: Datetime naive que representa la hora local del gimnasio
        gym_timezone: Zona horaria del gimnasio (ej: 'Europe/Madrid')

    Returns:
        Datetime aware en UTC
    """
    if naive_dt.tzinfo is not None:
        raise ValueError("El datetime debe ser naive (sin timezone)")

    tz = pytz.timezone(gym_timezone)
    return tz.localize(naive_dt).astimezone(timezone.utc)


def normalize_to_utc(dt: Optional[datetime], gym_timezone: Optional[str] = None) -> Optional[datetime]:
    """
    Normaliza un datetime a UTC manejando entradas naive o aware.

    - Si `dt` es naive, se interpreta en la timezone del gimnasio y se convierte a UTC.
    - Si `dt` es aware, se convierte directamente a UTC preservando la hora exacta.

    Args:
        dt: datetime a normalizar
        gym_timezone: zona horaria del gimnasio; por defecto GYM_TIMEZONE

    Returns:
        datetime aware en UTC
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return convert_gym_time_to_utc(dt, gym_timezone or get_settings().GYM_TIMEZONE)
    return dt.astimezone(timezone.utc)


def ensure_aware_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Marca como UTC un datetime leído de la base de datos.

    A diferencia de normalize_to_utc, un valor naive aquí ya está en UTC
    (es lo que devuelven los drivers que no guardan la zona horaria).
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def class_end_time(schedule: datetime, duration_minutes: int) -> datetime:
    return schedule + timedelta(minutes=duration_minutes)
