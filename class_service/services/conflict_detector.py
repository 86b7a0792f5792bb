"""
Detección de conflictos de horario entre clases.

Dos clases entran en conflicto cuando comparten monitor o sala y sus
intervalos ``[schedule, schedule + duration)`` se solapan. Los intervalos son
semiabiertos: una clase que termina a las 10:00 y otra que empieza a las
10:00 no chocan.

``intervals_overlap`` y ``find_conflict`` son funciones puras. Las variantes
``find_monitor_conflict`` y ``find_room_conflict`` solo añaden la consulta de
candidatos al repositorio.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from class_service.core.exceptions import ScheduleConflictError
from class_service.models.gym_class import GymClass, ClassStatus, normalize_room_key
from class_service.repositories.gym_class import async_class_repository

logger = logging.getLogger(__name__)

MONITOR_SCOPE = "monitor"
ROOM_SCOPE = "room"


@dataclass(frozen=True)
class ScheduleConflict:
    """Clase existente que choca con el intervalo propuesto."""
    scope: str
    gym_class: GymClass

    def to_error(self) -> ScheduleConflictError:
        existing = self.gym_class
        existing_end = existing.schedule + timedelta(minutes=existing.duration)
        if self.scope == MONITOR_SCOPE:
            message = (
                f"El monitor ya tiene la clase '{existing.name}' programada de "
                f"{existing.schedule.isoformat()} a {existing_end.isoformat()}"
            )
        else:
            message = (
                f"La sala '{existing.room}' está ocupada por la clase '{existing.name}' de "
                f"{existing.schedule.isoformat()} a {existing_end.isoformat()}"
            )
        return ScheduleConflictError(
            message,
            details={
                "scope": self.scope,
                "conflicting_class_id": existing.id,
                "conflicting_class_name": existing.name,
                "start": existing.schedule,
                "end": existing_end,
            },
        )


def intervals_overlap(
    a_start: datetime,
    a_end: datetime,
    b_start: datetime,
    b_end: datetime
) -> bool:
    """Solapamiento de intervalos semiabiertos [start, end)."""
    return a_start < b_end and b_start < a_end


def find_conflict(
    candidates: Iterable[GymClass],
    start: datetime,
    duration_minutes: int
) -> Optional[GymClass]:
    """
    Primera clase de ``candidates`` cuyo intervalo se solapa con el propuesto.

    Las clases canceladas nunca cuentan como conflicto. El orden de
    ``candidates`` decide cuál se devuelve si hay varias.
    """
    end = start + timedelta(minutes=duration_minutes)
    for existing in candidates:
        if existing.status == ClassStatus.CANCELLED:
            continue
        existing_end = existing.schedule + timedelta(minutes=existing.duration)
        if intervals_overlap(start, end, existing.schedule, existing_end):
            return existing
    return None


async def find_monitor_conflict(
    db: AsyncSession,
    monitor_id: str,
    start: datetime,
    duration_minutes: int,
    exclude_class_id: Optional[int] = None
) -> Optional[GymClass]:
    """
    Clase no cancelada del mismo monitor que se solapa con el intervalo propuesto.

    Args:
        db: Sesión async de base de datos
        monitor_id: Monitor de la clase propuesta
        start: Inicio propuesto (UTC)
        duration_minutes: Duración propuesta
        exclude_class_id: Clase a ignorar (la propia clase al actualizar)

    Returns:
        La clase en conflicto o None
    """
    candidates = await async_class_repository.get_schedule_candidates(
        db, monitor_id=monitor_id, exclude_class_id=exclude_class_id, ending_after=start
    )
    return find_conflict(candidates, start, duration_minutes)


async def find_room_conflict(
    db: AsyncSession,
    room: str,
    start: datetime,
    duration_minutes: int,
    exclude_class_id: Optional[int] = None
) -> Optional[GymClass]:
    """
    Clase no cancelada en la misma sala que se solapa con el intervalo propuesto.

    La sala se compara por su clave canónica (ver ``normalize_room_key``).
    """
    candidates = await async_class_repository.get_schedule_candidates(
        db,
        room_key=normalize_room_key(room),
        exclude_class_id=exclude_class_id,
        ending_after=start,
    )
    return find_conflict(candidates, start, duration_minutes)


async def check_schedule_conflicts(
    db: AsyncSession,
    *,
    monitor_id: str,
    room: str,
    start: datetime,
    duration_minutes: int,
    exclude_class_id: Optional[int] = None
) -> None:
    """
    Comprobar monitor y después sala; lanza ScheduleConflictError con la
    primera clase en conflicto.
    """
    existing = await find_monitor_conflict(db, monitor_id, start, duration_minutes, exclude_class_id)
    if existing is not None:
        conflict = ScheduleConflict(MONITOR_SCOPE, existing)
    else:
        existing = await find_room_conflict(db, room, start, duration_minutes, exclude_class_id)
        if existing is None:
            return
        conflict = ScheduleConflict(ROOM_SCOPE, existing)

    logger.info(
        f"Conflicto de horario ({conflict.scope}) con la clase {existing.id} "
        f"para el intervalo {start.isoformat()} (+{duration_minutes} min)"
    )
    raise conflict.to_error()
