"""
Repositorio async para clases programadas.

Toda escritura sobre ``current_participants`` y ``status`` se hace con
UPDATEs condicionales de una sola sentencia: el predicado WHERE es el que
garantiza el invariante, no una lectura previa.
"""
from typing import List, Optional, Sequence
from datetime import datetime
import logging

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from class_service.models.gym_class import GymClass, ClassStatus
from class_service.repositories.async_base import AsyncBaseRepository
from class_service.schemas.gym_class import ClassCreate, ClassUpdate

logger = logging.getLogger(__name__)


class AsyncClassRepository(AsyncBaseRepository[GymClass, ClassCreate, ClassUpdate]):
    """
    Repositorio async para operaciones de clases.
    """

    async def get_schedule_candidates(
        self,
        db: AsyncSession,
        *,
        monitor_id: Optional[str] = None,
        room_key: Optional[str] = None,
        exclude_class_id: Optional[int] = None,
        ending_after: Optional[datetime] = None
    ) -> List[GymClass]:
        """
        Clases no canceladas del mismo monitor o de la misma sala.

        Args:
            db: Sesión async de base de datos
            monitor_id: Ámbito por monitor
            room_key: Ámbito por sala (clave canónica)
            exclude_class_id: Clase a excluir (la propia clase en una actualización)
            ending_after: Descarta las clases que terminan antes de este instante

        Returns:
            Lista de clases candidatas ordenadas por inicio

        Note:
            Debe indicarse exactamente uno de monitor_id o room_key.
        """
        if (monitor_id is None) == (room_key is None):
            raise ValueError("Debe indicarse exactamente uno de monitor_id o room_key")

        stmt = (
            select(GymClass)
            .where(GymClass.status != ClassStatus.CANCELLED)
            .execution_options(populate_existing=True)
        )
        if monitor_id is not None:
            stmt = stmt.where(GymClass.monitor_id == monitor_id)
        else:
            stmt = stmt.where(GymClass.room_key == room_key)
        if exclude_class_id is not None:
            stmt = stmt.where(GymClass.id != exclude_class_id)
        if ending_after is not None:
            stmt = stmt.where(GymClass.end_time > ending_after)

        result = await db.execute(stmt.order_by(GymClass.schedule))
        return list(result.scalars().all())

    async def list_classes(
        self,
        db: AsyncSession,
        *,
        status: Optional[ClassStatus] = None,
        monitor_id: Optional[str] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None
    ) -> List[GymClass]:
        """
        Listar clases con filtros opcionales, ordenadas por fecha de inicio.
        """
        stmt = select(GymClass).execution_options(populate_existing=True)
        if status is not None:
            stmt = stmt.where(GymClass.status == status)
        if monitor_id is not None:
            stmt = stmt.where(GymClass.monitor_id == monitor_id)
        if from_date is not None:
            stmt = stmt.where(GymClass.schedule >= from_date)
        if to_date is not None:
            stmt = stmt.where(GymClass.schedule <= to_date)

        result = await db.execute(stmt.order_by(GymClass.schedule, GymClass.id))
        return list(result.scalars().all())

    async def increment_participants(self, db: AsyncSession, *, class_id: int, now: datetime) -> bool:
        """
        Ocupar una plaza solo si la clase sigue activa, en el futuro y con hueco.

        Returns:
            True si se ocupó la plaza, False si alguna condición no se cumple
        """
        stmt = (
            update(GymClass)
            .where(
                GymClass.id == class_id,
                GymClass.status == ClassStatus.ACTIVE,
                GymClass.schedule > now,
                GymClass.current_participants < GymClass.max_participants,
            )
            .values(current_participants=GymClass.current_participants + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.rowcount == 1

    async def decrement_participants(self, db: AsyncSession, *, class_id: int, now: datetime) -> None:
        """Liberar una plaza; el contador nunca baja de 0."""
        stmt = (
            update(GymClass)
            .where(GymClass.id == class_id)
            .values(
                current_participants=case(
                    (GymClass.current_participants > 0, GymClass.current_participants - 1),
                    else_=0,
                ),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await db.execute(stmt)

    async def transition_status(
        self,
        db: AsyncSession,
        *,
        class_ids: Sequence[int],
        from_status: ClassStatus,
        to_status: ClassStatus,
        now: datetime
    ) -> int:
        """
        Cambiar de estado las clases que siguen en ``from_status``.

        Returns:
            Número de clases que cambiaron de estado
        """
        if not class_ids:
            return 0
        stmt = (
            update(GymClass)
            .where(GymClass.id.in_(class_ids), GymClass.status == from_status)
            .values(status=to_status, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.rowcount

    async def get_past_due_ids(self, db: AsyncSession, *, now: datetime) -> List[int]:
        """IDs de clases activas que ya terminaron (end_time < now)."""
        stmt = select(GymClass.id).where(
            GymClass.status == ClassStatus.ACTIVE,
            GymClass.end_time < now,
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())


async_class_repository = AsyncClassRepository(GymClass)
