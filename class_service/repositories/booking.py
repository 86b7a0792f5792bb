"""
Repositorio async para reservas.
"""
from typing import List, Optional, Sequence
from datetime import datetime
import logging

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from class_service.models.booking import Booking, BookingStatus
from class_service.repositories.async_base import AsyncBaseRepository
from class_service.schemas.booking import BookingCreate

logger = logging.getLogger(__name__)


class AsyncBookingRepository(AsyncBaseRepository[Booking, BookingCreate, BookingCreate]):
    """
    Repositorio async para operaciones de reservas.
    """

    async def get_confirmed(
        self,
        db: AsyncSession,
        *,
        user_id: str,
        class_id: int
    ) -> Optional[Booking]:
        """Reserva confirmada de un usuario en una clase, si existe."""
        stmt = select(Booking).where(
            Booking.user_id == user_id,
            Booking.class_id == class_id,
            Booking.status == BookingStatus.CONFIRMED,
        )
        result = await db.execute(stmt)
        return result.scalars().first()

    async def count_confirmed_for_class(self, db: AsyncSession, *, class_id: int) -> int:
        stmt = select(func.count(Booking.id)).where(
            Booking.class_id == class_id,
            Booking.status == BookingStatus.CONFIRMED,
        )
        result = await db.execute(stmt)
        return result.scalar_one()

    async def list_for_user(
        self,
        db: AsyncSession,
        *,
        user_id: str,
        status: Optional[BookingStatus] = None
    ) -> List[Booking]:
        """
        Reservas de un usuario, más recientes primero, con su clase cargada.
        """
        stmt = (
            select(Booking)
            .options(selectinload(Booking.gym_class))
            .execution_options(populate_existing=True)
            .where(Booking.user_id == user_id)
        )
        if status is not None:
            stmt = stmt.where(Booking.status == status)
        stmt = stmt.order_by(Booking.booking_date.desc(), Booking.id.desc())

        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def list_for_class(
        self,
        db: AsyncSession,
        *,
        class_id: int,
        status: Optional[BookingStatus] = None
    ) -> List[Booking]:
        """Reservas de una clase, la más reciente primero."""
        stmt = (
            select(Booking)
            .where(Booking.class_id == class_id)
            .execution_options(populate_existing=True)
        )
        if status is not None:
            stmt = stmt.where(Booking.status == status)
        stmt = stmt.order_by(Booking.booking_date.desc(), Booking.id.desc())

        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def cancel_confirmed(self, db: AsyncSession, *, booking_id: int, now: datetime) -> bool:
        """
        Cancelar una reserva solo si sigue confirmada.

        Returns:
            True si la reserva pasó a CANCELLED
        """
        stmt = (
            update(Booking)
            .where(Booking.id == booking_id, Booking.status == BookingStatus.CONFIRMED)
            .values(status=BookingStatus.CANCELLED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.rowcount == 1

    async def cascade_confirmed(
        self,
        db: AsyncSession,
        *,
        class_ids: Sequence[int],
        to_status: BookingStatus,
        now: datetime
    ) -> int:
        """
        Pasar a ``to_status`` todas las reservas CONFIRMED de las clases indicadas.

        Returns:
            Número de reservas afectadas
        """
        if not class_ids:
            return 0
        stmt = (
            update(Booking)
            .where(Booking.class_id.in_(class_ids), Booking.status == BookingStatus.CONFIRMED)
            .values(status=to_status, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.rowcount

    async def delete_for_class(self, db: AsyncSession, *, class_id: int) -> int:
        """Eliminar todas las reservas de una clase. Devuelve cuántas se borraron."""
        stmt = (
            delete(Booking)
            .where(Booking.class_id == class_id)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.rowcount


async_booking_repository = AsyncBookingRepository(Booking)
