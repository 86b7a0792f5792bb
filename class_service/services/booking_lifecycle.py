"""
Servicio async del ciclo de vida de las reservas.

La inserción de la reserva y la ocupación de la plaza forman una sola
transacción: si el UPDATE condicional del contador no afecta a ninguna fila,
la reserva se deshace. Así el aforo nunca se supera aunque lleguen varias
reservas a la vez.
"""
from typing import Callable, List, Optional
from datetime import datetime, timedelta
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from class_service.core.config import get_settings
from class_service.core.exceptions import (
    AlreadyCancelledError,
    ClassFullError,
    DuplicateBookingError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    PastClassError,
    SubscriptionRequiredError,
    TooLateError,
)
from class_service.core.schedule_lock import class_lock_key, schedule_guard
from class_service.core.timezone_utils import utc_now
from class_service.models.booking import Booking, BookingStatus
from class_service.models.gym_class import GymClass, ClassStatus
from class_service.repositories.booking import async_booking_repository
from class_service.repositories.gym_class import async_class_repository
from class_service.schemas.booking import ClassBooking, ClassBookingsResponse
from class_service.schemas.gym_class import ClassInfo
from class_service.schemas.user import AuthenticatedUser, UserRole
from class_service.services.class_lifecycle import ClassLifecycleService, class_service
from class_service.services.subscription_client import SubscriptionClient, subscription_client
from class_service.services.user_directory import UserDirectoryClient, user_directory_client

logger = logging.getLogger(__name__)


class BookingLifecycleService:
    """
    Crear y cancelar reservas, y listarlas.

    Args:
        subscriptions: Cliente del servicio de pagos
        user_directory: Cliente del directorio de usuarios (emails)
        classes: Servicio de clases, usado para el barrido de completadas
        clock: Función que devuelve el instante actual (UTC aware)
        cancellation_cutoff: Antelación mínima para cancelar; por defecto BOOKING_CANCELLATION_CUTOFF_MINUTES
    """

    def __init__(
        self,
        subscriptions: SubscriptionClient = subscription_client,
        user_directory: UserDirectoryClient = user_directory_client,
        classes: ClassLifecycleService = class_service,
        clock: Callable[[], datetime] = utc_now,
        cancellation_cutoff: Optional[timedelta] = None
    ):
        self.subscriptions = subscriptions
        self.user_directory = user_directory
        self.classes = classes
        self.clock = clock
        if cancellation_cutoff is None:
            cancellation_cutoff = timedelta(minutes=get_settings().BOOKING_CANCELLATION_CUTOFF_MINUTES)
        self.cancellation_cutoff = cancellation_cutoff

    def _ensure_bookable(self, gym_class: GymClass, now: datetime) -> None:
        if gym_class.status != ClassStatus.ACTIVE:
            raise InvalidStateError(
                f"No se puede reservar una clase en estado {gym_class.status.value}"
            )
        if gym_class.schedule <= now:
            raise PastClassError()
        if gym_class.current_participants >= gym_class.max_participants:
            raise ClassFullError(
                details={
                    "class_id": gym_class.id,
                    "max_participants": gym_class.max_participants,
                }
            )

    async def create_booking(
        self,
        db: AsyncSession,
        class_id: int,
        actor: AuthenticatedUser
    ) -> Booking:
        """
        Reservar una plaza en una clase.

        Args:
            db: Sesión async de base de datos
            class_id: ID de la clase
            actor: Socio que reserva (su token se usa para consultar la suscripción)

        Returns:
            La reserva CONFIRMED creada

        Raises:
            ForbiddenError: El actor no es socio
            NotFoundError: La clase no existe
            InvalidStateError: La clase está cancelada o completada
            PastClassError: La clase ya empezó
            ClassFullError: No quedan plazas
            SubscriptionRequiredError: El socio no tiene suscripción activa
            ServiceUnavailableError: El servicio de pagos no responde
            DuplicateBookingError: Ya tiene una reserva confirmada en la clase
        """
        if actor.role != UserRole.SOCIO:
            raise ForbiddenError("Solo los socios pueden reservar clases")

        gym_class = await async_class_repository.get(db, class_id)
        if not gym_class:
            raise NotFoundError("Clase no encontrada")
        self._ensure_bookable(gym_class, self.clock())

        if not await self.subscriptions.has_active_subscription(actor.token):
            logger.info(f"Reserva denegada a {actor.id}: sin suscripción activa")
            raise SubscriptionRequiredError()

        async with schedule_guard(db, [class_lock_key(class_id)]):
            try:
                existing = await async_booking_repository.get_confirmed(
                    db, user_id=actor.id, class_id=class_id
                )
                if existing:
                    raise DuplicateBookingError(details={"booking_id": existing.id})

                now = self.clock()
                try:
                    booking = await async_booking_repository.create(
                        db,
                        obj_in={
                            "user_id": actor.id,
                            "user_name": actor.name,
                            "class_id": class_id,
                            "class_name": gym_class.name,
                            "booking_date": now,
                            "status": BookingStatus.CONFIRMED,
                        },
                    )
                except IntegrityError as e:
                    # Otra reserva confirmada del mismo usuario ganó la carrera
                    raise DuplicateBookingError() from e

                if not await async_class_repository.increment_participants(db, class_id=class_id, now=now):
                    await db.rollback()
                    refreshed = await async_class_repository.get(db, class_id)
                    if not refreshed:
                        raise NotFoundError("Clase no encontrada")
                    self._ensure_bookable(refreshed, now)
                    # Sin motivo visible: la plaza se ocupó entre la lectura y el UPDATE
                    raise ClassFullError(details={"class_id": class_id})

                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info(f"Reserva {booking.id} creada: usuario {actor.id} en clase {class_id}")
        return booking

    async def cancel_booking(
        self,
        db: AsyncSession,
        booking_id: int,
        actor: AuthenticatedUser
    ) -> Booking:
        """
        Cancelar una reserva propia con al menos la antelación mínima.

        Raises:
            NotFoundError: La reserva no existe
            ForbiddenError: La reserva es de otro usuario
            AlreadyCancelledError: La reserva no está CONFIRMED
            TooLateError: Falta menos que la antelación mínima para la clase
        """
        booking = await async_booking_repository.get(db, booking_id)
        if not booking:
            raise NotFoundError("Reserva no encontrada")
        if booking.user_id != actor.id:
            raise ForbiddenError("No puedes cancelar la reserva de otro usuario")
        if booking.status != BookingStatus.CONFIRMED:
            raise AlreadyCancelledError(
                f"La reserva no está activa (estado {booking.status.value})"
            )

        gym_class = await async_class_repository.get(db, booking.class_id)
        if not gym_class:
            raise NotFoundError("Clase no encontrada")

        now = self.clock()
        if now > gym_class.schedule - self.cancellation_cutoff:
            minutes = int(self.cancellation_cutoff.total_seconds() // 60)
            raise TooLateError(
                f"No se puede cancelar una reserva con menos de {minutes} minutos de antelación",
                details={"class_schedule": gym_class.schedule, "cutoff_minutes": minutes},
            )

        async with schedule_guard(db, [class_lock_key(gym_class.id)]):
            try:
                if not await async_booking_repository.cancel_confirmed(db, booking_id=booking_id, now=now):
                    raise AlreadyCancelledError()
                await async_class_repository.decrement_participants(db, class_id=gym_class.id, now=now)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        await db.refresh(booking)
        logger.info(f"Reserva {booking_id} cancelada por {actor.id}")
        return booking

    async def list_my_bookings(
        self,
        db: AsyncSession,
        actor: AuthenticatedUser,
        status: Optional[BookingStatus] = None
    ) -> List[Booking]:
        await self.classes.mark_completed_classes(db)
        return await async_booking_repository.list_for_user(db, user_id=actor.id, status=status)

    async def list_class_bookings(
        self,
        db: AsyncSession,
        class_id: int,
        actor: AuthenticatedUser,
        status: Optional[BookingStatus] = None
    ) -> ClassBookingsResponse:
        """
        Reservas de una clase con el email de cada socio.

        Solo el monitor de la clase o un admin. El email sale del directorio
        de usuarios; si no está disponible se muestra "-".
        """
        gym_class = await self.classes.get_class(db, class_id)
        if not actor.is_admin and not (
            actor.role == UserRole.MONITOR and gym_class.monitor_id == actor.id
        ):
            raise ForbiddenError("Solo el monitor de la clase o un administrador pueden ver sus reservas")

        bookings = await async_booking_repository.list_for_class(db, class_id=class_id, status=status)
        email_map = await self.user_directory.get_email_map(actor.token) if bookings else {}

        entries = [
            ClassBooking.model_validate(booking).model_copy(
                update={"user_email": email_map.get(booking.user_id, "-")}
            )
            for booking in bookings
        ]
        return ClassBookingsResponse(
            class_info=ClassInfo.model_validate(gym_class),
            bookings=entries,
            count=len(entries),
        )

    async def list_all_bookings(
        self,
        db: AsyncSession,
        actor: AuthenticatedUser,
        *,
        status: Optional[BookingStatus] = None,
        user_id: Optional[str] = None,
        class_id: Optional[int] = None
    ) -> List[Booking]:
        if not actor.is_admin:
            raise ForbiddenError("Solo un administrador puede ver todas las reservas")
        await self.classes.mark_completed_classes(db)
        return await async_booking_repository.get_multi(
            db,
            filters={"status": status, "user_id": user_id, "class_id": class_id},
            order_by=[Booking.booking_date.desc(), Booking.id.desc()],
        )


booking_service = BookingLifecycleService()
