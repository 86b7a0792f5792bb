"""
Servicio async del ciclo de vida de las clases.

Estados: ACTIVE -> CANCELLED (explícito) y ACTIVE -> COMPLETED (al terminar la
clase). Ambos son terminales. Las transiciones de clase arrastran siempre a
sus reservas CONFIRMED en la misma transacción.
"""
from typing import Callable, List, Optional
from datetime import datetime
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from class_service.core.exceptions import (
    CapacityError,
    ForbiddenError,
    HasActiveBookingsError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from class_service.core.schedule_lock import (
    class_lock_key,
    monitor_lock_key,
    room_lock_key,
    schedule_guard,
)
from class_service.core.timezone_utils import class_end_time, normalize_to_utc, utc_now
from class_service.models.booking import BookingStatus
from class_service.models.gym_class import GymClass, ClassStatus, normalize_room_key
from class_service.repositories.booking import async_booking_repository
from class_service.repositories.gym_class import async_class_repository
from class_service.schemas.gym_class import ClassCreate, ClassUpdate
from class_service.schemas.user import AuthenticatedUser, UserRole
from class_service.services.conflict_detector import check_schedule_conflicts

logger = logging.getLogger(__name__)


class ClassLifecycleService:
    """
    Crear, actualizar, cancelar, eliminar y completar clases.

    Args:
        clock: Función que devuelve el instante actual (UTC aware)
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self.clock = clock

    # --- Lecturas ---

    async def get_class(self, db: AsyncSession, class_id: int) -> GymClass:
        await self.mark_completed_classes(db)
        gym_class = await async_class_repository.get(db, class_id)
        if not gym_class:
            raise NotFoundError("Clase no encontrada")
        return gym_class

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
        Listar clases ordenadas por inicio, tras ejecutar el barrido de completadas.

        Note:
            Las fechas sin zona horaria se interpretan en la hora del gimnasio.
        """
        await self.mark_completed_classes(db)
        return await async_class_repository.list_classes(
            db,
            status=status,
            monitor_id=monitor_id,
            from_date=normalize_to_utc(from_date),
            to_date=normalize_to_utc(to_date),
        )

    async def list_monitor_classes(self, db: AsyncSession, monitor_id: str) -> List[GymClass]:
        await self.mark_completed_classes(db)
        return await async_class_repository.list_classes(db, monitor_id=monitor_id)

    # --- Escrituras ---

    def _ensure_can_manage(self, gym_class: GymClass, actor: AuthenticatedUser) -> None:
        if actor.is_admin:
            return
        if actor.role != UserRole.MONITOR or gym_class.monitor_id != actor.id:
            raise ForbiddenError("No tienes permisos para gestionar esta clase")

    def _ensure_future(self, schedule: datetime, now: datetime) -> None:
        if schedule <= now:
            raise ValidationError(
                "La fecha de la clase debe ser en el futuro",
                details={"field": "schedule"},
            )

    async def create_class(
        self,
        db: AsyncSession,
        class_in: ClassCreate,
        actor: AuthenticatedUser
    ) -> GymClass:
        """
        Crear una clase ACTIVE sin participantes.

        Args:
            db: Sesión async de base de datos
            class_in: Datos de la clase
            actor: Monitor o admin que crea la clase

        Returns:
            La clase creada

        Raises:
            ForbiddenError: El actor no es monitor/admin, o un monitor intenta crear para otro
            ValidationError: La fecha no es futura
            ScheduleConflictError: El monitor o la sala ya están ocupados en ese intervalo
        """
        if actor.role not in (UserRole.MONITOR, UserRole.ADMIN):
            raise ForbiddenError("Solo monitores y administradores pueden crear clases")

        monitor_id, monitor_name = actor.id, actor.name
        if class_in.monitor_id and class_in.monitor_id != actor.id:
            if not actor.is_admin:
                raise ForbiddenError("Solo un administrador puede crear clases para otro monitor")
            if not class_in.monitor_name:
                raise ValidationError(
                    "monitor_name es obligatorio al crear una clase para otro monitor",
                    details={"field": "monitor_name"},
                )
            monitor_id, monitor_name = class_in.monitor_id, class_in.monitor_name

        now = self.clock()
        schedule = normalize_to_utc(class_in.schedule)
        self._ensure_future(schedule, now)
        room_key = normalize_room_key(class_in.room)

        async with schedule_guard(db, [monitor_lock_key(monitor_id), room_lock_key(room_key)]):
            try:
                await check_schedule_conflicts(
                    db,
                    monitor_id=monitor_id,
                    room=class_in.room,
                    start=schedule,
                    duration_minutes=class_in.duration,
                )
                gym_class = await async_class_repository.create(
                    db,
                    obj_in={
                        "name": class_in.name,
                        "description": class_in.description,
                        "monitor_id": monitor_id,
                        "monitor_name": monitor_name,
                        "schedule": schedule,
                        "duration": class_in.duration,
                        "end_time": class_end_time(schedule, class_in.duration),
                        "room": class_in.room,
                        "room_key": room_key,
                        "max_participants": class_in.max_participants,
                        "current_participants": 0,
                        "status": ClassStatus.ACTIVE,
                    },
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info(
            f"Clase {gym_class.id} '{gym_class.name}' creada por {actor.id} "
            f"(monitor {monitor_id}, sala '{gym_class.room}', {schedule.isoformat()})"
        )
        return gym_class

    async def update_class(
        self,
        db: AsyncSession,
        class_id: int,
        class_in: ClassUpdate,
        actor: AuthenticatedUser
    ) -> GymClass:
        """
        Actualizar una clase activa y futura.

        Se calcula el horario final combinando los campos nuevos con los
        actuales y se vuelven a comprobar los conflictos de monitor y sala
        excluyendo la propia clase.

        Raises:
            NotFoundError, ForbiddenError, InvalidStateError, ValidationError,
            ScheduleConflictError, CapacityError
        """
        gym_class = await async_class_repository.get(db, class_id)
        if not gym_class:
            raise NotFoundError("Clase no encontrada")
        self._ensure_can_manage(gym_class, actor)

        room_keys = [room_lock_key(gym_class.room_key)]
        if class_in.room is not None:
            room_keys.append(room_lock_key(normalize_room_key(class_in.room)))
        keys = [monitor_lock_key(gym_class.monitor_id), class_lock_key(class_id), *room_keys]

        async with schedule_guard(db, keys):
            try:
                # Releer bajo el lock: otra escritura pudo cambiar la clase
                await db.refresh(gym_class)
                now = self.clock()
                if gym_class.status != ClassStatus.ACTIVE:
                    raise InvalidStateError(
                        f"No se puede modificar una clase en estado {gym_class.status.value}"
                    )
                if gym_class.schedule <= now:
                    raise InvalidStateError("No se puede modificar una clase que ya ha comenzado")

                changes = class_in.model_dump(exclude_unset=True)
                for field in ("name", "duration", "max_participants", "room", "schedule"):
                    if field in changes and changes[field] is None:
                        raise ValidationError(f"{field} no puede ser nulo", details={"field": field})
                if "description" in changes and changes["description"] is None:
                    changes["description"] = ""

                schedule = gym_class.schedule
                if "schedule" in changes:
                    schedule = normalize_to_utc(changes["schedule"])
                    if schedule != gym_class.schedule:
                        self._ensure_future(schedule, now)
                    changes["schedule"] = schedule
                duration = changes.get("duration", gym_class.duration)
                room = changes.get("room", gym_class.room)

                max_participants = changes.get("max_participants", gym_class.max_participants)
                if max_participants < gym_class.current_participants:
                    raise CapacityError(
                        f"No se puede reducir el aforo a {max_participants}: "
                        f"ya hay {gym_class.current_participants} participantes",
                        details={
                            "max_participants": max_participants,
                            "current_participants": gym_class.current_participants,
                        },
                    )

                await check_schedule_conflicts(
                    db,
                    monitor_id=gym_class.monitor_id,
                    room=room,
                    start=schedule,
                    duration_minutes=duration,
                    exclude_class_id=gym_class.id,
                )

                changes["end_time"] = class_end_time(schedule, duration)
                changes["room_key"] = normalize_room_key(room)
                gym_class = await async_class_repository.update(db, db_obj=gym_class, obj_in=changes)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info(f"Clase {gym_class.id} actualizada por {actor.id}: {sorted(class_in.model_fields_set)}")
        return gym_class

    async def cancel_class(
        self,
        db: AsyncSession,
        class_id: int,
        actor: AuthenticatedUser
    ) -> GymClass:
        """
        Cancelar una clase y todas sus reservas confirmadas.

        Raises:
            NotFoundError: La clase no existe
            ForbiddenError: El actor no es el monitor de la clase ni admin
            InvalidStateError: La clase ya está cancelada o completada
        """
        # Una clase ya terminada se completa antes de intentar cancelarla
        await self.mark_completed_classes(db)

        gym_class = await async_class_repository.get(db, class_id)
        if not gym_class:
            raise NotFoundError("Clase no encontrada")
        self._ensure_can_manage(gym_class, actor)

        async with schedule_guard(db, [class_lock_key(class_id)]):
            try:
                now = self.clock()
                changed = await async_class_repository.transition_status(
                    db,
                    class_ids=[class_id],
                    from_status=ClassStatus.ACTIVE,
                    to_status=ClassStatus.CANCELLED,
                    now=now,
                )
                if not changed:
                    await db.refresh(gym_class)
                    raise InvalidStateError(
                        f"No se puede cancelar una clase en estado {gym_class.status.value}"
                    )
                cancelled_bookings = await async_booking_repository.cascade_confirmed(
                    db, class_ids=[class_id], to_status=BookingStatus.CANCELLED, now=now
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        await db.refresh(gym_class)
        logger.info(
            f"Clase {class_id} cancelada por {actor.id}; "
            f"{cancelled_bookings} reservas canceladas en cascada"
        )
        return gym_class

    async def delete_class(
        self,
        db: AsyncSession,
        class_id: int,
        actor: AuthenticatedUser
    ) -> None:
        """
        Eliminar una clase sin reservas confirmadas (solo admin).

        Se borran primero sus reservas y después la clase.

        Raises:
            ForbiddenError: El actor no es admin
            NotFoundError: La clase no existe
            HasActiveBookingsError: Quedan reservas CONFIRMED
        """
        if not actor.is_admin:
            raise ForbiddenError("Solo un administrador puede eliminar clases")

        gym_class = await async_class_repository.get(db, class_id)
        if not gym_class:
            raise NotFoundError("Clase no encontrada")

        async with schedule_guard(db, [class_lock_key(class_id)]):
            try:
                confirmed = await async_booking_repository.count_confirmed_for_class(db, class_id=class_id)
                if confirmed:
                    raise HasActiveBookingsError(
                        details={"class_id": class_id, "confirmed_bookings": confirmed}
                    )
                deleted_bookings = await async_booking_repository.delete_for_class(db, class_id=class_id)
                await async_class_repository.remove(db, db_obj=gym_class)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info(
            f"Clase {class_id} eliminada por {actor.id} junto con {deleted_bookings} reservas"
        )

    async def mark_completed_classes(self, db: AsyncSession) -> int:
        """
        Barrido de clases finalizadas.

        Pasa a COMPLETED toda clase ACTIVE cuyo fin (schedule + duration) ya
        pasó, y a COMPLETED sus reservas CONFIRMED. Es idempotente: una
        segunda ejecución no encuentra nada que cambiar.

        Returns:
            Número de clases completadas en esta ejecución
        """
        now = self.clock()
        try:
            class_ids = await async_class_repository.get_past_due_ids(db, now=now)
            if not class_ids:
                return 0
            completed = await async_class_repository.transition_status(
                db,
                class_ids=class_ids,
                from_status=ClassStatus.ACTIVE,
                to_status=ClassStatus.COMPLETED,
                now=now,
            )
            completed_bookings = await async_booking_repository.cascade_confirmed(
                db, class_ids=class_ids, to_status=BookingStatus.COMPLETED, now=now
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            f"Barrido de clases finalizadas: {completed} clases y "
            f"{completed_bookings} reservas pasadas a COMPLETED"
        )
        return completed


class_service = ClassLifecycleService()
