from sqlalchemy import Column, Integer, String, Text, Enum, CheckConstraint, Index
from sqlalchemy.orm import relationship
import enum

from class_service.core.timezone_utils import utc_now
from class_service.db.base_class import Base
from class_service.db.types import UTCDateTime


class ClassStatus(str, enum.Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


def enum_values(enum_cls):
    """Guarda en la columna el valor del enum ("active") en lugar del nombre."""
    return [member.value for member in enum_cls]


def normalize_room_key(room: str) -> str:
    """
    Clave canónica de una sala para detectar conflictos.

    "Sala  A", " sala a " y "SALA A" son la misma sala.
    """
    return " ".join(room.split()).casefold()


class GymClass(Base):
    """Clase programada: un monitor, una sala y un intervalo de tiempo concreto"""

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=False, default="")
    monitor_id = Column(String(64), nullable=False, index=True)
    monitor_name = Column(String(200), nullable=False)
    schedule = Column(UTCDateTime, nullable=False, index=True)  # Inicio en UTC
    duration = Column(Integer, nullable=False)  # Minutos
    end_time = Column(UTCDateTime, nullable=False, index=True)  # schedule + duration
    room = Column(String(100), nullable=False)
    room_key = Column(String(100), nullable=False, index=True)
    max_participants = Column(Integer, nullable=False)
    current_participants = Column(Integer, nullable=False, default=0)
    status = Column(
        Enum(ClassStatus, name="class_status", values_callable=enum_values, native_enum=False, length=20),
        nullable=False,
        default=ClassStatus.ACTIVE,
        index=True,
    )

    # Campos de auditoría
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now)

    bookings = relationship("Booking", back_populates="gym_class", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("duration >= 15 AND duration <= 180", name="check_class_duration"),
        CheckConstraint("max_participants >= 1 AND max_participants <= 50", name="check_class_max_participants"),
        CheckConstraint(
            "current_participants >= 0 AND current_participants <= max_participants",
            name="check_class_capacity",
        ),
        Index("ix_gym_class_monitor_schedule", "monitor_id", "schedule"),
        Index("ix_gym_class_room_schedule", "room_key", "schedule"),
    )

    @property
    def available_spots(self) -> int:
        return max(self.max_participants - self.current_participants, 0)

    def __repr__(self) -> str:
        return f"<GymClass id={self.id} name={self.name!r} schedule={self.schedule} status={self.status}>"
