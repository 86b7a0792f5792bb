from sqlalchemy import Column, Integer, String, ForeignKey, Enum, Index, text
from sqlalchemy.orm import relationship
import enum

from class_service.core.timezone_utils import utc_now
from class_service.db.base_class import Base
from class_service.db.types import UTCDateTime
from class_service.models.gym_class import enum_values


class BookingStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class Booking(Base):
    """Reserva de un socio en una clase"""

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    user_name = Column(String(200), nullable=False)
    class_id = Column(Integer, ForeignKey("gym_class.id"), nullable=False, index=True)
    class_name = Column(String(100), nullable=False)  # Copia del nombre al reservar
    booking_date = Column(UTCDateTime, nullable=False, default=utc_now)
    status = Column(
        Enum(BookingStatus, name="booking_status", values_callable=enum_values, native_enum=False, length=20),
        nullable=False,
        default=BookingStatus.CONFIRMED,
        index=True,
    )

    # Campos de auditoría
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now)

    gym_class = relationship("GymClass", back_populates="bookings")

    __table_args__ = (
        # Como máximo una reserva confirmada por usuario y clase
        Index(
            "uq_booking_user_class_confirmed",
            "user_id",
            "class_id",
            unique=True,
            postgresql_where=text("status = 'confirmed'"),
            sqlite_where=text("status = 'confirmed'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Booking id={self.id} user_id={self.user_id!r} class_id={self.class_id} status={self.status}>"
