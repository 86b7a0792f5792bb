from typing import List, Optional
from datetime import datetime

from pydantic import BaseModel, Field

from class_service.models.booking import BookingStatus
from class_service.schemas.gym_class import ClassInfo


class BookingCreate(BaseModel):
    class_id: int = Field(..., gt=0)


class Booking(BaseModel):
    id: int
    user_id: str
    user_name: str
    class_id: int
    class_name: str
    booking_date: datetime
    status: BookingStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BookingWithClass(Booking):
    """Reserva con los datos actuales de su clase (si todavía existe)"""
    class_info: Optional[ClassInfo] = None


class ClassBooking(Booking):
    user_email: str = "-"


class ClassBookingsResponse(BaseModel):
    class_info: ClassInfo
    bookings: List[ClassBooking] = []
    count: int
