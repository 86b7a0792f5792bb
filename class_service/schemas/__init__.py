from class_service.schemas.gym_class import ClassCreate, ClassUpdate, ClassInfo, GymClass
from class_service.schemas.booking import (
    BookingCreate,
    Booking,
    BookingWithClass,
    ClassBooking,
    ClassBookingsResponse,
)
from class_service.schemas.user import AuthenticatedUser, UserRole
