from class_service.models.gym_class import GymClass, ClassStatus, normalize_room_key
from class_service.models.booking import Booking, BookingStatus

__all__ = [
    "GymClass",
    "ClassStatus",
    "normalize_room_key",
    "Booking",
    "BookingStatus",
]
