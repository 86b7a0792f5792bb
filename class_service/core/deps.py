from class_service.services.booking_lifecycle import BookingLifecycleService, booking_service
from class_service.services.class_lifecycle import ClassLifecycleService, class_service


def get_class_service() -> ClassLifecycleService:
    return class_service


def get_booking_service() -> BookingLifecycleService:
    return booking_service
