from class_service.repositories.gym_class import async_class_repository, AsyncClassRepository
from class_service.repositories.booking import async_booking_repository, AsyncBookingRepository
