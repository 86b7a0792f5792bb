from fastapi import APIRouter

from class_service.api.v1.endpoints import bookings, classes

api_router = APIRouter()

# Clases programadas
api_router.include_router(classes.router, prefix="/classes", tags=["classes"])

# Reservas
api_router.include_router(bookings.router, prefix="/bookings", tags=["bookings"])
