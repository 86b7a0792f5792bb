"""
Errores de dominio del servicio de clases y reservas.

Cada error lleva un código estable (``code``) que el cliente puede usar para
decidir qué hacer, un mensaje legible y el status HTTP con el que se expone.
Ninguno se reintenta automáticamente: la decisión es siempre del llamante.
"""
from typing import Any, Dict, Optional
import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class ClassServiceError(Exception):
    """Base de todos los errores esperados (recuperables) del servicio."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "CLASS_SERVICE_ERROR"
    default_message: str = "Error en la operación solicitada"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "code": self.code,
            "message": self.message,
            "details": jsonable_encoder(self.details),
        }


class ValidationError(ClassServiceError):
    """Campo obligatorio ausente, mal formado o fuera de rango."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"
    default_message = "Datos de entrada inválidos"


class AuthenticationError(ClassServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "AUTHENTICATION_FAILED"
    default_message = "Token inválido o expirado"


class NotFoundError(ClassServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    default_message = "Recurso no encontrado"


class ForbiddenError(ClassServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
    default_message = "No tienes permisos para realizar esta acción"


class InvalidStateError(ClassServiceError):
    """La clase o reserva está en un estado que no admite la acción."""
    status_code = status.HTTP_409_CONFLICT
    code = "INVALID_STATE"
    default_message = "La operación no es válida en el estado actual"


class PastClassError(InvalidStateError):
    code = "PAST_CLASS"
    default_message = "No se puede reservar una clase que ya ha pasado"


class AlreadyCancelledError(InvalidStateError):
    code = "ALREADY_CANCELLED"
    default_message = "La reserva ya está cancelada"


class ScheduleConflictError(ClassServiceError):
    """Solapamiento de horario con otra clase del mismo monitor o de la misma sala."""
    status_code = status.HTTP_409_CONFLICT
    code = "SCHEDULE_CONFLICT"
    default_message = "Conflicto de horario con otra clase"


class CapacityError(ClassServiceError):
    status_code = status.HTTP_409_CONFLICT
    code = "CAPACITY_ERROR"
    default_message = "El aforo no permite la operación"


class ClassFullError(CapacityError):
    code = "CLASS_FULL"
    default_message = "La clase está completa. No hay cupos disponibles."


class DuplicateBookingError(ClassServiceError):
    status_code = status.HTTP_409_CONFLICT
    code = "DUPLICATE_BOOKING"
    default_message = "Ya tienes una reserva activa para esta clase"


class SubscriptionRequiredError(ClassServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "SUBSCRIPTION_REQUIRED"
    default_message = "Necesitas una suscripción activa para reservar clases"


class ServiceUnavailableError(ClassServiceError):
    """Un servicio colaborador no respondió (timeout, error de red o 5xx)."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "SERVICE_UNAVAILABLE"
    default_message = "Servicio externo no disponible. Por favor, intenta más tarde."


class TooLateError(ClassServiceError):
    status_code = status.HTTP_409_CONFLICT
    code = "TOO_LATE"
    default_message = "No se puede cancelar una reserva con menos de 1 hora de antelación"


class HasActiveBookingsError(ClassServiceError):
    status_code = status.HTTP_409_CONFLICT
    code = "HAS_ACTIVE_BOOKINGS"
    default_message = "La clase tiene reservas activas. Cancela la clase primero."


async def class_service_error_handler(request: Request, exc: ClassServiceError) -> JSONResponse:
    logger.info(
        f"{request.method} {request.url.path} -> {exc.code}: {exc.message}"
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "code": ValidationError.code,
            "message": "Datos de entrada inválidos",
            "details": {"errors": jsonable_encoder(exc.errors())},
        },
    )


async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(
        f"Error de base de datos en {request.method} {request.url.path}: {exc}",
        exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "code": "INTERNAL_ERROR",
            "message": "Error interno del servidor",
            "details": {},
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ClassServiceError, class_service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_error_handler)
