from typing import Any, List, Optional
import logging

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from class_service.core.auth import get_current_user, require_roles
from class_service.core.deps import get_booking_service
from class_service.db.session import get_async_db
from class_service.models.booking import BookingStatus
from class_service.schemas.booking import (
    Booking as BookingSchema,
    BookingCreate,
    BookingWithClass,
    ClassBookingsResponse,
)
from class_service.schemas.gym_class import ClassInfo
from class_service.schemas.user import AuthenticatedUser, UserRole
from class_service.services.booking_lifecycle import BookingLifecycleService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=BookingSchema, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_in: BookingCreate,
    db: AsyncSession = Depends(get_async_db),
    current_user: AuthenticatedUser = Depends(require_roles(UserRole.SOCIO)),
    service: BookingLifecycleService = Depends(get_booking_service),
) -> Any:
    """
    Book a Class

    Books one spot in an ACTIVE, future class for the current member. The
    member's subscription is checked against the payment service first; if
    that service cannot be reached the booking is refused.

    Args:
        booking_in (BookingCreate): `class_id` of the class to book.

    Permissions:
        - socio.

    Returns:
        BookingSchema: The CONFIRMED booking.

    Raises:
        404 NOT_FOUND: The class does not exist.
        409 INVALID_STATE / PAST_CLASS: Class cancelled, completed or already started.
        409 CLASS_FULL: No spots left.
        409 DUPLICATE_BOOKING: The member already holds a confirmed booking for the class.
        403 SUBSCRIPTION_REQUIRED: No active subscription.
        503 SERVICE_UNAVAILABLE: The payment service did not answer.
    """
    return await service.create_booking(db, booking_in.class_id, current_user)


@router.get("/my-bookings", response_model=List[BookingWithClass])
async def list_my_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_async_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: BookingLifecycleService = Depends(get_booking_service),
) -> Any:
    """
    List the current user's bookings, newest first, each with its class.
    """
    bookings = await service.list_my_bookings(db, current_user, status_filter)
    return [
        BookingWithClass.model_validate(booking).model_copy(
            update={
                "class_info": ClassInfo.model_validate(booking.gym_class) if booking.gym_class else None
            }
        )
        for booking in bookings
    ]


@router.put("/{booking_id}/cancel", response_model=BookingSchema)
async def cancel_booking(
    booking_id: int = Path(..., description="ID of the booking"),
    db: AsyncSession = Depends(get_async_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: BookingLifecycleService = Depends(get_booking_service),
) -> Any:
    """
    Cancel a Booking

    Only the owner can cancel, and only up to the cancellation cutoff
    (one hour by default) before the class starts.

    Raises:
        404 NOT_FOUND, 403 FORBIDDEN,
        409 ALREADY_CANCELLED: The booking is not confirmed.
        409 TOO_LATE: The class starts within the cutoff.
    """
    return await service.cancel_booking(db, booking_id, current_user)


@router.get("/class/{class_id}", response_model=ClassBookingsResponse)
async def list_class_bookings(
    class_id: int = Path(..., description="ID of the class"),
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_async_db),
    current_user: AuthenticatedUser = Depends(require_roles(UserRole.MONITOR, UserRole.ADMIN)),
    service: BookingLifecycleService = Depends(get_booking_service),
) -> Any:
    """
    List the bookings of a class with each member's email.

    Permissions:
        - The monitor of the class, or an admin.
    """
    return await service.list_class_bookings(db, class_id, current_user, status_filter)


@router.get("", response_model=List[BookingSchema])
async def list_all_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    user_id: Optional[str] = Query(None),
    class_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_async_db),
    current_user: AuthenticatedUser = Depends(require_roles(UserRole.ADMIN)),
    service: BookingLifecycleService = Depends(get_booking_service),
) -> Any:
    """List every booking (admin only), newest first."""
    return await service.list_all_bookings(
        db, current_user, status=status_filter, user_id=user_id, class_id=class_id
    )
