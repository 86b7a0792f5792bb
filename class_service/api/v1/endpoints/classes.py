from typing import Any, List, Optional
from datetime import datetime
import logging

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from class_service.core.auth import get_current_user, require_roles
from class_service.core.deps import get_class_service
from class_service.db.session import get_async_db
from class_service.models.gym_class import ClassStatus
from class_service.schemas.gym_class import ClassCreate, ClassUpdate, GymClass as GymClassSchema
from class_service.schemas.user import AuthenticatedUser, UserRole
from class_service.services.class_lifecycle import ClassLifecycleService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=List[GymClassSchema])
async def list_classes(
    status_filter: Optional[ClassStatus] = Query(None, alias="status", description="Filter by class status"),
    monitor_id: Optional[str] = Query(None, description="Filter by monitor"),
    from_date: Optional[datetime] = Query(None, description="Classes starting at or after this instant"),
    to_date: Optional[datetime] = Query(None, description="Classes starting at or before this instant"),
    db: AsyncSession = Depends(get_async_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: ClassLifecycleService = Depends(get_class_service),
) -> Any:
    """
    List Classes

    Returns every class matching the optional filters, ordered by start time.
    Classes that already ended are marked as completed before listing.

    Permissions:
        - Any authenticated user.

    Returns:
        List[GymClassSchema]: Classes with `available_spots` and `is_bookable`.
    """
    return await service.list_classes(
        db, status=status_filter, monitor_id=monitor_id, from_date=from_date, to_date=to_date
    )


@router.get("/my-classes", response_model=List[GymClassSchema])
async def list_my_classes(
    db: AsyncSession = Depends(get_async_db),
    current_user: AuthenticatedUser = Depends(require_roles(UserRole.MONITOR, UserRole.ADMIN)),
    service: ClassLifecycleService = Depends(get_class_service),
) -> Any:
    """
    List the classes taught by the current monitor, ordered by start time.
    """
    return await service.list_monitor_classes(db, current_user.id)


@router.get("/{class_id}", response_model=GymClassSchema)
async def get_class(
    class_id: int = Path(..., description="ID of the class"),
    db: AsyncSession = Depends(get_async_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
    service: ClassLifecycleService = Depends(get_class_service),
) -> Any:
    """
    Get a single class.

    Raises:
        404 NOT_FOUND: The class does not exist.
    """
    return await service.get_class(db, class_id)


@router.post("", response_model=GymClassSchema, status_code=status.HTTP_201_CREATED)
async def create_class(
    class_in: ClassCreate,
    db: AsyncSession = Depends(get_async_db),
    current_user: AuthenticatedUser = Depends(require_roles(UserRole.MONITOR, UserRole.ADMIN)),
    service: ClassLifecycleService = Depends(get_class_service),
) -> Any:
    """
    Create a Class

    Creates an ACTIVE class owned by the current monitor. Admins may create a
    class on behalf of another monitor by sending `monitor_id` and `monitor_name`.

    Args:
        class_in (ClassCreate): name, description, schedule (ISO 8601), duration
            (15-180 minutes), max_participants (1-50) and room.

    Permissions:
        - monitor or admin.

    Returns:
        GymClassSchema: The created class.

    Raises:
        400 VALIDATION_ERROR: The schedule is not in the future.
        403 FORBIDDEN: Role not allowed.
        409 SCHEDULE_CONFLICT: The monitor or the room is already booked for an
            overlapping interval. `details` names the conflicting class and its window.
        422 VALIDATION_ERROR: Missing or out-of-range fields.
    """
    return await service.create_class(db, class_in, current_user)


@router.put("/{class_id}", response_model=GymClassSchema)
async def update_class(
    class_in: ClassUpdate,
    class_id: int = Path(..., description="ID of the class"),
    db: AsyncSession = Depends(get_async_db),
    current_user: AuthenticatedUser = Depends(require_roles(UserRole.MONITOR, UserRole.ADMIN)),
    service: ClassLifecycleService = Depends(get_class_service),
) -> Any:
    """
    Update a Class

    Partially updates an ACTIVE, future class. The final schedule, duration and
    room are re-checked for monitor and room conflicts, ignoring the class itself.

    Permissions:
        - The monitor of the class, or an admin.

    Raises:
        404 NOT_FOUND, 403 FORBIDDEN,
        409 INVALID_STATE: Class cancelled, completed or already started.
        409 SCHEDULE_CONFLICT, 409 CAPACITY_ERROR: max_participants below current participants.
    """
    return await service.update_class(db, class_id, class_in, current_user)


@router.put("/{class_id}/cancel", response_model=GymClassSchema)
async def cancel_class(
    class_id: int = Path(..., description="ID of the class"),
    db: AsyncSession = Depends(get_async_db),
    current_user: AuthenticatedUser = Depends(require_roles(UserRole.MONITOR, UserRole.ADMIN)),
    service: ClassLifecycleService = Depends(get_class_service),
) -> Any:
    """
    Cancel a Class

    Sets the class to CANCELLED and cancels every CONFIRMED booking for it.

    Permissions:
        - The monitor of the class, or an admin.

    Raises:
        404 NOT_FOUND, 403 FORBIDDEN,
        409 INVALID_STATE: The class is already cancelled or completed.
    """
    return await service.cancel_class(db, class_id, current_user)


@router.delete("/{class_id}", status_code=status.HTTP_200_OK)
async def delete_class(
    class_id: int = Path(..., description="ID of the class"),
    db: AsyncSession = Depends(get_async_db),
    current_user: AuthenticatedUser = Depends(require_roles(UserRole.ADMIN)),
    service: ClassLifecycleService = Depends(get_class_service),
) -> Any:
    """
    Delete a class and all of its bookings. Admin only.

    Raises:
        409 HAS_ACTIVE_BOOKINGS: The class still has CONFIRMED bookings; cancel it first.
    """
    await service.delete_class(db, class_id, current_user)
    return {"success": True, "message": "Clase eliminada exitosamente"}
