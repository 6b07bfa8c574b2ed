# booking_engine/routes/bookings.py
"""
Booking routes.

All business logic delegated to BookingService; domain exceptions are
rendered by the application's exception handlers.

Endpoints:
    POST / - Create a booking (scheduling path, conflicts always checked)
    POST /direct - Create a booking (administrative path, mode per settings)
    GET /{booking_id} - Booking details
    PATCH /{booking_id} - Partial update
    POST /{booking_id}/confirm - Confirm a pending booking
    POST /{booking_id}/cancel - Cancel a booking
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Header, Query, status

from ..api.dependencies import get_booking_service
from ..core.enums import BookingMode
from ..schemas.booking import BookingCreate, BookingCreateResponse, BookingUpdate
from ..services.booking_service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["bookings"])


@router.post(
    "",
    response_model=BookingCreateResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Invalid input or inactive participant"},
        404: {"description": "Teacher or student not found"},
        409: {"description": "Duplicate or overlapping booking"},
        422: {"description": "Rejected by a database constraint"},
    },
)
def create_booking(
    booking_data: BookingCreate = Body(...),
    created_by: Optional[int] = Header(None, alias="X-Operator-Id"),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingCreateResponse:
    """Create a booking for the first listed student; extra students are reported as skipped."""
    result = booking_service.create_booking(booking_data, created_by=created_by)
    return BookingCreateResponse(**result.to_dict())


@router.post(
    "/direct",
    response_model=BookingCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_direct_booking(
    booking_data: BookingCreate = Body(...),
    created_by: Optional[int] = Header(None, alias="X-Operator-Id"),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingCreateResponse:
    """Administrative booking; duplicate and overlap checks follow DIRECT_BOOKING_MODE."""
    result = booking_service.create_direct_booking(booking_data, created_by=created_by)
    return BookingCreateResponse(**result.to_dict())


@router.get("/{booking_id}")
def get_booking(
    booking_id: int,
    booking_service: BookingService = Depends(get_booking_service),
) -> Dict[str, Any]:
    return booking_service.get_booking(booking_id)


@router.patch("/{booking_id}")
def update_booking(
    booking_id: int,
    update_data: BookingUpdate = Body(...),
    direct: bool = Query(False, description="Apply the administrative booking mode"),
    booking_service: BookingService = Depends(get_booking_service),
) -> Dict[str, Any]:
    mode = booking_service.direct_booking_mode if direct else BookingMode.STRICT
    return booking_service.update_booking(booking_id, update_data, mode=mode)


@router.post("/{booking_id}/confirm")
def confirm_booking(
    booking_id: int,
    operator_teacher_id: Optional[int] = Header(None, alias="X-Teacher-Id"),
    booking_service: BookingService = Depends(get_booking_service),
) -> Dict[str, Any]:
    """Confirm a pending booking. A teacher may only confirm their own bookings."""
    return booking_service.confirm_booking(booking_id, operator_teacher_id=operator_teacher_id)


@router.post("/{booking_id}/cancel")
def cancel_booking(
    booking_id: int,
    booking_service: BookingService = Depends(get_booking_service),
) -> Dict[str, Any]:
    return booking_service.cancel_booking(booking_id)
