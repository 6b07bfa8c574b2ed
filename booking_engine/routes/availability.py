# booking_engine/routes/availability.py
"""
Daily availability routes for teachers and students.

Endpoints:
    GET /teachers/available - Teachers free on a date and time window
    GET /students/available - Students free on a date and time window
    GET /{role}/{person_id} - Recorded days in a date range
    PUT /{role}/{person_id} - Upsert slot values
    DELETE /{role}/{person_id} - Clear slots or remove days
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from ..api.dependencies import get_availability_service
from ..core.enums import ParticipantRole
from ..database import get_db
from ..schemas.availability import (
    AvailabilityDay,
    AvailabilityDeleteRequest,
    AvailabilityDeleteResponse,
    AvailabilitySetRequest,
    AvailabilitySetResponse,
    AvailablePerson,
)
from ..services.availability_service import AvailabilityService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["availability"])


# Static routes first so "teachers"/"students" are not parsed as a role path


@router.get("/teachers/available", response_model=List[AvailablePerson])
def get_available_teachers(
    date: str = Query(..., description="YYYY-MM-DD"),
    time_slot: Optional[str] = Query(None, alias="timeSlot"),
    start_time: Optional[str] = Query(None, alias="startTime"),
    end_time: Optional[str] = Query(None, alias="endTime"),
    db: Session = Depends(get_db),
) -> List[AvailablePerson]:
    service = AvailabilityService(db, ParticipantRole.TEACHER)
    people = service.get_available_teachers(date, time_slot, start_time, end_time)
    return [AvailablePerson(**person) for person in people]


@router.get("/students/available", response_model=List[AvailablePerson])
def get_available_students(
    date: str = Query(..., description="YYYY-MM-DD"),
    time_slot: Optional[str] = Query(None, alias="timeSlot"),
    start_time: Optional[str] = Query(None, alias="startTime"),
    end_time: Optional[str] = Query(None, alias="endTime"),
    db: Session = Depends(get_db),
) -> List[AvailablePerson]:
    service = AvailabilityService(db, ParticipantRole.STUDENT)
    people = service.get_available_students(date, time_slot, start_time, end_time)
    return [AvailablePerson(**person) for person in people]


@router.get("/{role}/{person_id}", response_model=List[AvailabilityDay])
def get_availability(
    role: ParticipantRole,
    person_id: int,
    start_date: str = Query(..., alias="startDate"),
    end_date: str = Query(..., alias="endDate"),
    service: AvailabilityService = Depends(get_availability_service),
) -> List[AvailabilityDay]:
    return [AvailabilityDay(**day) for day in service.get_availability(person_id, start_date, end_date)]


@router.put("/{role}/{person_id}", response_model=AvailabilitySetResponse)
def set_availability(
    role: ParticipantRole,
    person_id: int,
    payload: AvailabilitySetRequest = Body(...),
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilitySetResponse:
    return AvailabilitySetResponse(**service.set_availability(person_id, payload.updates))


@router.delete("/{role}/{person_id}", response_model=AvailabilityDeleteResponse)
def delete_availability(
    role: ParticipantRole,
    person_id: int,
    payload: AvailabilityDeleteRequest = Body(...),
    service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityDeleteResponse:
    return AvailabilityDeleteResponse(**service.delete_availability(person_id, payload.to_selector()))
