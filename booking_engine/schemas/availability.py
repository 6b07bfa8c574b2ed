# booking_engine/schemas/availability.py
"""
Availability request schemas.

Slot values are deliberately loose (``Any``): clients send booleans,
1/0, words and nested objects, and AvailabilityService normalizes them.
"""

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, Field

from ._strict_base import StrictModel, StrictRequestModel


class AvailabilitySetRequest(StrictRequestModel):
    updates: List[Dict[str, Any]] = Field(
        ...,
        min_length=1,
        description="Items of {date, slots} or {date, time_slot, is_available}",
    )


class AvailabilityDeleteRecord(StrictRequestModel):
    date: str
    time_slots: Optional[List[str]] = Field(
        None, validation_alias=AliasChoices("time_slots", "timeSlots")
    )


class AvailabilityDeleteRequest(StrictRequestModel):
    start_date: Optional[str] = Field(
        None, validation_alias=AliasChoices("start_date", "startDate")
    )
    end_date: Optional[str] = Field(None, validation_alias=AliasChoices("end_date", "endDate"))
    time_slots: Optional[List[str]] = Field(
        None, validation_alias=AliasChoices("time_slots", "timeSlots")
    )
    records: Optional[List[AvailabilityDeleteRecord]] = None
    remove_all: bool = Field(False, validation_alias=AliasChoices("remove_all", "removeAll"))

    def to_selector(self) -> Dict[str, Any]:
        selector = self.model_dump(exclude_none=True)
        if self.records:
            selector["records"] = [record.model_dump(exclude_none=True) for record in self.records]
        return selector


class AvailabilityDay(StrictModel):
    date: str
    morning: bool
    afternoon: bool
    evening: bool


class AvailabilitySetResponse(StrictModel):
    inserted: int
    updated: int
    unchanged: int
    ignored: int


class AvailabilityDeleteResponse(StrictModel):
    updated: int
    deleted: int


class AvailablePerson(StrictModel):
    id: int
    name: Optional[str] = None
    status: Optional[int] = None

