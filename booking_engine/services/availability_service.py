# booking_engine/services/availability_service.py
"""
Availability Service for the booking engine.

Daily availability for teachers and students, stored as one row per
person per date with a 1/0 flag for each of the morning, afternoon and
evening slots. Availability is advisory: booking writes never consult it,
only the discovery queries do.

Clients send slot values in many spellings (booleans, 1/0, English and
Chinese words, nested ``{"status": ...}`` objects); ``normalize_slot_value``
folds them to 1, 0 or None (ignored).
"""

from dataclasses import dataclass
from datetime import date, time
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..core.enums import ParticipantRole, TimeSlot
from ..core.exceptions import NotFoundException, ValidationException
from ..repositories import RepositoryFactory
from ..repositories.availability_repository import AvailabilityRepository
from ..schemas.booking import DATE_ONLY_REGEX, parse_hhmm
from .base import BaseService

logger = logging.getLogger(__name__)

TRUTHY_SLOT_VALUES = frozenset({"available", "true", "yes", "1", "enabled", "enable", "开放"})
FALSY_SLOT_VALUES = frozenset(
    {"unavailable", "false", "no", "0", "disabled", "disable", "not-set", "关闭"}
)

_SLOT_KEYS = ("time_slot", "timeSlot", "slot")
_VALUE_KEYS = ("is_available", "isAvailable", "available", "status")


@dataclass(frozen=True)
class PrunePolicy:
    """Whether rows whose slots are all 0 are deleted after a write."""

    prune_empty_rows: bool


PRUNE_POLICIES: Dict[ParticipantRole, PrunePolicy] = {
    ParticipantRole.TEACHER: PrunePolicy(prune_empty_rows=True),
    ParticipantRole.STUDENT: PrunePolicy(prune_empty_rows=False),
}


def normalize_slot_value(value: Any) -> Optional[int]:
    """
    Fold a client-supplied slot value to 1, 0 or None.

    None means the value was not recognized and must be ignored.
    """
    if isinstance(value, Mapping):
        for key in ("available", "status"):
            if key in value:
                return normalize_slot_value(value[key])
        return None
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, int):
        return value if value in (0, 1) else None
    if isinstance(value, str):
        token = value.strip().lower()
        if token in TRUTHY_SLOT_VALUES:
            return 1
        if token in FALSY_SLOT_VALUES:
            return 0
    return None


def parse_date_value(value: Any, field: str = "date") -> date:
    if isinstance(value, date):
        return value
    if isinstance(value, str) and DATE_ONLY_REGEX.fullmatch(value.strip()):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            pass
    raise ValidationException.for_field(field, f"Invalid date: {value!r}. Expected YYYY-MM-DD")


def parse_time_slot(value: Any, field: str = "time_slot") -> TimeSlot:
    if isinstance(value, TimeSlot):
        return value
    if isinstance(value, str):
        try:
            return TimeSlot(value.strip().lower())
        except ValueError:
            pass
    raise ValidationException.for_field(
        field, f"Invalid time slot: {value!r}. Allowed: morning, afternoon, evening"
    )


def _first_present(item: Mapping[str, Any], keys: Iterable[str]) -> Tuple[bool, Any]:
    for key in keys:
        if key in item:
            return True, item[key]
    return False, None


class AvailabilityService(BaseService):
    """
    Service layer for one role's daily availability.

    The role picks the table and the prune policy: teachers drop rows once
    every slot is 0, students keep them as an explicit "not available".
    """

    def __init__(
        self,
        db: Session,
        role: ParticipantRole,
        repository: Optional[AvailabilityRepository] = None,
    ):
        super().__init__(db)
        self.role = ParticipantRole(role)
        self.repository = repository or RepositoryFactory.create_availability_repository(
            db, self.role
        )
        self.policy = PRUNE_POLICIES[self.role]

    def _ensure_person(self, person_id: int) -> None:
        if not self.repository.person_exists(person_id):
            raise NotFoundException(
                f"{self.role.value.capitalize()} {person_id} not found",
                code=f"{self.role.value.upper()}_NOT_FOUND",
            )

    @BaseService.measure_operation("get_availability")
    def get_availability(self, person_id: int, start_date: Any, end_date: Any) -> List[Dict[str, Any]]:
        """Recorded days between the dates (inclusive); days without a row are omitted."""
        start = parse_date_value(start_date, "start_date")
        end = parse_date_value(end_date, "end_date")
        if end < start:
            raise ValidationException.for_field("end_date", "end_date must not be before start_date")
        return [row.to_dict() for row in self.repository.get_range(person_id, start, end)]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _collect_updates(
        self, updates: Sequence[Mapping[str, Any]]
    ) -> Tuple[Dict[date, Dict[TimeSlot, int]], int]:
        """Merge update items per date. Returns (slot values per date, ignored count)."""
        merged: Dict[date, Dict[TimeSlot, int]] = {}
        ignored = 0
        for item in updates:
            if not isinstance(item, Mapping):
                raise ValidationException.for_field("updates", "Each update must be an object")
            day = parse_date_value(item.get("date"))
            pairs: List[Tuple[TimeSlot, Any]] = []

            slots = item.get("slots")
            if isinstance(slots, Mapping):
                pairs.extend((parse_time_slot(name), raw) for name, raw in slots.items())
            else:
                found_slot, slot_name = _first_present(item, _SLOT_KEYS)
                if not found_slot:
                    raise ValidationException.for_field("time_slot", "time_slot is required")
                found_value, raw = _first_present(item, _VALUE_KEYS)
                pairs.append((parse_time_slot(slot_name), raw if found_value else None))

            for slot, raw in pairs:
                value = normalize_slot_value(raw)
                if value is None:
                    ignored += 1
                    continue
                merged.setdefault(day, {})[slot] = value
        return merged, ignored

    @BaseService.measure_operation("set_availability")
    def set_availability(
        self, person_id: int, updates: Sequence[Mapping[str, Any]]
    ) -> Dict[str, int]:
        """
        Upsert slot values per date.

        Slots not mentioned for a date keep their stored value (0 on new
        rows). Values that cannot be normalized are counted as ``ignored``
        and never touch the row.

        Returns:
            {"inserted", "updated", "unchanged", "ignored"}
        """
        merged, ignored = self._collect_updates(updates)
        counts = {"inserted": 0, "updated": 0, "unchanged": 0, "ignored": ignored}

        with self.transaction():
            self._ensure_person(person_id)
            existing = self.repository.get_for_dates(person_id, sorted(merged))

            for day in sorted(merged):
                requested = merged[day]
                row = existing.get(day)
                if row is None:
                    values = {slot: requested.get(slot, 0) for slot in TimeSlot}
                    if self.policy.prune_empty_rows and not any(values.values()):
                        counts["unchanged"] += 1
                        continue
                    self.repository.create_for_date(person_id, day, values)
                    counts["inserted"] += 1
                    continue

                current = row.slot_values()
                if all(current[slot] == value for slot, value in requested.items()):
                    counts["unchanged"] += 1
                    continue
                for slot, value in requested.items():
                    setattr(row, slot.column, value)
                if self.policy.prune_empty_rows and row.is_empty:
                    self.repository.delete_entity(row)
                counts["updated"] += 1
            self.db.flush()

        self.log_operation("set_availability", role=self.role.value, person_id=person_id, **counts)
        return counts

    def _resolve_delete_targets(
        self, selector: Mapping[str, Any]
    ) -> List[Tuple[date, date, Optional[List[TimeSlot]]]]:
        """Expand a delete selector into (start, end, slots) ranges; slots None means all."""
        records = selector.get("records")
        if records:
            targets = []
            for record in records:
                day = parse_date_value(record.get("date"))
                names = record.get("time_slots") or record.get("timeSlots")
                slots = [parse_time_slot(name) for name in names] if names else None
                targets.append((day, day, slots))
            return targets

        if selector.get("start_date") is None:
            raise ValidationException.for_field("start_date", "start_date is required")
        start = parse_date_value(selector.get("start_date"), "start_date")
        end_raw = selector.get("end_date")
        end = parse_date_value(end_raw, "end_date") if end_raw is not None else start
        if end < start:
            raise ValidationException.for_field("end_date", "end_date must not be before start_date")
        names = selector.get("time_slots") or selector.get("timeSlots")
        slots = [parse_time_slot(name) for name in names] if names else None
        return [(start, end, slots)]

    @BaseService.measure_operation("delete_availability")
    def delete_availability(self, person_id: int, selector: Mapping[str, Any]) -> Dict[str, int]:
        """
        Clear availability over a date range or a list of records.

        ``remove_all`` deletes the rows outright. Otherwise the selected
        slots (all three when none are named) are set to 0, and the role's
        prune policy decides whether emptied rows survive.

        Returns:
            {"updated", "deleted"}
        """
        targets = self._resolve_delete_targets(selector)
        remove_all = bool(selector.get("remove_all") or selector.get("removeAll"))
        counts = {"updated": 0, "deleted": 0}

        with self.transaction():
            self._ensure_person(person_id)
            for start, end, slots in targets:
                if remove_all:
                    counts["deleted"] += self.repository.delete_range(person_id, start, end)
                    continue
                for row in self.repository.get_range(person_id, start, end):
                    cleared = slots or list(TimeSlot)
                    current = row.slot_values()
                    if not any(current[slot] for slot in cleared):
                        continue
                    for slot in cleared:
                        setattr(row, slot.column, 0)
                    if self.policy.prune_empty_rows and row.is_empty:
                        self.repository.delete_entity(row)
                        counts["deleted"] += 1
                    else:
                        counts["updated"] += 1
            self.db.flush()

        self.log_operation("delete_availability", role=self.role.value, person_id=person_id, **counts)
        return counts

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    @staticmethod
    def resolve_query_window(
        time_slot: Any = None, start_time: Any = None, end_time: Any = None
    ) -> Tuple[List[TimeSlot], time, time]:
        """
        Work out the time window and the slots that overlap it.

        Explicit start and end override the slot's own range.
        """
        if start_time is not None and end_time is not None:
            try:
                start = parse_hhmm(start_time)
                end = parse_hhmm(end_time)
            except ValueError as e:
                raise ValidationException.for_field("start_time", str(e)) from e
            if not isinstance(start, time) or not isinstance(end, time):
                raise ValidationException.for_field("start_time", "Invalid time window")
            if end <= start:
                raise ValidationException.for_field("end_time", "End time must be after start time")
        elif time_slot is not None:
            start, end = parse_time_slot(time_slot).time_range
        else:
            raise ValidationException.for_field(
                "time_slot", "Either time_slot or start_time and end_time is required"
            )

        slots = [
            slot
            for slot in TimeSlot
            if slot.time_range[0] < end and slot.time_range[1] > start
        ]
        return slots, start, end

    def _find_available(
        self, role: ParticipantRole, day: Any, time_slot: Any, start_time: Any, end_time: Any
    ) -> List[Dict[str, Any]]:
        target_day = parse_date_value(day)
        slots, start, end = self.resolve_query_window(time_slot, start_time, end_time)
        repository = (
            self.repository
            if role is self.role
            else RepositoryFactory.create_availability_repository(self.db, role)
        )
        people = repository.find_available_people(target_day, slots, start, end)
        self.logger.debug(
            f"Found {len(people)} available {role.value}s on {target_day.isoformat()}",
            extra={"slots": [slot.value for slot in slots]},
        )
        return people

    @BaseService.measure_operation("get_available_teachers")
    def get_available_teachers(
        self, day: Any, time_slot: Any = None, start_time: Any = None, end_time: Any = None
    ) -> List[Dict[str, Any]]:
        return self._find_available(ParticipantRole.TEACHER, day, time_slot, start_time, end_time)

    @BaseService.measure_operation("get_available_students")
    def get_available_students(
        self, day: Any, time_slot: Any = None, start_time: Any = None, end_time: Any = None
    ) -> List[Dict[str, Any]]:
        return self._find_available(ParticipantRole.STUDENT, day, time_slot, start_time, end_time)
