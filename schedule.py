"""
Schedule resolution for providers.

A provider may check in at a school only inside one of their weekly slots for
that school. Weekday and time of day are evaluated in the configured schedule
timezone; slots never span midnight.
"""
import logging
import uuid
from datetime import datetime, tzinfo
from typing import Optional, Dict, Any, List

from schemas import ScheduleSlot
from store import SessionStore
from time_window import day_of_week, time_of_day, is_within_time_range, format_time_12hour, day_name

logger = logging.getLogger(__name__)


def todays_slots(store: SessionStore, provider_id: str, school_id: str, now: datetime,
                 tz: Optional[tzinfo] = None) -> List[ScheduleSlot]:
    """Slots for today's weekday that are currently effective, ordered by slot id."""
    slots = store.find_schedule_slots(provider_id, school_id, day_of_week(now, tz))
    effective = [slot for slot in slots if slot.is_effective(now)]
    return sorted(effective, key=lambda slot: slot.id)


def is_within_schedule(slot: ScheduleSlot, now: datetime, tz: Optional[tzinfo] = None) -> bool:
    return is_within_time_range(slot.startTime, slot.endTime, time_of_day(now, tz))


def resolve(store: SessionStore, provider_id: str, school_id: str, now: datetime,
            tz: Optional[tzinfo] = None) -> Optional[ScheduleSlot]:
    """The slot that admits a check-in right now, or None."""
    for slot in todays_slots(store, provider_id, school_id, now, tz):
        if is_within_schedule(slot, now, tz):
            return slot
    return None


def todays_slot(store: SessionStore, provider_id: str, school_id: str, now: datetime,
                tz: Optional[tzinfo] = None) -> Optional[ScheduleSlot]:
    """Today's slot regardless of the current time, preferring one that is open now."""
    slots = todays_slots(store, provider_id, school_id, now, tz)
    for slot in slots:
        if is_within_schedule(slot, now, tz):
            return slot
    return slots[0] if slots else None


def schedule_status(store: SessionStore, provider_id: str, school_id: str, now: datetime,
                    tz: Optional[tzinfo] = None) -> Dict[str, Any]:
    slot = todays_slot(store, provider_id, school_id, now, tz)
    if slot is None:
        return {"todaySchedule": None, "isWithinSchedule": False, "label": None}
    return {
        "todaySchedule": slot.model_dump(mode="json"),
        "isWithinSchedule": is_within_schedule(slot, now, tz),
        "label": describe_slot(slot),
    }


def describe_slot(slot: ScheduleSlot) -> str:
    return f"{day_name(slot.dayOfWeek)} {format_time_12hour(slot.startTime)} - {format_time_12hour(slot.endTime)}"


def create_schedule_slot(store: SessionStore, data: Dict[str, Any], created_by: str) -> ScheduleSlot:
    """
    Validate and persist a new slot.

    Raises pydantic.ValidationError for malformed times, unknown weekdays and
    overnight windows.
    """
    slot = ScheduleSlot(id=f"sched_{uuid.uuid4().hex[:12]}", createdBy=created_by, **data)
    store.create_schedule_slot(slot)
    logger.info("Created schedule slot %s for provider %s at school %s (%s)",
                slot.id, slot.providerId, slot.schoolId, describe_slot(slot))
    return slot
