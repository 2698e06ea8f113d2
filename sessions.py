"""
Session lifecycle: check-in, check-out, notes and auto-checkout.

States are ``active`` -> ``completed`` (user check-out) or ``auto_completed``
(stale sweep). Both terminal transitions go through SessionStore.close_session,
which only matches sessions still in ``active``, so a session is closed at most
once whichever writer gets there first.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Optional, Callable

from pymongo.errors import DuplicateKeyError

from errors import Unauthenticated, NotFound, PermissionDenied, Conflict, PreconditionFailed, InvalidArgument
from geo import CHECK_IN_RADIUS_METERS, distance_meters, is_within_radius, round_meters
from schedule import resolve, todays_slot, describe_slot
from schemas import GeoPoint, DeviceInfo, Role, Session, SessionStatus
from store import SessionStore
from time_window import duration_minutes

logger = logging.getLogger(__name__)

AUTO_CHECKOUT_HOURS = 12
NOTES_MAX_LENGTH = 1000

Clock = Callable[[], datetime]


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def auto_checkout_marker(hours: float) -> str:
    return f"[Auto-checked out after {hours:g} hours]"


@dataclass
class CheckInResult:
    session_id: str
    distance_meters: int
    message: str


@dataclass
class CheckOutResult:
    duration_minutes: int
    message: str


class SessionEngine:
    """
    Applies the check-in rules against the store.

    Args:
        store: document store for users, schools, schedules and sessions
        clock: returns the current UTC-aware instant
        default_radius: geofence used when a school has no radius of its own
        auto_checkout_hours: default stale timeout, reported in the auto-checkout note
        schedule_tz: timezone schedule slots are written in (None keeps UTC)
    """

    def __init__(self, store: SessionStore, clock: Clock = now_utc,
                 default_radius: float = CHECK_IN_RADIUS_METERS,
                 auto_checkout_hours: float = AUTO_CHECKOUT_HOURS,
                 schedule_tz: Optional[tzinfo] = None):
        self.store = store
        self.clock = clock
        self.default_radius = default_radius
        self.auto_checkout_hours = auto_checkout_hours
        self.schedule_tz = schedule_tz

    @staticmethod
    def _require_caller(caller_id: Optional[str]) -> str:
        if not caller_id:
            raise Unauthenticated("Must be authenticated")
        return caller_id

    def check_in(self, caller_id: Optional[str], school_id: str, location: GeoPoint,
                 device_info: Optional[DeviceInfo] = None) -> CheckInResult:
        user_id = self._require_caller(caller_id)

        user = self.store.get_user(user_id)
        if user is None:
            raise NotFound("User not found")

        if self.store.find_active_session(user_id) is not None:
            raise Conflict("Already checked in. Please check out first.")

        school = self.store.get_school(school_id)
        if school is None:
            raise NotFound("School not found")

        distance = distance_meters(location, school.location)
        radius = school.checkInRadiusMeters or self.default_radius
        if not is_within_radius(distance, radius):
            logger.warning("Check-in rejected for %s at %s: %.1fm away (max %sm)",
                           user_id, school_id, distance, radius)
            raise PreconditionFailed(
                f"Too far from school. You are {round_meters(distance)}m away (max {radius:g}m)."
            )

        now = self.clock()
        schedule_id = None
        if user.role.requires_schedule:
            slot = resolve(self.store, user_id, school_id, now, self.schedule_tz)
            if slot is None:
                logger.warning("Check-in rejected for %s at %s: outside schedule", user_id, school_id)
                raise PreconditionFailed(self._outside_schedule_message(user_id, school_id, now))
            schedule_id = slot.id

        session = Session(
            id=f"sess_{uuid.uuid4().hex[:12]}",
            userId=user_id,
            userRole=user.role,
            userDisplayName=user.displayName,
            schoolId=school_id,
            schoolName=school.name,
            scheduleId=schedule_id,
            checkInTime=now,
            checkInLocation=location,
            checkInDistanceMeters=round_meters(distance),
            status=SessionStatus.ACTIVE,
            deviceInfo=device_info,
            createdAt=now,
            updatedAt=now,
        )
        try:
            session_id = self.store.create_session(session)
        except DuplicateKeyError:
            # another device of the same user won the race
            raise Conflict("Already checked in. Please check out first.")

        logger.info("User %s checked in at %s (session %s, %sm)",
                    user_id, school_id, session_id, session.checkInDistanceMeters)
        return CheckInResult(
            session_id=session_id,
            distance_meters=session.checkInDistanceMeters,
            message=f"Checked in at {school.name}",
        )

    def _outside_schedule_message(self, user_id: str, school_id: str, now: datetime) -> str:
        message = "Check-in not allowed outside your scheduled times."
        slot = todays_slot(self.store, user_id, school_id, now, self.schedule_tz)
        if slot is not None:
            message += f" Today's schedule: {describe_slot(slot)}."
        return message

    def check_out(self, caller_id: Optional[str], session_id: str, location: GeoPoint) -> CheckOutResult:
        user_id = self._require_caller(caller_id)

        session = self.store.get_session(session_id)
        if session is None:
            raise NotFound("Session not found")
        if session.userId != user_id:
            raise PermissionDenied("Not your session")
        if session.status is not SessionStatus.ACTIVE:
            raise PreconditionFailed("Session is not active")

        now = max(self.clock(), session.checkInTime)
        minutes = duration_minutes(session.checkInTime, now)

        checkout_distance = 0
        school = self.store.get_school(session.schoolId)
        if school is not None:
            checkout_distance = round_meters(distance_meters(location, school.location))

        closed = self.store.close_session(session_id, {
            "checkOutTime": now,
            "checkOutLocation": location.model_dump(),
            "checkOutDistanceMeters": checkout_distance,
            "status": SessionStatus.COMPLETED.value,
            "durationMinutes": minutes,
            "updatedAt": now,
        })
        if not closed:
            raise PreconditionFailed("Session is not active")

        logger.info("User %s checked out of session %s after %s minutes", user_id, session_id, minutes)
        return CheckOutResult(duration_minutes=minutes, message=f"Checked out after {minutes} minutes")

    def update_notes(self, caller_id: Optional[str], session_id: str, notes: str) -> None:
        user_id = self._require_caller(caller_id)

        session = self.store.get_session(session_id)
        if session is None:
            raise NotFound("Session not found")

        if session.userId != user_id:
            caller = self.store.get_user(user_id)
            if caller is None or caller.role is not Role.ADMINISTRATOR:
                raise PermissionDenied("Not your session")

        if len(notes) > NOTES_MAX_LENGTH:
            raise InvalidArgument(f"Notes must be {NOTES_MAX_LENGTH} characters or less")

        now = self.clock()
        self.store.update_session(session_id, {"notes": notes, "notesUpdatedAt": now, "updatedAt": now})
        logger.info("Notes updated on session %s by %s", session_id, user_id)

    def get_active_session(self, caller_id: Optional[str]) -> Optional[Session]:
        return self.store.find_active_session(self._require_caller(caller_id))

    def auto_checkout(self, session: Session, now: Optional[datetime] = None,
                      hours: Optional[float] = None) -> bool:
        """
        Force-close a stale session. Returns False if it was no longer active.

        ``hours`` is the timeout that made the session stale and is written into
        the note; it defaults to ``auto_checkout_hours``.
        """
        if now is None:
            now = self.clock()
        if hours is None:
            hours = self.auto_checkout_hours
        marker = auto_checkout_marker(hours)
        notes = f"{session.notes}\n\n{marker}" if session.notes else marker
        minutes = duration_minutes(session.checkInTime, now)

        closed = self.store.close_session(session.id, {
            "checkOutTime": now,
            "status": SessionStatus.AUTO_COMPLETED.value,
            "durationMinutes": minutes,
            "notes": notes,
            "updatedAt": now,
        })
        if closed:
            logger.info("Auto-checked out session %s of %s after %s minutes", session.id, session.userId, minutes)
        return closed
