"""
Document store access for users, schools, schedules and sessions.

Every record set is a MongoDB collection keyed by an opaque string ``_id``.
The single-active-session rule is backed by a unique sparse index on
``activeLock``: the field holds the owner's user id while the session is active
and is removed by the closing transition, so a second concurrent check-in by the
same user fails with DuplicateKeyError instead of racing past the pre-check.
"""
import logging
from datetime import datetime
from typing import Optional, List, Dict, Any

from pydantic import ValidationError
from pymongo import ASCENDING
from pymongo.database import Database

from database import create_document, get_documents, from_bson, to_bson
from schemas import User, School, ScheduleSlot, Session, SessionStatus

logger = logging.getLogger(__name__)

USERS = "users"
SCHOOLS = "schools"
SCHEDULES = "schedules"
SESSIONS = "sessions"

ACTIVE_LOCK = "activeLock"


def _with_id(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    doc = from_bson(doc)
    doc["id"] = str(doc.pop("_id"))
    return doc


class SessionStore:
    def __init__(self, database: Database):
        self.db = database

    def ensure_indexes(self) -> None:
        sessions = self.db[SESSIONS]
        sessions.create_index([(ACTIVE_LOCK, ASCENDING)], unique=True, sparse=True, name="one_active_session_per_user")
        sessions.create_index([("status", ASCENDING), ("checkInTime", ASCENDING)], name="status_checkin")
        sessions.create_index([("userId", ASCENDING), ("status", ASCENDING)], name="user_status")
        self.db[SCHEDULES].create_index(
            [("providerId", ASCENDING), ("schoolId", ASCENDING), ("dayOfWeek", ASCENDING)],
            name="provider_school_day",
        )

    # ----------------------
    # Reads
    # ----------------------
    def get_user(self, user_id: str) -> Optional[User]:
        doc = _with_id(self.db[USERS].find_one({"_id": user_id}))
        return User(**doc) if doc else None

    def get_school(self, school_id: str) -> Optional[School]:
        doc = _with_id(self.db[SCHOOLS].find_one({"_id": school_id}))
        return School(**doc) if doc else None

    def get_session(self, session_id: str) -> Optional[Session]:
        doc = _with_id(self.db[SESSIONS].find_one({"_id": session_id}))
        return Session(**doc) if doc else None

    def find_active_session(self, user_id: str) -> Optional[Session]:
        docs = get_documents(
            SESSIONS,
            {"userId": user_id, "status": SessionStatus.ACTIVE.value},
            limit=1,
            database=self.db,
        )
        return Session(**docs[0]) if docs else None

    def find_schedule_slots(self, provider_id: str, school_id: str, day_of_week: str) -> List[ScheduleSlot]:
        docs = get_documents(
            SCHEDULES,
            {"providerId": provider_id, "schoolId": school_id, "dayOfWeek": day_of_week, "isActive": True},
            sort=[("_id", ASCENDING)],
            database=self.db,
        )
        slots = []
        for doc in docs:
            try:
                slots.append(ScheduleSlot(**doc))
            except ValidationError as e:
                logger.warning("Skipping malformed schedule slot %s: %s", doc.get("id"), e)
        return slots

    def query_stale_active_sessions(self, cutoff: datetime) -> List[Session]:
        docs = get_documents(
            SESSIONS,
            {"status": SessionStatus.ACTIVE.value, "checkInTime": {"$lt": cutoff}},
            sort=[("checkInTime", ASCENDING)],
            database=self.db,
        )
        sessions = []
        for doc in docs:
            try:
                sessions.append(Session(**doc))
            except ValidationError as e:
                logger.warning("Skipping malformed active session %s: %s", doc.get("id"), e)
        return sessions

    # ----------------------
    # Writes
    # ----------------------
    def create_session(self, session: Session) -> str:
        doc = session.model_dump(mode="python")
        doc[ACTIVE_LOCK] = session.userId
        return create_document(SESSIONS, doc, database=self.db)

    def close_session(self, session_id: str, fields: Dict[str, Any]) -> bool:
        """
        Apply a terminal transition only if the session is still active.

        Returns False when another writer closed it first.
        """
        result = self.db[SESSIONS].update_one(
            {"_id": session_id, "status": SessionStatus.ACTIVE.value},
            {"$set": to_bson(fields), "$unset": {ACTIVE_LOCK: ""}},
        )
        return result.matched_count == 1

    def update_session(self, session_id: str, fields: Dict[str, Any]) -> bool:
        result = self.db[SESSIONS].update_one({"_id": session_id}, {"$set": to_bson(fields)})
        return result.matched_count == 1

    def create_schedule_slot(self, slot: ScheduleSlot) -> str:
        return create_document(SCHEDULES, slot, database=self.db)
