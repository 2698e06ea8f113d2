from datetime import datetime, timedelta, timezone

import mongomock
import pytest

from sessions import SessionEngine
from store import SessionStore, USERS, SCHOOLS, SCHEDULES

# 2024-06-03 is a Monday
MONDAY = datetime(2024, 6, 3, tzinfo=timezone.utc)
SCHOOL_LOCATION = {"latitude": 40.7128, "longitude": -74.0060}
NEAR_SCHOOL = {"latitude": 40.7129, "longitude": -74.0060}   # ~11 m
FAR_FROM_SCHOOL = {"latitude": 40.715, "longitude": -74.0060}  # ~245 m


def at(hour, minute=0, second=0, day=MONDAY):
    return day.replace(hour=hour, minute=minute, second=second)


class FixedClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FixedClock(at(12))


@pytest.fixture
def mongo_db():
    return mongomock.MongoClient().db


@pytest.fixture
def store(mongo_db):
    store = SessionStore(mongo_db)
    store.ensure_indexes()

    mongo_db[USERS].insert_many([
        {"_id": "prov_1", "displayName": "Pat Provider", "role": "provider"},
        {"_id": "prov_2", "displayName": "Sam Provider", "role": "provider"},
        {"_id": "admin_1", "displayName": "Alex Admin", "role": "administrator"},
    ])
    mongo_db[SCHOOLS].insert_many([
        {"_id": "school_nyc", "name": "Lincoln Elementary", "location": SCHOOL_LOCATION, "checkInRadiusMeters": 150},
        {"_id": "school_noradius", "name": "Park Middle", "location": SCHOOL_LOCATION},
    ])
    mongo_db[SCHEDULES].insert_one({
        "_id": "sched_mon",
        "providerId": "prov_1",
        "schoolId": "school_nyc",
        "dayOfWeek": "monday",
        "startTime": "09:00",
        "endTime": "17:00",
        "effectiveFrom": datetime(2024, 1, 1),
        "isActive": True,
    })
    return store


@pytest.fixture
def engine(store, clock):
    return SessionEngine(store, clock=clock)
