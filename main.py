import os
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from zoneinfo import ZoneInfo

import anyio
from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError
from pymongo.errors import PyMongoError

from jose import JWTError, jwt

from database import db
from errors import CheckInError, Unauthenticated, PermissionDenied, InvalidArgument, Internal
from schedule import schedule_status, create_schedule_slot
from schemas import GeoPoint, DeviceInfo, Role
from sessions import SessionEngine, Clock, now_utc, AUTO_CHECKOUT_HOURS
from store import SessionStore
from sweep import StaleSessionSweep, SWEEP_INTERVAL_MINUTES
from geo import CHECK_IN_RADIUS_METERS

# ----------------------
# Config & Globals
# ----------------------
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALG = os.getenv("JWT_ALG", "HS256")
DEFAULT_RADIUS_METERS = float(os.getenv("CHECK_IN_RADIUS_METERS", str(CHECK_IN_RADIUS_METERS)))
AUTO_CHECKOUT_AFTER_HOURS = float(os.getenv("AUTO_CHECKOUT_HOURS", str(AUTO_CHECKOUT_HOURS)))
STALE_SWEEP_INTERVAL_MINUTES = float(os.getenv("STALE_SWEEP_INTERVAL_MINUTES", str(SWEEP_INTERVAL_MINUTES)))
SCHEDULE_TIMEZONE = os.getenv("SCHEDULE_TIMEZONE", "UTC")
SCHEDULE_TZ = timezone.utc if SCHEDULE_TIMEZONE.upper() == "UTC" else ZoneInfo(SCHEDULE_TIMEZONE)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("checkin")


def build_engine(store: SessionStore, clock: Clock = now_utc) -> SessionEngine:
    return SessionEngine(
        store,
        clock=clock,
        default_radius=DEFAULT_RADIUS_METERS,
        auto_checkout_hours=AUTO_CHECKOUT_AFTER_HOURS,
        schedule_tz=SCHEDULE_TZ,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    if db is None:
        logger.warning("DATABASE_URL/DATABASE_NAME not set; stale session sweep disabled")
        yield
        return

    store = SessionStore(db)
    await anyio.to_thread.run_sync(store.ensure_indexes)

    if STALE_SWEEP_INTERVAL_MINUTES <= 0:
        yield
        return

    sweep = StaleSessionSweep(build_engine(store))
    async with anyio.create_task_group() as tg:
        tg.start_soon(sweep.run_forever, STALE_SWEEP_INTERVAL_MINUTES)
        yield
        tg.cancel_scope.cancel()


# FastAPI app
app = FastAPI(lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----------------------
# Error rendering
# ----------------------
@app.exception_handler(CheckInError)
async def checkin_error_handler(request: Request, exc: CheckInError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


@app.exception_handler(PyMongoError)
async def store_error_handler(request: Request, exc: PyMongoError):
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Internal error", "code": Internal.code})


# ----------------------
# Dependencies
# ----------------------
def get_store() -> SessionStore:
    if db is None:
        raise Internal("Database not configured")
    return SessionStore(db)


def get_clock() -> Clock:
    return now_utc


def get_engine(store: SessionStore = Depends(get_store), clock: Clock = Depends(get_clock)) -> SessionEngine:
    return build_engine(store, clock)


# ----------------------
# Auth
# ----------------------
class AuthedUser(BaseModel):
    userId: str
    name: Optional[str] = None
    role: Role


def decode_jwt(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
    except JWTError as e:
        raise Unauthenticated("Invalid token") from e


def get_current_user(request: Request) -> AuthedUser:
    auth = request.headers.get("Authorization")
    if not auth or not auth.lower().startswith("bearer "):
        raise Unauthenticated("Must be authenticated")
    token = auth.split(" ", 1)[1].strip()
    data = decode_jwt(token)
    user_id = data.get("userId") or data.get("sub")
    role = data.get("role")
    name = data.get("name")
    if not user_id or role not in {r.value for r in Role}:
        raise Unauthenticated("Invalid token payload")
    return AuthedUser(userId=user_id, role=Role(role), name=name)


def stored_role(user: AuthedUser, store: SessionStore) -> Optional[Role]:
    # rights are read from the user record, never from the token
    record = store.get_user(user.userId)
    return record.role if record else None


def require_admin(user: AuthedUser = Depends(get_current_user),
                  store: SessionStore = Depends(get_store)) -> AuthedUser:
    if stored_role(user, store) is not Role.ADMINISTRATOR:
        raise PermissionDenied("Administrator role required")
    return user


# ----------------------
# Session APIs
# ----------------------
class CheckInBody(BaseModel):
    schoolId: str
    location: GeoPoint
    deviceInfo: Optional[DeviceInfo] = None


@app.post("/api/sessions/check-in")
def check_in(body: CheckInBody, user: AuthedUser = Depends(get_current_user),
             engine: SessionEngine = Depends(get_engine)):
    result = engine.check_in(user.userId, body.schoolId, body.location, body.deviceInfo)
    return {
        "success": True,
        "sessionId": result.session_id,
        "distanceMeters": result.distance_meters,
        "message": result.message,
    }


class CheckOutBody(BaseModel):
    location: GeoPoint


@app.post("/api/sessions/{sessionId}/check-out")
def check_out(sessionId: str, body: CheckOutBody, user: AuthedUser = Depends(get_current_user),
              engine: SessionEngine = Depends(get_engine)):
    result = engine.check_out(user.userId, sessionId, body.location)
    return {"success": True, "durationMinutes": result.duration_minutes, "message": result.message}


class NotesBody(BaseModel):
    notes: str


@app.put("/api/sessions/{sessionId}/notes")
def update_notes(sessionId: str, body: NotesBody, user: AuthedUser = Depends(get_current_user),
                 engine: SessionEngine = Depends(get_engine)):
    engine.update_notes(user.userId, sessionId, body.notes)
    return {"success": True, "message": "Notes updated"}


@app.get("/api/sessions/active")
def active_session(user: AuthedUser = Depends(get_current_user), engine: SessionEngine = Depends(get_engine)):
    session = engine.get_active_session(user.userId)
    return {"session": session.model_dump(mode="json") if session else None}


# ----------------------
# Schedules
# ----------------------
@app.get("/api/schools/{schoolId}/schedule-status")
def get_schedule_status(schoolId: str, user: AuthedUser = Depends(get_current_user),
                        store: SessionStore = Depends(get_store), clock: Clock = Depends(get_clock)):
    if stored_role(user, store) is Role.ADMINISTRATOR:
        # administrators check in without a schedule
        return {"todaySchedule": None, "isWithinSchedule": False, "label": None, "scheduleRequired": False}
    status = schedule_status(store, user.userId, schoolId, clock(), SCHEDULE_TZ)
    status["scheduleRequired"] = True
    return status


class ScheduleSlotBody(BaseModel):
    providerId: str
    schoolId: str
    dayOfWeek: str
    startTime: str
    endTime: str
    effectiveFrom: Optional[datetime] = None
    effectiveUntil: Optional[datetime] = None
    isActive: bool = True


@app.post("/api/schedules", status_code=201)
def create_schedule(body: ScheduleSlotBody, admin: AuthedUser = Depends(require_admin),
                    store: SessionStore = Depends(get_store), clock: Clock = Depends(get_clock)):
    data = body.model_dump(exclude_none=True)
    data.setdefault("effectiveFrom", clock())
    try:
        slot = create_schedule_slot(store, data, created_by=admin.userId)
    except ValidationError as e:
        raise InvalidArgument("; ".join(err["msg"] for err in e.errors())) from e
    return {"success": True, "scheduleId": slot.id, "schedule": slot.model_dump(mode="json")}


# ----------------------
# Stale session sweep
# ----------------------
@app.post("/api/internal/stale-sweep")
def run_stale_sweep(admin: AuthedUser = Depends(require_admin), engine: SessionEngine = Depends(get_engine)):
    result = StaleSessionSweep(engine).run()
    return {
        "matched": result.matched,
        "closed": result.closed,
        "skipped": result.skipped,
        "failed": result.failed,
    }


# ----------------------
# Health
# ----------------------
@app.get("/")
def read_root():
    return {"message": "Check-in backend running", "database": db is not None}


# ----------------------
# Uvicorn
# ----------------------
if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
