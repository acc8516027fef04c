from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from defer.core.clock import SystemClock
from defer.core.config import settings
from defer.core.errors import (
    DeferException,
    defer_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from defer.core.logging_config import configure_logging
from defer.db.base import SessionLocal, get_db
from defer.routers import achievements as achievements_router
from defer.routers import intents as intents_router
from defer.routers import lifecycle as lifecycle_router
from defer.routers import notifications as notifications_router
from defer.routers import outbox as outbox_router
from defer.routers import urges as urges_router
from defer.services.background_refresh import LifecycleRefresher
from defer.services.notification_planner import InMemoryNotificationCenter
from defer.services.outbox import AnalyticsBuffer, OutboxStore, SideEffectDispatcher


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    side_effects: SideEffectDispatcher = app.state.side_effects
    side_effects.start()

    refresher = None
    if settings.BACKGROUND_REFRESH_ENABLED:
        refresher = LifecycleRefresher(
            SessionLocal,
            app.state.clock,
            side_effects,
            interval=settings.BACKGROUND_REFRESH_INTERVAL_SECONDS,
        )
        refresher.start()
    try:
        yield
    finally:
        if refresher is not None:
            refresher.stop()
        side_effects.flush()
        side_effects.stop()


app = FastAPI(
    title="Defer API",
    description=(
        "**Decision-lifecycle engine**\n\n"
        "Captures impulses as intents, holds them for a delay protocol, and records "
        "the intentional decision at the checkpoint.\n\n"
        "All error responses follow the `{code, message, details}` envelope."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# --- Collaborators (swapped in tests via dependency_overrides) ---
app.state.clock = SystemClock(settings.tzinfo)
app.state.side_effects = SideEffectDispatcher(
    OutboxStore(settings.OUTBOX_MAX_OPERATIONS),
    AnalyticsBuffer(settings.ANALYTICS_MAX_EVENTS),
    queue_size=settings.SIDE_EFFECT_QUEUE_SIZE,
)
app.state.notification_center = InMemoryNotificationCenter()

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Exception handlers (most specific first) ---
app.add_exception_handler(DeferException, defer_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# --- Routers ---
app.include_router(intents_router.router)
app.include_router(urges_router.router)
app.include_router(lifecycle_router.router)
app.include_router(achievements_router.router)
app.include_router(notifications_router.router)
app.include_router(outbox_router.router)


@app.get("/health", tags=["health"], summary="Health check")
def health(db: Session = Depends(get_db)):
    """
    Returns `{"status": "ok", "db": "ok"}` when both the API and the database
    are reachable. Returns HTTP 503 if the DB is down.
    """
    try:
        db.execute(text("SELECT 1"))
        db_status = "ok"
    except SQLAlchemyError:
        db_status = "unreachable"

    if db_status != "ok":
        return JSONResponse(
            status_code=503,
            content={"status": "error", "db": db_status},
        )
    return {"status": "ok", "db": "ok", "env": settings.APP_ENV}
