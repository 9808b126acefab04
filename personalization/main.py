from fastapi import FastAPI, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy import text

from personalization.db.base import get_db
from personalization.core.config import settings
from personalization.core.logging import configure_logging
from personalization.routers import recommendations as recommendations_router
from personalization.routers import insights as insights_router
from personalization.routers import achievements as achievements_router
from personalization.routers import profiles as profiles_router
from personalization.routers import activity as activity_router
from personalization.core.errors import (
    PersonalizationError,
    personalization_exception_handler,
    validation_exception_handler,
    unhandled_exception_handler,
)

configure_logging()

app = FastAPI(
    title="Personalization Engine API",
    description=(
        "**Personalization & Recommendation Engine**\n\n"
        "Scores and ranks learning content per learner, manages the recommendation "
        "lifecycle, mines usage telemetry into insights, and tracks streaks and "
        "achievements.\n\n"
        "All error responses follow the `{code, message, details}` envelope."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Exception handlers (most specific first) ---
app.add_exception_handler(PersonalizationError, personalization_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

# --- Routers ---
app.include_router(recommendations_router.router)
app.include_router(insights_router.router)
app.include_router(achievements_router.router)
app.include_router(profiles_router.router)
app.include_router(activity_router.router)
app.include_router(activity_router.streak_router)


@app.get("/health", tags=["health"], summary="Health check")
def health(db: Session = Depends(get_db)):
    """
    Returns `{"status": "ok", "db": "ok"}` when both the API and the database
    are reachable. Returns HTTP 503 if the DB is down.
    """
    try:
        db.execute(text("SELECT 1"))
        db_status = "ok"
    except SQLAlchemyError as exc:
        logger.warning("Health check could not reach the database: {}", exc)
        db_status = "unreachable"

    if db_status != "ok":
        return JSONResponse(
            status_code=503,
            content={"status": "error", "db": db_status},
        )
    return {"status": "ok", "db": "ok", "env": settings.APP_ENV}
