"""
Custom exception hierarchy for the personalization engine.

Rule: every HTTP error has a machine-readable `code` string so clients
can branch on it without parsing English messages.

Taxonomy
--------
  NotFoundError      (404) — unknown id, or an id owned by another user
  InvalidInputError  (422) — structurally invalid request
  ConflictError      (409) — lifecycle invariant violation

An empty recommendation run is a valid result, not an error.
"""
from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette import status


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class PersonalizationError(Exception):
    """Base class for all application-level errors."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(PersonalizationError):
    http_status = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class InvalidInputError(PersonalizationError):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "INVALID_INPUT"


class ConflictError(PersonalizationError):
    http_status = status.HTTP_409_CONFLICT
    code = "CONFLICT"


# --- Not found ---

class RecommendationNotFoundError(NotFoundError):
    code = "RECOMMENDATION_NOT_FOUND"

    def __init__(self, recommendation_id: int):
        super().__init__(
            message=f"Recommendation {recommendation_id} not found.",
            details={"recommendation_id": recommendation_id},
        )


class InsightNotFoundError(NotFoundError):
    code = "INSIGHT_NOT_FOUND"

    def __init__(self, insight_id: int):
        super().__init__(
            message=f"Insight {insight_id} not found.",
            details={"insight_id": insight_id},
        )


class ContentNotFoundError(NotFoundError):
    code = "CONTENT_NOT_FOUND"

    def __init__(self, content_id: int):
        super().__init__(
            message=f"Content {content_id} not found.",
            details={"content_id": content_id},
        )


class AchievementNotFoundError(NotFoundError):
    code = "ACHIEVEMENT_NOT_FOUND"

    def __init__(self, ids: list[int]):
        super().__init__(
            message=f"Unlocked achievements not found: {ids}.",
            details={"user_achievement_ids": ids},
        )


# --- Invalid input ---

class InvalidRatingError(InvalidInputError):
    code = "INVALID_RATING"

    def __init__(self, rating: int):
        super().__init__(
            message=f"Rating must be between 1 and 5. Received {rating}.",
            details={"rating": rating, "min": 1, "max": 5},
        )


class InvalidTopNError(InvalidInputError):
    code = "INVALID_TOP_N"

    def __init__(self, top_n: int):
        super().__init__(
            message=f"top_n must be at least 1. Received {top_n}.",
            details={"top_n": top_n},
        )


# --- Conflicts ---

class RecommendationInactiveError(ConflictError):
    code = "RECOMMENDATION_INACTIVE"

    def __init__(self, recommendation_id: int, state: str):
        super().__init__(
            message=f"Recommendation {recommendation_id} is no longer active ({state}).",
            details={"recommendation_id": recommendation_id, "state": state},
        )


class RecommendationNotPresentedError(ConflictError):
    code = "RECOMMENDATION_NOT_PRESENTED"

    def __init__(self, recommendation_id: int):
        super().__init__(
            message=f"Recommendation {recommendation_id} has not been presented yet.",
            details={"recommendation_id": recommendation_id},
        )


class RecommendationAlreadyRespondedError(ConflictError):
    code = "RECOMMENDATION_ALREADY_RESPONDED"

    def __init__(self, recommendation_id: int, response: str):
        super().__init__(
            message=(
                f"Recommendation {recommendation_id} already has response '{response}'."
            ),
            details={"recommendation_id": recommendation_id, "response": response},
        )


class RecommendationNotRespondedError(ConflictError):
    code = "RECOMMENDATION_NOT_RESPONDED"

    def __init__(self, recommendation_id: int):
        super().__init__(
            message=(
                f"Feedback requires a response first; recommendation "
                f"{recommendation_id} has none."
            ),
            details={"recommendation_id": recommendation_id},
        )


class GenerationConflictError(ConflictError):
    code = "GENERATION_CONFLICT"

    def __init__(self, student_id: int, attempts: int):
        super().__init__(
            message=(
                f"Concurrent generation for student {student_id} kept conflicting "
                f"after {attempts} attempts."
            ),
            details={"student_id": student_id, "attempts": attempts},
        )


class InsightAlreadyRespondedError(ConflictError):
    code = "INSIGHT_ALREADY_RESPONDED"

    def __init__(self, insight_id: int, response: str):
        super().__init__(
            message=f"Insight {insight_id} already has response '{response}'.",
            details={"insight_id": insight_id, "response": response},
        )


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def personalization_exception_handler(
    request: Request, exc: PersonalizationError
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return structured 422 with machine-readable field errors."""
    field_errors = []
    for error in exc.errors():
        field_errors.append({
            "field": ".".join(str(loc) for loc in error["loc"] if loc != "body"),
            "message": error["msg"],
            "type": error["type"],
        })
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed.",
            "details": {"errors": field_errors},
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.opt(exception=exc).error(
        "Unhandled error on {} {}", request.method, request.url.path
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
