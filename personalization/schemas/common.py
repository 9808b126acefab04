"""
Shared schema primitives used across the API.
"""
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict


class ErrorDetail(BaseModel):
    """A single field-level validation error."""
    field: str
    message: str
    type: str


class ErrorResponse(BaseModel):
    """Standard error envelope returned for all 4xx/5xx responses."""
    model_config = ConfigDict(from_attributes=True)

    code: str
    message: str
    details: Optional[dict[str, Any]] = None


def iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def enum_value(value) -> Optional[str]:
    if value is None:
        return None
    return getattr(value, "value", value)


# Reused in router `responses=` declarations
NOT_FOUND = {404: {"model": ErrorResponse, "description": "Unknown id, or owned by another user."}}
CONFLICT = {409: {"model": ErrorResponse, "description": "Lifecycle rule violated."}}
INVALID = {422: {"model": ErrorResponse, "description": "Request validation failed."}}
