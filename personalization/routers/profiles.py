"""
Profile router.

GET   /profiles/{user_id}  — profile (created with defaults on first access)
PATCH /profiles/{user_id}  — explicit edit, bumps version
"""
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from personalization.db.base import get_db
from personalization.models.user_profile import UserProfile, TRAIT_FIELDS
from personalization.schemas.common import INVALID, enum_value, iso
from personalization.schemas.profile import ProfileNeeds, ProfileResponse, ProfileUpdateRequest
from personalization.services import profile_store

router = APIRouter(prefix="/profiles", tags=["profiles"])


def _profile_to_response(p: UserProfile) -> ProfileResponse:
    return ProfileResponse(
        user_id=p.user_id,
        version=p.version,
        **{name: getattr(p, name) for name in TRAIT_FIELDS},
        optimal_session_length=p.optimal_session_length,
        learning_environment=enum_value(p.learning_environment),
        reading_level=enum_value(p.reading_level),
        primary_learning_style=enum_value(p.primary_learning_style),
        natural_rhythm=enum_value(p.natural_rhythm),
        needs=ProfileNeeds(
            significant_reading_needs=p.has_significant_reading_needs,
            executive_support=p.needs_executive_support,
            high_sensory_processing=p.has_high_sensory_processing,
        ),
        updated_at=iso(p.updated_at),
    )


@router.get("/{user_id}", response_model=ProfileResponse, summary="Get a learner profile")
def get_profile(user_id: int, db: Session = Depends(get_db)):
    return _profile_to_response(profile_store.get_or_create_profile(db, user_id))


@router.patch(
    "/{user_id}",
    response_model=ProfileResponse,
    summary="Edit a learner profile",
    responses={**INVALID},
)
def update_profile(user_id: int, body: ProfileUpdateRequest, db: Session = Depends(get_db)):
    changes = body.model_dump(exclude_none=True)
    return _profile_to_response(profile_store.update_profile(db, user_id, changes))
