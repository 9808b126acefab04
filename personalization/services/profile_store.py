"""
ProfileStore — read access to a learner's UserProfile, plus explicit edits.

get_profile          — stored row or None (no writes)
get_or_create_profile — stored row, or a new one persisted with defaults
default_profile      — transient defaults-only profile for scoring
update_profile       — apply an explicit edit and bump version
"""
from __future__ import annotations

from typing import Any, Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from personalization.models.user_profile import (
    UserProfile,
    LearningEnvironment,
    LearningStyle,
    NaturalRhythm,
    ReadingLevel,
    TRAIT_FIELDS,
)


def default_profile(user_id: int) -> UserProfile:
    """A transient profile with every default filled in. Never added to the session."""
    values: dict[str, Any] = {name: 5 for name in TRAIT_FIELDS}
    return UserProfile(
        user_id=user_id,
        optimal_session_length=25,
        learning_environment=LearningEnvironment.quiet,
        reading_level=ReadingLevel.intermediate,
        primary_learning_style=LearningStyle.mixed,
        natural_rhythm=NaturalRhythm.morning,
        version=1,
        **values,
    )


def get_profile(db: Session, user_id: int) -> Optional[UserProfile]:
    return db.query(UserProfile).filter(UserProfile.user_id == user_id).first()


def get_or_create_profile(db: Session, user_id: int) -> UserProfile:
    """Return the stored profile, creating it with defaults on first access."""
    profile = get_profile(db, user_id)
    if profile is not None:
        return profile

    profile = default_profile(user_id)
    db.add(profile)
    try:
        db.commit()
    except IntegrityError:
        # Created concurrently by another request
        db.rollback()
        return get_profile(db, user_id)
    db.refresh(profile)
    logger.info("Created default profile for user {}", user_id)
    return profile


def update_profile(db: Session, user_id: int, changes: dict[str, Any]) -> UserProfile:
    """
    Apply an explicit edit. Fields absent from `changes` are left alone.
    version is bumped only when something actually changed.
    """
    profile = get_or_create_profile(db, user_id)
    changed = False
    for field, value in changes.items():
        if value is None or not hasattr(profile, field):
            continue
        if getattr(profile, field) != value:
            setattr(profile, field, value)
            changed = True

    if changed:
        profile.version = (profile.version or 1) + 1
        db.commit()
        db.refresh(profile)
        logger.info("Profile for user {} updated to version {}", user_id, profile.version)
    return profile
