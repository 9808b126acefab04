"""
Profile schemas.

GET   /profiles/{user_id}  → ProfileResponse
PATCH /profiles/{user_id}  → ProfileUpdateRequest → ProfileResponse
"""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from personalization.models.user_profile import (
    LearningEnvironment,
    LearningStyle,
    NaturalRhythm,
    ReadingLevel,
)

_Trait = Optional[int]


def _trait(description: str):
    return Field(default=None, ge=0, le=10, description=description)


class ProfileUpdateRequest(BaseModel):
    """Only the fields present are changed; each effective edit bumps `version`."""
    model_config = ConfigDict(use_enum_values=True, extra="forbid")

    hyperfocus_intensity: _Trait = _trait("0–10")
    attention_flexibility: _Trait = _trait("0–10")
    sensory_processing: _Trait = _trait("0–10. Above 7 → needs autism-friendly content.")
    executive_function: _Trait = _trait("0–10. Below 5 → needs ADHD-friendly content.")
    social_battery: _Trait = _trait("0–10")
    change_adaptability: _Trait = _trait("0–10")
    emotional_regulation: _Trait = _trait("0–10")
    information_processing: _Trait = _trait("0–10. Below 4 → needs dyslexia-friendly content.")
    creativity_expression: _Trait = _trait("0–10")
    structure_preference: _Trait = _trait("0–10")

    optimal_session_length: Optional[int] = Field(default=None, ge=5, le=240)
    learning_environment: Optional[LearningEnvironment] = None
    reading_level: Optional[ReadingLevel] = None
    primary_learning_style: Optional[LearningStyle] = None
    natural_rhythm: Optional[NaturalRhythm] = None


class ProfileNeeds(BaseModel):
    significant_reading_needs: bool
    executive_support: bool
    high_sensory_processing: bool


class ProfileResponse(BaseModel):
    user_id: int
    version: int
    hyperfocus_intensity: int
    attention_flexibility: int
    sensory_processing: int
    executive_function: int
    social_battery: int
    change_adaptability: int
    emotional_regulation: int
    information_processing: int
    creativity_expression: int
    structure_preference: int
    optimal_session_length: int
    learning_environment: str
    reading_level: str
    primary_learning_style: str
    natural_rhythm: str
    needs: ProfileNeeds
    updated_at: Optional[str] = None
