"""
Scoring Engine — multi-factor match between a learner profile and a content item.

Pure functions only: no DB access, no clock, no randomness. The same inputs
always produce the same ComponentScores.

Components (each in [0, 1])
---------------------------
  accessibility_match   fraction of the learner's flagged needs the content meets
                        1.0  learner has no significant needs
                        0.5  learner has needs, content is unclassified
  difficulty_match      max(0, 1 - |content_tier - mastery_tier| / 2)
                        0.5 when the content has no difficulty level
  learning_style_match  1.0 match, 0.25 mismatch, 0.75 mixed learner,
                        0.5 content declares no styles
  relevance             0.40·quality + 0.35·difficulty + 0.25·style
                        quality = rating_average / 5, or 0.7 when unrated
  success_prediction    global = success_rate / 100 (0.75 when unknown);
                        with >= 3 interactions in the subject:
                        0.4·global + 0.6·mean(overall_success)
  confidence            share of the four signal-bearing inputs that were real

  overall = 0.30·confidence + 0.20·relevance + 0.25·accessibility + 0.25·success
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from personalization.models.content import LearningContent
from personalization.models.user_profile import UserProfile, LearningStyle, ReadingLevel

ALGORITHM_VERSION = "3.0"

DIFFICULTY_TIERS: dict[str, int] = {
    "beginner": 0,
    "intermediate": 1,
    "advanced": 2,
    "expert": 3,
}

# Weights
_W_CONFIDENCE = 0.30
_W_RELEVANCE = 0.20
_W_ACCESSIBILITY = 0.25
_W_SUCCESS = 0.25

_W_QUALITY = 0.40
_W_DIFFICULTY = 0.35
_W_STYLE = 0.25

# Fallbacks
_UNRATED_QUALITY = 0.7
_UNKNOWN_SUCCESS = 0.75
_UNCLASSIFIED_ACCESSIBILITY = 0.5
_UNKNOWN_DIFFICULTY = 0.5
_NO_STYLES = 0.5
_MIXED_LEARNER = 0.75
_STYLE_MISMATCH = 0.25

# Personal history kicks in at this many interactions in the subject
_MIN_SUBJECT_HISTORY = 3
_W_GLOBAL_SUCCESS = 0.4
_W_USER_SUCCESS = 0.6

# Priority thresholds on overall score
_HIGH_PRIORITY_AT = 0.85
_MEDIUM_PRIORITY_AT = 0.65


# ---------------------------------------------------------------------------
# Input / output types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class InteractionRecord:
    """One past interaction, flattened with the content's subject and difficulty."""
    content_id: int
    subject_area: Optional[str]
    difficulty_level: Optional[str]
    overall_success: Optional[float]
    positive: bool
    completed: bool


@dataclass(frozen=True)
class ComponentScores:
    confidence: float
    relevance: float
    accessibility_match: float
    learning_style_match: float
    difficulty_match: float
    success_prediction: float
    overall: float
    matching_factors: tuple[str, ...] = field(default_factory=tuple)

    @property
    def priority_level(self) -> str:
        if self.overall >= _HIGH_PRIORITY_AT:
            return "high"
        if self.overall >= _MEDIUM_PRIORITY_AT:
            return "medium"
        return "low"

    def reasoning(self) -> str:
        if not self.matching_factors:
            return f"Overall match {self.overall:.2f} with no standout factor."
        readable = ", ".join(f.replace("_", " ") for f in self.matching_factors)
        return f"Overall match {self.overall:.2f}: {readable}."


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _enum_value(value) -> Optional[str]:
    if value is None:
        return None
    return getattr(value, "value", value)


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------

def accessibility_match(profile: UserProfile, content: LearningContent) -> float:
    needs: list[Optional[bool]] = []
    if profile.has_significant_reading_needs:
        needs.append(content.dyslexia_friendly)
    if profile.needs_executive_support:
        needs.append(content.adhd_friendly)
    if profile.has_high_sensory_processing:
        needs.append(content.autism_friendly)

    if not needs:
        return 1.0
    if not content.has_accessibility_metadata:
        return _UNCLASSIFIED_ACCESSIBILITY
    return sum(1 for flag in needs if flag is True) / len(needs)


def mastery_tier(
    profile: UserProfile,
    subject_area: Optional[str],
    history: list[InteractionRecord],
) -> int:
    """Highest tier with a positive outcome in the subject, else the profile's reading level."""
    tiers = [
        DIFFICULTY_TIERS[_enum_value(h.difficulty_level)]
        for h in history
        if h.positive
        and h.subject_area == subject_area
        and _enum_value(h.difficulty_level) in DIFFICULTY_TIERS
    ]
    if tiers:
        return max(tiers)
    reading = _enum_value(profile.reading_level) or ReadingLevel.intermediate.value
    return DIFFICULTY_TIERS.get(reading, DIFFICULTY_TIERS["intermediate"])


def difficulty_match(
    profile: UserProfile,
    content: LearningContent,
    history: list[InteractionRecord],
) -> float:
    level = _enum_value(content.difficulty_level)
    if level not in DIFFICULTY_TIERS:
        return _UNKNOWN_DIFFICULTY
    delta = abs(DIFFICULTY_TIERS[level] - mastery_tier(profile, content.subject_area, history))
    return max(0.0, 1.0 - delta / 2.0)


def learning_style_match(profile: UserProfile, content: LearningContent) -> float:
    styles = content.style_list
    if not styles:
        return _NO_STYLES
    primary = _enum_value(profile.primary_learning_style) or LearningStyle.mixed.value
    if primary == LearningStyle.mixed.value:
        return _MIXED_LEARNER
    return 1.0 if primary in styles else _STYLE_MISMATCH


def _quality(content: LearningContent) -> tuple[float, bool]:
    if content.rating_count and content.rating_average is not None and content.rating_average > 0:
        return _clamp(float(content.rating_average) / 5.0), True
    return _UNRATED_QUALITY, False


def _global_success(content: LearningContent) -> tuple[float, bool]:
    if content.success_rate is not None and content.success_rate > 0:
        return _clamp(float(content.success_rate) / 100.0), True
    return _UNKNOWN_SUCCESS, False


def _subject_outcomes(subject_area: Optional[str], history: list[InteractionRecord]) -> list[float]:
    return [
        h.overall_success
        for h in history
        if h.subject_area == subject_area and h.overall_success is not None
    ]


def success_prediction(content: LearningContent, history: list[InteractionRecord]) -> float:
    global_rate, _ = _global_success(content)
    outcomes = _subject_outcomes(content.subject_area, history)
    if len(outcomes) < _MIN_SUBJECT_HISTORY:
        return global_rate
    user_mean = sum(outcomes) / len(outcomes)
    return _clamp(_W_GLOBAL_SUCCESS * global_rate + _W_USER_SUCCESS * user_mean)


# ---------------------------------------------------------------------------
# Public: main entry point
# ---------------------------------------------------------------------------

def score_candidate(
    profile: UserProfile,
    content: LearningContent,
    history: list[InteractionRecord],
) -> ComponentScores:
    access = accessibility_match(profile, content)
    difficulty = difficulty_match(profile, content, history)
    style = learning_style_match(profile, content)
    quality, rated = _quality(content)
    relevance = _clamp(_W_QUALITY * quality + _W_DIFFICULTY * difficulty + _W_STYLE * style)
    success = success_prediction(content, history)

    _, has_global_rate = _global_success(content)
    has_history = len(_subject_outcomes(content.subject_area, history)) >= _MIN_SUBJECT_HISTORY
    signals = [
        rated,
        content.has_accessibility_metadata,
        _enum_value(content.difficulty_level) in DIFFICULTY_TIERS,
        has_history or has_global_rate,
    ]
    confidence = sum(1 for s in signals if s) / len(signals)

    overall = _clamp(
        _W_CONFIDENCE * confidence
        + _W_RELEVANCE * relevance
        + _W_ACCESSIBILITY * access
        + _W_SUCCESS * success
    )

    factors: list[str] = []
    if access >= 1.0 and content.has_accessibility_metadata:
        factors.append("accessibility_needs_met")
    if style >= 1.0:
        factors.append("learning_style_match")
    if difficulty >= 1.0:
        factors.append("difficulty_fits_mastery")
    if rated and quality >= 0.8:
        factors.append("highly_rated")
    if has_history:
        factors.append("personal_success_history")
    elif has_global_rate and success >= 0.8:
        factors.append("proven_effectiveness")

    return ComponentScores(
        confidence=confidence,
        relevance=relevance,
        accessibility_match=access,
        learning_style_match=style,
        difficulty_match=difficulty,
        success_prediction=success,
        overall=overall,
        matching_factors=tuple(factors),
    )
