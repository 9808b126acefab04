"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from personalization.services.achievements import DEFAULT_ACHIEVEMENTS

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


_ENUMS: dict[str, tuple[str, ...]] = {
    "learning_environment_enum": ("quiet", "ambient", "music", "collaborative"),
    "reading_level_enum": ("beginner", "intermediate", "advanced", "expert"),
    "learning_style_enum": ("visual", "auditory", "kinesthetic", "reading", "mixed"),
    "natural_rhythm_enum": ("morning", "afternoon", "evening", "night"),
    "difficulty_level_enum": ("beginner", "intermediate", "advanced", "expert"),
    "content_status_enum": ("draft", "published", "under_review", "rejected"),
    "recommendation_state_enum": ("active", "responded", "expired"),
    "priority_level_enum": ("low", "medium", "high"),
    "student_response_enum": ("viewed", "bookmarked", "started", "completed", "ignored"),
    "usage_action_enum": ("start", "use", "complete", "abandon"),
    "time_of_day_enum": (
        "late_night", "early_morning", "late_morning", "early_afternoon",
        "late_afternoon", "early_evening", "late_evening",
    ),
    "insight_type_enum": (
        "time_of_day_energy", "time_of_day_success", "day_of_week_energy",
        "day_of_week_success", "tool_energy", "tool_success",
        "activity_context_energy", "activity_context_success", "time_of_day_rating",
        "day_of_week_rating", "tool_rating", "activity_context_rating",
    ),
    "insight_response_enum": ("pending", "accepted", "rejected"),
    "activity_type_enum": (
        "lesson_completed", "quiz_taken", "assessment_completed", "content_discovery",
        "practice_session", "reading_session", "video_watched", "interaction_completed",
    ),
    "requirement_type_enum": (
        "lessons_completed", "days_streak", "quiz_score", "quizzes_completed",
        "total_study_time", "tools_used_count",
    ),
    "achievement_category_enum": ("learning", "streak", "quiz", "time", "accessibility"),
    "rarity_enum": ("common", "rare", "epic", "legendary"),
}


def _enum(name: str) -> sa.Enum:
    return sa.Enum(*_ENUMS[name], name=name, create_type=False)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )


def upgrade() -> None:
    # --- ENUM types ---
    for name, values in _ENUMS.items():
        sa.Enum(*values, name=name).create(op.get_bind(), checkfirst=True)

    # --- user_profiles ---
    traits = [
        "hyperfocus_intensity", "attention_flexibility", "sensory_processing",
        "executive_function", "social_battery", "change_adaptability",
        "emotional_regulation", "information_processing", "creativity_expression",
        "structure_preference",
    ]
    op.create_table(
        "user_profiles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        *[sa.Column(t, sa.Integer(), nullable=False, server_default="5") for t in traits],
        sa.Column("optimal_session_length", sa.Integer(), nullable=False, server_default="25"),
        sa.Column("learning_environment", _enum("learning_environment_enum"), nullable=False),
        sa.Column("reading_level", _enum("reading_level_enum"), nullable=False),
        sa.Column("primary_learning_style", _enum("learning_style_enum"), nullable=False),
        sa.Column("natural_rhythm", _enum("natural_rhythm_enum"), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_profiles_id", "user_profiles", ["id"])
    op.create_index("ix_user_profiles_user_id", "user_profiles", ["user_id"], unique=True)

    # --- learning_content ---
    op.create_table(
        "learning_content",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(256), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("subject_area", sa.String(128), nullable=True),
        sa.Column("difficulty_level", _enum("difficulty_level_enum"), nullable=True),
        sa.Column("dyslexia_friendly", sa.Boolean(), nullable=True),
        sa.Column("adhd_friendly", sa.Boolean(), nullable=True),
        sa.Column("autism_friendly", sa.Boolean(), nullable=True),
        sa.Column("learning_styles", sa.String(128), nullable=True),
        sa.Column("estimated_duration", sa.Integer(), nullable=True),
        sa.Column("success_rate", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("rating_average", sa.Numeric(3, 2), nullable=False, server_default="0"),
        sa.Column("rating_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", _enum("content_status_enum"), nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_learning_content_id", "learning_content", ["id"])
    op.create_index("ix_learning_content_subject_area", "learning_content", ["subject_area"])

    # --- content_interactions ---
    op.create_table(
        "content_interactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.Column("content_id", sa.Integer(), sa.ForeignKey("learning_content.id"), nullable=False),
        sa.Column("completion_percentage", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("engagement_score", sa.Numeric(3, 2), nullable=True),
        sa.Column("comprehension_score", sa.Numeric(3, 2), nullable=True),
        sa.Column("usefulness_rating", sa.Integer(), nullable=True),
        sa.Column("was_helpful", sa.Boolean(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_content_interactions_id", "content_interactions", ["id"])
    op.create_index("ix_content_interactions_student_id", "content_interactions", ["student_id"])
    op.create_index("ix_content_interactions_content_id", "content_interactions", ["content_id"])

    # --- recommendations ---
    op.create_table(
        "recommendations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.Column("content_id", sa.Integer(), sa.ForeignKey("learning_content.id"), nullable=False),
        sa.Column("confidence_score", sa.Numeric(5, 4), nullable=False),
        sa.Column("relevance_score", sa.Numeric(5, 4), nullable=False),
        sa.Column("accessibility_match", sa.Numeric(5, 4), nullable=False),
        sa.Column("learning_style_match", sa.Numeric(5, 4), nullable=False),
        sa.Column("difficulty_match", sa.Numeric(5, 4), nullable=False),
        sa.Column("success_prediction", sa.Numeric(5, 4), nullable=False),
        sa.Column("overall_score", sa.Numeric(5, 4), nullable=False),
        sa.Column("state", _enum("recommendation_state_enum"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("priority_level", _enum("priority_level_enum"), nullable=False),
        sa.Column("reasoning", sa.Text(), nullable=True),
        sa.Column("matching_factors", sa.Text(), nullable=True),
        sa.Column("algorithm_version", sa.String(32), nullable=False),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("presented", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("presented_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("student_response", _enum("student_response_enum"), nullable=True),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("feedback_rating", sa.Integer(), nullable=True),
        sa.Column("was_helpful", sa.Boolean(), nullable=True),
        sa.Column("expired_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("superseded_by_id", sa.Integer(), sa.ForeignKey("recommendations.id"), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_recommendations_id", "recommendations", ["id"])
    op.create_index("ix_recommendations_student_id", "recommendations", ["student_id"])
    op.create_index("ix_recommendations_content_id", "recommendations", ["content_id"])
    op.create_index("ix_recommendations_overall_score", "recommendations", ["overall_score"])
    op.create_index(
        "uq_recommendation_active_pair",
        "recommendations",
        ["student_id", "content_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
        sqlite_where=sa.text("is_active = 1"),
    )

    # --- usage_events ---
    op.create_table(
        "usage_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("tool_name", sa.String(128), nullable=False),
        sa.Column("action", _enum("usage_action_enum"), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("time_of_day", _enum("time_of_day_enum"), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("energy_level", sa.Integer(), nullable=True),
        sa.Column("success_rating", sa.Integer(), nullable=True),
        sa.Column("session_duration_minutes", sa.Integer(), nullable=True),
        sa.Column("activity_context", sa.String(128), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_usage_events_id", "usage_events", ["id"])
    op.create_index("ix_usage_events_user_id", "usage_events", ["user_id"])
    op.create_index("ix_usage_events_tool_name", "usage_events", ["tool_name"])
    op.create_index("ix_usage_events_occurred_at", "usage_events", ["occurred_at"])

    # --- adaptive_insights ---
    op.create_table(
        "adaptive_insights",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("insight_type", _enum("insight_type_enum"), nullable=False),
        sa.Column("bucket_key", sa.String(128), nullable=False),
        sa.Column("title", sa.String(256), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("insight_data", sa.Text(), nullable=True),
        sa.Column("confidence_score", sa.Numeric(5, 4), nullable=False),
        sa.Column("priority_level", _enum("priority_level_enum"), nullable=False),
        sa.Column("sample_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("presented_to_user", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("presented_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("user_response", _enum("insight_response_enum"), nullable=False),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "insight_type", "bucket_key", name="uq_adaptive_insight_key"),
    )
    op.create_index("ix_adaptive_insights_id", "adaptive_insights", ["id"])
    op.create_index("ix_adaptive_insights_user_id", "adaptive_insights", ["user_id"])

    # --- study_sessions ---
    op.create_table(
        "study_sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("activity_type", _enum("activity_type_enum"), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("max_score", sa.Integer(), nullable=True),
        sa.Column("study_date", sa.Date(), nullable=False),
        sa.Column("accessibility_tools_used", sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_study_sessions_id", "study_sessions", ["id"])
    op.create_index("ix_study_sessions_user_id", "study_sessions", ["user_id"])
    op.create_index("ix_study_sessions_study_date", "study_sessions", ["study_date"])

    # --- achievements ---
    achievements = op.create_table(
        "achievements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("icon", sa.String(16), nullable=True),
        sa.Column("category", _enum("achievement_category_enum"), nullable=False),
        sa.Column("points_value", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("requirement_type", _enum("requirement_type_enum"), nullable=False),
        sa.Column("requirement_value", sa.Integer(), nullable=False),
        sa.Column("rarity", _enum("rarity_enum"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_hidden", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_index("ix_achievements_id", "achievements", ["id"])
    op.create_index("ix_achievements_requirement_type", "achievements", ["requirement_type"])

    # --- user_achievements ---
    op.create_table(
        "user_achievements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("achievement_id", sa.Integer(), sa.ForeignKey("achievements.id"), nullable=False),
        sa.Column("progress_value", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_new", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("earned_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
    )
    op.create_index("ix_user_achievements_id", "user_achievements", ["id"])
    op.create_index("ix_user_achievements_user_id", "user_achievements", ["user_id"])

    # --- seed default achievements ---
    op.bulk_insert(achievements, [
        {
            "name": name,
            "description": description,
            "icon": icon,
            "category": category.value,
            "points_value": points,
            "requirement_type": req_type.value,
            "requirement_value": req_value,
            "rarity": rarity.value,
            "is_active": True,
            "is_hidden": False,
        }
        for name, description, icon, category, points, req_type, req_value, rarity
        in DEFAULT_ACHIEVEMENTS
    ])


def downgrade() -> None:
    op.drop_table("user_achievements")
    op.drop_table("achievements")
    op.drop_table("study_sessions")
    op.drop_table("adaptive_insights")
    op.drop_table("usage_events")
    op.drop_table("recommendations")
    op.drop_table("content_interactions")
    op.drop_table("learning_content")
    op.drop_table("user_profiles")

    for name in reversed(list(_ENUMS)):
        op.execute(f"DROP TYPE IF EXISTS {name}")
