"""
Integration tests for health, profiles and the activity (UsageLog) endpoints.
"""
import pytest
from typer.testing import CliRunner

from personalization.cli import app as cli_app
from personalization.core.logging import configure_logging
from personalization.services.usage_log import day_of_week_index, time_of_day_bucket
from datetime import datetime, timezone


class TestHealth:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"
        assert r.json()["db"] == "ok"


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

class TestProfiles:
    def test_first_read_creates_defaults(self, client):
        r = client.get("/profiles/21")
        assert r.status_code == 200
        body = r.json()
        assert body["version"] == 1
        assert body["executive_function"] == 5
        assert body["primary_learning_style"] == "mixed"
        assert body["needs"] == {
            "significant_reading_needs": False,
            "executive_support": False,
            "high_sensory_processing": False,
        }

    def test_patch_bumps_version_and_needs(self, client):
        r = client.patch("/profiles/22", json={
            "information_processing": 2,
            "primary_learning_style": "visual",
        })
        assert r.status_code == 200
        body = r.json()
        assert body["version"] == 2
        assert body["information_processing"] == 2
        assert body["primary_learning_style"] == "visual"
        assert body["needs"]["significant_reading_needs"] is True

    def test_patch_without_change_keeps_version(self, client):
        client.patch("/profiles/23", json={"social_battery": 8})
        r = client.patch("/profiles/23", json={"social_battery": 8})
        assert r.json()["version"] == 2

    def test_patch_rejects_out_of_range_trait(self, client):
        r = client.patch("/profiles/24", json={"sensory_processing": 11})
        assert r.status_code == 422

    def test_patch_rejects_unknown_field(self, client):
        r = client.patch("/profiles/24", json={"favourite_colour": "blue"})
        assert r.status_code == 422

    def test_profile_drives_accessibility_scoring(self, client, make_content):
        make_content(dyslexia_friendly=True)
        client.patch("/profiles/25", json={"information_processing": 1})
        body = client.post("/recommendations/generate/25").json()
        assert body["items"][0]["scores"]["accessibility_match"] == 1.0
        assert "accessibility_needs_met" in body["items"][0]["matching_factors"]


# ---------------------------------------------------------------------------
# Usage events
# ---------------------------------------------------------------------------

class TestUsage:
    @pytest.mark.parametrize("hour,bucket", [
        (0, "late_night"),
        (5, "late_night"),
        (6, "early_morning"),
        (9, "late_morning"),
        (12, "early_afternoon"),
        (15, "late_afternoon"),
        (18, "early_evening"),
        (21, "late_evening"),
        (23, "late_evening"),
    ])
    def test_time_of_day_buckets(self, hour, bucket):
        assert time_of_day_bucket(datetime(2026, 3, 4, hour, tzinfo=timezone.utc)).value == bucket

    def test_day_of_week_sunday_is_zero(self):
        assert day_of_week_index(datetime(2026, 3, 1)) == 0  # Sunday
        assert day_of_week_index(datetime(2026, 3, 7)) == 6  # Saturday

    def test_record_event_derives_buckets(self, client):
        r = client.post("/activity/usage", json={
            "user_id": 31,
            "tool_name": " text_to_speech ",
            "action": "complete",
            "occurred_at": "2026-03-04T19:30:00+00:00",
            "energy_level": 7,
        })
        assert r.status_code == 201
        body = r.json()
        assert body["tool_name"] == "text_to_speech"
        assert body["time_of_day"] == "early_evening"
        assert body["day_of_week"] == 3
        assert body["energy_level"] == 7

    def test_client_offset_sets_bucket(self, client):
        r = client.post("/activity/usage", json={
            "user_id": 31,
            "tool_name": "focus_timer",
            "occurred_at": "2026-03-04T08:00:00-05:00",
        })
        assert r.json()["time_of_day"] == "early_morning"

    def test_energy_out_of_range(self, client):
        r = client.post("/activity/usage", json={
            "user_id": 31, "tool_name": "focus_timer", "energy_level": 11,
        })
        assert r.status_code == 422


class TestUsageBatch:
    def test_batch_all_ok(self, client):
        items = [{"user_id": 32, "tool_name": f"tool_{i}"} for i in range(3)]
        r = client.post("/activity/usage/batch", json={"items": items})
        assert r.status_code == 207
        body = r.json()
        assert body["total"] == 3
        assert body["succeeded"] == 3
        assert body["failed"] == 0
        assert [res["index"] for res in body["results"]] == [0, 1, 2]
        assert all(res["result"]["id"] > 0 for res in body["results"])

    def test_batch_empty_rejected(self, client):
        r = client.post("/activity/usage/batch", json={"items": []})
        assert r.status_code == 422

    def test_batch_invalid_item_rejects_request(self, client):
        items = [{"user_id": 32, "tool_name": "ok"}, {"user_id": 32, "tool_name": ""}]
        r = client.post("/activity/usage/batch", json={"items": items})
        assert r.status_code == 422


# ---------------------------------------------------------------------------
# Study sessions and interactions
# ---------------------------------------------------------------------------

class TestSessions:
    def test_record_session(self, client):
        r = client.post("/activity/sessions", json={
            "user_id": 33,
            "activity_type": "quiz_taken",
            "study_date": "2026-02-10",
            "score": 7,
            "max_score": 8,
            "accessibility_tools_used": ["dyslexia_font"],
        })
        assert r.status_code == 201
        body = r.json()
        assert body["study_date"] == "2026-02-10"
        assert body["score_percentage"] == 88
        assert body["accessibility_tools_used"] == ["dyslexia_font"]

    def test_score_above_max_rejected(self, client):
        r = client.post("/activity/sessions", json={
            "user_id": 33, "activity_type": "quiz_taken", "score": 9, "max_score": 8,
        })
        assert r.status_code == 422

    def test_unknown_activity_type(self, client):
        r = client.post("/activity/sessions", json={"user_id": 33, "activity_type": "napping"})
        assert r.status_code == 422

    def test_history_newest_first(self, client):
        for day in ("2026-02-01", "2026-02-03", "2026-02-02"):
            client.post("/activity/sessions", json={
                "user_id": 34, "activity_type": "reading_session", "study_date": day,
            })
        body = client.get("/activity/sessions/34").json()
        assert body["total"] == 3
        assert [s["study_date"] for s in body["items"]] == [
            "2026-02-03", "2026-02-02", "2026-02-01",
        ]


class TestInteractions:
    def test_record_interaction(self, client, make_content):
        content = make_content()
        r = client.post("/activity/interactions", json={
            "student_id": 35,
            "content_id": content.id,
            "completion_percentage": 60,
            "engagement_score": 0.8,
            "comprehension_score": 0.7,
            "usefulness_rating": 5,
            "was_helpful": True,
        })
        assert r.status_code == 201
        body = r.json()
        assert body["overall_success"] == pytest.approx(2.5 / 3)
        assert body["positive_outcome"] is True
        assert body["completed"] is False

    def test_unknown_content(self, client):
        r = client.post("/activity/interactions", json={"student_id": 35, "content_id": 999999})
        assert r.status_code == 404
        assert r.json()["code"] == "CONTENT_NOT_FOUND"


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

class TestCli:
    def test_seed_achievements_command(self):
        runner = CliRunner()
        try:
            result = runner.invoke(cli_app, ["--log-level", "WARNING", "seed-achievements"])
        finally:
            configure_logging()
        assert result.exit_code == 0
        assert "0 achievements added" in result.output

    def test_expire_command(self):
        runner = CliRunner()
        try:
            result = runner.invoke(cli_app, ["expire"])
        finally:
            configure_logging()
        assert result.exit_code == 0
        assert "Students processed: 0" in result.output
