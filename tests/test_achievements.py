"""
Tests for the achievement evaluator: unlocking, idempotency, computed
metrics, progress and the "new" badge.
"""
import pytest
from datetime import timedelta

from sqlalchemy.exc import IntegrityError

from personalization.core.clock import utcnow
from personalization.models.achievement import Achievement, UserAchievement
from personalization.services import achievements
from personalization.services.achievements import DEFAULT_ACHIEVEMENTS

USER = 11


def _check(client, user_id=USER, metrics=None):
    r = client.post(
        f"/achievements/check/{user_id}",
        json={"metrics": metrics} if metrics is not None else None,
    )
    assert r.status_code == 200, r.text
    return r.json()


def _names(items) -> list[str]:
    return [i["achievement"]["name"] for i in items]


def _session(client, user_id=USER, **fields):
    payload = {"user_id": user_id, "activity_type": "lesson_completed"}
    payload.update(fields)
    r = client.post("/activity/sessions", json=payload)
    assert r.status_code == 201, r.text


class TestCheck:
    def test_supplied_metrics_unlock_sorted_by_points(self, client):
        body = _check(client, metrics={"lessons_completed": 5})
        assert _names(body["newly_unlocked"]) == ["Getting Started", "First Steps"]
        assert body["points_earned"] == 35
        assert all(i["is_new"] for i in body["newly_unlocked"])

    def test_second_check_unlocks_nothing(self, client):
        _check(client, metrics={"lessons_completed": 5})
        again = _check(client, metrics={"lessons_completed": 5})
        assert again["newly_unlocked"] == []
        assert again["points_earned"] == 0

    def test_nothing_earned(self, client):
        assert _check(client)["newly_unlocked"] == []

    def test_metrics_computed_from_sessions(self, client):
        for _ in range(3):
            _session(client, duration_minutes=10)
        names = set(_names(_check(client)["newly_unlocked"]))
        assert names == {"First Steps", "Day One", "Quick Learner"}

    def test_quiz_metrics(self, client):
        _session(client, activity_type="quiz_taken", score=9, max_score=10)
        names = _names(_check(client)["newly_unlocked"])
        assert names == ["Brilliant Mind", "Smart Cookie", "Quiz Starter", "Day One"]

    def test_tools_merge_sessions_and_usage(self, client):
        for tool in ("text_to_speech", "focus_timer"):
            client.post("/activity/usage", json={"user_id": USER, "tool_name": tool})
        _session(client, accessibility_tools_used=["focus_timer", "dyslexia_font"])
        assert "Tool Explorer" in _names(_check(client)["newly_unlocked"])

    def test_unknown_metric_rejected(self, client):
        r = client.post(f"/achievements/check/{USER}", json={"metrics": {"karma": 3}})
        assert r.status_code == 422

    def test_duplicate_unlock_blocked_by_constraint(self, db):
        achievements.evaluate(db, USER, {"lessons_completed": 1})
        first_steps = db.query(Achievement).filter(Achievement.name == "First Steps").one()
        db.add(UserAchievement(user_id=USER, achievement_id=first_steps.id, progress_value=1))
        with pytest.raises(IntegrityError):
            db.flush()
        db.rollback()
        assert db.query(UserAchievement).filter(UserAchievement.user_id == USER).count() == 1


class TestListAndMarkViewed:
    def test_list_and_mark_all_viewed(self, client):
        _check(client, metrics={"lessons_completed": 5})
        body = client.get(f"/achievements/user/{USER}").json()
        assert body["total"] == 2
        assert body["total_points"] == 35
        assert body["new_count"] == 2

        r = client.post(f"/achievements/user/{USER}/mark-viewed")
        assert r.json()["updated"] == 2
        assert client.get(f"/achievements/user/{USER}").json()["new_count"] == 0

        # one-way: a second call changes nothing
        assert client.post(f"/achievements/user/{USER}/mark-viewed").json()["updated"] == 0

    def test_mark_selected_ids(self, client):
        unlocked = _check(client, metrics={"lessons_completed": 5})["newly_unlocked"]
        r = client.post(
            f"/achievements/user/{USER}/mark-viewed",
            json={"user_achievement_ids": [unlocked[0]["id"]]},
        )
        assert r.json()["updated"] == 1
        assert client.get(f"/achievements/user/{USER}").json()["new_count"] == 1

    def test_foreign_ids_not_found(self, client):
        unlocked = _check(client, metrics={"lessons_completed": 1})["newly_unlocked"]
        r = client.post(
            f"/achievements/user/{USER + 1}/mark-viewed",
            json={"user_achievement_ids": [unlocked[0]["id"]]},
        )
        assert r.status_code == 404
        assert r.json()["code"] == "ACHIEVEMENT_NOT_FOUND"


class TestProgress:
    def test_progress_toward_locked_and_unlocked(self, client):
        _session(client)
        _session(client)
        _check(client)

        items = client.get(f"/achievements/user/{USER}/progress").json()["items"]
        assert len(items) == len(DEFAULT_ACHIEVEMENTS)
        by_name = {i["achievement"]["name"]: i for i in items}
        assert by_name["First Steps"]["unlocked"] is True
        assert by_name["First Steps"]["percentage"] == 100
        assert by_name["Getting Started"]["unlocked"] is False
        assert by_name["Getting Started"]["current_value"] == 2
        assert by_name["Getting Started"]["percentage"] == 40


class TestStats:
    def test_counts_by_category_and_rarity(self, client):
        _check(client, metrics={"lessons_completed": 5, "quizzes_completed": 1})
        body = client.get(f"/achievements/user/{USER}/stats").json()
        assert body["total_earned"] == 3
        assert body["total_available"] == len(DEFAULT_ACHIEVEMENTS)
        assert body["total_points"] == 45
        assert body["completion_percentage"] == 3 * 100 // len(DEFAULT_ACHIEVEMENTS)
        assert body["recent_count"] == 3
        assert body["by_category"] == {
            "learning": 2, "streak": 0, "quiz": 1, "time": 0, "accessibility": 0,
        }
        assert body["by_rarity"] == {"common": 3, "rare": 0, "epic": 0, "legendary": 0}

    def test_old_unlocks_are_not_recent(self, db):
        achievements.evaluate(db, USER, {"lessons_completed": 1})
        later = utcnow() + timedelta(days=achievements.RECENT_DAYS + 1)
        s = achievements.stats(db, USER, now=later)
        assert s.total_earned == 1
        assert s.recent_count == 0

    def test_no_unlocks(self, client):
        body = client.get(f"/achievements/user/{USER}/stats").json()
        assert body["total_earned"] == 0
        assert body["completion_percentage"] == 0
        assert set(body["by_rarity"].values()) == {0}


class TestInitialize:
    def test_seed_is_idempotent(self, client, db):
        r = client.post("/achievements/initialize")
        assert r.status_code == 200
        assert r.json()["added"] == 0
        assert db.query(Achievement).count() == len(DEFAULT_ACHIEVEMENTS)
