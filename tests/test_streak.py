"""
Tests for the streak calculator: the pure rule and GET /streak/{user_id}.
"""
import pytest
from datetime import date, timedelta

from personalization.core.clock import today as utc_today
from personalization.services.streak import calculate_streak, longest_streak

TODAY = date(2026, 5, 20)


def d(offset: int) -> date:
    return TODAY - timedelta(days=offset)


class TestCalculateStreak:
    @pytest.mark.parametrize("dates,expected", [
        (set(), 0),
        ({d(0)}, 1),
        ({d(1)}, 1),
        ({d(0), d(1), d(2)}, 3),
        ({d(0), d(2)}, 1),
        ({d(2)}, 0),
        ({d(1), d(2), d(3), d(5)}, 3),
    ])
    def test_rule_table(self, dates, expected):
        assert calculate_streak(dates, TODAY) == expected

    def test_future_dates_ignored(self):
        assert calculate_streak({d(-1), d(-2)}, TODAY) == 0

    def test_duplicates_do_not_inflate(self):
        assert calculate_streak([d(0), d(0), d(1)], TODAY) == 2


class TestLongestStreak:
    def test_empty(self):
        assert longest_streak([]) == 0

    def test_longest_run_anywhere(self):
        dates = [d(0), d(1)] + [d(i) for i in range(10, 15)]
        assert longest_streak(dates) == 5

    def test_single_day(self):
        assert longest_streak([d(3)]) == 1


class TestStreakEndpoint:
    def _session(self, client, user_id, study_date):
        r = client.post("/activity/sessions", json={
            "user_id": user_id,
            "activity_type": "lesson_completed",
            "study_date": study_date.isoformat(),
            "duration_minutes": 15,
        })
        assert r.status_code == 201, r.text

    def test_current_and_longest(self, client):
        today = utc_today()
        for offset in (0, 1, 2):
            self._session(client, 3, today - timedelta(days=offset))
        for offset in range(10, 15):
            self._session(client, 3, today - timedelta(days=offset))

        body = client.get("/streak/3").json()
        assert body["current_streak"] == 3
        assert body["longest_streak"] == 5
        assert body["active_today"] is True
        assert body["total_active_days"] == 8
        assert body["last_active_date"] == today.isoformat()

    def test_yesterday_keeps_streak_alive(self, client):
        yesterday = utc_today() - timedelta(days=1)
        self._session(client, 4, yesterday)
        self._session(client, 4, yesterday)
        body = client.get("/streak/4").json()
        assert body["current_streak"] == 1
        assert body["active_today"] is False
        assert body["total_active_days"] == 1

    def test_no_activity(self, client):
        body = client.get("/streak/5").json()
        assert body["current_streak"] == 0
        assert body["longest_streak"] == 0
        assert body["last_active_date"] is None
