"""
Tests for error handling: structured error responses, HTTP status codes,
and the custom exception classes.
"""
import pytest
from personalization.core.errors import (
    AchievementNotFoundError,
    ConflictError,
    GenerationConflictError,
    InsightAlreadyRespondedError,
    InvalidRatingError,
    NotFoundError,
    RecommendationAlreadyRespondedError,
    RecommendationInactiveError,
    RecommendationNotFoundError,
    RecommendationNotPresentedError,
)


# ---------------------------------------------------------------------------
# Unit tests on exception classes
# ---------------------------------------------------------------------------

class TestExceptionClasses:
    def test_recommendation_not_found(self):
        err = RecommendationNotFoundError(42)
        assert isinstance(err, NotFoundError)
        assert err.http_status == 404
        assert err.code == "RECOMMENDATION_NOT_FOUND"
        assert err.to_dict()["details"]["recommendation_id"] == 42

    def test_already_responded(self):
        err = RecommendationAlreadyRespondedError(7, "started")
        assert isinstance(err, ConflictError)
        assert err.http_status == 409
        assert "started" in err.message
        assert err.details == {"recommendation_id": 7, "response": "started"}

    def test_not_presented(self):
        err = RecommendationNotPresentedError(3)
        assert err.http_status == 409
        assert err.code == "RECOMMENDATION_NOT_PRESENTED"

    def test_inactive_carries_state(self):
        err = RecommendationInactiveError(3, "expired")
        assert err.details["state"] == "expired"

    def test_invalid_rating(self):
        err = InvalidRatingError(9)
        assert err.http_status == 422
        assert err.code == "INVALID_RATING"
        assert err.details == {"rating": 9, "min": 1, "max": 5}

    def test_generation_conflict(self):
        err = GenerationConflictError(student_id=5, attempts=3)
        assert err.http_status == 409
        assert err.details["attempts"] == 3

    def test_insight_already_responded(self):
        err = InsightAlreadyRespondedError(1, "accepted")
        assert err.code == "INSIGHT_ALREADY_RESPONDED"

    def test_achievement_not_found_lists_ids(self):
        err = AchievementNotFoundError([4, 5])
        assert err.http_status == 404
        assert err.details["user_achievement_ids"] == [4, 5]

    def test_to_dict_without_details(self):
        err = ConflictError("boom")
        d = err.to_dict()
        assert d == {"code": "CONFLICT", "message": "boom"}


# ---------------------------------------------------------------------------
# Integration: error envelopes through the API
# ---------------------------------------------------------------------------

class TestErrorEnvelopes:
    def test_validation_error_shape(self, client):
        r = client.post("/activity/usage", json={"user_id": 1, "tool_name": "   "})
        assert r.status_code == 422
        body = r.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["message"] == "Request validation failed."
        fields = [e["field"] for e in body["details"]["errors"]]
        assert "tool_name" in fields

    def test_not_found_shape(self, client):
        r = client.post("/recommendations/12345/present", json={"student_id": 1})
        assert r.status_code == 404
        body = r.json()
        assert body["code"] == "RECOMMENDATION_NOT_FOUND"
        assert body["details"] == {"recommendation_id": 12345}

    @pytest.mark.parametrize("path,payload", [
        ("/recommendations/1/respond", {"student_id": 1}),
        ("/recommendations/1/feedback", {"student_id": 1, "rating": 0}),
        ("/insights/1/respond", {"user_id": 1, "response": "maybe"}),
    ])
    def test_bad_payloads_are_422(self, client, path, payload):
        r = client.post(path, json=payload)
        assert r.status_code == 422
        assert r.json()["code"] == "VALIDATION_ERROR"

    def test_missing_student_on_get_is_422(self, client):
        r = client.get("/recommendations/1")
        assert r.status_code == 422
