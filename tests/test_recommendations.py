"""
Tests for the recommendation lifecycle: generation, supersession,
present / respond / feedback, the expiry sweep and analytics.
"""
import pytest
from datetime import timedelta
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from personalization.core.clock import utcnow
from personalization.core.errors import GenerationConflictError, InvalidTopNError
from personalization.models.content import ContentStatus
from personalization.models.recommendation import Recommendation
from personalization.services import recommendations as lifecycle
from personalization.services.profile_store import default_profile
from personalization.services.scoring import score_candidate

STUDENT = 1


def _generate(client, student_id=STUDENT, **body):
    r = client.post(f"/recommendations/generate/{student_id}", json=body or None)
    assert r.status_code == 200, r.text
    return r.json()


def _present(client, rec_id, student_id=STUDENT):
    return client.post(f"/recommendations/{rec_id}/present", json={"student_id": student_id})


def _respond(client, rec_id, response, student_id=STUDENT):
    return client.post(
        f"/recommendations/{rec_id}/respond",
        json={"student_id": student_id, "response": response},
    )


def _expire(client, days_ahead: float):
    now = (utcnow() + timedelta(days=days_ahead)).isoformat()
    r = client.post("/recommendations/expire", json={"now": now})
    assert r.status_code == 200, r.text
    return r.json()


def _active_count(db, student_id=STUDENT) -> int:
    db.expire_all()
    return (
        db.query(Recommendation)
        .filter(Recommendation.student_id == student_id, Recommendation.is_active.is_(True))
        .count()
    )


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

class TestGenerate:
    def test_creates_ranked_rows(self, client, make_content):
        make_content()
        make_content(rating_average=Decimal("4.8"), rating_count=12)
        make_content(difficulty_level=None)

        body = _generate(client)
        assert body["created"] == 3
        assert body["candidates_considered"] == 3
        scores = [i["overall_score"] for i in body["items"]]
        assert scores == sorted(scores, reverse=True)
        first = body["items"][0]
        assert first["state"] == "active"
        assert first["presented"] is False
        assert first["algorithm_version"] == "3.0"
        assert first["content_title"].startswith("Lesson")

    def test_second_run_is_idempotent(self, client, db, make_content):
        make_content()
        make_content()
        first = _generate(client)
        second = _generate(client)

        assert second["created"] == 0
        assert second["superseded"] == 0
        assert second["kept"] == 2
        assert {i["id"] for i in first["items"]} == {i["id"] for i in second["items"]}
        assert _active_count(db) == 2

    def test_top_n_limits_result(self, client, make_content):
        for _ in range(4):
            make_content()
        body = _generate(client, top_n=2)
        assert len(body["items"]) == 2

    def test_top_n_zero_rejected(self, client, make_content):
        r = client.post(f"/recommendations/generate/{STUDENT}", json={"top_n": 0})
        assert r.status_code == 422

    def test_service_rejects_non_positive_top_n(self, db):
        with pytest.raises(InvalidTopNError):
            lifecycle.generate(db, STUDENT, top_n=0)

    def test_empty_catalog_is_empty_result(self, client):
        body = _generate(client)
        assert body["items"] == []
        assert body["candidates_considered"] == 0

    def test_draft_and_private_content_excluded(self, client, make_content):
        visible = make_content()
        make_content(status=ContentStatus.draft)
        make_content(is_public=False)
        body = _generate(client)
        assert [i["content_id"] for i in body["items"]] == [visible.id]

    def test_completed_interaction_excludes_content(self, client, make_content):
        done = make_content()
        other = make_content()
        r = client.post("/activity/interactions", json={
            "student_id": STUDENT, "content_id": done.id, "completion_percentage": 100,
        })
        assert r.status_code == 201
        body = _generate(client)
        assert [i["content_id"] for i in body["items"]] == [other.id]

    def test_other_students_unaffected(self, client, db, make_content):
        make_content()
        _generate(client, student_id=1)
        _generate(client, student_id=2)
        assert _active_count(db, 1) == 1
        assert _active_count(db, 2) == 1


# ---------------------------------------------------------------------------
# Supersession and TTL replacement
# ---------------------------------------------------------------------------

class TestSupersede:
    def test_score_drift_supersedes_unpresented_row(self, client, db, make_content):
        content = make_content()
        old = _generate(client)["items"][0]

        content.rating_average = Decimal("5")
        content.rating_count = 10
        db.commit()

        body = _generate(client)
        assert body["superseded"] == 1
        new = body["items"][0]
        assert new["id"] != old["id"]
        assert new["overall_score"] > old["overall_score"]

        r = client.get(f"/recommendations/{old['id']}", params={"student_id": STUDENT})
        stale = r.json()
        assert stale["is_active"] is False
        assert stale["state"] == "expired"
        assert stale["superseded_by_id"] == new["id"]
        assert _active_count(db) == 1

    def test_presented_row_is_not_superseded(self, client, db, make_content):
        content = make_content()
        rec = _generate(client)["items"][0]
        assert _present(client, rec["id"]).status_code == 200

        content.rating_average = Decimal("5")
        content.rating_count = 10
        db.commit()

        body = _generate(client)
        assert body["superseded"] == 0
        assert body["kept"] == 1
        assert body["items"][0]["id"] == rec["id"]

    def test_past_ttl_row_is_replaced(self, client, db, make_content):
        make_content()
        rec = _generate(client)["items"][0]
        db.execute(
            update(Recommendation)
            .where(Recommendation.id == rec["id"])
            .values(expires_at=utcnow() - timedelta(days=1))
        )
        db.commit()

        body = _generate(client)
        assert body["superseded"] == 1
        assert body["items"][0]["id"] != rec["id"]
        assert _active_count(db) == 1

    def test_unique_active_pair_enforced(self, db, make_content):
        content = make_content()
        lifecycle.generate(db, STUDENT)
        scores = score_candidate(default_profile(STUDENT), content, [])
        db.add(lifecycle._new_row(STUDENT, content, scores, utcnow()))
        with pytest.raises(IntegrityError):
            db.flush()
        db.rollback()

    def test_conflicts_exhaust_retries(self, db, monkeypatch):
        calls = []

        def always_conflict(db, student_id, top_n):
            calls.append(1)
            raise IntegrityError("INSERT", {}, Exception("duplicate active pair"))

        monkeypatch.setattr(lifecycle, "_generate_once", always_conflict)
        with pytest.raises(GenerationConflictError) as exc_info:
            lifecycle.generate(db, STUDENT)
        assert len(calls) == 3
        assert exc_info.value.http_status == 409


class TestConcurrentGeneration:
    """A rival session commits between this run's read of active rows and its write."""

    def test_rival_supersede_wins_then_retry_keeps_its_row(self, db, make_content, monkeypatch):
        content = make_content()
        original = lifecycle.generate(db, STUDENT).items[0].id
        content.rating_average = Decimal("5")
        content.rating_count = 10
        db.commit()

        real_retire = lifecycle._retire
        interleaved = []

        def retire_after_rival(session, rec, now, require_unpresented):
            if not interleaved:
                interleaved.append(rec.id)
                rival = Session(bind=db.get_bind())
                try:
                    lifecycle.generate(rival, STUDENT)
                finally:
                    rival.close()
            return real_retire(session, rec, now, require_unpresented)

        monkeypatch.setattr(lifecycle, "_retire", retire_after_rival)
        result = lifecycle.generate(db, STUDENT)

        assert interleaved == [original]
        assert result.superseded == 0
        assert result.kept == 1
        assert _active_count(db) == 1

        rows = {r.id: r for r in db.query(Recommendation).filter_by(student_id=STUDENT)}
        assert len(rows) == 2
        winner = result.items[0]
        assert winner.id != original
        assert winner.is_active is True
        assert winner.superseded_by_id is None
        assert rows[original].is_active is False
        assert rows[original].state == "expired"
        assert rows[original].superseded_by_id == winner.id

    def test_rival_present_blocks_supersede(self, db, make_content, monkeypatch):
        content = make_content()
        original = lifecycle.generate(db, STUDENT).items[0].id
        content.rating_average = Decimal("5")
        content.rating_count = 10
        db.commit()

        real_retire = lifecycle._retire
        interleaved = []

        def retire_after_present(session, rec, now, require_unpresented):
            if not interleaved:
                interleaved.append(rec.id)
                rival = Session(bind=db.get_bind())
                try:
                    lifecycle.present(rival, rec.id, STUDENT)
                finally:
                    rival.close()
            return real_retire(session, rec, now, require_unpresented)

        monkeypatch.setattr(lifecycle, "_retire", retire_after_present)
        result = lifecycle.generate(db, STUDENT)

        assert result.superseded == 0
        assert result.kept == 1
        assert result.items[0].id == original
        assert result.items[0].presented is True
        assert _active_count(db) == 1
        assert db.query(Recommendation).filter_by(student_id=STUDENT).count() == 1

    def test_rival_insert_hits_unique_index_then_retry_keeps_it(
        self, db, make_content, monkeypatch
    ):
        make_content()
        real_new_row = lifecycle._new_row
        rival_ids = []

        def new_row_after_rival(student_id, content, scores, now):
            if not rival_ids:
                rival = Session(bind=db.get_bind())
                try:
                    row = real_new_row(student_id, content, scores, now)
                    rival.add(row)
                    rival.commit()
                    rival_ids.append(row.id)
                finally:
                    rival.close()
            return real_new_row(student_id, content, scores, now)

        monkeypatch.setattr(lifecycle, "_new_row", new_row_after_rival)
        result = lifecycle.generate(db, STUDENT)

        assert result.created == 0
        assert result.kept == 1
        assert [r.id for r in result.items] == rival_ids
        assert _active_count(db) == 1
        assert db.query(Recommendation).filter_by(student_id=STUDENT).count() == 1


# ---------------------------------------------------------------------------
# Present / respond / feedback
# ---------------------------------------------------------------------------

class TestLifecycleTransitions:
    def test_present_is_idempotent(self, client, make_content):
        make_content()
        rec = _generate(client)["items"][0]
        first = _present(client, rec["id"]).json()
        second = _present(client, rec["id"]).json()
        assert first["presented"] is True
        assert first["presented_at"] is not None
        assert second["presented_at"] == first["presented_at"]

    def test_list_hides_presented_by_default(self, client, make_content):
        make_content()
        make_content()
        items = _generate(client)["items"]
        _present(client, items[0]["id"])

        r = client.get(f"/recommendations/student/{STUDENT}")
        assert r.json()["total"] == 1
        r = client.get(f"/recommendations/student/{STUDENT}", params={"include_presented": True})
        assert r.json()["total"] == 2

    def test_respond_requires_presentation(self, client, make_content):
        make_content()
        rec = _generate(client)["items"][0]
        r = _respond(client, rec["id"], "started")
        assert r.status_code == 409
        assert r.json()["code"] == "RECOMMENDATION_NOT_PRESENTED"

    def test_respond_once(self, client, make_content):
        make_content()
        rec = _generate(client)["items"][0]
        _present(client, rec["id"])

        r = _respond(client, rec["id"], "bookmarked")
        assert r.status_code == 200
        body = r.json()
        assert body["state"] == "responded"
        assert body["is_active"] is True
        assert body["student_response"] == "bookmarked"

        r = _respond(client, rec["id"], "started")
        assert r.status_code == 409
        assert r.json()["code"] == "RECOMMENDATION_ALREADY_RESPONDED"

    def test_unknown_response_rejected(self, client, make_content):
        make_content()
        rec = _generate(client)["items"][0]
        _present(client, rec["id"])
        r = _respond(client, rec["id"], "loved_it")
        assert r.status_code == 422
        assert r.json()["code"] == "VALIDATION_ERROR"

    def test_other_student_gets_not_found(self, client, make_content):
        make_content()
        rec = _generate(client)["items"][0]
        r = _present(client, rec["id"], student_id=99)
        assert r.status_code == 404
        assert r.json()["code"] == "RECOMMENDATION_NOT_FOUND"
        r = client.get(f"/recommendations/{rec['id']}", params={"student_id": 99})
        assert r.status_code == 404

    def test_unknown_id_not_found(self, client):
        r = _present(client, 999999)
        assert r.status_code == 404

    def test_started_increments_view_count(self, client, db, make_content):
        content = make_content()
        rec = _generate(client)["items"][0]
        _present(client, rec["id"])
        _respond(client, rec["id"], "started")
        db.refresh(content)
        assert content.view_count == 1

    def test_bookmark_does_not_count_as_view(self, client, db, make_content):
        content = make_content()
        rec = _generate(client)["items"][0]
        _present(client, rec["id"])
        _respond(client, rec["id"], "bookmarked")
        db.refresh(content)
        assert content.view_count == 0

    def test_completed_response_makes_content_ineligible(self, client, make_content):
        done = make_content()
        other = make_content()
        items = _generate(client)["items"]
        rec = next(i for i in items if i["content_id"] == done.id)
        _present(client, rec["id"])
        _respond(client, rec["id"], "completed")

        body = _generate(client)
        assert body["candidates_considered"] == 1
        assert [i["content_id"] for i in body["items"]] == [other.id]

    def test_feedback_requires_response(self, client, make_content):
        make_content()
        rec = _generate(client)["items"][0]
        _present(client, rec["id"])
        r = client.post(
            f"/recommendations/{rec['id']}/feedback",
            json={"student_id": STUDENT, "rating": 4},
        )
        assert r.status_code == 409
        assert r.json()["code"] == "RECOMMENDATION_NOT_RESPONDED"

    def test_feedback_after_response(self, client, make_content):
        make_content()
        rec = _generate(client)["items"][0]
        _present(client, rec["id"])
        _respond(client, rec["id"], "started")
        r = client.post(
            f"/recommendations/{rec['id']}/feedback",
            json={"student_id": STUDENT, "rating": 5, "was_helpful": True},
        )
        assert r.status_code == 200
        body = r.json()
        assert body["feedback_rating"] == 5
        assert body["was_helpful"] is True
        assert body["state"] == "responded"

    def test_feedback_rating_out_of_range(self, client, make_content):
        make_content()
        rec = _generate(client)["items"][0]
        r = client.post(
            f"/recommendations/{rec['id']}/feedback",
            json={"student_id": STUDENT, "rating": 6},
        )
        assert r.status_code == 422


# ---------------------------------------------------------------------------
# Expiry sweep
# ---------------------------------------------------------------------------

class TestExpirySweep:
    def test_past_ttl_expired_once(self, client, make_content):
        make_content()
        rec = _generate(client)["items"][0]

        first = _expire(client, days_ahead=8)
        assert first["expired"] == 1
        assert first["total_deactivated"] == 1
        second = _expire(client, days_ahead=8)
        assert second["total_deactivated"] == 0

        body = client.get(f"/recommendations/{rec['id']}", params={"student_id": STUDENT}).json()
        assert body["state"] == "expired"
        assert body["is_active"] is False
        assert body["expired_at"] is not None

    def test_nothing_due_now(self, client, make_content):
        make_content()
        _generate(client)
        assert _expire(client, days_ahead=0)["total_deactivated"] == 0

    def test_presented_without_answer_times_out(self, client, make_content):
        make_content()
        rec = _generate(client)["items"][0]
        _present(client, rec["id"])
        body = _expire(client, days_ahead=4)
        assert body["presented_timeouts"] == 1
        assert body["expired"] == 0

    def test_ignored_deactivated_but_stays_responded(self, client, make_content):
        make_content()
        rec = _generate(client)["items"][0]
        _present(client, rec["id"])
        _respond(client, rec["id"], "ignored")

        body = _expire(client, days_ahead=2)
        assert body["ignored_deactivated"] == 1

        row = client.get(f"/recommendations/{rec['id']}", params={"student_id": STUDENT}).json()
        assert row["is_active"] is False
        assert row["state"] == "responded"

    def test_inactive_row_rejects_transitions(self, client, make_content):
        make_content()
        rec = _generate(client)["items"][0]
        _expire(client, days_ahead=8)
        r = _present(client, rec["id"])
        assert r.status_code == 409
        assert r.json()["code"] == "RECOMMENDATION_INACTIVE"

    def test_expired_pair_can_be_regenerated(self, client, db, make_content):
        make_content()
        _generate(client)
        _expire(client, days_ahead=8)
        body = _generate(client)
        assert body["created"] == 1
        assert _active_count(db) == 1


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------

class TestAnalytics:
    def test_counts_and_rates(self, client, make_content):
        make_content()
        make_content()
        items = _generate(client)["items"]
        rec_id = items[0]["id"]
        _present(client, rec_id)
        _respond(client, rec_id, "started")
        client.post(
            f"/recommendations/{rec_id}/feedback",
            json={"student_id": STUDENT, "rating": 4, "was_helpful": True},
        )

        r = client.get(f"/recommendations/analytics/{STUDENT}")
        assert r.status_code == 200
        body = r.json()
        assert body["total"] == 2
        assert body["active"] == 2
        assert body["presented"] == 1
        assert body["responded"] == 1
        assert body["expired"] == 0
        assert body["by_response"]["started"] == 1
        assert body["presentation_rate"] == 0.5
        assert body["average_feedback_rating"] == 4.0
        assert body["helpful_rate"] == 1.0

    def test_empty_student(self, client):
        body = client.get(f"/recommendations/analytics/{STUDENT}").json()
        assert body["total"] == 0
        assert body["presentation_rate"] == 0.0
        assert body["average_feedback_rating"] is None
