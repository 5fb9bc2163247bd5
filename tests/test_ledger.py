import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import scoped_session

import points_ledger
from errors import StorageUnavailable, ValidationError
from extensions import db
from models_points import SOURCE_MAX_LEN, USER_ID_MAX_LEN, VIDEO_ID_MAX_LEN, PointEvent, utcnow
from points_ledger import AwardRequest, append_event, award_points, is_duplicate, validate_award


class TestValidateAward:
    def test_minimal_payload(self):
        req = validate_award({"userId": " u1 ", "points": 5, "source": "drill_completion"})
        assert req == AwardRequest(user_id="u1", points=5, source="drill_completion")

    @pytest.mark.parametrize("missing", ["userId", "points", "source"])
    def test_each_required_field(self, missing):
        payload = {"userId": "u1", "points": 5, "source": "drill_completion"}
        payload.pop(missing)
        with pytest.raises(ValidationError):
            validate_award(payload)

    @pytest.mark.parametrize("points", [True, 2.5, "abc", [1]])
    def test_rejects_non_integer_points(self, points):
        with pytest.raises(ValidationError):
            validate_award({"userId": "u1", "points": points, "source": "drill_completion"})

    def test_integral_float_points_accepted(self):
        assert validate_award({"userId": "u1", "points": 10.0, "source": "x"}).points == 10

    @pytest.mark.parametrize("points", [2**31, -(2**31), 10**20, "99999999999999999999", 1e30])
    def test_rejects_points_outside_integer_column(self, points):
        with pytest.raises(ValidationError, match="points out of range"):
            validate_award({"userId": "u1", "points": points, "source": "drill_completion"})

    @pytest.mark.parametrize("points", [2**31 - 1, -(2**31 - 1)])
    def test_accepts_points_at_the_bound(self, points):
        assert validate_award({"userId": "u1", "points": points, "source": "x"}).points == points

    @pytest.mark.parametrize(
        "field, limit",
        [("userId", USER_ID_MAX_LEN), ("source", SOURCE_MAX_LEN), ("videoId", VIDEO_ID_MAX_LEN)],
    )
    def test_rejects_values_longer_than_their_column(self, field, limit):
        payload = {"userId": "u1", "points": 5, "source": "drill_completion", "videoId": "v1"}

        payload[field] = "x" * limit
        validate_award(payload)

        payload[field] = "x" * (limit + 1)
        with pytest.raises(ValidationError, match=f"{field} must be at most {limit} characters"):
            validate_award(payload)


class TestIdempotencyGuard:
    def test_no_video_is_never_a_duplicate(self, app):
        with app.app_context():
            db.session.add(PointEvent(user_id="u1", points=1, source="drill_completion"))
            db.session.commit()
            assert is_duplicate("u1", None) is False
            assert is_duplicate("u1", "") is False

    def test_existing_pair_is_a_duplicate(self, app):
        with app.app_context():
            db.session.add(PointEvent(user_id="u1", points=1, source="module_completion", video_id="v1"))
            db.session.commit()
            assert is_duplicate("u1", "v1") is True
            assert is_duplicate("u1", "v2") is False
            assert is_duplicate("u2", "v1") is False


class TestConcurrentDuplicate:
    def test_unique_constraint_turns_race_into_noop(self, app, monkeypatch):
        """Both requests pass the existence check; the second insert must lose."""
        with app.app_context():
            append_event(AwardRequest(user_id="u1", points=50, source="module_completion", video_id="v1"))

            monkeypatch.setattr(points_ledger, "is_duplicate", lambda user_id, video_id: False)
            result = award_points({"userId": "u1", "points": 50, "source": "module_completion", "videoId": "v1"})

            assert result.duplicate is True
            assert result.event is None
            assert result.total_points == 50
            assert PointEvent.query.count() == 1


class TestStorageFailures:
    @staticmethod
    def _broken_query(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    def test_read_failure_is_translated(self, app, monkeypatch):
        with app.app_context():
            monkeypatch.setattr(scoped_session, "query", self._broken_query)
            with pytest.raises(StorageUnavailable):
                is_duplicate("u1", "v1")

    def test_leaderboard_failure_returns_500(self, client, monkeypatch):
        monkeypatch.setattr(scoped_session, "query", self._broken_query)

        resp = client.get("/api/leaderboard")

        assert resp.status_code == 500
        assert "Storage unavailable" in resp.get_json()["error"]
        assert resp.headers["Retry-After"] == "1"

    def test_award_failure_writes_nothing(self, app, client, monkeypatch):
        monkeypatch.setattr(scoped_session, "query", self._broken_query)
        resp = client.post(
            "/api/points/award",
            json={"userId": "u1", "points": 5, "source": "module_completion", "videoId": "v1"},
        )
        monkeypatch.undo()

        assert resp.status_code == 500
        assert set(resp.get_json()) == {"error"}
        with app.app_context():
            assert PointEvent.query.count() == 0


class TestOversizedAwards:
    def test_huge_points_is_a_400_and_writes_nothing(self, app, award):
        resp = award(userId="u1", points=10**20, source="drill_completion")

        assert resp.status_code == 400
        assert resp.get_json() == {"error": "points out of range"}
        with app.app_context():
            assert PointEvent.query.count() == 0

    def test_long_source_is_a_400_not_a_retryable_500(self, app, award):
        resp = award(userId="u1", points=5, source="s" * (SOURCE_MAX_LEN + 1))

        assert resp.status_code == 400
        assert "Retry-After" not in resp.headers
        with app.app_context():
            assert PointEvent.query.count() == 0


def test_events_are_stamped_in_utc(app):
    with app.app_context():
        before = utcnow()
        event = append_event(AwardRequest(user_id="u1", points=1, source="drill_completion"))
        after = utcnow()

        assert event.created_at.tzinfo is None
        assert before <= event.created_at <= after
