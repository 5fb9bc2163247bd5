"""Read side of the points ledger: per-user and platform aggregates.

Every function reads the event table fresh. There are no cached totals or
incremental counters; a total is always SUM(points) over the user's rows.
"""

from __future__ import annotations

import math

from sqlalchemy import distinct, func

from errors import storage_call
from extensions import db
from models_points import SOURCE_DRILL_COMPLETION, SOURCE_MODULE_COMPLETION, PointEvent


LEADERBOARD_LIMIT = 50
MAX_PREPAREDNESS = 100


def preparedness_score(total_points) -> int:
    """min(100, floor(total / 10)); saturates at 100 and never goes below 0."""
    score = math.floor((total_points or 0) / 10)
    return max(0, min(MAX_PREPAREDNESS, int(score)))


def total_for(user_id: str) -> int:
    with storage_call("total"):
        total = (
            db.session.query(func.coalesce(func.sum(PointEvent.points), 0))
            .filter(PointEvent.user_id == user_id)
            .scalar()
        )
    return int(total or 0)


def events_for(user_id: str) -> list[PointEvent]:
    with storage_call("user events"):
        return (
            PointEvent.query.filter(PointEvent.user_id == user_id)
            .order_by(PointEvent.created_at.desc(), PointEvent.id.desc())
            .all()
        )


def source_breakdown(events) -> dict[str, int]:
    # Unrecognized sources count toward the total but neither bucket.
    return {
        "modulesCompleted": sum(1 for e in events if e.source == SOURCE_MODULE_COMPLETION),
        "drillsCompleted": sum(1 for e in events if e.source == SOURCE_DRILL_COMPLETION),
    }


def distinct_user_count() -> int:
    with storage_call("distinct users"):
        n = db.session.query(func.count(distinct(PointEvent.user_id))).scalar()
    return int(n or 0)


def count_by_source(source: str) -> int:
    with storage_call("count by source"):
        n = db.session.query(func.count(PointEvent.id)).filter(PointEvent.source == source).scalar()
    return int(n or 0)


def average_per_user_total() -> float:
    """Mean of per-user totals over users with at least one event (0.0 when empty)."""
    with storage_call("average"):
        per_user = (
            db.session.query(func.sum(PointEvent.points).label("total"))
            .group_by(PointEvent.user_id)
            .subquery()
        )
        avg = db.session.query(func.avg(per_user.c.total)).scalar()
    return float(avg or 0.0)


def _totals_query():
    total = func.sum(PointEvent.points).label("total_points")
    count = func.count(PointEvent.id).label("videos_watched")
    return (
        db.session.query(PointEvent.user_id, total, count)
        .group_by(PointEvent.user_id)
        .order_by(total.desc(), PointEvent.user_id.asc())
    )


def _entry(rank: int, row) -> dict:
    return {
        "rank": rank,
        "userId": row.user_id,
        "totalPoints": int(row.total_points or 0),
        "videosWatched": int(row.videos_watched or 0),
    }


def leaderboard(limit: int = LEADERBOARD_LIMIT) -> list[dict]:
    """Top users by total points, ties broken by ascending userId."""
    limit = max(0, min(int(limit), LEADERBOARD_LIMIT))
    with storage_call("leaderboard"):
        rows = _totals_query().limit(limit).all()
    return [_entry(i + 1, r) for i, r in enumerate(rows)]


def rank_of(user_id: str) -> dict | None:
    """Leaderboard entry for one user, ranked against everyone (not capped)."""
    with storage_call("rank lookup"):
        rows = _totals_query().all()
    for i, r in enumerate(rows):
        if r.user_id == user_id:
            return _entry(i + 1, r)
    return None


def user_statistics(user_id: str) -> dict:
    events = events_for(user_id)
    total = sum(int(e.points or 0) for e in events)
    return {
        **source_breakdown(events),
        "totalPoints": total,
        "preparednessScore": preparedness_score(total),
    }


def platform_statistics() -> dict:
    return {
        "totalStudents": distinct_user_count(),
        "totalModulesCompleted": count_by_source(SOURCE_MODULE_COMPLETION),
        "totalDrillsCompleted": count_by_source(SOURCE_DRILL_COMPLETION),
        # Score of the average per-user total, not of the platform sum.
        "averagePreparedness": preparedness_score(average_per_user_total()),
    }
