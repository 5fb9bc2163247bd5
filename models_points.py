"""Points ledger model.

One row per point-earning action. Rows are append-only: nothing in the
service updates or deletes them, and a user's total is always derived by
summing rows.

A (user_id, video_id) pair may appear at most once. video_id is nullable and
SQL treats NULLs as distinct, so events without a video are never deduplicated.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, Index, Integer, String, UniqueConstraint

from extensions import db


SOURCE_MODULE_COMPLETION = "module_completion"
SOURCE_DRILL_COMPLETION = "drill_completion"

USER_ID_MAX_LEN = 128
SOURCE_MAX_LEN = 64
VIDEO_ID_MAX_LEN = 128
# points is a 32-bit INTEGER column on every backend we run on.
POINTS_MAX_ABS = 2**31 - 1


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the timezone-less DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PointEvent(db.Model):
    __tablename__ = "point_events"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(USER_ID_MAX_LEN), nullable=False, index=True)
    points = Column(Integer, nullable=False)
    # Free-form category tag; drives statistics bucketing.
    source = Column(String(SOURCE_MAX_LEN), nullable=False, index=True)
    video_id = Column(String(VIDEO_ID_MAX_LEN), nullable=True)
    completion_percentage = Column(Float, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "video_id", name="uq_point_events_user_video"),
        Index("idx_point_events_user_created", "user_id", "created_at"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "points": self.points,
            "source": self.source,
            "videoId": self.video_id,
            "completionPercentage": self.completion_percentage,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
