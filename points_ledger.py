"""Append path of the points ledger.

award_points() is the only writer of PointEvent rows:
- validate the payload (userId, points, source are mandatory)
- skip the insert when (userId, videoId) was already credited
- append one immutable row
- report the user's freshly recomputed total

The existence check is only a fast path. Two concurrent identical awards can
both pass it; the unique constraint on (user_id, video_id) then rejects the
second insert and that violation is treated as the duplicate signal.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from errors import DuplicateAward, ValidationError, storage_call
from extensions import db
from models_points import (
    POINTS_MAX_ABS,
    SOURCE_MAX_LEN,
    USER_ID_MAX_LEN,
    VIDEO_ID_MAX_LEN,
    PointEvent,
    utcnow,
)
from points_stats import total_for


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AwardRequest:
    user_id: str
    points: int
    source: str
    video_id: str | None = None
    completion_percentage: float | None = None


@dataclass(frozen=True)
class AwardResult:
    total_points: int
    duplicate: bool
    event: PointEvent | None = None


def _clean_str(v) -> str | None:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _parse_points(v) -> int:
    if isinstance(v, bool):
        raise ValidationError("points must be an integer")
    if isinstance(v, int):
        points = v
    elif isinstance(v, float):
        if not v.is_integer():
            raise ValidationError("points must be an integer")
        points = int(v)
    else:
        try:
            points = int(str(v).strip())
        except ValueError:
            raise ValidationError("points must be an integer")
    if abs(points) > POINTS_MAX_ABS:
        raise ValidationError("points out of range")
    return points


def _check_length(name: str, value: str | None, limit: int) -> None:
    if value is not None and len(value) > limit:
        raise ValidationError(f"{name} must be at most {limit} characters")


def validate_award(payload: dict) -> AwardRequest:
    payload = payload or {}
    user_id = _clean_str(payload.get("userId"))
    source = _clean_str(payload.get("source"))
    raw_points = payload.get("points")
    if isinstance(raw_points, str) and not raw_points.strip():
        raw_points = None

    if not user_id or raw_points is None or not source:
        raise ValidationError("userId, points, and source are required")

    video_id = _clean_str(payload.get("videoId"))
    _check_length("userId", user_id, USER_ID_MAX_LEN)
    _check_length("source", source, SOURCE_MAX_LEN)
    _check_length("videoId", video_id, VIDEO_ID_MAX_LEN)

    pct = payload.get("completionPercentage")
    if pct is not None:
        if isinstance(pct, bool):
            raise ValidationError("completionPercentage must be a number")
        try:
            pct = float(pct)
        except (TypeError, ValueError):
            raise ValidationError("completionPercentage must be a number")

    return AwardRequest(
        user_id=user_id,
        points=_parse_points(raw_points),
        source=source,
        video_id=video_id,
        completion_percentage=pct,
    )


def is_duplicate(user_id: str, video_id: str | None) -> bool:
    if not video_id:
        return False
    with storage_call("duplicate check"):
        row = (
            db.session.query(PointEvent.id)
            .filter(PointEvent.user_id == user_id, PointEvent.video_id == video_id)
            .first()
        )
    return row is not None


def append_event(req: AwardRequest) -> PointEvent:
    event = PointEvent(
        user_id=req.user_id,
        points=req.points,
        source=req.source,
        video_id=req.video_id,
        completion_percentage=req.completion_percentage,
        created_at=utcnow(),
    )
    with storage_call("append"):
        db.session.add(event)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise DuplicateAward(f"{req.user_id}/{req.video_id}")
    return event


def award_points(payload: dict) -> AwardResult:
    req = validate_award(payload)

    if is_duplicate(req.user_id, req.video_id):
        logger.info("points already awarded user=%s video=%s", req.user_id, req.video_id)
        return AwardResult(total_points=total_for(req.user_id), duplicate=True)

    try:
        event = append_event(req)
    except DuplicateAward:
        # Lost the race against a concurrent identical award.
        logger.info("concurrent duplicate award user=%s video=%s", req.user_id, req.video_id)
        return AwardResult(total_points=total_for(req.user_id), duplicate=True)

    total = total_for(req.user_id)
    logger.info(
        "awarded %s points user=%s source=%s total=%s", req.points, req.user_id, req.source, total
    )
    return AwardResult(total_points=total, duplicate=False, event=event)
