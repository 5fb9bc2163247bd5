"""Points APIs.

Routes:
- POST /api/points/award
- GET  /api/points/user/<user_id>
- GET  /api/leaderboard            (alias: /api/points/leaderboard)

Awarding is idempotent per (userId, videoId). Re-awarding the same video is a
successful no-op that reports the current total.
"""

import os

from flask import Blueprint, jsonify, request

from extensions import limiter
from points_ledger import award_points
from points_stats import events_for, leaderboard, rank_of


points_api = Blueprint("points_api", __name__)

AWARD_RATE_LIMIT = os.getenv("AWARD_RATE_LIMIT", "60 per minute")


@points_api.post("/api/points/award")
@limiter.limit(AWARD_RATE_LIMIT)
def award():
    data = request.get_json(silent=True) or {}
    result = award_points(data)

    if result.duplicate:
        message = "Points already awarded for this video"
    else:
        message = "Points awarded successfully"

    return jsonify(
        {
            "success": True,
            "message": message,
            "totalPoints": result.total_points,
            "alreadyAwarded": result.duplicate,
        }
    )


@points_api.get("/api/points/user/<user_id>")
def user_points(user_id: str):
    user_id = (user_id or "").strip()
    events = events_for(user_id)
    return jsonify(
        {
            "success": True,
            "data": {
                "userId": user_id,
                "totalPoints": sum(int(e.points or 0) for e in events),
                "points": [e.to_dict() for e in events],
            },
        }
    )


@points_api.get("/api/leaderboard")
@points_api.get("/api/points/leaderboard")
def get_leaderboard():
    current_user_id = (request.args.get("userId") or "").strip()
    current_user = rank_of(current_user_id) if current_user_id else None
    return jsonify({"success": True, "data": leaderboard(), "currentUser": current_user})
