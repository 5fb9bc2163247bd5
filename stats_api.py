from flask import Blueprint, jsonify

from points_stats import platform_statistics, user_statistics


stats_api = Blueprint("stats_api", __name__)


@stats_api.get("/api/statistics/user/<user_id>")
def get_user_statistics(user_id: str):
    return jsonify({"success": True, "data": user_statistics((user_id or "").strip())})


@stats_api.get("/api/statistics/platform")
def get_platform_statistics():
    """Platform-wide rollup. An empty ledger yields zeros, never sample data."""
    return jsonify({"success": True, "data": platform_statistics()})
