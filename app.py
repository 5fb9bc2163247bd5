from __future__ import annotations

from dotenv import load_dotenv
load_dotenv()

import logging
import os
from datetime import datetime, timezone

from flask import Flask, jsonify
from flask_cors import CORS
from sqlalchemy import text

from errors import register_error_handlers
from extensions import db, limiter


logger = logging.getLogger(__name__)


def _database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if not url:
        if os.getenv("RENDER") == "true":
            raise RuntimeError("DATABASE_URL missing on Render; refusing to use SQLite.")
        url = "sqlite:///points.db"
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


def _engine_options(url: str, timeout: float) -> dict:
    """Bound every storage call so a stuck database surfaces as a retryable error."""
    options = {
        "pool_recycle": 300,
        "pool_pre_ping": True,
    }
    if url.startswith("sqlite"):
        # sqlite3 busy timeout (seconds spent waiting on a locked database)
        options["connect_args"] = {"timeout": timeout}
        return options

    options["pool_timeout"] = timeout
    if url.startswith("postgresql"):
        options["connect_args"] = {
            "connect_timeout": max(1, int(timeout)),
            "options": f"-c statement_timeout={int(timeout * 1000)}",
        }
    return options


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or "INFO").upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(test_config: dict | None = None) -> Flask:
    _configure_logging(os.getenv("LOG_LEVEL", "INFO"))

    app = Flask(__name__)

    timeout = float(os.getenv("STORAGE_TIMEOUT_SECONDS", "5"))
    db_url = _database_url()
    app.config["SQLALCHEMY_DATABASE_URI"] = db_url
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = _engine_options(db_url, timeout)

    # Rate limiting
    # - Use a Redis URL in RATE_LIMIT_STORAGE_URL for multi-instance correctness.
    # - Defaults to in-memory storage for simplicity.
    app.config["RATELIMIT_STORAGE_URI"] = os.getenv("RATE_LIMIT_STORAGE_URL", "memory://")
    app.config["RATELIMIT_DEFAULT"] = os.getenv("RATE_LIMIT_DEFAULT", "1000 per hour")
    app.config["RATELIMIT_ENABLED"] = os.getenv("RATELIMIT_ENABLED", "1") == "1"

    if test_config:
        app.config.update(test_config)
        if "SQLALCHEMY_DATABASE_URI" in test_config and "SQLALCHEMY_ENGINE_OPTIONS" not in test_config:
            uri = test_config["SQLALCHEMY_DATABASE_URI"]
            app.config["SQLALCHEMY_ENGINE_OPTIONS"] = _engine_options(uri, timeout)

    db.init_app(app)
    limiter.init_app(app)

    origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
    CORS(app, origins=origins or "*")

    register_error_handlers(app)

    from models_points import PointEvent  # noqa: F401
    from points import points_api
    from stats_api import stats_api

    app.register_blueprint(points_api)
    app.register_blueprint(stats_api)

    @app.after_request
    def add_api_headers(resp):
        resp.headers.setdefault("Cache-Control", "no-store")
        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        return resp

    @app.get("/")
    def index():
        return jsonify({
            "message": "Disaster Prep points API is running",
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "endpoints": [
                "GET /api/health - Health check",
                "POST /api/points/award - Award points",
                "GET /api/points/user/<userId> - Get user points",
                "GET /api/leaderboard - Get leaderboard",
                "GET /api/statistics/user/<userId> - Get user statistics",
                "GET /api/statistics/platform - Get platform statistics",
            ],
        })

    @app.get("/api/health")
    @limiter.exempt
    def health_check():
        try:
            db.session.execute(text("SELECT 1"))
            return jsonify({
                "success": True,
                "status": "healthy",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "database": "connected",
            })
        except Exception as e:
            db.session.rollback()
            logger.warning("health check failed: %s", e)
            return jsonify({
                "success": False,
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(e),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }), 500

    # Schema is declared once (models_points) and created once per process.
    with app.app_context():
        db.create_all()

    return app


if __name__ == "__main__":
    app = create_app()
    port = int(os.getenv("PORT", 5000))
    debug = os.getenv("FLASK_ENV", "development") == "development"
    logger.info("Disaster Prep points API on http://localhost:%s", port)
    app.run(host="0.0.0.0", port=port, debug=debug)
