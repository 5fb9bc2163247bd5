from __future__ import annotations

import logging
from contextlib import contextmanager

from flask import jsonify
from sqlalchemy.exc import SQLAlchemyError

from extensions import db


logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Required award fields are missing or malformed (HTTP 400)."""


class StorageUnavailable(Exception):
    """The database could not be reached or timed out (HTTP 500, retryable)."""


class DuplicateAward(Exception):
    """Raised when an insert hits the (user_id, video_id) unique constraint.

    Never surfaced to clients: a duplicate award is a successful no-op.
    """


@contextmanager
def storage_call(operation: str):
    """Translate SQLAlchemy failures inside the block into StorageUnavailable.

    The session is rolled back so no partially flushed state survives.
    """
    try:
        yield
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("storage failure during %s", operation)
        raise StorageUnavailable(f"Storage unavailable during {operation}, please retry") from e


def _validation_error(e: ValidationError):
    return jsonify({"error": str(e)}), 400


def _storage_unavailable(e: StorageUnavailable):
    resp = jsonify({"error": str(e)})
    resp.status_code = 500
    resp.headers["Retry-After"] = "1"
    return resp


def _not_found(_e):
    return jsonify({"error": "Route not found"}), 404


def _internal_error(_e):
    return jsonify({"error": "Something went wrong!"}), 500


def register_error_handlers(app) -> None:
    app.register_error_handler(ValidationError, _validation_error)
    app.register_error_handler(StorageUnavailable, _storage_unavailable)
    app.register_error_handler(404, _not_found)
    app.register_error_handler(500, _internal_error)
