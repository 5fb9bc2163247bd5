import pytest

from app import create_app
from extensions import db


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'points_test.db'}",
        "RATELIMIT_ENABLED": False,
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def award(client):
    def _award(**payload):
        return client.post("/api/points/award", json=payload)
    return _award
