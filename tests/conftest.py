"""
Shared fixtures. Each test gets its own app instance, which builds its own
in-memory SQLite engine (StaticPool) and in-process Redis stand-in.
"""
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from main import create_app
from factories import auth_headers, make_store, make_user


@pytest.fixture
def app():
    application = create_app()
    yield application
    application.dependency_overrides.clear()
    application.state.engine.dispose()


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def db(app):
    session = app.state.session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def sent_emails():
    """Capture outgoing email instead of touching SMTP or Celery."""
    with patch("services.email.send_templated_email") as mock_send:
        yield mock_send


@pytest.fixture
def admin(db):
    return make_user(db, "admin@example.com", "admin")


@pytest.fixture
def seller(db):
    return make_user(db, "seller@example.com", "seller")


@pytest.fixture
def other_seller(db):
    return make_user(db, "other@example.com", "seller")


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def seller_headers(seller):
    return auth_headers(seller)


@pytest.fixture
def store(db, seller):
    return make_store(db, seller)
