import json
import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
from championship.app import create_app, db
from championship.models import Client, User
from championship.tokens import issue_token


@pytest.fixture
def app(tmp_path, monkeypatch):
    # use temporary SQLite databases for testing
    monkeypatch.setenv("CHAMPIONSHIP_DB_PATH", str(tmp_path / "test.db"))
    monkeypatch.setenv("CHAMPIONSHIP_LOG_DB_PATH", str(tmp_path / "test_logs.db"))
    monkeypatch.setenv("FLASK_SECRET", "test-secret")
    application = create_app({'TESTING': True})
    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()


@pytest.fixture
def session(app):
    return db.session


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def tenants(session):
    """Two active clients: ``t1`` and ``t2``."""
    t1 = Client(name='Liga Norte', slug='norte')
    t2 = Client(name='Liga Sul', slug='sul')
    session.add_all([t1, t2])
    session.commit()
    return t1, t2


@pytest.fixture
def make_user(session):
    def _make(email, role='user', client=None, permissions=None, password='secret'):
        u = User(
            email=email,
            name=email.split('@')[0].title(),
            role=role,
            client_id=client.id if client else None,
            permissions=json.dumps(permissions) if permissions is not None else None,
        )
        u.set_password(password)
        session.add(u)
        session.commit()
        return u
    return _make


@pytest.fixture
def login_as(app, client):
    """Attach a freshly issued token for ``user`` to the test client."""
    def _login(user, client_id=None, now=None):
        tenant = client_id if client_id is not None else user.client_id
        token = issue_token(user, tenant, now=now)
        client.set_cookie(app.config['TOKEN_COOKIE'], token)
        return token
    return _login
