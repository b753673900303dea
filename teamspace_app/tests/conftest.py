import sys
import os
from types import SimpleNamespace
import pytest
from flask import g

# ensure repository root is on sys.path so `teamspace_app` package can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

# Ensure tests have a DATABASE_URL so importing app.config doesn't raise
os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')
from teamspace_app.app import create_app, db
from teamspace_app.app.config import Config
from teamspace_app.app.models import User
from teamspace_app.app.organizations import create_organization, create_project, create_workspace


# Config declares Final attributes; the test config is a separate class instead of a subclass.
class TestConfig:
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    WTF_CSRF_ENABLED = False
    SECRET_KEY = getattr(Config, "SECRET_KEY", "test-secret")
    APP_ENV = "production"
    FRONTEND_URL = "http://app.test"
    INVITATION_EXPIRY_DAYS = 7
    EMAIL_PROVIDER = "smtp"
    MAIL_SERVER = "smtp.test"
    MAIL_PORT = 587
    MAIL_USE_TLS = False
    MAIL_USERNAME = "mailer"
    MAIL_PASSWORD = "secret"
    MAIL_DEFAULT_SENDER = "no-reply@app.test"


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    """Captures outgoing mail instead of talking to SMTP."""
    sent = []

    def fake_send_email(subject, recipient, body, html=None):
        sent.append({'subject': subject, 'to': recipient, 'body': body})
        return True

    monkeypatch.setattr('teamspace_app.app.notifications.mailer.send_email', fake_send_email)
    return sent


def create_user(email, full_name=None, role='USER'):
    u = User(email=email, full_name=full_name, role=role)
    db.session.add(u)
    db.session.commit()
    return u


def login(client, user_id):
    with client.session_transaction() as sess:
        sess['_user_id'] = str(user_id)
    # requests share the fixture's app context, so drop the user Flask-Login cached on g
    g.pop('_login_user', None)


@pytest.fixture
def hierarchy(app):
    """org1 (owner u1) with workspaces w1, w2 and project p1 under w1."""
    owner = create_user('owner@x.com', 'Olive Owner')
    org = create_organization('Org One', owner.id)
    w1 = create_workspace(org.id, 'Design', owner.id)
    w2 = create_workspace(org.id, 'Platform', owner.id)
    p1 = create_project(w1.id, 'Website', owner.id)
    return SimpleNamespace(owner=owner, org=org, w1=w1, w2=w2, p1=p1)


@pytest.fixture
def make_user(app):
    return create_user


@pytest.fixture
def login_as(client):
    def _login(user):
        login(client, user.id)
        return user
    return _login
