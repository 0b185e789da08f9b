"""
Shared pytest fixtures for the Contractor Delivery Portal test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup + fresh subscription manager (autouse)
    - client: Flask test client (function-scoped)
    - make_user / admin / contractor / other_contractor: profile factories
    - auth: Authorization headers carrying a signed identity token
    - project / make_delivery: pre-created domain records
"""

from datetime import date, timedelta

import jwt
import pytest

from portal import create_app
from portal.models import db as _db
from portal.models.user import ROLE_ADMIN, ROLE_PRESTADOR, STATUS_ACTIVE, UserProfile
from portal.repositories import load_scoped
from portal.services.subscriptions import init_subscriptions

IDENTITY_SECRET = "testing-identity-secret-0123456789abcdef"


def make_token(uid, *, email=None, name=None, picture=None, secret=IDENTITY_SECRET, **extra):
    claims = {"sub": uid, **extra}
    if email is not None:
        claims["email"] = email
    if name is not None:
        claims["name"] = name
    if picture is not None:
        claims["picture"] = picture
    return jwt.encode(claims, secret, algorithm="HS256")


def auth_headers(uid, **claims):
    return {"Authorization": f"Bearer {make_token(uid, **claims)}"}


def in_days(n):
    return (date.today() + timedelta(days=n)).isoformat()


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, fresh projections, recreate tables after."""
    init_subscriptions(app, loader=load_scoped)
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def auth():
    """auth(uid, **claims) -> headers with a valid identity token for ``uid``."""
    return auth_headers


@pytest.fixture()
def token():
    """token(uid, secret=..., **claims) -> raw encoded identity token."""
    return make_token


# ── Profiles ─────────────────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    def _make(uid, *, role=ROLE_PRESTADOR, status=STATUS_ACTIVE, active=True, name=None, email=None):
        user = UserProfile(
            id=uid,
            email=email or f"{uid}@example.com",
            name=name or uid.title(),
            role=role,
            status=status,
            active=active,
        )
        _db.session.add(user)
        _db.session.commit()
        return user
    return _make


@pytest.fixture()
def admin(make_user):
    return make_user("admin-1", role=ROLE_ADMIN, name="Ana Admin")


@pytest.fixture()
def contractor(make_user):
    return make_user("prest-1", name="Paulo Prestador")


@pytest.fixture()
def other_contractor(make_user):
    return make_user("prest-2", name="Rita Prestadora")


# ── Domain records ───────────────────────────────────────────────────────


@pytest.fixture()
def project(client, auth, admin, contractor, other_contractor):
    res = client.post("/api/v1/projects", headers=auth(admin.id), json={
        "client": "ACME Energia",
        "name": "Subestação Norte",
        "member_uids": [contractor.id, other_contractor.id],
    })
    assert res.status_code == 201, res.get_json()
    return res.get_json()


@pytest.fixture()
def make_delivery(client, auth, admin, project, contractor):
    def _make(*, provider_uid=None, deadline=None, title="Diagrama unifilar", **extra):
        payload = {
            "project_id": project["id"],
            "provider_uid": provider_uid or contractor.id,
            "title": title,
            "deadline": deadline or in_days(10),
            **extra,
        }
        res = client.post("/api/v1/deliveries", headers=auth(admin.id), json=payload)
        assert res.status_code == 201, res.get_json()
        return res.get_json()
    return _make


@pytest.fixture()
def delivery(make_delivery):
    return make_delivery()
