import os
import tempfile
from pathlib import Path

import pytest

# Point the app at a throwaway SQLite file before `workshop` is imported.
_DB_DIR = Path(tempfile.mkdtemp(prefix="workshop-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR / 'test.db'}"
os.environ["ENV"] = "dev"

from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session

from workshop import services
from workshop.database import engine
from workshop.main import app, team_login_limiter

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "admin123"


@pytest.fixture(autouse=True)
def reset_db():
    """Ensure every test starts from empty tables and a fresh login limiter."""
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    team_login_limiter.reset()
    yield


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db():
    with Session(engine) as session:
        yield session


@pytest.fixture
def admin_user(db):
    return services.AuthService(db).register(ADMIN_USERNAME, ADMIN_PASSWORD, role="admin")


@pytest.fixture
def admin_client(admin_user):
    c = TestClient(app)
    r = c.post("/api/auth/admin/login", json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD})
    assert r.status_code == 200
    return c


@pytest.fixture
def make_team():
    """Create a team through the API and return `(team_json, logged_in_client)`.

    `team_json` is the creation response and therefore includes the
    access token.
    """
    def _make(name, website=None, code=None):
        c = TestClient(app)
        body = {"name": name}
        if code:
            body["code"] = code
        r = c.post("/api/teams", json=body)
        assert r.status_code == 201, r.text
        team = r.json()
        r = c.post("/api/auth/team/login", json={"access_token": team["access_token"]})
        assert r.status_code == 200, r.text
        if website:
            r = c.patch(f"/api/teams/{team['id']}/website", json={"website_url": website})
            assert r.status_code == 200, r.text
        return team, c

    return _make


@pytest.fixture
def make_cohort(admin_client, make_team):
    """Create a cohort with one team per name and optionally open voting.

    Every team submits `https://<name>.example` unless listed in
    `without_website`. Returns `{name: (team_json, client)}`.
    """
    def _make(tag, names, open_voting=True, without_website=()):
        r = admin_client.post("/api/admin/cohorts", json={"tag": tag, "name": f"Cohort {tag}"})
        assert r.status_code == 201, r.text
        teams = {}
        for name in names:
            website = None if name in without_website else f"https://{name.lower()}.example"
            teams[name] = make_team(name, website=website)
        ids = [t["id"] for t, _ in teams.values()]
        r = admin_client.post(f"/api/admin/cohorts/{tag}/teams", json={"team_ids": ids})
        assert r.status_code == 200, r.text
        if open_voting:
            r = admin_client.patch(f"/api/admin/cohorts/{tag}", json={"voting_open": True})
            assert r.status_code == 200, r.text
        return teams

    return _make
