"""
Fixtures shared by the engine test suite.

Every test runs inside one app context on an in-memory SQLite database that
is dropped and recreated afterwards, so tests may commit freely.

    app / client        testing app (once per session) and its test client
    owner / member      Actors backed by membership rows in WORKSPACE_ID
    project             an unconnected project in WORKSPACE_ID
    competing_writer    simulates a concurrent version bump during a write
"""

import pytest
from sqlalchemy import text

from workflow_engine import create_app
from workflow_engine.engine.validator import Actor
from workflow_engine.models import db as _db
from workflow_engine.models.membership import Member, SpaceMember, TeamMember
from workflow_engine.models.project import Project
from workflow_engine.models.workflow import Workflow, _utcnow

WORKSPACE_ID = "ws-test"
SPACE_ID = "space-test"
OWNER_ID = "user-owner"
MEMBER_ID = "user-member"


@pytest.fixture(scope="session")
def app():
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """App context for the test; schema reset afterwards."""
    with app.app_context():
        yield _db.session
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def owner():
    """Workspace OWNER, member of team-a."""
    _db.session.add(Member(workspace_id=WORKSPACE_ID, user_id=OWNER_ID, role="OWNER"))
    _db.session.add(TeamMember(workspace_id=WORKSPACE_ID, team_id="team-a", user_id=OWNER_ID))
    _db.session.commit()
    return Actor(user_id=OWNER_ID, role="OWNER", team_ids=("team-a",))


@pytest.fixture()
def member():
    """Plain workspace MEMBER, member of team-b, admin of the test space."""
    _db.session.add(Member(workspace_id=WORKSPACE_ID, user_id=MEMBER_ID, role="MEMBER"))
    _db.session.add(TeamMember(workspace_id=WORKSPACE_ID, team_id="team-b", user_id=MEMBER_ID))
    _db.session.add(SpaceMember(
        workspace_id=WORKSPACE_ID, space_id=SPACE_ID, user_id=MEMBER_ID, role="ADMIN",
    ))
    _db.session.commit()
    return Actor(
        user_id=MEMBER_ID, role="MEMBER", team_ids=("team-b",), space_admin_ids=(SPACE_ID,),
    )


@pytest.fixture()
def project():
    p = Project(workspace_id=WORKSPACE_ID, name="Test Project")
    _db.session.add(p)
    _db.session.commit()
    return p


@pytest.fixture()
def competing_writer(monkeypatch):
    """Make ``module.write_audit`` bump the workflow version behind the ORM first.

    The workflow is touched again afterwards, so the next flush updates a
    row whose version moved since it was loaded, as if another writer had
    committed in between.
    """
    def _install(module):
        real = module.write_audit

        def _write_audit(**kwargs):
            with _db.session.no_autoflush:
                _db.session.execute(
                    text("UPDATE workflows SET version = version + 1 WHERE id = :id"),
                    {"id": kwargs["workflow_id"]},
                )
                _db.session.get(Workflow, kwargs["workflow_id"]).updated_at = _utcnow()
            return real(**kwargs)

        monkeypatch.setattr(module, "write_audit", _write_audit)

    return _install
