import os
# Ensure the app factory picks the Testing config & SQLite memory DB
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite:///:memory:")
# Config classes read these at import time
os.environ.setdefault("EMAIL_WEBHOOK_SECRET", "testsecret")
os.environ.setdefault("TRELLO_API_KEY", "trello-test-key")

from types import SimpleNamespace

import pytest
from feedbackkit import create_app
from feedbackkit.extensions import db
from feedbackkit.models import Comment, Feedback, Project, ProjectMember, SDKUser, User, Vote
from feedbackkit.services import tokens

PASSWORD = "correct-horse-1"


@pytest.fixture(scope="session")
def app():
    app = create_app()
    app.config.update(
        TESTING=True,
        MAIL_SUPPRESS_SEND=True,
        APP_BASE_URL="http://example.test",
        OUTBOX_DISPATCH_ASYNC=False,
        RATELIMIT_ENABLED=False,
        EMAIL_WEBHOOK_SECRET=os.environ.get("EMAIL_WEBHOOK_SECRET", "testsecret"),
        TRELLO_API_KEY=os.environ.get("TRELLO_API_KEY", "trello-test-key"),
    )
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def _db_clean(app):
    # Clean BEFORE each test
    with app.app_context():
        db.session.rollback()
        for tbl in reversed(db.metadata.sorted_tables):
            db.session.execute(tbl.delete())
        db.session.commit()
    yield
    # And AFTER each test (keeps state hermetic even if a test fails mid-transaction)
    with app.app_context():
        db.session.rollback()
        for tbl in reversed(db.metadata.sorted_tables):
            db.session.execute(tbl.delete())
        db.session.commit()


class Factory:
    """Row builders for tests. Every call commits in its own app context and returns ids."""

    def __init__(self, app):
        self.app = app

    def user(self, email, name=None, **flags):
        with self.app.app_context():
            user = User(email=email, name=name or email, is_active=True, **flags)
            user.set_password(PASSWORD)
            db.session.add(user)
            db.session.commit()
            return user.id

    def project(self, owner_id, name="Acme", **fields):
        with self.app.app_context():
            project = Project(name=name, owner_id=owner_id, **fields)
            db.session.add(project)
            db.session.commit()
            return SimpleNamespace(id=project.id, api_key=project.api_key)

    def member(self, project_id, user_id, role="member"):
        with self.app.app_context():
            m = ProjectMember(project_id=project_id, user_id=user_id, role=role)
            db.session.add(m)
            db.session.commit()
            return m.id

    def feedback(self, project_id, title="Dark mode", description="Please add a dark theme.", user_id="sdk-author", **fields):
        with self.app.app_context():
            fb = Feedback(project_id=project_id, title=title, description=description, user_id=user_id, **fields)
            db.session.add(fb)
            db.session.commit()
            return fb.id

    def vote(self, feedback_id, user_id, email=None, notify=False, permission_key=None):
        """Adds the ledger row and keeps the denormalized vote_count in step."""
        with self.app.app_context():
            db.session.add(Vote(
                feedback_id=feedback_id,
                user_id=user_id,
                email=email,
                notify_status_change=notify,
                permission_key=permission_key,
            ))
            fb = db.session.get(Feedback, feedback_id)
            fb.vote_count = (fb.vote_count or 0) + 1
            db.session.commit()

    def comment(self, feedback_id, user_id, content, is_admin=False, created_at=None):
        with self.app.app_context():
            c = Comment(feedback_id=feedback_id, user_id=user_id, content=content, is_admin=is_admin)
            if created_at is not None:
                c.created_at = created_at
            db.session.add(c)
            db.session.commit()
            return c.id

    def sdk_user(self, project_id, user_id, mrr=None):
        with self.app.app_context():
            db.session.add(SDKUser(project_id=project_id, user_id=user_id, mrr=mrr))
            db.session.commit()

    def token(self, user_id):
        with self.app.app_context():
            return tokens.generate_auth_token(db.session.get(User, user_id))


@pytest.fixture()
def make(app):
    return Factory(app)


@pytest.fixture()
def world(make):
    """Owner + project with API key, plus an admin, a member and an outsider account."""
    owner_id = make.user("owner@example.com", name="Olivia Owner")
    admin_id = make.user("admin@example.com")
    member_id = make.user("member@example.com")
    outsider_id = make.user("outsider@example.com")
    project = make.project(owner_id)
    make.member(project.id, admin_id, role="admin")
    make.member(project.id, member_id, role="member")
    return SimpleNamespace(
        project_id=project.id,
        api_key=project.api_key,
        owner_id=owner_id,
        admin_id=admin_id,
        member_id=member_id,
        outsider_id=outsider_id,
        owner=bearer(make.token(owner_id)),
        admin=bearer(make.token(admin_id)),
        member=bearer(make.token(member_id)),
        outsider=bearer(make.token(outsider_id)),
        sdk=sdk(project.api_key),
    )


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def sdk(api_key):
    return {"X-API-Key": api_key}
