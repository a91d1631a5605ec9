import uuid

from sqlalchemy import select

from feedbackkit.extensions import db
from feedbackkit.models import Feedback, OutboundEvent, Project, Vote


def _url(feedback_id):
    return f"/api/v1/feedbacks/{feedback_id}/votes"


def test_vote_increments_count_and_reports_has_voted(app, client, make, world):
    fb = make.feedback(world.project_id)

    r = client.post(_url(fb), json={"user_id": "u1"}, headers=world.sdk)
    assert r.status_code == 200
    assert r.get_json() == {"feedback_id": str(fb), "vote_count": 1, "has_voted": True}

    shown = client.get(f"/api/v1/feedbacks/{fb}", headers={**world.sdk, "X-User-Id": "u1"}).get_json()
    assert shown["has_voted"] is True
    assert shown["vote_count"] == 1

    with app.app_context():
        # voting never produces notifications
        assert db.session.execute(select(OutboundEvent)).first() is None


def test_user_id_may_come_from_header(client, make, world):
    fb = make.feedback(world.project_id)
    r = client.post(_url(fb), json={}, headers={**world.sdk, "X-User-Id": "hdr-user"})
    assert r.status_code == 200
    assert r.get_json()["vote_count"] == 1


def test_duplicate_vote_conflicts(client, make, world):
    fb = make.feedback(world.project_id)
    assert client.post(_url(fb), json={"user_id": "u1"}, headers=world.sdk).status_code == 200
    r = client.post(_url(fb), json={"user_id": "u1"}, headers=world.sdk)
    assert r.status_code == 409
    assert r.get_json()["error"] == "conflict"


def test_vote_validation(client, make, world):
    fb = make.feedback(world.project_id)
    assert client.post(_url(fb), json={}, headers=world.sdk).status_code == 400
    r = client.post(_url(fb), json={"user_id": "u1", "email": "nope"}, headers=world.sdk)
    assert r.status_code == 400


def test_notify_opt_in_requires_email(app, client, make, world):
    fb = make.feedback(world.project_id)
    client.post(_url(fb), json={"user_id": "quiet", "notify_status_change": True}, headers=world.sdk)
    client.post(_url(fb), json={
        "user_id": "loud", "email": "Loud@Example.com", "notify_status_change": True,
    }, headers=world.sdk)

    with app.app_context():
        votes = {v.user_id: v for v in db.session.execute(select(Vote).where(Vote.feedback_id == fb)).scalars()}
        assert votes["quiet"].notify_status_change is False
        assert votes["quiet"].permission_key is None
        assert votes["loud"].notify_status_change is True
        assert votes["loud"].permission_key is not None


def test_unvote_decrements_and_missing_vote_is_404(client, make, world):
    fb = make.feedback(world.project_id)
    make.vote(fb, "u1")

    r = client.delete(_url(fb), json={"user_id": "u1"}, headers=world.sdk)
    assert r.status_code == 200
    assert r.get_json() == {"feedback_id": str(fb), "vote_count": 0, "has_voted": False}

    r = client.delete(_url(fb), json={"user_id": "u1"}, headers=world.sdk)
    assert r.status_code == 404


def test_unvote_never_goes_below_zero(app, client, make, world):
    fb = make.feedback(world.project_id)
    make.vote(fb, "u1")
    with app.app_context():
        db.session.get(Feedback, fb).vote_count = 0
        db.session.commit()

    r = client.delete(_url(fb), json={"user_id": "u1"}, headers=world.sdk)
    assert r.status_code == 200
    assert r.get_json()["vote_count"] == 0


def test_closed_statuses_reject_votes(client, make, world):
    for status in ("completed", "rejected"):
        fb = make.feedback(world.project_id, title=status, status=status)
        r = client.post(_url(fb), json={"user_id": "u1"}, headers=world.sdk)
        assert r.status_code == 403
        assert r.get_json()["status"] == status


def test_vote_on_merged_item_points_at_primary(app, client, make, world):
    p = make.feedback(world.project_id)
    s = make.feedback(world.project_id, title="dup")
    make.vote(s, "u1")
    client.post("/api/v1/feedbacks/merge", json={
        "primary_feedback_id": str(p), "secondary_feedback_ids": [str(s)],
    }, headers=world.owner)

    r = client.post(_url(s), json={"user_id": "u2"}, headers=world.sdk)
    assert r.status_code == 409
    assert r.get_json()["error"] == "already_merged"
    assert r.get_json()["merged_into_id"] == str(p)

    r = client.delete(_url(s), json={"user_id": "u1"}, headers=world.sdk)
    assert r.status_code == 409

    with app.app_context():
        assert db.session.get(Feedback, p).vote_count == 1


def test_archived_project_rejects_votes(app, client, make, world):
    fb = make.feedback(world.project_id)
    make.vote(fb, "u1")
    with app.app_context():
        db.session.get(Project, world.project_id).is_archived = True
        db.session.commit()

    assert client.post(_url(fb), json={"user_id": "u2"}, headers=world.sdk).status_code == 403
    assert client.delete(_url(fb), json={"user_id": "u1"}, headers=world.sdk).status_code == 403


def test_vote_requires_a_valid_key_and_same_project(client, make, world):
    fb = make.feedback(world.project_id)
    assert client.post(_url(fb), json={"user_id": "u1"}).status_code == 401
    assert client.post(_url(fb), json={"user_id": "u1"}, headers={"X-API-Key": "sf_bogus"}).status_code == 401

    other = make.project(make.user("b@example.com"), name="B")
    r = client.post(_url(fb), json={"user_id": "u1"}, headers={"X-API-Key": other.api_key})
    assert r.status_code == 404


def test_unsubscribe_link_clears_opt_in(app, client, make, world):
    fb = make.feedback(world.project_id, title="Widgets")
    key = uuid.uuid4()
    make.vote(fb, "u1", email="u1@example.com", notify=True, permission_key=key)

    r = client.get(f"/api/v1/votes/unsubscribe?key={key}")
    assert r.status_code == 200
    assert b"unsubscribed" in r.data
    assert b"Widgets" in r.data

    with app.app_context():
        vote = db.session.execute(select(Vote).where(Vote.feedback_id == fb)).scalar_one()
        assert vote.notify_status_change is False
        assert vote.permission_key is None

    # single use
    again = client.get(f"/api/v1/votes/unsubscribe?key={key}")
    assert again.status_code == 404


def test_unsubscribe_rejects_malformed_key(client):
    r = client.get("/api/v1/votes/unsubscribe?key=garbage")
    assert r.status_code == 400
    assert b"Invalid unsubscribe link" in r.data
