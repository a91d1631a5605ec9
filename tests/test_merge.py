import uuid
from datetime import datetime

import pytest
from sqlalchemy import select

from feedbackkit.errors import AlreadyMerged, Forbidden, InvalidRequest, NotFound
from feedbackkit.extensions import db
from feedbackkit.models import Comment, Feedback, Project, User, Vote
from feedbackkit.services import merge
from feedbackkit.services.merge import merge_feedback

URL = "/api/v1/feedbacks/merge"


def _merge(client, headers, primary_id, secondary_ids):
    return client.post(URL, json={
        "primary_feedback_id": str(primary_id),
        "secondary_feedback_ids": [str(s) for s in secondary_ids],
    }, headers=headers)


def _voters(feedback_id):
    return sorted(db.session.execute(select(Vote.user_id).where(Vote.feedback_id == feedback_id)).scalars())


def _comments(feedback_id):
    return db.session.execute(
        select(Comment).where(Comment.feedback_id == feedback_id).order_by(Comment.created_at)
    ).scalars().all()


def test_dark_mode_scenario(app, client, make, world):
    p = make.feedback(world.project_id, title="Dark mode")
    make.vote(p, "userA")
    make.vote(p, "userB")
    make.comment(p, "userC", "Would love this", created_at=datetime(2026, 1, 1, 9))
    s = make.feedback(world.project_id, title="Add dark theme")
    make.vote(s, "userB")
    make.vote(s, "userA")
    make.comment(s, "userD", "My eyes hurt at night", created_at=datetime(2026, 1, 2, 9))

    r = _merge(client, world.owner, p, [s])
    assert r.status_code == 200
    body = r.get_json()
    assert body["merged_count"] == 1
    assert body["total_votes"] == 2
    assert body["total_comments"] == 2
    assert body["primary_feedback"]["id"] == str(p)
    assert body["primary_feedback"]["vote_count"] == 2
    assert body["primary_feedback"]["merged_feedback_ids"] == [str(s)]

    with app.app_context():
        assert _voters(p) == ["userA", "userB"]
        contents = [c.content for c in _comments(p)]
        assert contents == ["Would love this", "[Originally on: Add dark theme] My eyes hurt at night"]
        secondary = db.session.get(Feedback, s)
        assert secondary.merged_into_id == p
        assert secondary.merged_at is not None


def test_votes_are_deduplicated_across_primary_and_secondaries(app, client, make, world):
    p = make.feedback(world.project_id, title="Export CSV")
    for uid in ("u1", "u2"):
        make.vote(p, uid)
    s1 = make.feedback(world.project_id, title="CSV export")
    for uid in ("u2", "u3"):
        make.vote(s1, uid)
    s2 = make.feedback(world.project_id, title="Export to spreadsheet")
    for uid in ("u3", "u4", "u1"):
        make.vote(s2, uid)

    r = _merge(client, world.admin, p, [s1, s2])
    assert r.status_code == 200
    assert r.get_json()["total_votes"] == 4
    assert r.get_json()["merged_count"] == 2

    with app.app_context():
        assert _voters(p) == ["u1", "u2", "u3", "u4"]
        assert db.session.get(Feedback, p).vote_count == 4
        # secondaries keep their own ledger
        assert _voters(s1) == ["u2", "u3"]


def test_comment_migration_preserves_author_flags_and_originals(app, client, make, world):
    p = make.feedback(world.project_id, title="Offline mode")
    s = make.feedback(world.project_id, title="Work without network")
    created = datetime(2026, 3, 4, 5, 6, 7)
    make.comment(s, "support-bot", "We are tracking this", is_admin=True, created_at=created)
    make.comment(s, "user-9", "+1", created_at=datetime(2026, 3, 5))

    r = _merge(client, world.owner, p, [s])
    assert r.status_code == 200
    assert r.get_json()["total_comments"] == 2

    with app.app_context():
        migrated = _comments(p)
        assert [c.user_id for c in migrated] == ["support-bot", "user-9"]
        assert migrated[0].is_admin is True
        assert migrated[0].created_at.replace(tzinfo=None) == created
        assert all(c.content.startswith("[Originally on: Work without network] ") for c in migrated)
        # originals stay queryable on the merged secondary
        assert [c.content for c in _comments(s)] == ["We are tracking this", "+1"]


def test_notify_preference_moves_with_a_fresh_permission_key(app, client, make, world):
    p = make.feedback(world.project_id)
    s = make.feedback(world.project_id, title="Night theme")
    key = uuid.uuid4()
    make.vote(s, "watcher", email="watcher@example.com", notify=True, permission_key=key)

    assert _merge(client, world.owner, p, [s]).status_code == 200

    with app.app_context():
        vote = db.session.execute(
            select(Vote).where(Vote.feedback_id == p, Vote.user_id == "watcher")
        ).scalar_one()
        assert vote.email == "watcher@example.com"
        assert vote.notify_status_change is True
        assert vote.permission_key is not None and vote.permission_key != key


def test_merged_ids_accumulate_and_merged_items_are_hidden(app, client, make, world):
    p = make.feedback(world.project_id, title="Dark mode")
    s1 = make.feedback(world.project_id, title="Dark theme")
    s2 = make.feedback(world.project_id, title="Night mode")
    assert _merge(client, world.owner, p, [s1]).status_code == 200
    r = _merge(client, world.owner, p, [s2])
    assert r.get_json()["primary_feedback"]["merged_feedback_ids"] == [str(s1), str(s2)]

    listed = client.get("/api/v1/feedbacks", headers=world.sdk).get_json()
    assert [f["id"] for f in listed] == [str(p)]

    everything = client.get("/api/v1/feedbacks?include_merged=true", headers=world.sdk).get_json()
    assert {f["id"] for f in everything} == {str(p), str(s1), str(s2)}
    by_id = {f["id"]: f for f in everything}
    assert by_id[str(s1)]["merged_into_id"] == str(p)


def test_remerging_keeps_earlier_lineage_intact(app, client, make, world):
    a = make.feedback(world.project_id, title="A")
    b = make.feedback(world.project_id, title="B")
    c = make.feedback(world.project_id, title="C")
    assert _merge(client, world.owner, b, [a]).status_code == 200
    with app.app_context():
        first_merged_at = db.session.get(Feedback, a).merged_at

    r = _merge(client, world.owner, c, [b])
    assert r.status_code == 200
    assert r.get_json()["primary_feedback"]["merged_feedback_ids"] == [str(b)]

    with app.app_context():
        fa = db.session.get(Feedback, a)
        fb = db.session.get(Feedback, b)
        assert fa.merged_into_id == b
        assert fa.merged_at == first_merged_at
        assert fb.merged_into_id == c
        assert fb.merged_feedback_ids == [str(a)]
        assert db.session.get(Feedback, c).merged_feedback_ids == [str(b)]

    # deleting the live item takes the whole lineage with it
    assert client.delete(f"/api/v1/feedbacks/{c}", headers=world.owner).status_code == 204
    with app.app_context():
        assert db.session.execute(select(Feedback)).first() is None


def test_merge_response_matches_feedback_payload(app, client, make, world):
    p = make.feedback(world.project_id, user_id="author")
    s = make.feedback(world.project_id, title="dup")
    make.vote(s, "payer")
    make.sdk_user(world.project_id, "author", mrr=10)
    make.sdk_user(world.project_id, "payer", mrr=5.5)

    body = _merge(client, world.owner, p, [s]).get_json()
    shown = client.get(f"/api/v1/feedbacks/{p}", headers=world.sdk).get_json()
    assert body["primary_feedback"]["total_mrr"] == 15.5
    assert body["primary_feedback"]["comment_count"] == shown["comment_count"]
    assert set(body["primary_feedback"]) == set(shown)


def test_resubmitting_a_completed_merge_is_rejected(app, client, make, world):
    p = make.feedback(world.project_id)
    s = make.feedback(world.project_id, title="Add dark theme")
    make.vote(s, "userA")
    make.comment(s, "userD", "yes please")
    assert _merge(client, world.owner, p, [s]).status_code == 200

    r = _merge(client, world.owner, p, [s])
    assert r.status_code == 409
    body = r.get_json()
    assert body["error"] == "already_merged"
    assert body["feedback_id"] == str(s)
    assert body["merged_into_id"] == str(p)

    with app.app_context():
        assert _voters(p) == ["userA"]
        assert len(_comments(p)) == 1


def test_merged_item_cannot_be_primary(app, client, make, world):
    p = make.feedback(world.project_id)
    s = make.feedback(world.project_id, title="dup")
    other = make.feedback(world.project_id, title="other")
    assert _merge(client, world.owner, p, [s]).status_code == 200

    r = _merge(client, world.owner, s, [other])
    assert r.status_code == 409
    assert r.get_json()["merged_into_id"] == str(p)
    with app.app_context():
        assert db.session.get(Feedback, other).merged_into_id is None


def test_failure_mid_merge_rolls_back_everything(app, make, world, monkeypatch):
    p = make.feedback(world.project_id)
    make.vote(p, "userA")
    s = make.feedback(world.project_id, title="Add dark theme")
    make.vote(s, "userB")
    make.vote(s, "userC")
    make.comment(s, "userD", "please")

    def boom(*args, **kwargs):
        raise RuntimeError("simulated crash")

    monkeypatch.setattr(merge, "_migrate_comments", boom)

    with app.app_context():
        actor = db.session.get(User, world.owner_id)
        with pytest.raises(RuntimeError):
            merge_feedback(db.session, primary_id=p, secondary_ids=[s], actor=actor)

    with app.app_context():
        primary = db.session.get(Feedback, p)
        assert primary.vote_count == 1
        assert primary.merged_feedback_ids is None
        assert _voters(p) == ["userA"]
        assert _comments(p) == []
        assert db.session.get(Feedback, s).merged_into_id is None


@pytest.mark.parametrize("secondaries, message", [
    ([], "non-empty"),
    (["not-a-uuid"], "UUID"),
    ("just-a-string", "non-empty"),
])
def test_malformed_secondary_set_is_invalid(app, make, world, secondaries, message):
    p = make.feedback(world.project_id)
    with app.app_context():
        actor = db.session.get(User, world.owner_id)
        with pytest.raises(InvalidRequest) as exc:
            merge_feedback(db.session, primary_id=p, secondary_ids=secondaries, actor=actor)
        assert message in exc.value.message


def test_primary_in_secondaries_and_duplicates_are_invalid(client, make, world):
    p = make.feedback(world.project_id)
    s = make.feedback(world.project_id, title="dup")

    r = _merge(client, world.owner, p, [p])
    assert r.status_code == 400 and r.get_json()["error"] == "invalid_request"

    r = _merge(client, world.owner, p, [s, s])
    assert r.status_code == 400


def test_unknown_or_foreign_secondary_is_not_found(app, client, make, world):
    p = make.feedback(world.project_id)
    other_owner = make.user("elsewhere@example.com")
    other_project = make.project(other_owner, name="Other")
    foreign = make.feedback(other_project.id, title="foreign")

    r = _merge(client, world.owner, p, [uuid.uuid4()])
    assert r.status_code == 404

    r = _merge(client, world.owner, p, [foreign])
    assert r.status_code == 404
    assert r.get_json()["feedback_id"] == str(foreign)
    with app.app_context():
        assert db.session.get(Feedback, foreign).merged_into_id is None


def test_unknown_primary_is_not_found(client, world):
    r = _merge(client, world.owner, uuid.uuid4(), [uuid.uuid4()])
    assert r.status_code == 404


def test_merge_requires_owner_or_admin(app, client, make, world):
    p = make.feedback(world.project_id)
    s = make.feedback(world.project_id, title="dup")

    assert _merge(client, {}, p, [s]).status_code == 401

    r = _merge(client, world.member, p, [s])
    assert r.status_code == 403
    assert r.get_json()["error"] == "forbidden"

    # outsiders can't learn the project exists
    assert _merge(client, world.outsider, p, [s]).status_code == 404

    with app.app_context():
        assert db.session.get(Feedback, s).merged_into_id is None


def test_merge_in_archived_project_is_forbidden(app, make, world):
    p = make.feedback(world.project_id)
    s = make.feedback(world.project_id, title="dup")
    with app.app_context():
        db.session.get(Project, world.project_id).is_archived = True
        db.session.commit()

        actor = db.session.get(User, world.owner_id)
        with pytest.raises(Forbidden):
            merge_feedback(db.session, primary_id=p, secondary_ids=[s], actor=actor)


def test_validation_order_reports_primary_before_secondaries(app, make, world):
    p = make.feedback(world.project_id)
    with app.app_context():
        actor = db.session.get(User, world.owner_id)
        with pytest.raises(NotFound) as exc:
            merge_feedback(db.session, primary_id=uuid.uuid4(), secondary_ids=[p], actor=actor)
        assert exc.value.message == "Feedback not found"

    s = make.feedback(world.project_id, title="dup")
    t = make.feedback(world.project_id, title="dup 2")
    with app.app_context():
        actor = db.session.get(User, world.owner_id)
        merge_feedback(db.session, primary_id=p, secondary_ids=[s], actor=actor)
        # primary is live but its only secondary is already merged
        with pytest.raises(AlreadyMerged):
            merge_feedback(db.session, primary_id=t, secondary_ids=[s], actor=actor)
        assert db.session.get(Feedback, t).merged_feedback_ids is None
