import httpx
from sqlalchemy import select

from feedbackkit.extensions import db
from feedbackkit.models import Feedback, OutboundEvent, Project
from feedbackkit.services import dispatch

SLACK_URL = "https://hooks.slack.com/services/T/B/X"


class Recorder:
    """Stands in for httpx.post; answers every call with the queued responses in order."""

    def __init__(self, *responses):
        self.calls = []
        self.responses = list(responses)

    def __call__(self, url, **kwargs):
        self.calls.append((url, kwargs))
        status, body = self.responses.pop(0) if self.responses else (200, {})
        return httpx.Response(status, json=body, request=httpx.Request("POST", url))


def _configure(app, project_id, **fields):
    with app.app_context():
        project = db.session.get(Project, project_id)
        for key, value in fields.items():
            setattr(project, key, value)
        db.session.commit()


def _events(channel):
    return db.session.execute(
        select(OutboundEvent).where(OutboundEvent.channel == channel).order_by(OutboundEvent.created_at)
    ).scalars().all()


def test_slack_post_on_new_feedback(app, client, world, monkeypatch):
    _configure(app, world.project_id, slack_webhook_url=SLACK_URL)
    rec = Recorder()
    monkeypatch.setattr(dispatch.httpx, "post", rec)

    r = client.post("/api/v1/feedbacks", json={
        "title": "Dark mode", "description": "please", "user_id": "u1",
    }, headers=world.sdk)
    assert r.status_code == 201

    assert len(rec.calls) == 1
    url, kwargs = rec.calls[0]
    assert url == SLACK_URL
    assert "Dark mode" in kwargs["json"]["text"]
    assert kwargs["timeout"] == app.config["INTEGRATION_HTTP_TIMEOUT"]

    with app.app_context():
        (ev,) = _events("slack")
        assert ev.status == "delivered"
        assert ev.attempts == 1
        assert ev.delivered_at is not None


def test_slack_toggle_off_queues_nothing(app, client, world, monkeypatch):
    _configure(app, world.project_id, slack_webhook_url=SLACK_URL, slack_notify_new_feedback=False)
    rec = Recorder()
    monkeypatch.setattr(dispatch.httpx, "post", rec)

    client.post("/api/v1/feedbacks", json={"title": "t", "description": "d", "user_id": "u1"}, headers=world.sdk)
    assert rec.calls == []


def test_failed_delivery_never_fails_the_request(app, client, world, monkeypatch):
    _configure(app, world.project_id, slack_webhook_url=SLACK_URL)
    rec = Recorder((500, {"error": "boom"}))
    monkeypatch.setattr(dispatch.httpx, "post", rec)

    r = client.post("/api/v1/feedbacks", json={"title": "t", "description": "d", "user_id": "u1"}, headers=world.sdk)
    assert r.status_code == 201

    with app.app_context():
        (ev,) = _events("slack")
        assert ev.status == "failed"
        assert ev.attempts == 1
        assert "500" in ev.last_error
        assert db.session.execute(select(Feedback)).scalar_one().title == "t"


def test_retry_redelivers_failed_rows_until_max_attempts(app, client, world, monkeypatch):
    _configure(app, world.project_id, slack_webhook_url=SLACK_URL)
    monkeypatch.setattr(dispatch.httpx, "post", Recorder((503, {})))
    client.post("/api/v1/feedbacks", json={"title": "t", "description": "d", "user_id": "u1"}, headers=world.sdk)

    rec = Recorder((200, {}))
    monkeypatch.setattr(dispatch.httpx, "post", rec)
    with app.app_context():
        delivered, failed = dispatch.retry_failed()
        assert (delivered, failed) == (1, 0)
        (ev,) = _events("slack")
        assert ev.status == "delivered"
        assert ev.attempts == 2
        assert ev.last_error is None

    # exhausted rows are left alone
    with app.app_context():
        ev = _events("slack")[0]
        ev.status = "failed"
        ev.attempts = app.config["OUTBOX_MAX_ATTEMPTS"]
        db.session.commit()
        assert dispatch.retry_failed() == (0, 0)


def test_trello_card_created_and_linked(app, client, world, monkeypatch):
    _configure(app, world.project_id, trello_token="tok", trello_list_id="list-1")
    rec = Recorder((200, {"id": "card-9", "shortUrl": "https://trello.com/c/abc"}))
    monkeypatch.setattr(dispatch.httpx, "post", rec)

    r = client.post("/api/v1/feedbacks", json={
        "title": "Dark mode", "description": "please", "user_id": "u1", "user_email": "u1@example.com",
    }, headers=world.sdk)
    fid = r.get_json()["id"]

    url, kwargs = rec.calls[0]
    assert url == "https://api.trello.com/1/cards"
    assert kwargs["params"] == {"key": app.config["TRELLO_API_KEY"], "token": "tok"}
    assert kwargs["json"]["idList"] == "list-1"
    assert kwargs["json"]["name"] == "Dark mode"
    assert "**Submitted by:** u1@example.com" in kwargs["json"]["desc"]

    shown = client.get(f"/api/v1/feedbacks/{fid}", headers=world.sdk).get_json()
    assert shown["trello_card_id"] == "card-9"
    assert shown["trello_card_url"] == "https://trello.com/c/abc"


def test_status_change_comments_on_linked_trello_card(app, client, make, world, monkeypatch):
    _configure(app, world.project_id, trello_token="tok", trello_list_id="list-1", trello_sync_status=True)
    fb = make.feedback(world.project_id, trello_card_id="card-1")
    rec = Recorder()
    monkeypatch.setattr(dispatch.httpx, "post", rec)

    client.patch(f"/api/v1/feedbacks/{fb}", json={"status": "approved"}, headers=world.owner)

    (url, kwargs), = rec.calls
    assert url == "https://api.trello.com/1/cards/card-1/actions/comments"
    assert kwargs["json"] == {"text": "Status changed: Pending → Approved"}


def test_inactive_trello_queues_nothing(app, client, make, world, monkeypatch):
    _configure(app, world.project_id, trello_token="tok", trello_list_id="list-1", trello_is_active=False)
    rec = Recorder()
    monkeypatch.setattr(dispatch.httpx, "post", rec)

    client.post("/api/v1/feedbacks", json={"title": "t", "description": "d", "user_id": "u1"}, headers=world.sdk)
    assert rec.calls == []
    with app.app_context():
        assert _events("trello") == []


def test_missing_slack_url_at_delivery_marks_failed(app, world):
    with app.app_context():
        ev = OutboundEvent(project_id=world.project_id, event_type="feedback.created", channel="slack", payload={"text": "x"})
        db.session.add(ev)
        db.session.commit()
        assert dispatch.deliver_events([ev.id]) == (0, 1)
        assert ev.status == "failed"
        assert "not configured" in ev.last_error


def test_async_dispatch_submits_to_pool(app, world, monkeypatch):
    submitted = []

    class FakePool:
        def submit(self, fn, *args):
            submitted.append((fn, args))

    monkeypatch.setitem(app.extensions, dispatch.EXECUTOR_KEY, FakePool())
    monkeypatch.setitem(app.config, "OUTBOX_DISPATCH_ASYNC", True)
    with app.app_context():
        dispatch.dispatch_pending(["id-1"])
        dispatch.dispatch_pending([])
    assert len(submitted) == 1
    assert submitted[0][1][1] == ["id-1"]
