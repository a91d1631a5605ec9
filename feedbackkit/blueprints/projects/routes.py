from flask import g, jsonify, request
from flask_login import current_user

from feedbackkit.errors import InvalidRequest
from feedbackkit.extensions import db
from feedbackkit.models import ROLE_ADMIN, ROLE_MEMBER, ROLE_OWNER
from feedbackkit.services import projects as svc
from feedbackkit.services.dashboard import home_summary, project_stats
from feedbackkit.services.feedback import list_feedback
from feedbackkit.services.policy import login_required, project_role, role_required
from feedbackkit.services.sdk_users import list_sdk_users, sdk_user_stats
from feedbackkit.utils.helpers import parse_bool
from . import bp

ANY_ROLE = (ROLE_OWNER, ROLE_ADMIN, ROLE_MEMBER)


def _payload() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidRequest("JSON object body required")
    return data


def _project_json(status: int = 200):
    project = g.project
    return jsonify(svc.project_payload(db.session, project, role=project_role(db.session, project, current_user))), status


@bp.get("/projects")
@login_required
def index():
    return jsonify(svc.list_projects(db.session, current_user)), 200


@bp.post("/projects")
@login_required
def create():
    data = _payload()
    g.project = svc.create_project(db.session, current_user, data.get("name"), data.get("description"))
    return _project_json(201)


@bp.get("/projects/<project_id>")
@role_required(*ANY_ROLE)
def show(project_id):
    return _project_json()


@bp.patch("/projects/<project_id>")
@role_required(ROLE_OWNER, ROLE_ADMIN)
def update(project_id):
    data = _payload()
    svc.update_project(db.session, g.project, name=data.get("name"), description=data.get("description"))
    return _project_json()


@bp.delete("/projects/<project_id>")
@role_required(ROLE_OWNER)
def delete(project_id):
    svc.delete_project(db.session, g.project)
    return "", 204


@bp.post("/projects/<project_id>/archive")
@role_required(ROLE_OWNER)
def archive(project_id):
    svc.archive_project(db.session, g.project)
    return _project_json()


@bp.post("/projects/<project_id>/unarchive")
@role_required(ROLE_OWNER)
def unarchive(project_id):
    svc.unarchive_project(db.session, g.project)
    return _project_json()


@bp.post("/projects/<project_id>/regenerate-key")
@role_required(ROLE_OWNER)
def regenerate_key(project_id):
    svc.regenerate_api_key(db.session, g.project)
    return _project_json()


@bp.patch("/projects/<project_id>/statuses")
@role_required(ROLE_OWNER, ROLE_ADMIN)
def update_statuses(project_id):
    svc.update_allowed_statuses(db.session, g.project, _payload().get("allowed_statuses"))
    return _project_json()


@bp.patch("/projects/<project_id>/slack")
@role_required(ROLE_OWNER, ROLE_ADMIN)
def update_slack(project_id):
    svc.update_slack_settings(db.session, g.project, _payload())
    return _project_json()


@bp.patch("/projects/<project_id>/trello")
@role_required(ROLE_OWNER, ROLE_ADMIN)
def update_trello(project_id):
    svc.update_trello_settings(db.session, g.project, _payload())
    return _project_json()


@bp.get("/projects/<project_id>/feedbacks")
@role_required(*ANY_ROLE)
def feedbacks(project_id):
    items = list_feedback(
        db.session,
        g.project,
        status=request.args.get("status"),
        category=request.args.get("category"),
        include_merged=parse_bool(request.args.get("include_merged")),
    )
    return jsonify(items), 200


@bp.get("/projects/<project_id>/users")
@role_required(*ANY_ROLE)
def sdk_users(project_id):
    return jsonify([u.to_dict() for u in list_sdk_users(db.session, g.project)]), 200


@bp.get("/projects/<project_id>/users/stats")
@role_required(*ANY_ROLE)
def sdk_users_stats(project_id):
    return jsonify(sdk_user_stats(db.session, g.project)), 200


@bp.get("/projects/<project_id>/stats")
@role_required(*ANY_ROLE)
def stats(project_id):
    return jsonify(project_stats(db.session, g.project)), 200


@bp.get("/dashboard/home")
@login_required
def dashboard_home():
    return jsonify(home_summary(db.session, current_user)), 200
