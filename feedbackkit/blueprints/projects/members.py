from flask import g, jsonify

from feedbackkit.extensions import db
from feedbackkit.models import ROLE_ADMIN, ROLE_OWNER
from feedbackkit.services import projects as svc
from feedbackkit.services.policy import role_required
from . import bp
from .routes import ANY_ROLE, _payload


@bp.get("/projects/<project_id>/members")
@role_required(*ANY_ROLE)
def list_members(project_id):
    return jsonify([m.to_dict() for m in svc.list_members(db.session, g.project)]), 200


@bp.post("/projects/<project_id>/members")
@role_required(ROLE_OWNER, ROLE_ADMIN)
def add_member(project_id):
    data = _payload()
    member = svc.add_member(db.session, g.project, data.get("email"), data.get("role"))
    return jsonify(member.to_dict()), 201


@bp.patch("/projects/<project_id>/members/<member_id>")
@role_required(ROLE_OWNER, ROLE_ADMIN)
def update_member(project_id, member_id):
    member = svc.update_member_role(db.session, g.project, member_id, _payload().get("role"))
    return jsonify(member.to_dict()), 200


@bp.delete("/projects/<project_id>/members/<member_id>")
@role_required(ROLE_OWNER, ROLE_ADMIN)
def remove_member(project_id, member_id):
    svc.remove_member(db.session, g.project, member_id)
    return "", 204
