import click
from flask.cli import with_appcontext
from sqlalchemy import func, select
from feedbackkit.extensions import db
from feedbackkit.models import Project, ProjectMember, User, ROLE_ADMIN, ROLE_MEMBER
from feedbackkit.services import dispatch
from feedbackkit.services.cleanup import cleanup_stale_feedback
from feedbackkit.services.projects import create_project

def _user_by_email(email: str):
    return db.session.execute(
        select(User).where(func.lower(User.email) == email.strip().lower())
    ).scalar_one_or_none()

def _project(project_id: str) -> Project:
    from feedbackkit.utils.helpers import parse_uuid
    pid = parse_uuid(project_id)
    project = db.session.get(Project, pid) if pid else None
    if not project:
        raise click.ClickException(f"Project id {project_id} not found")
    return project

@click.group()
def bootstrap():
    """Bootstrap helpers."""

@bootstrap.command("owner")
@click.option("--project-name", required=True)
@click.option("--email", required=True)
@click.option("--password", required=True)
@click.option("--name", default=None, help="Display name (defaults to the email)")
@with_appcontext
def bootstrap_owner(project_name, email, password, name):
    # fail fast if user exists
    if _user_by_email(email):
        raise click.ClickException("User already exists")

    user = User(email=email.strip().lower(), name=name or email, is_active=True)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()

    project = create_project(db.session, user, project_name)
    click.echo(f"Bootstrap complete: project_id={project.id} api_key={project.api_key} owner_user_id={user.id} email={user.email}")

@click.group()
def users():
    """User management."""

@users.command("create")
@click.option("--email", required=True)
@click.option("--password", required=True)
@click.option("--name", default=None)
@click.option("--project-id", default=None, help="Existing project id to join")
@click.option("--role", type=click.Choice([ROLE_MEMBER, ROLE_ADMIN]), default=ROLE_MEMBER)
@with_appcontext
def users_create(email, password, name, project_id, role):
    if _user_by_email(email):
        raise click.ClickException("User already exists")

    project = _project(project_id) if project_id else None

    user = User(email=email.strip().lower(), name=name or email, is_active=True)
    user.set_password(password)
    db.session.add(user)
    db.session.flush()

    if project:
        db.session.add(ProjectMember(project_id=project.id, user_id=user.id, role=role))
    db.session.commit()

    suffix = f" project_id={project.id} role={role}" if project else ""
    click.echo(f"User created id={user.id} email={user.email}{suffix}")

@click.group()
def members():
    """Project membership role ops."""

@members.command("promote")
@click.option("--project-id", required=True)
@click.option("--email", required=True)
@with_appcontext
def members_promote(project_id, email):
    project = _project(project_id)
    user = _user_by_email(email)
    if not user:
        raise click.ClickException("User not found")
    if user.id == project.owner_id:
        raise click.ClickException("Refused: user already owns this project")
    m = db.session.query(ProjectMember).filter_by(project_id=project.id, user_id=user.id).one_or_none()
    if not m:
        m = ProjectMember(project_id=project.id, user_id=user.id, role=ROLE_ADMIN)
        db.session.add(m)
    else:
        m.role = ROLE_ADMIN
    db.session.commit()
    click.echo(f"Promoted {email} in project {project.id} to {ROLE_ADMIN}")

@members.command("demote")
@click.option("--project-id", required=True)
@click.option("--email", required=True)
@with_appcontext
def members_demote(project_id, email):
    project = _project(project_id)
    user = _user_by_email(email)
    if not user:
        raise click.ClickException("User not found")

    m = db.session.query(ProjectMember).filter_by(project_id=project.id, user_id=user.id).one_or_none()
    if not m:
        raise click.ClickException("Membership not found")

    m.role = ROLE_MEMBER
    db.session.commit()
    click.echo(f"Demoted {email} in project {project.id} to member")

@click.group()
def outbox():
    """Outbound notification delivery."""

@outbox.command("retry")
@click.option("--limit", type=int, default=100, show_default=True)
@with_appcontext
def outbox_retry(limit):
    delivered, failed = dispatch.retry_failed(limit=limit)
    click.echo(f"Outbox retry: delivered={delivered} failed={failed}")

@click.group()
def feedback():
    """Feedback maintenance."""

@feedback.command("cleanup")
@click.option("--days", type=int, default=None, help="Retention window (defaults to FEEDBACK_RETENTION_DAYS)")
@with_appcontext
def feedback_cleanup(days):
    deleted, errors = cleanup_stale_feedback(db.session, retention_days=days)
    click.echo(f"Cleanup complete: deleted={deleted} errors={errors}")

def register_cli(app):
    app.cli.add_command(bootstrap)
    app.cli.add_command(users)
    app.cli.add_command(members)
    app.cli.add_command(outbox)
    app.cli.add_command(feedback)
