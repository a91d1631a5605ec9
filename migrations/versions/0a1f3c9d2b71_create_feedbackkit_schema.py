"""create feedbackkit schema

Revision ID: 0a1f3c9d2b71
Revises:
Create Date: 2026-10-19 09:12:44.310582

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0a1f3c9d2b71'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notify_new_feedback", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notify_new_comments", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_users_lower_email", "users", [sa.text("lower(email)")], unique=True)

    op.create_table(
        "projects",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("api_key", sa.String(64), nullable=False),
        sa.Column("owner_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("allowed_statuses", sa.JSON(), nullable=False),
        sa.Column("slack_webhook_url", sa.String(512), nullable=True),
        sa.Column("slack_notify_new_feedback", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("slack_notify_new_comments", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("slack_notify_status_changes", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("trello_token", sa.String(255), nullable=True),
        sa.Column("trello_board_id", sa.String(64), nullable=True),
        sa.Column("trello_list_id", sa.String(64), nullable=True),
        sa.Column("trello_sync_status", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("trello_sync_comments", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("trello_is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_projects_api_key", "projects", ["api_key"], unique=True)
    op.create_index("ix_projects_owner_id", "projects", ["owner_id"])

    op.create_table(
        "project_members",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="member"),
        *_timestamps(),
        sa.UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),
        sa.CheckConstraint("role IN ('admin','member')", name="ck_project_members_role_valid"),
    )
    op.create_index("ix_project_members_project_id", "project_members", ["project_id"])
    op.create_index("ix_project_members_user_id", "project_members", ["user_id"])

    op.create_table(
        "feedbacks",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("category", sa.String(32), nullable=False, server_default="feature_request"),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("user_email", sa.String(320), nullable=True),
        sa.Column("vote_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("merged_into_id", sa.Uuid(), sa.ForeignKey("feedbacks.id"), nullable=True),
        sa.Column("merged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("merged_feedback_ids", sa.JSON(), nullable=True),
        sa.Column("trello_card_id", sa.String(64), nullable=True),
        sa.Column("trello_card_url", sa.String(512), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_feedbacks_project_id", "feedbacks", ["project_id"])
    op.create_index("ix_feedbacks_status", "feedbacks", ["status"])
    op.create_index("ix_feedbacks_user_id", "feedbacks", ["user_id"])
    op.create_index("ix_feedbacks_merged_into_id", "feedbacks", ["merged_into_id"])
    op.create_index("ix_feedbacks_created_at", "feedbacks", ["created_at"])
    op.create_index("ix_feedbacks_project_vote_count", "feedbacks", ["project_id", "vote_count"])

    op.create_table(
        "votes",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("feedback_id", sa.Uuid(), sa.ForeignKey("feedbacks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("notify_status_change", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("permission_key", sa.Uuid(), nullable=True, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("feedback_id", "user_id", name="uq_votes_feedback_user"),
    )
    op.create_index("ix_votes_feedback_id", "votes", ["feedback_id"])
    op.create_index("ix_votes_user_id", "votes", ["user_id"])

    op.create_table(
        "comments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("feedback_id", sa.Uuid(), sa.ForeignKey("feedbacks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_comments_feedback_id", "comments", ["feedback_id"])
    op.create_index("ix_comments_feedback_created_at", "comments", ["feedback_id", "created_at"])

    op.create_table(
        "sdk_users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("mrr", sa.Float(), nullable=True),
        sa.Column("first_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("project_id", "user_id", name="uq_sdk_users_project_user"),
    )
    op.create_index("ix_sdk_users_project_id", "sdk_users", ["project_id"])

    op.create_table(
        "email_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("to_email", sa.String(320), nullable=False),
        sa.Column("template", sa.String(64), nullable=False),
        sa.Column("subject", sa.String(200), nullable=False),
        sa.Column("provider_msg_id", sa.String(128), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("meta", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_email_logs_to_email", "email_logs", ["to_email"])
    op.create_index("ix_email_logs_provider_msg_id", "email_logs", ["provider_msg_id"])
    op.create_index("ix_email_logs_status", "email_logs", ["status"])

    op.create_table(
        "outbound_events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=True),
        sa.Column("event_type", sa.String(40), nullable=False),
        sa.Column("channel", sa.String(20), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("channel IN ('email','slack','trello')", name="ck_outbound_events_channel_valid"),
    )
    op.create_index("ix_outbound_events_project_id", "outbound_events", ["project_id"])
    op.create_index("ix_outbound_events_status", "outbound_events", ["status"])


def downgrade():
    op.drop_table("outbound_events")
    op.drop_table("email_logs")
    op.drop_table("sdk_users")
    op.drop_table("comments")
    op.drop_table("votes")
    op.drop_table("feedbacks")
    op.drop_table("project_members")
    op.drop_table("projects")
    op.drop_index("ix_users_lower_email", table_name="users")
    op.drop_table("users")
