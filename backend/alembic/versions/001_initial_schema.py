"""Initial QuickDesk schema.

Revision ID: 001
Revises:
Create Date: 2026-10-19

WHAT: Creates users, categories, tickets with their three history tables,
comments, votes and notifications.

WHY: Votes live in one row per (entity, user) under a unique constraint so
a user can never be in both the upvote and downvote set. Tickets and
comments carry an optional idempotency key, unique per author.
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


# Enum types are shared between tables, so they are created once up front
userrole = postgresql.ENUM("end_user", "support_agent", "admin", name="userrole", create_type=False)
ticketstatus = postgresql.ENUM(
    "open", "in_progress", "resolved", "closed", name="ticketstatus", create_type=False
)
ticketpriority = postgresql.ENUM(
    "low", "medium", "high", "urgent", name="ticketpriority", create_type=False
)
votetype = postgresql.ENUM("upvote", "downvote", name="votetype", create_type=False)
notificationtype = postgresql.ENUM(
    "created",
    "updated",
    "assigned",
    "commented",
    "comment_reply",
    name="notificationtype",
    create_type=False,
)

ENUM_TYPES = (userrole, ticketstatus, ticketpriority, votetype, notificationtype)


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def _history_columns() -> list:
    """Columns shared by the three ticket history tables."""
    return [
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "ticket_id",
            sa.Uuid(),
            sa.ForeignKey("tickets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "changed_by_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("changed_at", sa.DateTime(), nullable=False),
        sa.Column("reason", sa.String(500), nullable=False),
    ]


def upgrade() -> None:
    """
    Create the QuickDesk tables.

    Creates:
    - users, categories
    - tickets, ticket_status_history, ticket_priority_history,
      ticket_assignment_history, ticket_votes
    - comments, comment_votes
    - notifications
    """
    bind = op.get_bind()
    for enum_type in ENUM_TYPES:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", userrole, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "categories",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(50), nullable=False, unique=True),
        sa.Column("description", sa.String(200), nullable=True),
        sa.Column("color", sa.String(7), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column(
            "created_by_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        *_timestamps(),
    )

    op.create_table(
        "tickets",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("subject", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category_id", sa.Uuid(), sa.ForeignKey("categories.id"), nullable=False),
        sa.Column("status", ticketstatus, nullable=False),
        sa.Column("priority", ticketpriority, nullable=False),
        sa.Column("created_by_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("assigned_to_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("attachments", sa.JSON(), nullable=False),
        sa.Column("view_count", sa.Integer(), nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False),
        sa.Column("public_link", sa.String(100), nullable=True),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.Column("closed_at", sa.DateTime(), nullable=True),
        sa.Column("idempotency_key", sa.String(255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "created_by_id", "idempotency_key", name="uq_tickets_creator_idempotency_key"
        ),
    )
    op.create_index("ix_tickets_status", "tickets", ["status"])
    op.create_index("ix_tickets_priority", "tickets", ["priority"])
    op.create_index("ix_tickets_created_by_id", "tickets", ["created_by_id"])
    op.create_index("ix_tickets_assigned_to_id", "tickets", ["assigned_to_id"])
    op.create_index("ix_tickets_created_at", "tickets", ["created_at"])

    op.create_table(
        "ticket_status_history",
        *_history_columns(),
        sa.Column("old_status", ticketstatus, nullable=False),
        sa.Column("new_status", ticketstatus, nullable=False),
    )
    op.create_table(
        "ticket_priority_history",
        *_history_columns(),
        sa.Column("old_priority", ticketpriority, nullable=False),
        sa.Column("new_priority", ticketpriority, nullable=False),
    )
    op.create_table(
        "ticket_assignment_history",
        *_history_columns(),
        sa.Column(
            "old_assigned_to_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "new_assigned_to_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
    )
    for history_table in (
        "ticket_status_history",
        "ticket_priority_history",
        "ticket_assignment_history",
    ):
        op.create_index(f"ix_{history_table}_ticket_id", history_table, ["ticket_id"])

    op.create_table(
        "ticket_votes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "ticket_id",
            sa.Uuid(),
            sa.ForeignKey("tickets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("vote_type", votetype, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("ticket_id", "user_id", name="uq_ticket_votes_ticket_user"),
    )
    op.create_index("ix_ticket_votes_ticket_id", "ticket_votes", ["ticket_id"])

    op.create_table(
        "comments",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "ticket_id",
            sa.Uuid(),
            sa.ForeignKey("tickets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("author_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("attachments", sa.JSON(), nullable=False),
        sa.Column("is_internal", sa.Boolean(), nullable=False),
        sa.Column("is_edited", sa.Boolean(), nullable=False),
        sa.Column("edited_at", sa.DateTime(), nullable=True),
        sa.Column(
            "parent_comment_id",
            sa.Uuid(),
            sa.ForeignKey("comments.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("idempotency_key", sa.String(255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "author_id", "idempotency_key", name="uq_comments_author_idempotency_key"
        ),
    )
    op.create_index("ix_comments_ticket_id_created_at", "comments", ["ticket_id", "created_at"])
    op.create_index("ix_comments_parent_comment_id", "comments", ["parent_comment_id"])

    op.create_table(
        "comment_votes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "comment_id",
            sa.Uuid(),
            sa.ForeignKey("comments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("vote_type", votetype, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("comment_id", "user_id", name="uq_comment_votes_comment_user"),
    )
    op.create_index("ix_comment_votes_comment_id", "comment_votes", ["comment_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "recipient_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "sender_id",
            sa.Uuid(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "ticket_id",
            sa.Uuid(),
            sa.ForeignKey("tickets.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("type", notificationtype, nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_notifications_recipient_read", "notifications", ["recipient_id", "is_read"]
    )


def downgrade() -> None:
    """Drop every QuickDesk table and enum type."""
    op.drop_table("notifications")
    op.drop_table("comment_votes")
    op.drop_table("comments")
    op.drop_table("ticket_votes")
    op.drop_table("ticket_assignment_history")
    op.drop_table("ticket_priority_history")
    op.drop_table("ticket_status_history")
    op.drop_table("tickets")
    op.drop_table("categories")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_type in reversed(ENUM_TYPES):
        enum_type.drop(bind, checkfirst=True)
