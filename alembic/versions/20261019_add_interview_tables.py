"""Add interview tables: conversation, message, conversation_state, state_transition

Revision ID: 20261019_add_interview_tables
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261019_add_interview_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "conversation",
        sa.Column("id", sa.UUID(as_uuid=False), primary_key=True),
        sa.Column("sender", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_conversation_sender", "conversation", ["sender"])
    # At most one active conversation per sender
    op.create_index(
        "uq_conversation_sender_active",
        "conversation",
        ["sender"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "message",
        sa.Column("id", sa.UUID(as_uuid=False), primary_key=True),
        sa.Column(
            "conversation_id",
            sa.UUID(as_uuid=False),
            sa.ForeignKey("conversation.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("role", sa.String(length=20), nullable=False),  # system, user, assistant
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "conversation_id", "position", name="uq_message_conversation_position"
        ),
    )
    op.create_index(
        "ix_message_conversation_created", "message", ["conversation_id", "created_at"]
    )

    op.create_table(
        "conversation_state",
        sa.Column("id", sa.UUID(as_uuid=False), primary_key=True),
        sa.Column(
            "conversation_id",
            sa.UUID(as_uuid=False),
            sa.ForeignKey("conversation.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("current_stage", sa.String(length=50), nullable=False),
        sa.Column("stage_data", sa.JSON(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
    )

    op.create_table(
        "state_transition",
        sa.Column("id", sa.UUID(as_uuid=False), primary_key=True),
        sa.Column(
            "conversation_id",
            sa.UUID(as_uuid=False),
            sa.ForeignKey("conversation.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("from_stage", sa.String(length=50), nullable=False),
        sa.Column("to_stage", sa.String(length=50), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_state_transition_conversation_ts",
        "state_transition",
        ["conversation_id", "timestamp"],
    )


def downgrade() -> None:
    op.drop_index("ix_state_transition_conversation_ts", table_name="state_transition")
    op.drop_table("state_transition")
    op.drop_table("conversation_state")
    op.drop_index("ix_message_conversation_created", table_name="message")
    op.drop_table("message")
    op.drop_index("uq_conversation_sender_active", table_name="conversation")
    op.drop_index("ix_conversation_sender", table_name="conversation")
    op.drop_table("conversation")
