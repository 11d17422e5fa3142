"""initial

Revision ID: 0001
Revises: 
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "call_records",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("source", sa.String(length=20), nullable=False),
        sa.Column("external_id", sa.String(length=128), nullable=False),
        sa.Column("caller_number", sa.String(length=64)),
        sa.Column("duration_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("sentiment", sa.String(length=20)),
        sa.Column("transcription", sa.Text()),
        sa.Column("summary", sa.Text()),
        sa.Column("audio_url", sa.String(length=1024)),
        sa.Column("agent_id", sa.String(length=128)),
        sa.Column("cost", sa.Numeric(12, 4)),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("source", "external_id", name="uq_call_records_source_external_id"),
    )
    op.create_index("ix_call_records_source", "call_records", ["source"])
    op.create_index("ix_call_records_caller_number", "call_records", ["caller_number"])
    op.create_index("ix_call_records_status", "call_records", ["status"])
    op.create_index("ix_call_records_timestamp", "call_records", ["timestamp"])


def downgrade() -> None:
    op.drop_index("ix_call_records_timestamp", table_name="call_records")
    op.drop_index("ix_call_records_status", table_name="call_records")
    op.drop_index("ix_call_records_caller_number", table_name="call_records")
    op.drop_index("ix_call_records_source", table_name="call_records")
    op.drop_table("call_records")
