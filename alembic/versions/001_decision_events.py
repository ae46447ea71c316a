"""Add decision_events table for the webhook audit trail

Revision ID: 001
Revises:
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # One row per verified webhook; sanitized summary only
    op.create_table(
        "decision_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("execution_ref", postgresql.UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("connector_id", sa.String(100), nullable=False),
        sa.Column("event_type", sa.String(200), nullable=True),
        sa.Column("inputs_hash", sa.String(64), nullable=False),
        sa.Column("confidence_score", sa.Float, nullable=False),
        sa.Column("auth_assurance", sa.String(20), nullable=False),
        sa.Column("decision_event", postgresql.JSONB, nullable=False),
        sa.Column("request_metadata", postgresql.JSONB, nullable=False),
        sa.Column("signature_valid", sa.Boolean, nullable=False),
        sa.Column("schema_valid", sa.Boolean, nullable=False),
        sa.Column("error_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("correlation_id", sa.String(64), nullable=True),
    )
    op.create_index("ix_decision_events_connector_id", "decision_events", ["connector_id"])
    op.create_index("ix_decision_events_inputs_hash", "decision_events", ["inputs_hash"])
    op.create_index("ix_decision_events_correlation_id", "decision_events", ["correlation_id"])
    op.create_index("ix_decision_events_created_at", "decision_events", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_decision_events_created_at", table_name="decision_events")
    op.drop_index("ix_decision_events_correlation_id", table_name="decision_events")
    op.drop_index("ix_decision_events_inputs_hash", table_name="decision_events")
    op.drop_index("ix_decision_events_connector_id", table_name="decision_events")
    op.drop_table("decision_events")
