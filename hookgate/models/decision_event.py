"""
Decision event audit trail - one row per successfully verified webhook.
Holds only the sanitized summary: no raw body, credentials, or raw source IPs.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, JSON
from sqlalchemy.dialects.postgresql import UUID, JSONB

from hookgate.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JsonType = JSON().with_variant(JSONB(), "postgresql")


class DecisionEventRecord(Base):
    __tablename__ = "decision_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    execution_ref = Column(UUID(as_uuid=True), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    connector_id = Column(String(100), nullable=False, index=True)
    event_type = Column(String(200), nullable=True)
    inputs_hash = Column(String(64), nullable=False, index=True)
    confidence_score = Column(Float, nullable=False)
    auth_assurance = Column(String(20), nullable=False)
    decision_event = Column(JsonType, nullable=False)
    request_metadata = Column(JsonType, nullable=False)
    signature_valid = Column(Boolean, nullable=False)
    schema_valid = Column(Boolean, nullable=False)
    error_count = Column(Integer, nullable=False, default=0, server_default="0")
    correlation_id = Column(String(64), nullable=True, index=True)
