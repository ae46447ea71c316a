"""
DecisionEvent - the single canonical audit record emitted per successful webhook.
Also holds the sanitized summary handed to the persistence sink.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

AuthAssurance = Literal["none", "low", "medium", "high", "verified"]

AGENT_ID = "webhook-ingest-agent"
AGENT_VERSION = "1.0.0"
DECISION_TYPE = "webhook_ingest_event"


class ConfidenceRecord(BaseModel):
    score: float = Field(ge=0.0, le=1.0)
    auth_assurance: AuthAssurance
    payload_completeness: float = Field(ge=0.0, le=1.0)
    schema_validation: Literal["passed", "failed"]


class WebhookIdentifiers(BaseModel):
    correlation_id: Optional[str] = None
    idempotency_key: Optional[str] = None
    external_id: Optional[str] = None


class WebhookArtifact(BaseModel):
    """Normalized webhook output carried in DecisionEvent.outputs."""
    source_id: str
    event_type: Optional[str] = None
    payload: dict[str, Any]
    original_payload_hash: str = Field(min_length=64, max_length=64)
    identifiers: Optional[WebhookIdentifiers] = None


class ConstraintsApplied(BaseModel):
    connector_scope: str
    identity_context: Optional[str] = None
    schema_boundaries: list[str] = Field(default_factory=list)
    rate_limit_applied: bool = False
    size_limit_bytes: int
    timeout_ms: int


class DecisionEvent(BaseModel):
    agent_id: str = AGENT_ID
    agent_version: str = AGENT_VERSION
    decision_type: Literal["webhook_ingest_event"] = DECISION_TYPE
    inputs_hash: str = Field(pattern=r"^[0-9a-f]{64}$")
    outputs: WebhookArtifact
    confidence: ConfidenceRecord
    constraints_applied: ConstraintsApplied
    execution_ref: uuid.UUID = Field(default_factory=uuid.uuid4)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    duration_ms: Optional[int] = Field(default=None, ge=0)


class RequestMetadata(BaseModel):
    """Non-sensitive request metadata - raw IPs and credentials never land here."""
    path: str
    content_type: str
    source_ip_hash: Optional[str] = None
    received_at: datetime
    sanitized_headers: dict[str, str] = Field(default_factory=dict)


class ValidationSummary(BaseModel):
    signature_valid: bool
    schema_valid: bool
    error_count: int


class PersistedWebhookData(BaseModel):
    decision_event: DecisionEvent
    request_metadata: RequestMetadata
    validation_summary: ValidationSummary
