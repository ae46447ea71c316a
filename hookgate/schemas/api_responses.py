"""
API response schemas for the webhook and health endpoints.
"""
from typing import Optional

from pydantic import BaseModel, Field

from hookgate.schemas.decision_event import AuthAssurance
from hookgate.schemas.validation import ValidationIssue


class WebhookAcceptedResponse(BaseModel):
    status: str = "accepted"
    execution_ref: str
    event_type: Optional[str] = None
    confidence_score: float
    auth_assurance: AuthAssurance
    inputs_hash: str


class WebhookRejectedResponse(BaseModel):
    status: str = "rejected"
    code: str
    error_class: str
    message: str
    retryable: bool = False
    issues: list[ValidationIssue] = Field(default_factory=list)


class ReadinessResponse(BaseModel):
    status: str
    checks: dict[str, bool]
    replay_cache_entries: int = 0
    timestamp: str
