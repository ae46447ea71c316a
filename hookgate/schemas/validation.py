"""
Validation outcomes produced by the verification stages.
"""
from typing import Optional

from pydantic import BaseModel, Field

from hookgate.schemas.signature_config import SignatureScheme


class SignatureOutcome(BaseModel):
    """Result of verifying one request against the configured scheme."""
    valid: bool
    scheme: SignatureScheme
    timestamp_valid: Optional[bool] = None
    error: Optional[str] = None


class ValidationIssue(BaseModel):
    """A single validation failure with a machine-readable code."""
    path: str
    code: str
    message: str
    expected: Optional[str] = None
    actual: Optional[str] = None


class ValidationResult(BaseModel):
    valid: bool
    signature: Optional[SignatureOutcome] = None
    schema_valid: bool = False
    issues: list[ValidationIssue] = Field(default_factory=list)
    duration_ms: int = 0
