"""
Pipeline result - exactly one of success-with-DecisionEvent or failure-with-code.
"""
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

from hookgate.schemas.decision_event import DecisionEvent
from hookgate.schemas.validation import ValidationIssue, ValidationResult


class PipelineState(str, Enum):
    RECEIVED = "received"
    PAYLOAD_CHECKED = "payload_checked"
    SIGNATURE_CHECKED = "signature_checked"
    REPLAY_CHECKED = "replay_checked"
    IP_CHECKED = "ip_checked"
    SCORED = "scored"
    COMPLETED = "completed"
    FAILED = "failed"


class FailureCode(str, Enum):
    PAYLOAD_VALIDATION_FAILED = "PAYLOAD_VALIDATION_FAILED"
    SIGNATURE_VERIFICATION_FAILED = "SIGNATURE_VERIFICATION_FAILED"
    REPLAY_DETECTED = "REPLAY_DETECTED"
    SOURCE_IP_NOT_ALLOWED = "SOURCE_IP_NOT_ALLOWED"
    PROCESSING_ERROR = "PROCESSING_ERROR"


ErrorClass = Literal["validation", "auth", "internal"]

ERROR_CLASSES: dict[FailureCode, ErrorClass] = {
    FailureCode.PAYLOAD_VALIDATION_FAILED: "validation",
    FailureCode.SIGNATURE_VERIFICATION_FAILED: "auth",
    FailureCode.REPLAY_DETECTED: "auth",
    FailureCode.SOURCE_IP_NOT_ALLOWED: "auth",
    FailureCode.PROCESSING_ERROR: "internal",
}


class PipelineError(BaseModel):
    code: FailureCode
    error_class: ErrorClass
    message: str
    retryable: bool = False
    issues: list[ValidationIssue] = Field(default_factory=list)

    @classmethod
    def for_code(
        cls,
        code: FailureCode,
        message: str,
        issues: Optional[list[ValidationIssue]] = None,
    ) -> "PipelineError":
        error_class = ERROR_CLASSES[code]
        return cls(
            code=code,
            error_class=error_class,
            message=message,
            # Only internal failures are worth a retry from the sender
            retryable=error_class == "internal",
            issues=issues or [],
        )


class PipelineResult(BaseModel):
    status: Literal["success", "error"]
    decision_event: Optional[DecisionEvent] = None
    error: Optional[PipelineError] = None
    validation: Optional[ValidationResult] = None
    final_state: PipelineState

    @model_validator(mode="after")
    def _exactly_one_outcome(self) -> "PipelineResult":
        if (self.decision_event is None) == (self.error is None):
            raise ValueError("result must carry exactly one of decision_event or error")
        if self.status == "success" and self.decision_event is None:
            raise ValueError("successful result requires a decision_event")
        if self.status == "error" and self.error is None:
            raise ValueError("error result requires an error")
        return self

    @property
    def ok(self) -> bool:
        return self.status == "success"
