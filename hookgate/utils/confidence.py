"""
Confidence scoring for the webhook audit record.
"""
from typing import Optional

from hookgate.schemas.decision_event import AuthAssurance, ConfidenceRecord
from hookgate.schemas.validation import SignatureOutcome

# Weights in tenths so scores are exact: 0.4 signature, 0.3 schema, 0.3 completeness
SIGNATURE_WEIGHT = 4
SCHEMA_WEIGHT = 3
COMPLETENESS_WEIGHT = 3

# A payload counts as complete above this fraction of populated top-level keys
COMPLETENESS_THRESHOLD = 0.8

_AUTH_LEVELS: dict[str, AuthAssurance] = {
    "hmac_sha256": "high",
    "hmac_sha512": "high",
    "jwt_rs256": "verified",
    "jwt_hs256": "medium",
    "api_key": "low",
}


def auth_assurance_for(outcome: Optional[SignatureOutcome]) -> AuthAssurance:
    if outcome is None or not outcome.valid:
        return "none"
    return _AUTH_LEVELS.get(outcome.scheme, "none")


def payload_completeness(payload: dict) -> float:
    """Fraction of top-level keys whose values are not None or empty string."""
    if not payload:
        return 0.0
    filled = sum(1 for value in payload.values() if value is not None and value != "")
    return filled / len(payload)


class ConfidenceScorer:
    def score(
        self,
        signature_valid: bool,
        schema_valid: bool,
        payload_complete: bool,
        auth_level: AuthAssurance,
        payload_completeness: Optional[float] = None,
    ) -> ConfidenceRecord:
        tenths = (
            SIGNATURE_WEIGHT * bool(signature_valid)
            + SCHEMA_WEIGHT * bool(schema_valid)
            + COMPLETENESS_WEIGHT * bool(payload_complete)
        )
        if payload_completeness is None:
            payload_completeness = 1.0 if payload_complete else 0.0
        return ConfidenceRecord(
            score=tenths / 10,
            auth_assurance=auth_level,
            payload_completeness=payload_completeness,
            schema_validation="passed" if schema_valid else "failed",
        )
