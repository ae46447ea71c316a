"""
Payload validation - content-type allow-list, size limit, JSON well-formedness,
and an optional JSON Schema for the parsed payload.
"""
import json
import logging
from typing import Any, Optional

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError

from hookgate.schemas.validation import ValidationIssue
from hookgate.schemas.webhook_request import IncomingRequest

logger = logging.getLogger(__name__)

INVALID_CONTENT_TYPE = "INVALID_CONTENT_TYPE"
PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
INVALID_JSON = "INVALID_JSON"
SCHEMA_VIOLATION = "SCHEMA_VIOLATION"


def _reject_constant(name: str):
    raise ValueError(f"{name} is not a valid JSON value")


def loads_strict(body: bytes) -> Any:
    """
    json.loads that only accepts RFC 8259 JSON.
    NaN/Infinity literals and nesting too deep to parse raise ValueError,
    like any other malformed body.
    """
    try:
        return json.loads(body, parse_constant=_reject_constant)
    except RecursionError:
        raise ValueError("JSON nesting too deep") from None


def media_type(content_type: Optional[str]) -> str:
    """'Application/JSON; charset=utf-8' -> 'application/json'."""
    return (content_type or "").split(";")[0].strip().lower()


def is_json_media_type(content_type: Optional[str]) -> bool:
    mt = media_type(content_type)
    return mt == "application/json" or mt.endswith("+json")


class PayloadGuard:
    """Checks run in order; size/content-type failures short-circuit before parsing."""

    def __init__(
        self,
        allowed_content_types: list[str],
        max_payload_bytes: int,
        payload_schema: Optional[dict[str, Any]] = None,
    ):
        self.allowed_content_types = {media_type(ct) for ct in allowed_content_types}
        self.max_payload_bytes = max_payload_bytes
        self._schema_validator = None
        if payload_schema is not None:
            try:
                Draft202012Validator.check_schema(payload_schema)
            except SchemaError as e:
                raise ValueError(f"Invalid payload schema: {e.message}") from e
            self._schema_validator = Draft202012Validator(payload_schema)

    def validate(self, request: IncomingRequest) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []

        content_type = media_type(request.content_type)
        if content_type not in self.allowed_content_types:
            issues.append(ValidationIssue(
                path="content_type",
                code=INVALID_CONTENT_TYPE,
                message=f"Content type {content_type or '(empty)'} not allowed",
                expected=", ".join(sorted(self.allowed_content_types)),
                actual=content_type,
            ))

        size = len(request.body_bytes)
        if size > self.max_payload_bytes:
            issues.append(ValidationIssue(
                path="body",
                code=PAYLOAD_TOO_LARGE,
                message=f"Payload size {size} exceeds maximum {self.max_payload_bytes} bytes",
                expected=f"<= {self.max_payload_bytes}",
                actual=str(size),
            ))

        if issues:
            return issues

        if is_json_media_type(content_type):
            issues.extend(self._validate_json(request))
        return issues

    def _validate_json(self, request: IncomingRequest) -> list[ValidationIssue]:
        try:
            payload = loads_strict(request.body_bytes)
        except ValueError as e:
            return [ValidationIssue(
                path="body",
                code=INVALID_JSON,
                message=f"Body is not valid JSON (line {getattr(e, 'lineno', 1)})",
            )]

        if self._schema_validator is None:
            return []

        issues = []
        for error in sorted(self._schema_validator.iter_errors(payload), key=lambda e: e.json_path):
            issues.append(ValidationIssue(
                path=error.json_path,
                code=SCHEMA_VIOLATION,
                message=error.message,
                expected=str(error.validator),
            ))
        return issues
