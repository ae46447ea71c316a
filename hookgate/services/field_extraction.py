"""
Canonical field extraction from verified webhook payloads.
Each canonical field has an alias list; the first string value found wins.
"""
from typing import Any, Optional, Sequence
from urllib.parse import parse_qsl

from hookgate.schemas.decision_event import WebhookIdentifiers
from hookgate.schemas.webhook_request import IncomingRequest
from hookgate.utils.payload_guard import is_json_media_type, loads_strict, media_type

EVENT_TYPE_FIELDS = ("event", "event_type", "type", "action")
CORRELATION_ID_FIELDS = ("correlation_id", "correlationId")
IDEMPOTENCY_KEY_FIELDS = ("idempotency_key", "idempotencyKey", "requestId", "request_id")
EXTERNAL_ID_FIELDS = ("external_id", "externalId", "sourceId", "source_id", "id")


def parse_payload(request: IncomingRequest) -> dict[str, Any]:
    """
    Payload as a dict: the pre-parsed body if given, else JSON or form data,
    else the raw text under "raw". Non-object JSON is wrapped under "data".
    """
    if request.parsed_body is not None:
        return request.parsed_body

    content_type = media_type(request.content_type)
    if is_json_media_type(content_type):
        parsed = loads_strict(request.body_bytes)
        return parsed if isinstance(parsed, dict) else {"data": parsed}
    if content_type == "application/x-www-form-urlencoded":
        return dict(parse_qsl(request.body_text, keep_blank_values=True))
    return {"raw": request.body_text}


def extract_field(payload: dict[str, Any], keys: Sequence[str]) -> Optional[str]:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str):
            return value
    return None


def detect_event_type(path: str, payload: dict[str, Any]) -> Optional[str]:
    """Event type from the payload, falling back to the last path segment."""
    event_type = extract_field(payload, EVENT_TYPE_FIELDS)
    if event_type:
        return event_type
    segments = [segment for segment in path.split("/") if segment]
    return segments[-1] if segments else None


def extract_identifiers(payload: dict[str, Any]) -> WebhookIdentifiers:
    return WebhookIdentifiers(
        correlation_id=extract_field(payload, CORRELATION_ID_FIELDS),
        idempotency_key=extract_field(payload, IDEMPOTENCY_KEY_FIELDS),
        external_id=extract_field(payload, EXTERNAL_ID_FIELDS),
    )
