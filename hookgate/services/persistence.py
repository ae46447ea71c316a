"""
DecisionEvent persistence sinks.

The pipeline hands every successful DecisionEvent to a sink in a background
task. Sinks may raise; the pipeline logs and counts the failure and never
changes the response it already returned.
"""
import logging
from typing import Callable, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from hookgate.models.decision_event import DecisionEventRecord
from hookgate.schemas.decision_event import (
    DecisionEvent,
    PersistedWebhookData,
    RequestMetadata,
    ValidationSummary,
)
from hookgate.schemas.validation import ValidationResult
from hookgate.schemas.webhook_request import IncomingRequest
from hookgate.utils.logging import get_correlation_id
from hookgate.utils.sanitize import hash_source_ip, sanitize_headers

logger = logging.getLogger(__name__)


class DecisionEventSink(Protocol):
    async def persist(self, data: PersistedWebhookData) -> None:
        ...


def build_persisted_data(
    event: DecisionEvent,
    request: IncomingRequest,
    validation: ValidationResult,
    signature_header: Optional[str] = None,
) -> PersistedWebhookData:
    """Sanitized summary of one successful run."""
    return PersistedWebhookData(
        decision_event=event,
        request_metadata=RequestMetadata(
            path=request.path,
            content_type=request.content_type,
            source_ip_hash=hash_source_ip(request.source_ip),
            received_at=request.received_at,
            sanitized_headers=sanitize_headers(request.headers, signature_header),
        ),
        validation_summary=ValidationSummary(
            signature_valid=bool(validation.signature and validation.signature.valid),
            schema_valid=validation.schema_valid,
            error_count=len(validation.issues),
        ),
    )


class LoggingDecisionEventSink:
    """Emits the sanitized summary as a structured log line."""

    async def persist(self, data: PersistedWebhookData) -> None:
        event = data.decision_event
        logger.info(
            "Decision event: event_type=%s score=%.1f auth=%s inputs_hash=%s",
            event.outputs.event_type,
            event.confidence.score,
            event.confidence.auth_assurance,
            event.inputs_hash[:12],
            extra={
                "connector_id": event.outputs.source_id,
                "execution_ref": str(event.execution_ref),
            },
        )


class SqlAlchemyDecisionEventSink:
    """Writes one decision_events row per DecisionEvent."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self._session_factory = session_factory

    async def persist(self, data: PersistedWebhookData) -> None:
        event = data.decision_event
        record = DecisionEventRecord(
            execution_ref=event.execution_ref,
            connector_id=event.outputs.source_id,
            event_type=event.outputs.event_type,
            inputs_hash=event.inputs_hash,
            confidence_score=event.confidence.score,
            auth_assurance=event.confidence.auth_assurance,
            decision_event=event.model_dump(mode="json"),
            request_metadata=data.request_metadata.model_dump(mode="json"),
            signature_valid=data.validation_summary.signature_valid,
            schema_valid=data.validation_summary.schema_valid,
            error_count=data.validation_summary.error_count,
            correlation_id=get_correlation_id(),
        )
        async with self._session_factory() as session:
            session.add(record)
            await session.commit()
        logger.debug(
            "Persisted decision event",
            extra={"execution_ref": str(event.execution_ref)},
        )
