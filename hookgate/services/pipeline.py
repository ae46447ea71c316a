"""
Webhook pipeline - verifies one inbound webhook and emits its DecisionEvent.

Stages (in order):
1. Payload checks (content type, size, JSON, optional JSON Schema)
2. Signature verification (bounded by the per-request timeout)
3. Replay protection (schemes with a timestamp window only)
4. Source IP allow-list
5. Canonical field extraction and confidence scoring
6. DecisionEvent assembly; persistence runs in the background

Any stage can fail the request with a typed code. Failed requests never
produce a DecisionEvent; a persistence failure never fails a request.
"""
import asyncio
import logging
import time
from typing import Callable, Optional

from hookgate.schemas.decision_event import (
    ConstraintsApplied,
    DecisionEvent,
    PersistedWebhookData,
    WebhookArtifact,
)
from hookgate.schemas.gateway_config import GatewayConfig
from hookgate.schemas.pipeline_result import (
    FailureCode,
    PipelineError,
    PipelineResult,
    PipelineState,
)
from hookgate.schemas.signature_config import signature_header, timestamp_header
from hookgate.schemas.validation import SignatureOutcome, ValidationIssue, ValidationResult
from hookgate.schemas.webhook_request import IncomingRequest
from hookgate.services.field_extraction import (
    detect_event_type,
    extract_identifiers,
    parse_payload,
)
from hookgate.services.persistence import (
    DecisionEventSink,
    LoggingDecisionEventSink,
    build_persisted_data,
)
from hookgate.utils.confidence import (
    COMPLETENESS_THRESHOLD,
    ConfidenceScorer,
    auth_assurance_for,
    payload_completeness,
)
from hookgate.utils.jwks import JwksKeyResolver
from hookgate.utils.metrics import (
    PIPELINE_DURATION,
    Timer,
    record_outcome,
    record_persistence_error,
)
from hookgate.utils.payload_guard import PayloadGuard, media_type
from hookgate.utils.replay import ReplayGuard, replay_digest
from hookgate.utils.source_ip import SourceIPFilter
from hookgate.utils.webhook_signatures import SignatureVerifier, compute_payload_hash
from hookgate.workers.replay_sweeper import run_replay_sweeper

logger = logging.getLogger(__name__)

SHUTDOWN_DRAIN_SECONDS = 10.0


class WebhookPipeline:
    """
    One pipeline per connector. Stateless per request except for the injected
    ReplayGuard, whose sweeper task lives between start() and stop().
    """

    def __init__(
        self,
        config: GatewayConfig,
        *,
        replay_guard: Optional[ReplayGuard] = None,
        sink: Optional[DecisionEventSink] = None,
        clock: Callable[[], float] = time.time,
        key_resolver: Optional[JwksKeyResolver] = None,
    ):
        self.config = config
        self.clock = clock
        self.replay_guard = replay_guard if replay_guard is not None else ReplayGuard(clock=clock)
        self.sink = sink if sink is not None else LoggingDecisionEventSink()

        self.payload_guard = PayloadGuard(
            config.allowed_content_types,
            config.max_payload_bytes,
            config.payload_schema,
        )
        self.verifier = SignatureVerifier(config.signature, clock=clock, key_resolver=key_resolver)
        self.ip_filter = SourceIPFilter(config.allowed_source_ips)
        self.scorer = ConfidenceScorer()

        self._signature_header = signature_header(config.signature)
        self._timestamp_header = timestamp_header(config.signature)
        self._sweeper_task: Optional[asyncio.Task] = None
        self._pending: set[asyncio.Task] = set()

    @property
    def connector_id(self) -> str:
        return self.config.connector_id

    @property
    def replay_enabled(self) -> bool:
        return self.config.replay_protection and self.verifier.tolerance_seconds > 0

    # === LIFECYCLE ===

    async def start(self) -> None:
        if self.replay_enabled and self._sweeper_task is None:
            self._sweeper_task = asyncio.create_task(run_replay_sweeper(
                self.replay_guard,
                self.verifier.tolerance_seconds,
                self.connector_id,
                self.config.replay_sweep_interval_seconds,
            ))
        logger.info(
            "Webhook pipeline started (scheme=%s replay=%s)",
            self.verifier.scheme, self.replay_enabled,
            extra={"connector_id": self.connector_id},
        )

    async def stop(self, drain_timeout: float = SHUTDOWN_DRAIN_SECONDS) -> None:
        if self._sweeper_task is not None:
            self._sweeper_task.cancel()
            await asyncio.gather(self._sweeper_task, return_exceptions=True)
            self._sweeper_task = None

        if self._pending:
            done, pending = await asyncio.wait(set(self._pending), timeout=drain_timeout)
            if pending:
                logger.warning(
                    "Dropping %d unfinished persistence tasks on shutdown", len(pending),
                    extra={"connector_id": self.connector_id},
                )
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
        logger.info("Webhook pipeline stopped", extra={"connector_id": self.connector_id})

    async def drain(self) -> None:
        """Wait for in-flight persistence tasks."""
        if self._pending:
            await asyncio.gather(*set(self._pending), return_exceptions=True)

    async def __aenter__(self) -> "WebhookPipeline":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # === PROCESSING ===

    async def process(
        self,
        request: IncomingRequest,
        timeout_ms: Optional[int] = None,
    ) -> PipelineResult:
        """Run every stage for one request. Returns a result; never raises."""
        timer = Timer().start()
        timeout_ms = timeout_ms or self.config.timeout_ms
        state = PipelineState.RECEIVED
        issues: list[ValidationIssue] = []
        signature: Optional[SignatureOutcome] = None
        schema_valid = False

        try:
            # 1. Payload
            issues = self.payload_guard.validate(request)
            if issues:
                return self._fail(
                    state, FailureCode.PAYLOAD_VALIDATION_FAILED,
                    "; ".join(issue.message for issue in issues),
                    issues, signature, schema_valid, timer,
                )
            schema_valid = True
            state = PipelineState.PAYLOAD_CHECKED

            # 2. Signature
            signature = await self._verify_signature(request, timeout_ms)
            if not signature.valid:
                issues.append(ValidationIssue(
                    path="signature",
                    code="INVALID_SIGNATURE",
                    message=signature.error or "Signature verification failed",
                ))
                return self._fail(
                    state, FailureCode.SIGNATURE_VERIFICATION_FAILED,
                    signature.error or "Signature verification failed",
                    issues, signature, schema_valid, timer,
                )
            state = PipelineState.SIGNATURE_CHECKED

            # 3. Replay
            if self.replay_enabled and not self._check_replay(request):
                issues.append(ValidationIssue(
                    path="timestamp",
                    code="REPLAY_ATTACK",
                    message="Request was already seen within the tolerance window",
                ))
                return self._fail(
                    state, FailureCode.REPLAY_DETECTED,
                    "Duplicate request within the replay window",
                    issues, signature, schema_valid, timer,
                )
            state = PipelineState.REPLAY_CHECKED

            # 4. Source IP
            if not self.ip_filter.allowed(request.source_ip):
                issues.append(ValidationIssue(
                    path="source_ip",
                    code="UNAUTHORIZED_IP",
                    message="Source IP not allowed",
                ))
                return self._fail(
                    state, FailureCode.SOURCE_IP_NOT_ALLOWED,
                    "Source IP not allowed",
                    issues, signature, schema_valid, timer,
                )
            state = PipelineState.IP_CHECKED

            # 5. Extraction + scoring
            payload = parse_payload(request)
            identifiers = extract_identifiers(payload)
            completeness = payload_completeness(payload)
            confidence = self.scorer.score(
                signature_valid=signature.valid,
                schema_valid=schema_valid,
                payload_complete=completeness > COMPLETENESS_THRESHOLD,
                auth_level=auth_assurance_for(signature),
                payload_completeness=completeness,
            )
            state = PipelineState.SCORED

            # 6. Assembly
            content_type = media_type(request.content_type)
            schema_boundaries = [f"webhook:{self.connector_id}", f"content-type:{content_type}"]
            if self.config.payload_schema is not None:
                schema_boundaries.append("json-schema")

            duration_ms = timer.stop()
            validation = ValidationResult(
                valid=True,
                signature=signature,
                schema_valid=schema_valid,
                issues=[],
                duration_ms=duration_ms,
            )
            event = DecisionEvent(
                inputs_hash=compute_payload_hash(request.body_bytes),
                outputs=WebhookArtifact(
                    source_id=self.connector_id,
                    event_type=detect_event_type(request.path, payload),
                    payload=payload,
                    original_payload_hash=compute_payload_hash(request.body_bytes),
                    identifiers=identifiers,
                ),
                confidence=confidence,
                constraints_applied=ConstraintsApplied(
                    connector_scope=self.config.connector_scope,
                    identity_context=identifiers.external_id,
                    schema_boundaries=schema_boundaries,
                    rate_limit_applied=self.config.rate_limit_enabled,
                    size_limit_bytes=self.config.max_payload_bytes,
                    timeout_ms=timeout_ms,
                ),
                duration_ms=duration_ms,
            )

            self._dispatch_persistence(
                build_persisted_data(event, request, validation, self._signature_header)
            )
            state = PipelineState.COMPLETED

            record_outcome(self.connector_id, "success")
            PIPELINE_DURATION.labels(connector_id=self.connector_id).observe(timer.elapsed_seconds)
            logger.info(
                "Webhook accepted: event_type=%s score=%.1f auth=%s",
                event.outputs.event_type, confidence.score, confidence.auth_assurance,
                extra={
                    "connector_id": self.connector_id,
                    "execution_ref": str(event.execution_ref),
                    "scheme": signature.scheme,
                    "state": state.value,
                },
            )
            return PipelineResult(
                status="success",
                decision_event=event,
                validation=validation,
                final_state=state,
            )
        except Exception as e:
            logger.error(
                "Webhook pipeline error in state %s: %s", state.value, str(e),
                exc_info=True,
                extra={"connector_id": self.connector_id, "state": state.value},
            )
            return self._fail(
                state, FailureCode.PROCESSING_ERROR,
                "Internal processing error",
                issues, signature, schema_valid, timer,
            )

    async def _verify_signature(self, request: IncomingRequest, timeout_ms: int) -> SignatureOutcome:
        try:
            return await asyncio.wait_for(
                self.verifier.verify(request.headers, request.body_bytes),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Signature verification timed out after %dms", timeout_ms,
                extra={"connector_id": self.connector_id, "scheme": self.verifier.scheme},
            )
            return SignatureOutcome(
                valid=False,
                scheme=self.verifier.scheme,
                error="Signature verification timed out",
            )

    def _check_replay(self, request: IncomingRequest) -> bool:
        timestamp_value = request.header(self._timestamp_header) or ""
        digest = replay_digest(request.body_bytes, timestamp_value)
        return self.replay_guard.check_and_record(
            digest,
            int(self.clock()),
            self.verifier.tolerance_seconds,
        )

    def _fail(
        self,
        state: PipelineState,
        code: FailureCode,
        message: str,
        issues: list[ValidationIssue],
        signature: Optional[SignatureOutcome],
        schema_valid: bool,
        timer: Timer,
    ) -> PipelineResult:
        duration_ms = timer.stop()
        record_outcome(self.connector_id, "error", code.value)
        PIPELINE_DURATION.labels(connector_id=self.connector_id).observe(timer.elapsed_seconds)
        logger.warning(
            "Webhook rejected: code=%s reason=%s",
            code.value, message,
            extra={
                "connector_id": self.connector_id,
                "error_code": code.value,
                "state": state.value,
            },
        )
        return PipelineResult(
            status="error",
            error=PipelineError.for_code(code, message, issues),
            validation=ValidationResult(
                valid=False,
                signature=signature,
                schema_valid=schema_valid,
                issues=issues,
                duration_ms=duration_ms,
            ),
            final_state=PipelineState.FAILED,
        )

    # === PERSISTENCE ===

    def _dispatch_persistence(self, data: PersistedWebhookData) -> None:
        task = asyncio.create_task(self._persist(data))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _persist(self, data: PersistedWebhookData) -> None:
        try:
            await self.sink.persist(data)
        except Exception as e:
            record_persistence_error(self.connector_id)
            logger.error(
                "Failed to persist decision event: %s", str(e),
                extra={
                    "connector_id": self.connector_id,
                    "execution_ref": str(data.decision_event.execution_ref),
                },
            )
