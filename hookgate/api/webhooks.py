"""
Webhook endpoint - the HTTP boundary in front of the verification pipeline.

Layers (in order):
1. Rate limiting (source IP + connector)
2. Content-Length precheck (cheap 413 before reading the body)
3. WebhookPipeline (payload, signature, replay, source IP, scoring)
"""
import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from hookgate.schemas.api_responses import WebhookAcceptedResponse, WebhookRejectedResponse
from hookgate.schemas.pipeline_result import FailureCode, PipelineResult
from hookgate.schemas.webhook_request import IncomingRequest
from hookgate.services.pipeline import WebhookPipeline
from hookgate.utils.payload_guard import INVALID_CONTENT_TYPE, PAYLOAD_TOO_LARGE
from hookgate.utils.rate_limiter import check_webhook_rate_limits

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/webhook", tags=["webhooks"])

_STATUS_BY_CODE = {
    FailureCode.SIGNATURE_VERIFICATION_FAILED: 401,
    FailureCode.REPLAY_DETECTED: 409,
    FailureCode.SOURCE_IP_NOT_ALLOWED: 403,
    FailureCode.PROCESSING_ERROR: 500,
}


def _get_pipeline(request: Request) -> WebhookPipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=503, detail="Webhook pipeline not ready")
    return pipeline


async def _enforce_rate_limit(request: Request, pipeline: WebhookPipeline) -> None:
    """Check rate limits and raise 429 if exceeded."""
    config = pipeline.config
    if not config.rate_limit_enabled:
        return
    client_ip = request.client.host if request.client else "unknown"
    allowed, retry_after = await check_webhook_rate_limits(
        client_ip, config.connector_id, config.rate_limit_rpm,
    )
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail="Rate limit exceeded",
            headers={"Retry-After": str(retry_after or 60)},
        )


def _enforce_declared_size(request: Request, pipeline: WebhookPipeline) -> None:
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > pipeline.config.max_payload_bytes:
        raise HTTPException(status_code=413, detail="Payload too large")


def status_for(result: PipelineResult) -> int:
    """HTTP status for a pipeline outcome."""
    if result.ok:
        return 202
    error = result.error
    if error.code == FailureCode.PAYLOAD_VALIDATION_FAILED:
        codes = {issue.code for issue in error.issues}
        if PAYLOAD_TOO_LARGE in codes:
            return 413
        if INVALID_CONTENT_TYPE in codes:
            return 415
        return 400
    return _STATUS_BY_CODE[error.code]


@router.api_route("/{path:path}", methods=["POST", "PUT", "PATCH"])
async def receive_webhook(path: str, request: Request):
    """
    Receive one webhook. Responds 202 with the DecisionEvent reference on
    success; rejections carry the failure code and issues, never secrets.
    """
    pipeline = _get_pipeline(request)
    await _enforce_rate_limit(request, pipeline)
    _enforce_declared_size(request, pipeline)

    body = await request.body()
    incoming = IncomingRequest(
        method=request.method,
        path=f"/{path}",
        headers=dict(request.headers),
        body=body,
        query_params=dict(request.query_params),
        source_ip=request.client.host if request.client else None,
        content_type=request.headers.get("content-type", ""),
    )

    result = await pipeline.process(incoming)
    status_code = status_for(result)

    if result.ok:
        event = result.decision_event
        response = WebhookAcceptedResponse(
            execution_ref=str(event.execution_ref),
            event_type=event.outputs.event_type,
            confidence_score=event.confidence.score,
            auth_assurance=event.confidence.auth_assurance,
            inputs_hash=event.inputs_hash,
        )
    else:
        error = result.error
        response = WebhookRejectedResponse(
            code=error.code.value,
            error_class=error.error_class,
            message=error.message,
            retryable=error.retryable,
            issues=error.issues,
        )
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"))
