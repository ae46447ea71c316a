"""
Tests for hookgate/services/pipeline.py - the end-to-end verification pipeline.

Covers:
- Successful HMAC webhook -> DecisionEvent
- Tampered body, replay, source IP, payload failures (no DecisionEvent)
- Stage ordering (size before signature)
- Persistence failure isolation
- JWKS fetch bounded by the request timeout
- Lifecycle (sweeper start/stop)
"""
import asyncio
import hashlib
import json

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from unittest.mock import AsyncMock, patch

from hookgate.schemas.gateway_config import GatewayConfig
from hookgate.schemas.pipeline_result import FailureCode, PipelineState
from hookgate.schemas.signature_config import HmacSignatureConfig, JwtRs256Config
from hookgate.schemas.webhook_request import IncomingRequest
from hookgate.services.pipeline import WebhookPipeline
from hookgate.utils.jwks import JwksKeyResolver
from hookgate.utils.replay import ReplayGuard
from tests.helpers import NOW, FakeClock, signed_request

BODY = b'{"event":"user.created","id":"abc"}'


def _config(**overrides) -> GatewayConfig:
    values = {
        "connector_id": "acme",
        "connector_scope": "webhook:acme",
        "signature": HmacSignatureConfig(scheme="hmac_sha256", secret="shh"),
        "rate_limit_enabled": False,
    }
    values.update(overrides)
    return GatewayConfig(**values)


class TestSuccessfulRun:
    async def test_user_created_event(self, hmac_config, sink):
        pipeline = WebhookPipeline(hmac_config, sink=sink)
        result = await pipeline.process(signed_request(BODY))

        assert result.ok
        assert result.error is None
        assert result.final_state == PipelineState.COMPLETED

        event = result.decision_event
        assert event.decision_type == "webhook_ingest_event"
        assert event.agent_id == "webhook-ingest-agent"
        assert event.inputs_hash == hashlib.sha256(BODY).hexdigest()
        assert event.outputs.source_id == "acme"
        assert event.outputs.event_type == "user.created"
        assert event.outputs.payload == {"event": "user.created", "id": "abc"}
        assert event.outputs.original_payload_hash == event.inputs_hash
        assert event.outputs.identifiers.external_id == "abc"
        assert event.confidence.auth_assurance == "high"
        assert event.confidence.score == 1.0
        assert event.confidence.schema_validation == "passed"

    async def test_constraints_applied(self, hmac_config, sink):
        pipeline = WebhookPipeline(hmac_config, sink=sink)
        event = (await pipeline.process(signed_request(BODY))).decision_event
        constraints = event.constraints_applied
        assert constraints.connector_scope == "webhook:acme"
        assert constraints.schema_boundaries == ["webhook:acme", "content-type:application/json"]
        assert constraints.size_limit_bytes == 1_048_576
        assert constraints.timeout_ms == 5000
        assert constraints.rate_limit_applied is False
        assert constraints.identity_context == "abc"

    async def test_event_is_persisted_sanitized(self, hmac_config, sink):
        pipeline = WebhookPipeline(hmac_config, sink=sink)
        await pipeline.process(signed_request(BODY, source_ip="10.0.0.1"))
        await pipeline.drain()

        assert len(sink.persisted) == 1
        data = sink.persisted[0]
        assert data.request_metadata.sanitized_headers["X-Webhook-Signature"] == "[REDACTED]"
        assert data.request_metadata.source_ip_hash == hashlib.sha256(b"10.0.0.1").hexdigest()
        assert data.validation_summary.signature_valid is True
        assert data.validation_summary.error_count == 0

    async def test_event_type_falls_back_to_path(self, hmac_config, sink):
        body = b'{"id":"abc"}'
        pipeline = WebhookPipeline(hmac_config, sink=sink)
        result = await pipeline.process(signed_request(body, path="/webhooks/order.paid"))
        assert result.decision_event.outputs.event_type == "order.paid"

    async def test_incomplete_payload_lowers_score(self, hmac_config, sink):
        body = json.dumps({"event": "x", "a": None, "b": ""}).encode()
        pipeline = WebhookPipeline(hmac_config, sink=sink)
        result = await pipeline.process(signed_request(body))
        assert result.decision_event.confidence.score == 0.7

    async def test_non_object_json_wrapped(self, hmac_config, sink):
        body = b'[1, 2, 3]'
        pipeline = WebhookPipeline(hmac_config, sink=sink)
        result = await pipeline.process(signed_request(body))
        assert result.decision_event.outputs.payload == {"data": [1, 2, 3]}


class TestRejections:
    async def test_tampered_body(self, hmac_config, sink):
        pipeline = WebhookPipeline(hmac_config, sink=sink)
        request = signed_request(BODY)
        tampered = request.model_copy(update={"body": BODY.replace(b"abc", b"abd")})

        result = await pipeline.process(tampered)
        await pipeline.drain()

        assert result.status == "error"
        assert result.decision_event is None
        assert result.error.code == FailureCode.SIGNATURE_VERIFICATION_FAILED
        assert result.error.error_class == "auth"
        assert result.error.retryable is False
        assert result.final_state == PipelineState.FAILED
        assert sink.persisted == []

    async def test_replayed_request(self, sink):
        clock = FakeClock(NOW)
        config = _config(signature=HmacSignatureConfig(
            scheme="hmac_sha256", secret="shh", timestamp_tolerance_seconds=300,
        ))
        pipeline = WebhookPipeline(config, sink=sink, clock=clock)
        request = signed_request(BODY, headers={"X-Webhook-Timestamp": str(NOW)})

        first = await pipeline.process(request)
        clock.advance(5)
        second = await pipeline.process(request)

        assert first.ok
        assert second.error.code == FailureCode.REPLAY_DETECTED
        assert second.decision_event is None
        assert [i.code for i in second.error.issues] == ["REPLAY_ATTACK"]

    async def test_replay_protection_off(self, sink):
        config = _config(
            signature=HmacSignatureConfig(scheme="hmac_sha256", secret="shh", timestamp_tolerance_seconds=300),
            replay_protection=False,
        )
        pipeline = WebhookPipeline(config, sink=sink, clock=FakeClock(NOW))
        request = signed_request(BODY, headers={"X-Webhook-Timestamp": str(NOW)})
        assert (await pipeline.process(request)).ok
        assert (await pipeline.process(request)).ok

    async def test_stale_timestamp_is_signature_failure(self, sink):
        config = _config(signature=HmacSignatureConfig(
            scheme="hmac_sha256", secret="shh", timestamp_tolerance_seconds=300,
        ))
        pipeline = WebhookPipeline(config, sink=sink, clock=FakeClock(NOW))
        request = signed_request(BODY, headers={"X-Webhook-Timestamp": str(NOW - 301)})
        result = await pipeline.process(request)
        assert result.error.code == FailureCode.SIGNATURE_VERIFICATION_FAILED
        assert result.validation.signature.timestamp_valid is False

    async def test_source_ip_not_allowed(self, sink):
        pipeline = WebhookPipeline(_config(allowed_source_ips=["10.0.0.0/8"]), sink=sink)
        blocked = await pipeline.process(signed_request(BODY, source_ip="203.0.113.5"))
        allowed = await pipeline.process(signed_request(BODY, source_ip="10.2.3.4"))
        assert blocked.error.code == FailureCode.SOURCE_IP_NOT_ALLOWED
        assert allowed.ok

    async def test_empty_allow_list_blocks_every_source(self, sink):
        pipeline = WebhookPipeline(_config(allowed_source_ips=[]), sink=sink)
        result = await pipeline.process(signed_request(BODY, source_ip="10.2.3.4"))
        assert result.error.code == FailureCode.SOURCE_IP_NOT_ALLOWED
        assert sink.persisted == []

    async def test_oversize_rejected_before_signature(self, sink):
        pipeline = WebhookPipeline(_config(max_payload_bytes=8), sink=sink)
        with patch.object(pipeline.verifier, "verify", new_callable=AsyncMock) as verify:
            result = await pipeline.process(signed_request(BODY))
        assert result.error.code == FailureCode.PAYLOAD_VALIDATION_FAILED
        assert result.error.error_class == "validation"
        assert [i.code for i in result.error.issues] == ["PAYLOAD_TOO_LARGE"]
        verify.assert_not_called()

    async def test_malformed_json(self, hmac_config, sink):
        pipeline = WebhookPipeline(hmac_config, sink=sink)
        result = await pipeline.process(signed_request(b'{"event": '))
        assert result.error.code == FailureCode.PAYLOAD_VALIDATION_FAILED
        assert result.validation.schema_valid is False

    @pytest.mark.parametrize("body", [
        b'{"event":"x","v":NaN}',
        b"[" * 200_000 + b"]" * 200_000,
    ])
    async def test_unparseable_json_is_client_error(self, sink, body):
        pipeline = WebhookPipeline(_config(max_payload_bytes=len(body)), sink=sink)
        result = await pipeline.process(signed_request(body))
        assert result.error.code == FailureCode.PAYLOAD_VALIDATION_FAILED
        assert result.error.error_class == "validation"
        assert result.error.retryable is False
        assert [i.code for i in result.error.issues] == ["INVALID_JSON"]
        assert result.decision_event is None

    async def test_schema_violation(self, sink):
        schema = {"type": "object", "required": ["customer"]}
        pipeline = WebhookPipeline(_config(payload_schema=schema), sink=sink)
        result = await pipeline.process(signed_request(BODY))
        assert result.error.code == FailureCode.PAYLOAD_VALIDATION_FAILED
        assert result.error.issues[0].code == "SCHEMA_VIOLATION"

    async def test_unexpected_error_is_processing_error(self, hmac_config, sink):
        pipeline = WebhookPipeline(hmac_config, sink=sink)
        with patch("hookgate.services.pipeline.parse_payload", side_effect=RuntimeError("boom")):
            result = await pipeline.process(signed_request(BODY))
        assert result.error.code == FailureCode.PROCESSING_ERROR
        assert result.error.error_class == "internal"
        assert result.error.retryable is True
        assert result.decision_event is None


class TestPersistenceIsolation:
    async def test_sink_failure_does_not_change_result(self, hmac_config):
        failing = AsyncMock()
        failing.persist = AsyncMock(side_effect=RuntimeError("db down"))
        pipeline = WebhookPipeline(hmac_config, sink=failing)

        with patch("hookgate.services.pipeline.record_persistence_error") as counter:
            result = await pipeline.process(signed_request(BODY))
            await pipeline.drain()

        assert result.ok
        failing.persist.assert_awaited_once()
        counter.assert_called_once_with("acme")


class TestTimeouts:
    async def test_hanging_jwks_fetch_fails_signature(self, sink):
        async def hang(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(10)
            return httpx.Response(200, json={"keys": []})

        config = _config(signature=JwtRs256Config(scheme="jwt_rs256", jwks_url="https://sender.example/jwks"))
        resolver = JwksKeyResolver("https://sender.example/jwks", transport=httpx.MockTransport(hang))
        pipeline = WebhookPipeline(config, sink=sink, key_resolver=resolver)

        signing_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        token = jwt.encode({"sub": "s"}, signing_key, algorithm="RS256", headers={"kid": "k1"})
        request = IncomingRequest(
            path="/hooks",
            body=BODY,
            headers={"Authorization": f"Bearer {token}"},
        )
        result = await pipeline.process(request, timeout_ms=50)

        assert result.error.code == FailureCode.SIGNATURE_VERIFICATION_FAILED
        assert result.error.message == "Signature verification timed out"


class TestLifecycle:
    async def test_sweeper_runs_only_with_replay_window(self, hmac_config, sink):
        plain = WebhookPipeline(hmac_config, sink=sink)
        await plain.start()
        assert plain._sweeper_task is None
        await plain.stop()

        config = _config(signature=HmacSignatureConfig(
            scheme="hmac_sha256", secret="shh", timestamp_tolerance_seconds=60,
        ))
        async with WebhookPipeline(config, sink=sink) as pipeline:
            assert pipeline.replay_enabled is True
            task = pipeline._sweeper_task
            assert task is not None and not task.done()
        assert task.cancelled()
        assert pipeline._sweeper_task is None

    async def test_stop_drains_pending_persistence(self, hmac_config):
        persisted = []

        class SlowSink:
            async def persist(self, data):
                await asyncio.sleep(0.01)
                persisted.append(data)

        pipeline = WebhookPipeline(hmac_config, sink=SlowSink())
        await pipeline.start()
        await pipeline.process(signed_request(BODY))
        await pipeline.stop()
        assert len(persisted) == 1

    async def test_shared_replay_guard(self, sink):
        clock = FakeClock(NOW)
        guard = ReplayGuard(clock=clock)
        config = _config(signature=HmacSignatureConfig(
            scheme="hmac_sha256", secret="shh", timestamp_tolerance_seconds=300,
        ))
        pipeline = WebhookPipeline(config, sink=sink, clock=clock, replay_guard=guard)
        await pipeline.process(signed_request(BODY, headers={"X-Webhook-Timestamp": str(NOW)}))
        assert len(guard) == 1

    async def test_empty_injected_guard_is_kept_and_shared(self, sink):
        clock = FakeClock(NOW)
        guard = ReplayGuard(clock=clock)
        assert len(guard) == 0
        config = _config(signature=HmacSignatureConfig(
            scheme="hmac_sha256", secret="shh", timestamp_tolerance_seconds=300,
        ))
        first = WebhookPipeline(config, sink=sink, clock=clock, replay_guard=guard)
        second = WebhookPipeline(config, sink=sink, clock=clock, replay_guard=guard)
        assert first.replay_guard is guard
        assert second.replay_guard is guard

        request = signed_request(BODY, headers={"X-Webhook-Timestamp": str(NOW)})
        assert (await first.process(request)).ok
        result = await second.process(request)
        assert result.error.code == FailureCode.REPLAY_DETECTED

    def test_falsy_injected_sink_is_kept(self, hmac_config):
        class EmptySink:
            def __len__(self):
                return 0

            async def persist(self, data) -> None:
                pass

        sink = EmptySink()
        assert WebhookPipeline(hmac_config, sink=sink).sink is sink
