"""
Tests for hookgate/config.py and the signature/gateway config models.
"""
import pytest
from pydantic import ValidationError

from hookgate.config import Settings, get_settings
from hookgate.schemas.gateway_config import GatewayConfig
from hookgate.schemas.signature_config import (
    ApiKeyConfig,
    HmacSignatureConfig,
    JwtHs256Config,
    parse_signature_config,
    signature_header,
    timestamp_tolerance,
)


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.webhook_max_payload_bytes == 1_048_576
        assert settings.webhook_replay_protection is True
        assert settings.webhook_signature is None

    def test_signature_from_env_json(self, monkeypatch):
        monkeypatch.setenv(
            "WEBHOOK_SIGNATURE",
            '{"scheme": "hmac_sha512", "secret": "s", "timestamp_tolerance_seconds": 120}',
        )
        monkeypatch.setenv("WEBHOOK_ALLOWED_SOURCE_IPS", '["10.0.0.0/8"]')
        settings = Settings()
        assert isinstance(settings.webhook_signature, HmacSignatureConfig)
        assert settings.webhook_signature.scheme == "hmac_sha512"

        config = settings.gateway_config()
        assert config.allowed_source_ips == ["10.0.0.0/8"]
        assert timestamp_tolerance(config.signature) == 120

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        assert get_settings() is get_settings()
        get_settings.cache_clear()


class TestSignatureConfig:
    def test_discriminated_parse(self):
        config = parse_signature_config({"scheme": "api_key", "api_key": "k"})
        assert isinstance(config, ApiKeyConfig)
        assert signature_header(config) == "X-API-Key"

    def test_unknown_scheme_rejected(self):
        with pytest.raises(ValidationError):
            parse_signature_config({"scheme": "md5", "secret": "x"})

    def test_extra_fields_rejected(self):
        with pytest.raises(ValidationError):
            parse_signature_config({"scheme": "none", "secret": "x"})

    def test_tolerance_bounds(self):
        with pytest.raises(ValidationError):
            HmacSignatureConfig(scheme="hmac_sha256", secret="s", timestamp_tolerance_seconds=-1)
        with pytest.raises(ValidationError):
            HmacSignatureConfig(scheme="hmac_sha256", secret="s", timestamp_tolerance_seconds=3601)

    def test_secret_not_in_repr(self):
        config = JwtHs256Config(scheme="jwt_hs256", secret="super-secret-value")
        assert "super-secret-value" not in repr(config)
        assert signature_header(config) == "Authorization"
        assert timestamp_tolerance(config) == 0


class TestGatewayConfig:
    def test_immutable(self):
        config = GatewayConfig(connector_id="acme", connector_scope="webhook")
        with pytest.raises(ValidationError):
            config.connector_id = "other"

    def test_content_types_normalized(self):
        config = GatewayConfig(
            connector_id="acme",
            connector_scope="webhook",
            allowed_content_types=["Application/JSON; charset=utf-8"],
        )
        assert config.allowed_content_types == ["application/json"]

    def test_bad_cidr_rejected(self):
        with pytest.raises(ValidationError):
            GatewayConfig(connector_id="acme", connector_scope="webhook", allowed_source_ips=["300.0.0.0/8"])
