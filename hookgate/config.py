"""
Application configuration using pydantic-settings.
All config is validated at startup - fail fast if anything is missing.

The connector block (WEBHOOK_*) describes the single third-party sender this
gateway instance accepts. WEBHOOK_SIGNATURE is JSON, e.g.
    {"scheme": "hmac_sha256", "secret": "...", "timestamp_tolerance_seconds": 300}
"""
from functools import lru_cache
from typing import Any, Optional

from pydantic_settings import BaseSettings

from hookgate.schemas.gateway_config import GatewayConfig
from hookgate.schemas.signature_config import SignatureConfig


class Settings(BaseSettings):
    # Application
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"

    # Database (empty -> DecisionEvents are only logged)
    database_url: str = ""
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Redis (rate limiting only; replay protection is in-process)
    redis_url: str = "redis://localhost:6379/0"

    # Sentry
    sentry_dsn: str = ""

    # Webhook connector
    webhook_connector_id: str = "default"
    webhook_connector_scope: str = "webhook"
    webhook_signature: Optional[SignatureConfig] = None
    webhook_allowed_source_ips: Optional[list[str]] = None
    webhook_allowed_content_types: list[str] = ["application/json"]
    webhook_max_payload_bytes: int = 1_048_576
    webhook_payload_schema: Optional[dict[str, Any]] = None
    webhook_replay_protection: bool = True
    webhook_timeout_ms: int = 5000
    webhook_rate_limit_enabled: bool = True
    webhook_rate_limit_rpm: int = 100
    replay_sweep_interval_seconds: float = 60.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    def gateway_config(self) -> GatewayConfig:
        """Build the immutable per-connector pipeline config."""
        return GatewayConfig(
            connector_id=self.webhook_connector_id,
            connector_scope=self.webhook_connector_scope,
            signature=self.webhook_signature,
            allowed_source_ips=self.webhook_allowed_source_ips,
            allowed_content_types=self.webhook_allowed_content_types,
            max_payload_bytes=self.webhook_max_payload_bytes,
            payload_schema=self.webhook_payload_schema,
            replay_protection=self.webhook_replay_protection,
            timeout_ms=self.webhook_timeout_ms,
            rate_limit_enabled=self.webhook_rate_limit_enabled,
            rate_limit_rpm=self.webhook_rate_limit_rpm,
            replay_sweep_interval_seconds=self.replay_sweep_interval_seconds,
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
