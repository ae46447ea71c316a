"""
Gateway configuration - one connector per pipeline instance.
Constructed once at startup and immutable afterwards.
"""
import ipaddress
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from hookgate.schemas.signature_config import SignatureConfig


class GatewayConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    connector_id: str = Field(min_length=1)
    connector_scope: str = Field(min_length=1)
    signature: Optional[SignatureConfig] = None
    allowed_source_ips: Optional[list[str]] = None  # CIDR blocks or bare addresses
    allowed_content_types: list[str] = Field(default_factory=lambda: ["application/json"])
    max_payload_bytes: int = Field(default=1_048_576, gt=0)
    payload_schema: Optional[dict[str, Any]] = None  # JSON Schema for the parsed payload
    replay_protection: bool = True
    timeout_ms: int = Field(default=5000, gt=0)
    rate_limit_enabled: bool = True
    rate_limit_rpm: int = Field(default=100, ge=1, le=10000)
    replay_sweep_interval_seconds: float = Field(default=60.0, gt=0)

    @field_validator("allowed_source_ips")
    @classmethod
    def _valid_networks(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        if value is None:
            return value
        for entry in value:
            try:
                ipaddress.ip_network(entry.strip(), strict=False)
            except ValueError:
                raise ValueError(f"Invalid source IP allow-list entry: {entry!r}")
        return value

    @field_validator("allowed_content_types")
    @classmethod
    def _normalize_content_types(cls, value: list[str]) -> list[str]:
        return [ct.split(";")[0].strip().lower() for ct in value if ct.strip()]
