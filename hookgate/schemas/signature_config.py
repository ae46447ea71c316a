"""
Signature verification configuration - one variant per scheme.
Each variant carries only the fields its scheme needs; the `scheme` field is the
discriminator used when parsing JSON/env config.
"""
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, SecretStr, TypeAdapter, model_validator

DEFAULT_SIGNATURE_HEADER = "X-Webhook-Signature"
DEFAULT_TIMESTAMP_HEADER = "X-Webhook-Timestamp"
DEFAULT_API_KEY_HEADER = "X-API-Key"
MAX_TOLERANCE_SECONDS = 3600


class _FrozenConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class _TimestampedConfig(_FrozenConfig):
    """Schemes that can bind a request to a timestamp header."""
    timestamp_header: str = DEFAULT_TIMESTAMP_HEADER
    # 0 disables the timestamp window and replay tracking
    timestamp_tolerance_seconds: int = Field(default=0, ge=0, le=MAX_TOLERANCE_SECONDS)


class HmacSignatureConfig(_TimestampedConfig):
    """HMAC over the raw body, hex encoded in a signature header."""
    scheme: Literal["hmac_sha256", "hmac_sha512"]
    secret: SecretStr
    header_name: str = DEFAULT_SIGNATURE_HEADER


class JwtHs256Config(_FrozenConfig):
    """Bearer JWT signed with a shared secret."""
    scheme: Literal["jwt_hs256"]
    secret: SecretStr
    issuer: Optional[str] = None
    audience: Optional[str] = None


class JwtRs256Config(_FrozenConfig):
    """Bearer JWT signed with an RSA key, given as PEM or resolved from a JWKS URL."""
    scheme: Literal["jwt_rs256"]
    public_key: Optional[str] = None
    jwks_url: Optional[str] = None
    jwks_cache_seconds: int = Field(default=300, ge=0)
    issuer: Optional[str] = None
    audience: Optional[str] = None

    @model_validator(mode="after")
    def _exactly_one_key_source(self) -> "JwtRs256Config":
        if bool(self.public_key) == bool(self.jwks_url):
            raise ValueError("jwt_rs256 requires exactly one of public_key or jwks_url")
        return self


class ApiKeyConfig(_TimestampedConfig):
    """Static API key sent in a request header."""
    scheme: Literal["api_key"]
    api_key: SecretStr
    header_name: str = DEFAULT_API_KEY_HEADER


class BasicAuthConfig(_TimestampedConfig):
    """HTTP Basic credentials, configured as the expected `user:password` string."""
    scheme: Literal["basic_auth"]
    credentials: SecretStr


class NoSignatureConfig(_FrozenConfig):
    scheme: Literal["none"] = "none"


SignatureConfig = Annotated[
    Union[
        HmacSignatureConfig,
        JwtHs256Config,
        JwtRs256Config,
        ApiKeyConfig,
        BasicAuthConfig,
        NoSignatureConfig,
    ],
    Field(discriminator="scheme"),
]

SignatureScheme = Literal[
    "hmac_sha256", "hmac_sha512", "jwt_hs256", "jwt_rs256", "api_key", "basic_auth", "none",
]

_signature_adapter = TypeAdapter(SignatureConfig)


def parse_signature_config(data: dict) -> SignatureConfig:
    """Build the matching SignatureConfig variant from a plain dict."""
    return _signature_adapter.validate_python(data)


def timestamp_tolerance(config: Optional[SignatureConfig]) -> int:
    """Tolerance window in seconds for schemes that carry one, else 0."""
    if isinstance(config, _TimestampedConfig):
        return config.timestamp_tolerance_seconds
    return 0


def timestamp_header(config: Optional[SignatureConfig]) -> Optional[str]:
    if isinstance(config, _TimestampedConfig):
        return config.timestamp_header
    return None


def signature_header(config: Optional[SignatureConfig]) -> Optional[str]:
    """Header that carries the credential, used for log/persistence redaction."""
    if isinstance(config, (HmacSignatureConfig, ApiKeyConfig)):
        return config.header_name
    if isinstance(config, (JwtHs256Config, JwtRs256Config, BasicAuthConfig)):
        return "Authorization"
    return None
