"""
Webhook signature verification - verify incoming webhooks are authentic.

Supported schemes:
- HMAC-SHA256 / HMAC-SHA512 over the raw body (hex, optional prefix)
- Bearer JWT signed with HS256 (shared secret) or RS256 (PEM or JWKS)
- Static API key header
- HTTP Basic credentials
- none

Every comparison against a secret is constant-time. verify() never raises:
malformed input and bad key material become an invalid SignatureOutcome with a
message that does not echo secrets or computed digests.
"""
import base64
import binascii
import hashlib
import hmac
import logging
import re
import time
from typing import Any, Callable, Optional, Union

import jwt

from hookgate.schemas.signature_config import (
    ApiKeyConfig,
    BasicAuthConfig,
    HmacSignatureConfig,
    JwtHs256Config,
    JwtRs256Config,
    NoSignatureConfig,
    SignatureConfig,
    timestamp_header,
    timestamp_tolerance,
)
from hookgate.schemas.validation import SignatureOutcome
from hookgate.schemas.webhook_request import lower_headers
from hookgate.utils.jwks import JwksKeyResolver

logger = logging.getLogger(__name__)

_HMAC_DIGESTS = {
    "hmac_sha256": hashlib.sha256,
    "hmac_sha512": hashlib.sha512,
}

_JWT_ALGORITHMS = {
    "jwt_hs256": "HS256",
    "jwt_rs256": "RS256",
}

# Checked in order, case-insensitively; only one prefix is stripped
KNOWN_SIGNATURE_PREFIXES = ("sha256=", "sha512=", "v1=", "v0=")

# Epoch seconds, ASCII digits only
_TIMESTAMP_RE = re.compile(r"-?[0-9]+", re.ASCII)


def compute_payload_hash(body: Union[bytes, str]) -> str:
    """Compute SHA-256 hash of raw payload for dedup and audit."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    return hashlib.sha256(body).hexdigest()


def constant_time_equals(expected: str, supplied: str) -> bool:
    """Compare two strings without leaking where they first differ."""
    return hmac.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))


def strip_signature_prefix(signature: str, scheme: str) -> str:
    """Strip one known prefix (e.g. "sha256=") from a signature header value."""
    value = signature.strip()
    lowered = value.lower()
    for prefix in (*KNOWN_SIGNATURE_PREFIXES, f"{scheme}="):
        if lowered.startswith(prefix):
            return value[len(prefix):]
    return value


def compute_hmac_signature(secret: str, body: bytes, scheme: str = "hmac_sha256") -> str:
    """Hex HMAC of body - used by senders and tests to sign payloads."""
    return hmac.new(secret.encode("utf-8"), body, _HMAC_DIGESTS[scheme]).hexdigest()


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.strip().split(None, 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1].strip() or None


def _invalid(scheme: str, error: str, timestamp_valid: Optional[bool] = None) -> SignatureOutcome:
    return SignatureOutcome(valid=False, scheme=scheme, timestamp_valid=timestamp_valid, error=error)


class SignatureVerifier:
    """Validates a request's authenticity against one configured scheme."""

    def __init__(
        self,
        config: Optional[SignatureConfig] = None,
        clock: Callable[[], float] = time.time,
        key_resolver: Optional[JwksKeyResolver] = None,
    ):
        self.config = config or NoSignatureConfig()
        self._clock = clock

        handlers = {
            HmacSignatureConfig: self._verify_hmac,
            JwtHs256Config: self._verify_jwt,
            JwtRs256Config: self._verify_jwt,
            ApiKeyConfig: self._verify_api_key,
            BasicAuthConfig: self._verify_basic_auth,
            NoSignatureConfig: self._verify_none,
        }
        handler = handlers.get(type(self.config))
        if handler is None:
            raise TypeError(f"Unsupported signature config: {type(self.config).__name__}")
        self._handler = handler

        if (
            key_resolver is None
            and isinstance(self.config, JwtRs256Config)
            and self.config.jwks_url
        ):
            key_resolver = JwksKeyResolver(
                self.config.jwks_url,
                cache_seconds=self.config.jwks_cache_seconds,
                clock=clock,
            )
        self._key_resolver = key_resolver

    @property
    def scheme(self) -> str:
        return self.config.scheme

    @property
    def tolerance_seconds(self) -> int:
        return timestamp_tolerance(self.config)

    async def verify(
        self,
        headers: dict[str, str],
        body: Union[bytes, str],
        timestamp: Optional[Union[int, str]] = None,
    ) -> SignatureOutcome:
        """
        Verify one request. `timestamp` overrides the timestamp header when given.
        Returns an outcome for every input; never raises.
        """
        scheme = self.scheme
        try:
            lowered = lower_headers(headers)
            raw = body.encode("utf-8") if isinstance(body, str) else body

            timestamp_valid = None
            tolerance = self.tolerance_seconds
            if tolerance > 0:
                error = self._check_timestamp(lowered, timestamp, tolerance)
                if error:
                    return _invalid(scheme, error, timestamp_valid=False)
                timestamp_valid = True

            outcome = await self._handler(lowered, raw)
            if timestamp_valid is not None:
                outcome = outcome.model_copy(update={"timestamp_valid": timestamp_valid})
            return outcome
        except Exception as e:
            logger.warning(
                "Signature verification error: scheme=%s error_type=%s",
                scheme, type(e).__name__,
                extra={"scheme": scheme},
            )
            return _invalid(scheme, "Signature verification error")

    def _check_timestamp(
        self,
        headers: dict[str, str],
        supplied: Optional[Union[int, str]],
        tolerance: int,
    ) -> Optional[str]:
        """Return an error message if the request timestamp is missing or outside the window."""
        raw = supplied
        if raw is None:
            header = timestamp_header(self.config)
            raw = headers.get(header.lower()) if header else None
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return "Missing timestamp header"
        raw = str(raw).strip()
        if not _TIMESTAMP_RE.fullmatch(raw):
            return "Invalid timestamp header"
        request_time = int(raw)

        now = int(self._clock())
        if abs(now - request_time) > tolerance:
            return "Request timestamp outside tolerance window"
        return None

    async def _verify_none(self, headers: dict[str, str], body: bytes) -> SignatureOutcome:
        return SignatureOutcome(valid=True, scheme="none")

    async def _verify_hmac(self, headers: dict[str, str], body: bytes) -> SignatureOutcome:
        config: HmacSignatureConfig = self.config
        signature = headers.get(config.header_name.lower())
        if not signature:
            return _invalid(config.scheme, "Missing signature header")

        secret = config.secret.get_secret_value()
        if not secret:
            return _invalid(config.scheme, "Signing secret not configured")

        supplied = strip_signature_prefix(signature, config.scheme)
        expected = compute_hmac_signature(secret, body, config.scheme)
        if not constant_time_equals(expected, supplied):
            return _invalid(config.scheme, "Signature mismatch")
        return SignatureOutcome(valid=True, scheme=config.scheme)

    async def _verify_api_key(self, headers: dict[str, str], body: bytes) -> SignatureOutcome:
        config: ApiKeyConfig = self.config
        supplied = headers.get(config.header_name.lower())
        if not supplied:
            return _invalid(config.scheme, "Missing API key header")

        expected = config.api_key.get_secret_value()
        if not expected:
            return _invalid(config.scheme, "API key not configured")
        if not constant_time_equals(expected, supplied):
            return _invalid(config.scheme, "Invalid API key")
        return SignatureOutcome(valid=True, scheme=config.scheme)

    async def _verify_basic_auth(self, headers: dict[str, str], body: bytes) -> SignatureOutcome:
        config: BasicAuthConfig = self.config
        authorization = (headers.get("authorization") or "").strip()
        parts = authorization.split(None, 1)
        if len(parts) != 2 or parts[0].lower() != "basic":
            return _invalid(config.scheme, "Missing basic credentials")

        try:
            decoded = base64.b64decode(parts[1].strip(), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return _invalid(config.scheme, "Malformed basic credentials")

        if not constant_time_equals(config.credentials.get_secret_value(), decoded):
            return _invalid(config.scheme, "Invalid basic credentials")
        return SignatureOutcome(valid=True, scheme=config.scheme)

    async def _jwt_key(self, header: dict[str, Any]) -> Optional[Any]:
        config = self.config
        if isinstance(config, JwtHs256Config):
            return config.secret.get_secret_value() or None
        if config.public_key:
            return config.public_key
        if self._key_resolver is None:
            return None
        return await self._key_resolver.get_signing_key(header.get("kid"))

    async def _verify_jwt(self, headers: dict[str, str], body: bytes) -> SignatureOutcome:
        config = self.config
        scheme = config.scheme
        algorithm = _JWT_ALGORITHMS[scheme]

        token = _bearer_token(headers.get("authorization"))
        if token is None:
            return _invalid(scheme, "Missing bearer token")
        if token.count(".") != 2:
            return _invalid(scheme, "Malformed token")

        try:
            header = jwt.get_unverified_header(token)
        except jwt.DecodeError:
            return _invalid(scheme, "Malformed token")

        # Pin the algorithm: a token valid under another alg is still rejected
        if header.get("alg") != algorithm:
            return _invalid(scheme, f"{scheme}: token algorithm mismatch")

        key = await self._jwt_key(header)
        if key is None:
            return _invalid(scheme, f"{scheme}: signing key not available")

        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=[algorithm],
                issuer=config.issuer,
                audience=config.audience,
                options={
                    "verify_exp": False,
                    "verify_nbf": False,
                    "verify_iat": False,
                    "verify_aud": config.audience is not None,
                    "verify_iss": config.issuer is not None,
                },
            )
        except jwt.InvalidSignatureError:
            return _invalid(scheme, f"{scheme}: signature mismatch")
        except jwt.InvalidIssuerError:
            return _invalid(scheme, f"{scheme}: unexpected issuer")
        except jwt.InvalidAudienceError:
            return _invalid(scheme, f"{scheme}: unexpected audience")
        except jwt.InvalidTokenError:
            return _invalid(scheme, f"{scheme}: invalid token")

        # Expiry is checked against the injected clock with no leeway
        now = self._clock()
        exp = claims.get("exp")
        if exp is not None:
            if isinstance(exp, bool) or not isinstance(exp, (int, float)):
                return _invalid(scheme, f"{scheme}: invalid exp claim")
            if now >= exp:
                return _invalid(scheme, f"{scheme}: token expired")

        nbf = claims.get("nbf")
        if isinstance(nbf, (int, float)) and not isinstance(nbf, bool) and now < nbf:
            return _invalid(scheme, f"{scheme}: token not yet valid")

        return SignatureOutcome(valid=True, scheme=scheme)
