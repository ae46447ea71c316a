"""
Redaction helpers - nothing credential-shaped reaches logs or the persistence sink.
"""
import hashlib
import re
from typing import Optional

REDACTED = "[REDACTED]"

_SENSITIVE_HEADER_PATTERNS = (
    re.compile(r"^authorization$", re.IGNORECASE),
    re.compile(r"^x-api-key$", re.IGNORECASE),
    re.compile(r"^x-auth", re.IGNORECASE),
    re.compile(r"^cookie$", re.IGNORECASE),
    re.compile(r"secret", re.IGNORECASE),
    re.compile(r"token", re.IGNORECASE),
    re.compile(r"password", re.IGNORECASE),
)


def is_sensitive_header(name: str, signature_header: Optional[str] = None) -> bool:
    if signature_header and name.lower() == signature_header.lower():
        return True
    return any(pattern.search(name) for pattern in _SENSITIVE_HEADER_PATTERNS)


def sanitize_headers(
    headers: dict[str, str],
    signature_header: Optional[str] = None,
) -> dict[str, str]:
    """Copy of headers with sensitive values replaced by [REDACTED]."""
    return {
        name: REDACTED if is_sensitive_header(name, signature_header) else value
        for name, value in headers.items()
    }


def hash_source_ip(source_ip: Optional[str]) -> Optional[str]:
    """SHA-256 of the source address - raw IPs are never stored."""
    if not source_ip:
        return None
    return hashlib.sha256(source_ip.strip().encode("utf-8")).hexdigest()
