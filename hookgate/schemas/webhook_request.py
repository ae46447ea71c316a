"""
Inbound webhook request - the shape handed to the pipeline by the HTTP boundary.
Created per call and never persisted raw.
"""
from datetime import datetime, timezone
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


class IncomingRequest(BaseModel):
    """Raw inbound webhook request."""
    method: Literal["POST", "PUT", "PATCH"] = "POST"
    path: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: Union[bytes, str] = b""
    parsed_body: Optional[dict[str, Any]] = None
    query_params: dict[str, str] = Field(default_factory=dict)
    source_ip: Optional[str] = None
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    content_type: str = "application/json"

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @field_validator("received_at")
    @classmethod
    def _aware_received_at(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def body_bytes(self) -> bytes:
        """Raw body as bytes - signatures are always computed over these."""
        if isinstance(self.body, bytes):
            return self.body
        return self.body.encode("utf-8")

    @property
    def body_text(self) -> str:
        if isinstance(self.body, str):
            return self.body
        return self.body.decode("utf-8", errors="replace")

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive header lookup."""
        return lower_headers(self.headers).get(name.lower(), default)


def lower_headers(headers: dict[str, str]) -> dict[str, str]:
    return {key.lower(): value for key, value in headers.items()}
