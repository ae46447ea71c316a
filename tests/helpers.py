"""
Shared test doubles - a settable clock and an in-memory DecisionEvent sink.
"""
from hookgate.schemas.webhook_request import IncomingRequest
from hookgate.utils.webhook_signatures import compute_hmac_signature

SIGNING_SECRET = "shh"
NOW = 1_700_000_000


class FakeClock:
    """Settable epoch-seconds clock for deterministic timestamp tests."""

    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSink:
    """DecisionEventSink that keeps everything it was handed."""

    def __init__(self):
        self.persisted = []

    async def persist(self, data) -> None:
        self.persisted.append(data)


def signed_request(body: bytes, secret: str = SIGNING_SECRET, **kwargs) -> IncomingRequest:
    """IncomingRequest carrying a valid `sha256=` HMAC signature header."""
    headers = dict(kwargs.pop("headers", {}))
    headers.setdefault("X-Webhook-Signature", "sha256=" + compute_hmac_signature(secret, body))
    kwargs.setdefault("path", "/webhooks/acme")
    return IncomingRequest(body=body, headers=headers, **kwargs)
