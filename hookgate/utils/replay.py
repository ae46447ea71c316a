"""
Replay protection - in-process, time-bounded dedup of (body, timestamp) pairs.

One ReplayGuard is owned by one pipeline instance. It is NOT shared across
processes: horizontally scaled deployments only get best-effort protection.
The digest covers the timestamp header verbatim, so a resend carrying a fresh
timestamp is not caught here; it still has to pass the signature and the
timestamp window.
"""
import hashlib
import logging
import threading
import time
from typing import Callable, Union

logger = logging.getLogger(__name__)


def replay_digest(body: Union[bytes, str], timestamp_value: str) -> str:
    """SHA-256 over the raw body followed by the timestamp header value."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    return hashlib.sha256(body + timestamp_value.encode("utf-8")).hexdigest()


class ReplayGuard:
    """Mutex-guarded map of digest -> last-seen epoch seconds."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._seen: dict[str, int] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)

    def check_and_record(self, digest: str, now_seconds: int, tolerance_seconds: int) -> bool:
        """
        Atomically check and record a digest.
        Returns True if accepted (first sighting inside the window), False on replay.
        """
        with self._lock:
            last_seen = self._seen.get(digest)
            if last_seen is not None and now_seconds - last_seen <= tolerance_seconds:
                return False
            self._seen[digest] = now_seconds
            return True

    def sweep(self, now_seconds: int, tolerance_seconds: int) -> int:
        """Drop entries older than the tolerance in a single scan. Returns count removed."""
        with self._lock:
            expired = [
                digest for digest, seen_at in self._seen.items()
                if now_seconds - seen_at > tolerance_seconds
            ]
            for digest in expired:
                del self._seen[digest]
        return len(expired)
