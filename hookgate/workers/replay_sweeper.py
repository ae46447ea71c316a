"""
Replay cache sweeper - purges expired digests so the in-process cache stays bounded.
Runs every `interval_seconds` (default 60) until cancelled by WebhookPipeline.stop().
"""
import asyncio
import logging

from hookgate.utils.metrics import REPLAY_CACHE_ENTRIES
from hookgate.utils.replay import ReplayGuard

logger = logging.getLogger(__name__)

SWEEP_INTERVAL_SECONDS = 60.0


async def run_replay_sweeper(
    guard: ReplayGuard,
    tolerance_seconds: int,
    connector_id: str,
    interval_seconds: float = SWEEP_INTERVAL_SECONDS,
) -> None:
    """Main sweeper loop. Each pass holds the guard's lock for one scan only."""
    logger.info(
        "Replay sweeper started (interval=%ss tolerance=%ss)",
        interval_seconds, tolerance_seconds,
        extra={"connector_id": connector_id},
    )

    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = guard.sweep(int(guard.clock()), tolerance_seconds)
            remaining = len(guard)
            REPLAY_CACHE_ENTRIES.labels(connector_id=connector_id).set(remaining)
            if removed:
                logger.debug(
                    "Replay sweeper purged %d entries (%d live)",
                    removed, remaining,
                    extra={"connector_id": connector_id},
                )
        except Exception as e:
            logger.error("Replay sweeper error: %s", str(e), exc_info=True)
