"""
Pacing Policy — Randomized delay between two sends.

The only throttle on outbound volume. The delay runs between sends and
never overlaps one.
"""

import asyncio
import logging
import random
from typing import Optional

logger = logging.getLogger("broadcast.pacing")


def next_delay(min_ms: int, max_ms: int, rng: random.Random = None) -> int:
    """
    Uniform random delay in milliseconds over [min_ms, max_ms], inclusive.

    Args:
        min_ms: Shortest delay (>= 0)
        max_ms: Longest delay (>= min_ms)
        rng: Optional random source (tests pass a seeded one)

    Returns:
        Delay in milliseconds, freshly sampled on every call
    """
    if min_ms < 0 or max_ms < 0:
        raise ValueError(f"delays must be non-negative: {min_ms}..{max_ms}")
    if min_ms > max_ms:
        raise ValueError(f"min delay {min_ms} exceeds max delay {max_ms}")
    return (rng or random).randint(min_ms, max_ms)


class PacingPolicy:
    """Samples and sleeps the inter-recipient delay."""

    def __init__(self, min_ms: int, max_ms: int, rng: random.Random = None):
        # fail at construction, not after the first send
        next_delay(min_ms, max_ms)
        self.min_ms = min_ms
        self.max_ms = max_ms
        self._rng = rng

    def next_delay(self) -> int:
        return next_delay(self.min_ms, self.max_ms, self._rng)

    async def pause(self, shutdown: Optional[asyncio.Event] = None) -> bool:
        """
        Sleep for a freshly sampled delay.

        Returns True if the full delay elapsed, False if shutdown was
        requested while waiting (the wait is cut short).
        """
        if shutdown is not None and shutdown.is_set():
            return False
        delay_ms = self.next_delay()
        logger.info(f"⏱ Waiting {delay_ms / 1000:.1f}s...")
        if shutdown is None:
            await asyncio.sleep(delay_ms / 1000)
            return True
        try:
            await asyncio.wait_for(shutdown.wait(), timeout=delay_ms / 1000)
            logger.info("pacing_interrupted: shutdown requested")
            return False
        except asyncio.TimeoutError:
            return True
