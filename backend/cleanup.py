"""
Background expiry sweep.

Runs every SWEEP_INTERVAL seconds and drops expired keys from the store.
Reads already ignore expired keys; the sweep only reclaims memory for
jobs nobody polls any more.
"""

import asyncio
import logging
import os

from store import MemoryStore

logger = logging.getLogger(__name__)

SWEEP_INTERVAL: float = float(os.getenv("SWEEP_INTERVAL", "60"))


async def sweep_expired(store: MemoryStore, interval: float = SWEEP_INTERVAL) -> None:
    """Infinite loop: sleep, then purge expired keys."""
    while True:
        try:
            await asyncio.sleep(interval)
            removed = store.purge_expired()
            if removed:
                logger.info("Purged %d expired key(s)", removed)
        except asyncio.CancelledError:
            # Graceful shutdown
            break
        except Exception:
            # Log but never crash the background task
            logger.exception("Unexpected error during expiry sweep")
