"""
Error Throttle

Bounds repeated error notifications per site: at most one error alert per
site per window (default 10 minutes). A background sweep (default every
30 minutes) drops expired entries so memory stays bounded during
indefinite operation with many sites.
"""
import asyncio
import logging
import time
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

THROTTLE_WINDOW_SECONDS = 10 * 60
SWEEP_INTERVAL_SECONDS = 30 * 60


class ErrorThrottle:
    """
    Per-site error alert throttle.

    should_throttle() has a side effect: when it returns False it records
    "now" for the site, arming the throttle for the next window.
    """

    def __init__(
        self,
        window_seconds: float = THROTTLE_WINDOW_SECONDS,
        sweep_interval_seconds: float = SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._window = window_seconds
        self._sweep_interval = sweep_interval_seconds
        self._clock = clock
        self._last_error: Dict[str, float] = {}
        self._sweep_task: Optional[asyncio.Task] = None
        self._suppressed = 0

    def should_throttle(self, site_id: str) -> bool:
        """
        Returns:
            False if an error alert may be sent now (and arms the throttle),
            True if it must be suppressed
        """
        now = self._clock()
        last_error = self._last_error.get(site_id)

        if last_error is None or (now - last_error) > self._window:
            self._last_error[site_id] = now
            return False

        self._suppressed += 1
        remaining = self._window - (now - last_error)
        logger.debug(f"⏳ [THROTTLE] Error alert suppressed for {site_id} ({remaining:.0f}s remaining)")
        return True

    def sweep(self) -> int:
        """Remove entries older than the window. Returns count removed."""
        cutoff = self._clock() - self._window
        expired = [site_id for site_id, ts in self._last_error.items() if ts < cutoff]
        for site_id in expired:
            del self._last_error[site_id]
        if expired:
            logger.debug(f"🧹 [THROTTLE] Swept {len(expired)} expired entries")
        return len(expired)

    def size(self) -> int:
        return len(self._last_error)

    def start(self) -> None:
        """Start the periodic sweep task on the running loop."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        """Cancel the sweep task."""
        if self._sweep_task is None:
            return
        self._sweep_task.cancel()
        try:
            await self._sweep_task
        except asyncio.CancelledError:
            pass
        self._sweep_task = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.sweep()

    def get_stats(self) -> Dict[str, int]:
        return {
            "throttle_entries": len(self._last_error),
            "errors_suppressed": self._suppressed,
        }
