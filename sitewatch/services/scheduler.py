"""
Site Scheduler

Per-site timing with a bounded worker pool.

Each site has a ScheduleEntry moving through an explicit state machine:

    IDLE ──(due, dispatcher)──▶ QUEUED ──(worker picks up)──▶ RUNNING
      ▲                           │                              │
      └──────(shutdown drain)─────┘                              │
      └─────────────(job finished, next run computed)────────────┘

- The dispatcher runs on a fixed tick and only enqueues. It enqueues at most
  max_queue_per_tick sites per tick and only while queued + running is
  below max_concurrency.
- max_concurrency worker tasks pull from an asyncio.Queue of the same
  capacity, so no more than max_concurrency jobs can ever run.
- A site can only be enqueued from IDLE, which makes it single-flight.
- After a job (success or failure) the next run is now + uniform(check_min,
  check_max) minutes, relative to completion time.
"""
import asyncio
import logging
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from sitewatch.models.site import SiteConfig

logger = logging.getLogger(__name__)

DEFAULT_TICK_SECONDS = 3.0
DEFAULT_MAX_QUEUE_PER_TICK = 1
STARTUP_BASE_DELAY_SECONDS = 10.0
MIN_FIRST_DELAY_SECONDS = 5.0
STARTUP_JITTER_SECONDS = 30.0


class ScheduleState(str, Enum):
    IDLE = "idle"
    QUEUED = "queued"
    RUNNING = "running"


ALLOWED_TRANSITIONS = {
    ScheduleState.IDLE: {ScheduleState.QUEUED},
    ScheduleState.QUEUED: {ScheduleState.RUNNING, ScheduleState.IDLE},
    ScheduleState.RUNNING: {ScheduleState.IDLE},
}


class InvalidTransition(Exception):
    """A schedule entry was asked to move to a state it cannot reach."""


@dataclass
class ScheduleEntry:
    """Scheduler-owned mutable state for one site."""
    site: SiteConfig
    next_run_at: float
    state: ScheduleState = ScheduleState.IDLE
    runs: int = 0
    failures: int = 0

    def transition(self, new_state: ScheduleState) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.site.id}: {self.state.value} → {new_state.value}")
        self.state = new_state


JobRunner = Callable[[SiteConfig], Awaitable[object]]


class SiteScheduler:
    """
    Staggered, bounded-concurrency scheduler for site jobs.

    Usage:
        scheduler = SiteScheduler(site_job.run, max_concurrency=3)
        scheduler.add_sites(sites)
        await scheduler.start()
        ...
        await scheduler.stop()   # waits for in-flight jobs
    """

    def __init__(
        self,
        job_runner: JobRunner,
        max_concurrency: int = 3,
        stagger_window_minutes: float = 3,
        tick_seconds: float = DEFAULT_TICK_SECONDS,
        max_queue_per_tick: int = DEFAULT_MAX_QUEUE_PER_TICK,
        startup_base_delay_seconds: float = STARTUP_BASE_DELAY_SECONDS,
        min_first_delay_seconds: float = MIN_FIRST_DELAY_SECONDS,
        startup_jitter_seconds: float = STARTUP_JITTER_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")

        self._job_runner = job_runner
        self._max_concurrency = max_concurrency
        self._stagger_window_seconds = stagger_window_minutes * 60
        self._tick_seconds = tick_seconds
        self._max_queue_per_tick = max_queue_per_tick
        self._base_delay = startup_base_delay_seconds
        self._min_first_delay = min_first_delay_seconds
        self._jitter = startup_jitter_seconds
        self._clock = clock
        self._rng = rng or random.Random()

        self._entries: Dict[str, ScheduleEntry] = {}
        self._lock = asyncio.Lock()
        self._queue: Optional[asyncio.Queue] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._dispatcher_task: Optional[asyncio.Task] = None
        self._worker_tasks: List[asyncio.Task] = []
        self._running = False

        # Stats
        self._jobs_completed = 0
        self._jobs_failed = 0
        self._peak_running = 0

    # ============================================
    # REGISTRATION
    # ============================================

    def staggered_delay(self, index: int, total: int) -> float:
        """Seconds until the first run of the index-th site in a batch of total."""
        spread = (index * self._stagger_window_seconds) / max(1, total - 1)
        jitter = self._rng.uniform(-self._jitter, self._jitter) if self._jitter else 0.0
        return max(self._min_first_delay, self._base_delay + spread + jitter)

    def add_sites(self, sites: Iterable[SiteConfig]) -> int:
        """
        Register a batch of sites, spreading first runs across the stagger window.

        Returns:
            Number of sites added (duplicates are skipped)
        """
        batch: List[SiteConfig] = []
        seen = set()
        for site in sites:
            if site.id in self._entries or site.id in seen:
                logger.warning(f"⚠️ [SCHEDULER] Site {site.id} already scheduled, skipping")
                continue
            seen.add(site.id)
            batch.append(site)

        now = self._clock()
        for index, site in enumerate(batch):
            delay = self.staggered_delay(index, len(batch))
            self._entries[site.id] = ScheduleEntry(site=site, next_run_at=now + delay)
            logger.info(f"📍 [SCHEDULER] Added site: {site.id} → first run in {delay / 60:.1f}min")

        return len(batch)

    def add_site(self, site: SiteConfig) -> bool:
        return self.add_sites([site]) == 1

    # ============================================
    # LIFECYCLE
    # ============================================

    async def start(self) -> None:
        """Start the dispatcher and the worker pool. Returns immediately."""
        if self._running:
            logger.warning("⚠️ [SCHEDULER] Scheduler already running")
            return

        self._running = True
        self._stop_event = asyncio.Event()
        self._queue = asyncio.Queue(maxsize=self._max_concurrency)

        self._worker_tasks = [
            asyncio.create_task(self._worker(i), name=f"site-worker-{i}")
            for i in range(self._max_concurrency)
        ]
        self._dispatcher_task = asyncio.create_task(self._dispatcher(), name="site-dispatcher")

        logger.info(
            f"🚀 [SCHEDULER] Started: {len(self._entries)} sites, max concurrency={self._max_concurrency}"
        )

    async def stop(self) -> None:
        """
        Stop dispatching, return queued sites to IDLE and wait for in-flight
        jobs to finish.
        """
        if not self._running:
            return

        logger.info("🛑 [SCHEDULER] Stopping scheduler...")
        self._stop_event.set()
        await self._dispatcher_task

        async with self._lock:
            while not self._queue.empty():
                entry = self._queue.get_nowait()
                self._queue.task_done()
                if entry is not None:
                    entry.transition(ScheduleState.IDLE)

        running = sum(1 for e in self._entries.values() if e.state == ScheduleState.RUNNING)
        if running:
            logger.info(f"⏳ [SCHEDULER] Waiting for {running} active jobs to complete...")

        for _ in self._worker_tasks:
            await self._queue.put(None)
        await asyncio.gather(*self._worker_tasks)

        self._worker_tasks = []
        self._dispatcher_task = None
        self._running = False
        logger.info("✅ [SCHEDULER] Scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    # ============================================
    # DISPATCH
    # ============================================

    def _count(self, state: ScheduleState) -> int:
        return sum(1 for e in self._entries.values() if e.state == state)

    async def dispatch_once(self) -> int:
        """
        Enqueue due IDLE sites, respecting the per-tick cap and concurrency.

        Returns:
            Number of sites enqueued this tick
        """
        enqueued = 0
        async with self._lock:
            now = self._clock()
            in_flight = self._count(ScheduleState.QUEUED) + self._count(ScheduleState.RUNNING)

            for entry in self._entries.values():
                if in_flight >= self._max_concurrency or enqueued >= self._max_queue_per_tick:
                    break
                if entry.state != ScheduleState.IDLE or entry.next_run_at > now:
                    continue

                entry.transition(ScheduleState.QUEUED)
                self._queue.put_nowait(entry)
                in_flight += 1
                enqueued += 1
                logger.debug(
                    f"[SCHEDULER] Queued job for {entry.site.id} (in flight: {in_flight}/{self._max_concurrency})"
                )
        return enqueued

    async def _dispatcher(self) -> None:
        while not self._stop_event.is_set():
            await self.dispatch_once()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._tick_seconds)
            except asyncio.TimeoutError:
                pass

    # ============================================
    # WORKERS
    # ============================================

    async def _worker(self, worker_id: int) -> None:
        while True:
            entry = await self._queue.get()
            try:
                if entry is None:
                    return
                await self._execute(entry)
            finally:
                self._queue.task_done()

    async def _execute(self, entry: ScheduleEntry) -> None:
        site = entry.site
        async with self._lock:
            if entry.state != ScheduleState.QUEUED:
                # Drained by stop() before this worker got to it
                return
            entry.transition(ScheduleState.RUNNING)
            self._peak_running = max(self._peak_running, self._count(ScheduleState.RUNNING))

        failed = False
        try:
            await self._job_runner(site)
        except asyncio.CancelledError as e:
            # Only a cancel aimed at this worker task ends the worker
            if asyncio.current_task().cancelling():
                raise
            failed = True
            logger.error(f"❌ [SCHEDULER] Job cancelled unexpectedly for {site.id}: {e!r}")
        except Exception as e:
            failed = True
            logger.error(f"❌ [SCHEDULER] Job failed for {site.id}: {type(e).__name__}: {e}")
        finally:
            async with self._lock:
                entry.runs += 1
                if failed:
                    entry.failures += 1
                    self._jobs_failed += 1
                else:
                    self._jobs_completed += 1
                self._schedule_next_run(entry)

    def _schedule_next_run(self, entry: ScheduleEntry) -> None:
        """RUNNING → IDLE with next run = now + uniform(check_min, check_max) minutes."""
        site = entry.site
        delay_minutes = self._rng.uniform(site.check_min, site.check_max)
        entry.next_run_at = self._clock() + delay_minutes * 60
        entry.transition(ScheduleState.IDLE)
        logger.info(f"⏰ [SCHEDULER] {site.id}: Next run in {delay_minutes:.1f}min")

    # ============================================
    # STATUS
    # ============================================

    def get_status(self) -> dict:
        """Snapshot of scheduler state."""
        now = self._clock()
        return {
            "total_sites": len(self._entries),
            "active_jobs": self._count(ScheduleState.RUNNING),
            "queued_jobs": self._count(ScheduleState.QUEUED),
            "max_concurrency": self._max_concurrency,
            "jobs_completed": self._jobs_completed,
            "jobs_failed": self._jobs_failed,
            "peak_running": self._peak_running,
            "sites": {
                site_id: {
                    "state": entry.state.value,
                    "next_run_in_seconds": round(entry.next_run_at - now, 1),
                    "runs": entry.runs,
                    "failures": entry.failures,
                }
                for site_id, entry in self._entries.items()
            },
        }

    def get_entry(self, site_id: str) -> Optional[ScheduleEntry]:
        return self._entries.get(site_id)
