"""
Site Job - one full evaluation cycle for a site.

    fetch (retry once on timeout) → fingerprint → baseline read
        absent  → write baseline, optional baseline notice, done
        equal   → done (no write, no notification)
        changed → relevance decision → write baseline → notify if decided

Any failure is reported as a throttled error notification and then
re-raised so the scheduler can reschedule the site.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from sitewatch.alerting.error_throttle import ErrorThrottle
from sitewatch.alerting.notifier import DeliveryError, NotificationKind, NotificationPayload, Notifier
from sitewatch.database.baseline_store import Baseline, BaselineStore
from sitewatch.models.site import RelevanceMode, SiteConfig
from sitewatch.services.fetcher import Fetcher, FetchTimeout
from sitewatch.services.relevance import RelevanceCoordinator, RelevanceDecision
from sitewatch.utils.fingerprint import process_and_fingerprint

logger = logging.getLogger(__name__)

FETCH_MAX_ATTEMPTS = 2
FETCH_RETRY_DELAY_SECONDS = 2.0


class JobOutcome(str, Enum):
    BASELINE_CREATED = "baseline_created"
    UNCHANGED = "unchanged"
    CHANGED_NOTIFIED = "changed_notified"
    CHANGED_SILENT = "changed_silent"


@dataclass(frozen=True)
class JobResult:
    outcome: JobOutcome
    fingerprint: str
    decision: Optional[RelevanceDecision] = None


class SiteJob:
    """
    Executes the pipeline for one site. Stateless between runs; one instance
    is shared by all workers.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        store: BaselineStore,
        coordinator: RelevanceCoordinator,
        notifier: Notifier,
        throttle: ErrorThrottle,
        scrape_timeout_seconds: float = 90,
        default_wait_until: str = "networkidle",
        send_baseline_notice: bool = True,
        retry_delay_seconds: float = FETCH_RETRY_DELAY_SECONDS,
    ):
        self._fetcher = fetcher
        self._store = store
        self._coordinator = coordinator
        self._notifier = notifier
        self._throttle = throttle
        self._scrape_timeout = scrape_timeout_seconds
        self._default_wait_until = default_wait_until
        self._send_baseline_notice = send_baseline_notice
        self._retry_delay = retry_delay_seconds

    async def fetch_with_retry(self, site: SiteConfig) -> str:
        """Fetch site text, retrying once after a fixed delay on FetchTimeout only."""
        wait_until = site.wait_until or self._default_wait_until

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(FETCH_MAX_ATTEMPTS),
            wait=wait_fixed(self._retry_delay),
            retry=retry_if_exception_type(FetchTimeout),
            reraise=True,
        ):
            with attempt:
                number = attempt.retry_state.attempt_number
                if number > 1:
                    logger.info(f"🔄 [SITE-JOB] {site.id}: retrying fetch (attempt {number}/{FETCH_MAX_ATTEMPTS})")
                return await self._fetcher.fetch(
                    site.url,
                    site.selector,
                    self._scrape_timeout,
                    wait_until,
                    headless=site.headless,
                )

    async def run(self, site: SiteConfig) -> JobResult:
        """
        Run one cycle for site.

        Raises:
            Exception: whatever failed, after the error notification attempt
        """
        try:
            return await self._run(site)
        except Exception as e:
            logger.error(f"❌ [SITE-JOB] {site.id}: cycle failed: {type(e).__name__}: {e}")
            await self._report_error(site, e)
            raise

    async def _run(self, site: SiteConfig) -> JobResult:
        logger.info(f"🌐 [SITE-JOB] {site.id}: starting check ({site.selector})")

        raw_text = await self.fetch_with_retry(site)
        processed, digest = process_and_fingerprint(raw_text, site.scrub_patterns)
        logger.info(f"📄 [SITE-JOB] {site.id}: {len(raw_text)} → {len(processed)} chars, fingerprint {digest[:12]}")

        previous = await asyncio.to_thread(self._store.read, site.id)
        new_baseline = Baseline(fingerprint=digest, text=processed, last_checked_at=datetime.now(timezone.utc))

        if previous is None:
            await asyncio.to_thread(self._store.write, site.id, new_baseline)
            logger.info(f"👀 [SITE-JOB] {site.id}: baseline created")
            if self._send_baseline_notice:
                await self._deliver(site, NotificationKind.BASELINE, NotificationPayload())
            return JobResult(JobOutcome.BASELINE_CREATED, digest)

        if previous.fingerprint == digest:
            logger.info(f"✅ [SITE-JOB] {site.id}: no change")
            return JobResult(JobOutcome.UNCHANGED, digest)

        logger.info(f"🔔 [SITE-JOB] {site.id}: change detected ({previous.fingerprint[:12]} → {digest[:12]})")
        decision = await self._coordinator.decide(previous.text, processed, site)

        # Baseline tracks page state, not alert history
        await asyncio.to_thread(self._store.write, site.id, new_baseline)

        if not decision.notify:
            logger.info(f"🔕 [SITE-JOB] {site.id}: change not relevant ({decision.reason})")
            return JobResult(JobOutcome.CHANGED_SILENT, digest, decision)

        if decision.mode == RelevanceMode.LOOSE:
            kind = NotificationKind.LOOSE
        else:
            kind = NotificationKind.RELEVANT

        payload = NotificationPayload(
            summary=decision.summary,
            relevance_reason=decision.reason,
            heuristic=decision.heuristic,
        )
        await self._deliver(site, kind, payload)
        return JobResult(JobOutcome.CHANGED_NOTIFIED, digest, decision)

    async def _deliver(self, site: SiteConfig, kind: NotificationKind, payload: NotificationPayload) -> None:
        """Send a notification; delivery failures are logged, never retried or raised."""
        try:
            await self._notifier.notify(site, kind, payload)
        except DeliveryError as e:
            logger.error(f"❌ [SITE-JOB] {site.id}: {kind.value} notification not delivered: {e}")

    async def _report_error(self, site: SiteConfig, error: Exception) -> None:
        if self._throttle.should_throttle(site.id):
            logger.info(f"⏳ [SITE-JOB] {site.id}: error notification throttled")
            return
        await self._deliver(site, NotificationKind.ERROR, NotificationPayload(error=str(error) or type(error).__name__))
