"""
Watcher Context

Every long-lived collaborator (store, fetcher, classifier, notifier,
throttle) is built once here from WatcherSettings and passed explicitly to
the components that need it. Tests build a context from fakes.
"""
import logging
from dataclasses import dataclass

from config.settings import WatcherSettings
from sitewatch.alerting.error_throttle import ErrorThrottle
from sitewatch.alerting.notifier import DiscordNotifier, Notifier
from sitewatch.database.baseline_store import BaselineStore
from sitewatch.services.classifier import Classifier, SemanticClassifier
from sitewatch.services.fetcher import Fetcher, PlaywrightFetcher
from sitewatch.services.relevance import RelevanceCoordinator
from sitewatch.services.scheduler import SiteScheduler
from sitewatch.services.site_job import SiteJob
from sitewatch.utils.content_analysis import HeuristicFilter

logger = logging.getLogger(__name__)


@dataclass
class WatcherContext:
    settings: WatcherSettings
    store: BaselineStore
    fetcher: Fetcher
    classifier: Classifier
    notifier: Notifier
    throttle: ErrorThrottle
    heuristic: HeuristicFilter

    @classmethod
    def build(cls, settings: WatcherSettings) -> "WatcherContext":
        """Construct production collaborators from settings."""
        logger.info(f"🔧 [CONTEXT] Baseline database: {settings.db_path}")
        return cls(
            settings=settings,
            store=BaselineStore.from_path(settings.db_path),
            fetcher=PlaywrightFetcher(default_headless=settings.headless),
            classifier=SemanticClassifier(
                api_key=settings.openai_api_key,
                api_url=settings.classifier_api_url,
                model=settings.classifier_model,
                timeout_seconds=settings.classifier_timeout_seconds,
            ),
            notifier=DiscordNotifier(settings.discord_webhook_url),
            throttle=ErrorThrottle(),
            heuristic=HeuristicFilter(),
        )

    def create_coordinator(self) -> RelevanceCoordinator:
        return RelevanceCoordinator(
            classifier=self.classifier,
            heuristic=self.heuristic,
            char_budget=self.settings.classifier_char_budget,
            loose_mode_summary=self.settings.loose_mode_summary,
        )

    def create_site_job(self) -> SiteJob:
        return SiteJob(
            fetcher=self.fetcher,
            store=self.store,
            coordinator=self.create_coordinator(),
            notifier=self.notifier,
            throttle=self.throttle,
            scrape_timeout_seconds=self.settings.scrape_timeout_seconds,
            default_wait_until=self.settings.wait_until,
            send_baseline_notice=self.settings.send_baseline_notice,
        )

    def create_scheduler(self, site_job: SiteJob, **overrides) -> SiteScheduler:
        params = dict(
            max_concurrency=self.settings.max_concurrency,
            stagger_window_minutes=self.settings.stagger_startup_minutes,
        )
        params.update(overrides)
        return SiteScheduler(site_job.run, **params)

    async def aclose(self) -> None:
        """Release shared resources. Call only after the scheduler has drained."""
        await self.throttle.stop()
        await self.fetcher.close()
        logger.info("✅ [CONTEXT] Resources released")
