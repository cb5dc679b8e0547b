"""
Tests for context wiring and an end-to-end pipeline run through the
scheduler with fake collaborators.
"""
import asyncio
from dataclasses import replace
from unittest.mock import AsyncMock, patch

import pytest

from config.settings import load_settings
from sitewatch.alerting.error_throttle import ErrorThrottle
from sitewatch.alerting.notifier import DiscordNotifier, NotificationKind
from sitewatch.context import WatcherContext
from sitewatch.services.classifier import SemanticClassifier
from sitewatch.services.fetcher import PlaywrightFetcher
from sitewatch.utils.content_analysis import HeuristicFilter

from conftest import FakeClassifier, FakeFetcher, FakeNotifier


@pytest.fixture
def settings(tmp_path):
    return load_settings({
        "OPENAI_API_KEY": "sk-test",
        "DISCORD_WEBHOOK_URL": "https://discord.example/webhook",
        "DATA_DIR": str(tmp_path / "data"),
        "MAX_CONCURRENCY": "2",
        "CLASSIFIER_CHAR_BUDGET": "1000",
    })


@pytest.mark.asyncio
async def test_build_wires_production_collaborators(settings):
    context = WatcherContext.build(settings)

    assert isinstance(context.fetcher, PlaywrightFetcher)
    assert isinstance(context.classifier, SemanticClassifier)
    assert isinstance(context.notifier, DiscordNotifier)
    assert context.store.read("anything") is None
    assert context.create_scheduler(context.create_site_job()).get_status()["max_concurrency"] == 2

    await context.aclose()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_scheduler_drives_site_job_end_to_end(settings, baseline_store, strict_site):
    fetcher = FakeFetcher("Fully booked", "Tables available Friday")
    notifier = FakeNotifier()
    context = WatcherContext(
        settings=settings,
        store=baseline_store,
        fetcher=fetcher,
        classifier=FakeClassifier(),
        notifier=notifier,
        throttle=ErrorThrottle(),
        heuristic=HeuristicFilter(),
    )
    scheduler = context.create_scheduler(
        context.create_site_job(),
        tick_seconds=0.005,
        startup_base_delay_seconds=0,
        min_first_delay_seconds=0,
        startup_jitter_seconds=0,
    )
    scheduler.add_site(replace(strict_site, check_min=0.0001, check_max=0.0001))

    await scheduler.start()
    for _ in range(200):
        if len(notifier.sent) >= 2:
            break
        await asyncio.sleep(0.01)
    await scheduler.stop()
    await context.aclose()

    assert notifier.kinds()[:2] == [NotificationKind.BASELINE, NotificationKind.RELEVANT]
    assert baseline_store.read(strict_site.id).text == "Tables available Friday"
    assert fetcher.closed is True


@pytest.mark.asyncio
async def test_launcher_releases_browser_when_startup_fails(settings, baseline_store, strict_site):
    import run_site_watcher
    from sitewatch.services.scheduler import SiteScheduler

    fetcher = FakeFetcher("unused")
    context = WatcherContext(
        settings=settings,
        store=baseline_store,
        fetcher=fetcher,
        classifier=FakeClassifier(),
        notifier=FakeNotifier(),
        throttle=ErrorThrottle(),
        heuristic=HeuristicFilter(),
    )

    with patch.object(run_site_watcher, "load_sites", return_value=[strict_site]), \
         patch.object(WatcherContext, "build", return_value=context), \
         patch.object(SiteScheduler, "start", AsyncMock(side_effect=RuntimeError("loop exploded"))):
        with pytest.raises(RuntimeError, match="loop exploded"):
            await run_site_watcher.main(settings)

    assert fetcher.closed is True
