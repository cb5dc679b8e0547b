"""
Tests for Discord notification formatting and delivery (HTTP mocked).
"""
from unittest.mock import MagicMock, patch

import pytest
import requests

from sitewatch.alerting.notifier import (
    DISCORD_CONTENT_LIMIT,
    DeliveryError,
    DiscordNotifier,
    NotificationKind,
    NotificationPayload,
    build_message,
)
from sitewatch.models.site import GoalMetadata, RelevanceMode, SiteConfig
from sitewatch.utils.content_analysis import HeuristicResult

TIMESTAMP = "2025-10-01T12:00:00.000Z"


@pytest.fixture
def site():
    return SiteConfig(
        id="tock-dinner",
        url="https://example.com/book",
        selector="#slots",
        goal=GoalMetadata(watch_goal="Table for 2", goal_date="2025-10-21", goal_party_size="2"),
    )


@pytest.fixture
def notifier():
    return DiscordNotifier("https://discord.example/webhook", clock=lambda: TIMESTAMP)


@pytest.mark.unit
def test_relevant_message(site):
    message = build_message(
        site,
        NotificationKind.RELEVANT,
        NotificationPayload(summary="- 7pm open", relevance_reason="Matches date"),
        TIMESTAMP,
    )
    assert message.startswith("🔔 **Change detected - tock-dinner**\nhttps://example.com/book\n")
    assert "**Summary:**\n- 7pm open" in message
    assert "**Date:** 2025-10-21" in message
    assert "**Party:** 2" in message
    assert "**Selector:** `#slots`" in message
    assert message.endswith("**Relevance:** Matches date")


@pytest.mark.unit
def test_loose_message_includes_heuristic(site):
    message = build_message(
        site,
        NotificationKind.LOOSE,
        NotificationPayload(heuristic=HeuristicResult(hit=False, detail="no specific indicators")),
        TIMESTAMP,
    )
    assert message.startswith("🟡")
    assert "**Summary:**" not in message
    assert message.endswith("**Heuristic:** miss (no specific indicators)")


@pytest.mark.unit
def test_baseline_message():
    site = SiteConfig(id="plain", url="https://example.com", relevance_mode=RelevanceMode.LOOSE)
    message = build_message(site, NotificationKind.BASELINE, NotificationPayload(), TIMESTAMP)
    assert message.splitlines() == [
        "👀 **Baseline saved for plain**",
        "https://example.com",
        "",
        "Watching selector: `main`",
        "Goal: Monitor for changes",
        "Mode: loose",
        "",
        f"Time: {TIMESTAMP}",
    ]


@pytest.mark.unit
def test_error_message(site):
    message = build_message(site, NotificationKind.ERROR, NotificationPayload(error="Timeout loading"), TIMESTAMP)
    assert message.startswith("❗ **Error for tock-dinner**")
    assert "**Error:**\nTimeout loading" in message


@pytest.mark.asyncio
async def test_notify_posts_content(site, notifier):
    response = MagicMock(status_code=204, text="")
    with patch("sitewatch.alerting.notifier.requests.post", return_value=response) as mock_post:
        await notifier.notify(site, NotificationKind.ERROR, NotificationPayload(error="boom"))

    assert mock_post.call_args.args[0] == "https://discord.example/webhook"
    assert "boom" in mock_post.call_args.kwargs["json"]["content"]
    assert notifier.get_stats()["notifications_sent"] == 1


@pytest.mark.asyncio
async def test_long_content_is_capped(site, notifier):
    response = MagicMock(status_code=204, text="")
    payload = NotificationPayload(summary="x" * 5000)
    with patch("sitewatch.alerting.notifier.requests.post", return_value=response) as mock_post:
        await notifier.notify(site, NotificationKind.RELEVANT, payload)

    assert len(mock_post.call_args.kwargs["json"]["content"]) == DISCORD_CONTENT_LIMIT


@pytest.mark.asyncio
async def test_http_error_raises_delivery_error(site, notifier):
    response = MagicMock(status_code=400, text="bad request")
    with patch("sitewatch.alerting.notifier.requests.post", return_value=response):
        with pytest.raises(DeliveryError, match="400"):
            await notifier.notify(site, NotificationKind.BASELINE, NotificationPayload())

    assert notifier.get_stats()["notifications_failed"] == 1


@pytest.mark.asyncio
async def test_transport_error_raises_delivery_error(site, notifier):
    with patch("sitewatch.alerting.notifier.requests.post", side_effect=requests.ConnectionError("refused")):
        with pytest.raises(DeliveryError):
            await notifier.notify(site, NotificationKind.BASELINE, NotificationPayload())


@pytest.mark.unit
def test_webhook_url_required():
    with pytest.raises(ValueError):
        DiscordNotifier("")
