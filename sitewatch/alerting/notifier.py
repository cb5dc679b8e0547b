"""
Notifier - Discord webhook delivery.

Four notification kinds, each with its own emoji and message layout:
    🔔 relevant   change judged relevant by the classifier (strict mode)
    🟡 loose      change on a loose-mode site
    👀 baseline   first observation of a site
    ❗ error      job failure (subject to the error throttle upstream)

Delivery is a single attempt. Failures raise DeliveryError; callers log and
carry on.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

import requests

from sitewatch.models.site import DEFAULT_SELECTOR, DEFAULT_WATCH_GOAL, SiteConfig
from sitewatch.utils.content_analysis import HeuristicResult

logger = logging.getLogger(__name__)

# Discord rejects message content longer than this
DISCORD_CONTENT_LIMIT = 2000
DISCORD_TIMEOUT_SECONDS = 10


class NotificationKind(str, Enum):
    RELEVANT = "relevant"
    LOOSE = "loose"
    BASELINE = "baseline"
    ERROR = "error"


KIND_EMOJI = {
    NotificationKind.RELEVANT: "🔔",
    NotificationKind.LOOSE: "🟡",
    NotificationKind.BASELINE: "👀",
    NotificationKind.ERROR: "❗",
}


class DeliveryError(Exception):
    """Notification could not be delivered."""


@dataclass(frozen=True)
class NotificationPayload:
    """Optional data attached to a notification."""
    summary: str = ""
    relevance_reason: str = ""
    heuristic: Optional[HeuristicResult] = None
    error: str = ""


class Notifier(ABC):
    """Capability interface: deliver a notification for a site."""

    @abstractmethod
    async def notify(self, site: SiteConfig, kind: NotificationKind, payload: NotificationPayload) -> None:
        """
        Raises:
            DeliveryError: if delivery failed
        """


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_message(
    site: SiteConfig,
    kind: NotificationKind,
    payload: NotificationPayload,
    timestamp: str,
) -> str:
    """Render the message body for a notification kind."""
    emoji = KIND_EMOJI[kind]
    goal = site.goal
    selector = site.selector or DEFAULT_SELECTOR
    watch_goal = goal.watch_goal or DEFAULT_WATCH_GOAL

    if kind == NotificationKind.ERROR:
        return "\n".join([
            f"{emoji} **Error for {site.id}**",
            site.url,
            "",
            "**Error:**",
            payload.error or "Unknown error occurred",
            "",
            f"Time: {timestamp}",
        ])

    if kind == NotificationKind.BASELINE:
        lines = [
            f"{emoji} **Baseline saved for {site.id}**",
            site.url,
            "",
            f"Watching selector: `{selector}`",
            f"Goal: {watch_goal}",
        ]
        if goal.goal_date:
            lines.append(f"Date: {goal.goal_date}")
        if goal.goal_party_size:
            lines.append(f"Party: {goal.goal_party_size}")
        lines.append(f"Mode: {site.relevance_mode.value}")
        lines.append("")
        lines.append(f"Time: {timestamp}")
        return "\n".join(lines)

    # Change notifications (relevant or loose)
    lines: List[str] = [
        f"{emoji} **Change detected - {site.id}**",
        site.url,
        "",
    ]
    if payload.summary:
        lines.extend(["**Summary:**", payload.summary, ""])

    lines.append(f"**Goal:** {watch_goal}")
    if goal.goal_date:
        lines.append(f"**Date:** {goal.goal_date}")
    if goal.goal_party_size:
        lines.append(f"**Party:** {goal.goal_party_size}")
    lines.append(f"**Selector:** `{selector}`")
    lines.append(f"**Checked at:** {timestamp}")

    if kind == NotificationKind.RELEVANT and payload.relevance_reason:
        lines.append(f"**Relevance:** {payload.relevance_reason}")
    elif kind == NotificationKind.LOOSE and payload.heuristic is not None:
        label = "hit" if payload.heuristic.hit else "miss"
        lines.append(f"**Heuristic:** {label} ({payload.heuristic.detail})")

    return "\n".join(lines)


def truncate_content(content: str, limit: int = DISCORD_CONTENT_LIMIT) -> str:
    """Cap content at the Discord limit, marking the cut with an ellipsis."""
    if len(content) <= limit:
        return content
    return content[:limit - 1] + "…"


class DiscordNotifier(Notifier):
    """
    Posts notifications to a Discord webhook.

    The blocking requests call runs in asyncio.to_thread.
    """

    def __init__(
        self,
        webhook_url: str,
        timeout_seconds: float = DISCORD_TIMEOUT_SECONDS,
        clock: Callable[[], str] = _utc_timestamp,
    ):
        if not webhook_url:
            raise ValueError("Discord webhook URL is required")
        self._webhook_url = webhook_url
        self._timeout = timeout_seconds
        self._clock = clock
        self._sent = 0
        self._failed = 0

    async def notify(self, site: SiteConfig, kind: NotificationKind, payload: NotificationPayload) -> None:
        content = truncate_content(build_message(site, kind, payload, self._clock()))
        logger.info(f"📢 [NOTIFIER] {site.id}: Sending {kind.value} notification ({len(content)} chars)")

        try:
            response = await asyncio.to_thread(
                requests.post,
                self._webhook_url,
                json={"content": content},
                timeout=self._timeout
            )
        except requests.RequestException as e:
            self._failed += 1
            logger.error(f"❌ [NOTIFIER] Failed to send Discord notification for {site.id}: {e}")
            raise DeliveryError(f"Discord webhook request failed: {e}") from e

        if response.status_code >= 300:
            self._failed += 1
            logger.error(f"❌ [NOTIFIER] Discord webhook error for {site.id}: {response.status_code}")
            raise DeliveryError(f"Discord webhook failed: {response.status_code} {response.text[:200]}")

        self._sent += 1
        logger.info(f"✅ [NOTIFIER] {site.id}: Discord notification sent ({response.status_code})")

    def get_stats(self) -> dict:
        """Get notifier statistics."""
        return {
            "notifications_sent": self._sent,
            "notifications_failed": self._failed,
        }
