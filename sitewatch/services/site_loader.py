"""
Site Loader

Builds the list of SiteConfig records at startup, from the first source
that yields sites:

1. JSON sites file ({"sites": [...]}) with full per-site records
2. WATCH_URLS: comma-separated URLs → strict-mode sites with default goals
3. TARGET_URL (legacy single-site mode) → one loose-mode site

Invalid entries and duplicate ids are skipped with a warning. No sites at
all is a fatal ConfigError.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from config.settings import VALID_WAIT_UNTIL, ConfigError, WatcherSettings
from sitewatch.models.site import (
    DEFAULT_GOAL_KEYWORDS,
    DEFAULT_NEGATIVE_HINTS,
    DEFAULT_SELECTOR,
    DEFAULT_WATCH_GOAL,
    GoalMetadata,
    RelevanceMode,
    ScrubPattern,
    SiteConfig,
)

logger = logging.getLogger(__name__)

WATCH_URLS_GOAL = "Monitor for reservation availability changes"
LEGACY_SITE_ID = "legacy-site"


def _string_tuple(value: Any) -> tuple:
    if not value:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value if v)


def _parse_scrub_patterns(site_id: str, raw: Any) -> tuple:
    patterns = []
    for item in raw or []:
        if isinstance(item, str):
            patterns.append(ScrubPattern(pattern=item))
        elif isinstance(item, dict) and item.get("pattern"):
            patterns.append(ScrubPattern(pattern=item["pattern"], flags=item.get("flags") or ""))
        else:
            logger.warning(f"⚠️ [SITES] {site_id}: ignoring malformed scrub pattern: {item}")
    return tuple(patterns)


def _number(name: str, value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number, got {value!r}") from None


def _cadence(data: Dict[str, Any], settings: WatcherSettings) -> tuple:
    """
    Resolve (check_min, check_max). A single configured bound pulls the
    inherited one along so the pair stays ordered.
    """
    check_min = _number("check_min", data.get("check_min"))
    check_max = _number("check_max", data.get("check_max"))

    if check_min is None and check_max is None:
        return settings.global_check_min, settings.global_check_max
    if check_max is None:
        return check_min, max(check_min, settings.global_check_max)
    if check_min is None:
        return min(check_max, settings.global_check_min), check_max
    return check_min, check_max


def site_from_dict(data: Dict[str, Any], settings: WatcherSettings) -> SiteConfig:
    """
    Build a SiteConfig from a JSON record. Missing cadence inherits the
    global bounds.

    Raises:
        ValueError: if the record is invalid
    """
    if not isinstance(data, dict):
        raise ValueError(f"site entry must be an object, got {type(data).__name__}")

    site_id = data.get("id")
    url = data.get("url")
    if not site_id or not url:
        raise ValueError("site entry requires 'id' and 'url'")

    try:
        mode = RelevanceMode(data.get("relevance_mode") or RelevanceMode.STRICT.value)
    except ValueError:
        raise ValueError(f"unknown relevance_mode '{data.get('relevance_mode')}'") from None

    wait_until = data.get("wait_until")
    if wait_until is not None and wait_until not in VALID_WAIT_UNTIL:
        raise ValueError(f"unsupported wait_until '{wait_until}'")

    headless = data.get("headless")
    if headless is not None and not isinstance(headless, bool):
        raise ValueError(f"headless must be true or false, got {headless!r}")

    check_min, check_max = _cadence(data, settings)

    goal = GoalMetadata(
        watch_goal=data.get("watch_goal") or DEFAULT_WATCH_GOAL,
        goal_date=str(data["goal_date"]).strip() if data.get("goal_date") else None,
        goal_party_size=str(data["goal_party_size"]) if data.get("goal_party_size") else None,
        goal_keywords=_string_tuple(data.get("goal_keywords")),
        goal_negative_hints=_string_tuple(data.get("goal_negative_hints")),
    )

    return SiteConfig(
        id=str(site_id),
        url=str(url),
        selector=data.get("selector") or DEFAULT_SELECTOR,
        check_min=check_min,
        check_max=check_max,
        relevance_mode=mode,
        goal=goal,
        scrub_patterns=_parse_scrub_patterns(str(site_id), data.get("scrub_patterns")),
        wait_until=wait_until,
        headless=headless,
    )


def load_sites_file(path: str, settings: WatcherSettings) -> Optional[List[SiteConfig]]:
    """
    Load sites from a JSON file.

    Returns:
        List of valid sites, or None if the file does not exist

    Raises:
        ConfigError: if the file exists but is not valid JSON of the right shape
    """
    config_path = Path(path)
    if not config_path.exists():
        return None

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in sites file {path}: {e}") from e

    entries = data.get("sites") if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise ConfigError(f"Sites file {path} must contain a 'sites' list")

    sites: List[SiteConfig] = []
    seen = set()
    for index, entry in enumerate(entries):
        try:
            site = site_from_dict(entry, settings)
        except ValueError as e:
            logger.warning(f"⚠️ [SITES] Skipping site entry #{index + 1} in {path}: {e}")
            continue
        if site.id in seen:
            logger.warning(f"⚠️ [SITES] Skipping duplicate site id: {site.id}")
            continue
        seen.add(site.id)
        sites.append(site)

    logger.info(f"✅ [SITES] Loaded {len(sites)} sites from {path}")
    return sites


def site_id_from_url(url: str, index: int) -> str:
    """<hostname without www>-<n>, or site-<n> if the URL has no hostname."""
    hostname = urlparse(url).hostname
    if not hostname:
        return f"site-{index + 1}"
    if hostname.startswith("www."):
        hostname = hostname[4:]
    return f"{hostname}-{index + 1}"


def sites_from_watch_urls(watch_urls: str, settings: WatcherSettings) -> List[SiteConfig]:
    urls = [u.strip() for u in watch_urls.split(",") if u.strip()]
    return [
        SiteConfig(
            id=site_id_from_url(url, index),
            url=url,
            selector=DEFAULT_SELECTOR,
            check_min=settings.global_check_min,
            check_max=settings.global_check_max,
            relevance_mode=RelevanceMode.STRICT,
            goal=GoalMetadata(
                watch_goal=WATCH_URLS_GOAL,
                goal_keywords=DEFAULT_GOAL_KEYWORDS,
                goal_negative_hints=DEFAULT_NEGATIVE_HINTS,
            ),
        )
        for index, url in enumerate(urls)
    ]


def legacy_site(settings: WatcherSettings) -> SiteConfig:
    """Single loose-mode site from TARGET_URL, checked every CHECK_INTERVAL_MINUTES."""
    interval = settings.check_interval_minutes
    if interval > 0:
        check_min = check_max = interval
    else:
        check_min, check_max = settings.global_check_min, settings.global_check_max
    return SiteConfig(
        id=LEGACY_SITE_ID,
        url=settings.target_url,
        selector=settings.css_selector or DEFAULT_SELECTOR,
        check_min=check_min,
        check_max=check_max,
        relevance_mode=RelevanceMode.LOOSE,
        goal=GoalMetadata(
            watch_goal=DEFAULT_WATCH_GOAL,
            goal_keywords=DEFAULT_GOAL_KEYWORDS,
            goal_negative_hints=DEFAULT_NEGATIVE_HINTS,
        ),
    )


def load_sites(settings: WatcherSettings, sites_file: Optional[str] = None) -> List[SiteConfig]:
    """
    Resolve the configured sites.

    Raises:
        ConfigError: if no site is configured
    """
    path = sites_file or settings.sites_file
    sites = load_sites_file(path, settings) if path else None
    if sites:
        return sites

    if settings.watch_urls:
        sites = sites_from_watch_urls(settings.watch_urls, settings)
        if sites:
            logger.info(f"✅ [SITES] Loaded {len(sites)} sites from WATCH_URLS")
            return sites

    if settings.target_url:
        logger.info("✅ [SITES] Using legacy single-site mode (TARGET_URL)")
        return [legacy_site(settings)]

    raise ConfigError(
        "No sites configured. Provide a sites file, WATCH_URLS or TARGET_URL."
    )
