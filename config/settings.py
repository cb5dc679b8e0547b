"""
Site Watcher Settings

Global configuration loaded from environment variables (.env supported).
Built once at startup by load_settings() and passed explicitly to every
component through the WatcherContext.
"""
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid (fatal at startup)."""


# ========================================
# DEFAULTS
# ========================================

DEFAULT_CLASSIFIER_API_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_CLASSIFIER_MODEL = "gpt-4o-mini"
DEFAULT_CLASSIFIER_TIMEOUT_SECONDS = 30
DEFAULT_CLASSIFIER_CHAR_BUDGET = 6000

DEFAULT_CHECK_MIN_MINUTES = 4
DEFAULT_CHECK_MAX_MINUTES = 6
DEFAULT_MAX_CONCURRENCY = 3
DEFAULT_STAGGER_STARTUP_MINUTES = 3
DEFAULT_SCRAPE_TIMEOUT_SECONDS = 90
DEFAULT_WAIT_UNTIL = "networkidle"
DEFAULT_LEGACY_CHECK_INTERVAL_MINUTES = 240

DEFAULT_DATA_DIR = ".data"
DEFAULT_DB_FILE = "sitewatch.db"
DEFAULT_SITES_FILE = "config/sites.json"
DEFAULT_LOG_FILE = "site_watcher.log"

# Playwright accepts these load states for page.goto()
VALID_WAIT_UNTIL = ("load", "domcontentloaded", "networkidle", "commit")


def parse_bool(value: Optional[str], default: bool) -> bool:
    """Parse 'true'/'false' (case-insensitive). Empty or missing → default."""
    if not value:
        return default
    return value.strip().lower() == "true"


def parse_number(value: Optional[str], default: float) -> float:
    """Parse a number, falling back to default when missing or malformed."""
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class WatcherSettings:
    """Process-wide settings. Immutable once loaded."""
    openai_api_key: str
    discord_webhook_url: str

    classifier_api_url: str = DEFAULT_CLASSIFIER_API_URL
    classifier_model: str = DEFAULT_CLASSIFIER_MODEL
    classifier_timeout_seconds: float = DEFAULT_CLASSIFIER_TIMEOUT_SECONDS
    classifier_char_budget: int = DEFAULT_CLASSIFIER_CHAR_BUDGET
    loose_mode_summary: bool = True

    global_check_min: float = DEFAULT_CHECK_MIN_MINUTES
    global_check_max: float = DEFAULT_CHECK_MAX_MINUTES
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    stagger_startup_minutes: float = DEFAULT_STAGGER_STARTUP_MINUTES
    scrape_timeout_seconds: float = DEFAULT_SCRAPE_TIMEOUT_SECONDS
    wait_until: str = DEFAULT_WAIT_UNTIL
    headless: bool = True

    log_level: str = "INFO"
    log_file: str = DEFAULT_LOG_FILE
    data_dir: str = DEFAULT_DATA_DIR
    db_file: str = DEFAULT_DB_FILE
    send_baseline_notice: bool = True

    sites_file: str = DEFAULT_SITES_FILE
    watch_urls: Optional[str] = None

    # Legacy single-site mode
    target_url: Optional[str] = None
    css_selector: Optional[str] = None
    check_interval_minutes: float = DEFAULT_LEGACY_CHECK_INTERVAL_MINUTES

    @property
    def db_path(self) -> str:
        return os.path.join(self.data_dir, self.db_file)

    def validate(self) -> "WatcherSettings":
        """
        Check required keys and numeric bounds.

        Raises:
            ConfigError: on the first invalid value found
        """
        if not self.openai_api_key:
            raise ConfigError("Missing required environment variable: OPENAI_API_KEY")
        if not self.discord_webhook_url:
            raise ConfigError("Missing required environment variable: DISCORD_WEBHOOK_URL")
        if self.max_concurrency < 1:
            raise ConfigError(f"MAX_CONCURRENCY must be >= 1 (got {self.max_concurrency})")
        if self.global_check_min <= 0 or self.global_check_max < self.global_check_min:
            raise ConfigError(
                f"Invalid check bounds: GLOBAL_CHECK_MIN={self.global_check_min}, "
                f"GLOBAL_CHECK_MAX={self.global_check_max}"
            )
        if self.stagger_startup_minutes < 0:
            raise ConfigError("STAGGER_STARTUP_MINUTES must be >= 0")
        if self.classifier_char_budget < 1:
            raise ConfigError("CLASSIFIER_CHAR_BUDGET must be >= 1")
        if self.wait_until not in VALID_WAIT_UNTIL:
            raise ConfigError(f"WAIT_UNTIL must be one of {', '.join(VALID_WAIT_UNTIL)}")
        return self


def load_settings(env: Optional[dict] = None) -> WatcherSettings:
    """
    Build WatcherSettings from the environment.

    Args:
        env: Mapping to read from (defaults to os.environ)

    Returns:
        Validated WatcherSettings

    Raises:
        ConfigError: if required configuration is missing or invalid
    """
    env = os.environ if env is None else env

    headless_raw = env.get("PLAYWRIGHT_HEADLESS") or env.get("HEADLESS")

    settings = WatcherSettings(
        openai_api_key=env.get("OPENAI_API_KEY", ""),
        discord_webhook_url=env.get("DISCORD_WEBHOOK_URL", ""),
        classifier_api_url=env.get("CLASSIFIER_API_URL") or DEFAULT_CLASSIFIER_API_URL,
        classifier_model=env.get("CLASSIFIER_MODEL") or DEFAULT_CLASSIFIER_MODEL,
        classifier_timeout_seconds=parse_number(env.get("CLASSIFIER_TIMEOUT_SECONDS"), DEFAULT_CLASSIFIER_TIMEOUT_SECONDS),
        classifier_char_budget=int(parse_number(env.get("CLASSIFIER_CHAR_BUDGET"), DEFAULT_CLASSIFIER_CHAR_BUDGET)),
        loose_mode_summary=parse_bool(env.get("LOOSE_MODE_SUMMARY"), True),
        global_check_min=parse_number(env.get("GLOBAL_CHECK_MIN"), DEFAULT_CHECK_MIN_MINUTES),
        global_check_max=parse_number(env.get("GLOBAL_CHECK_MAX"), DEFAULT_CHECK_MAX_MINUTES),
        max_concurrency=int(parse_number(env.get("MAX_CONCURRENCY"), DEFAULT_MAX_CONCURRENCY)),
        stagger_startup_minutes=parse_number(env.get("STAGGER_STARTUP_MINUTES"), DEFAULT_STAGGER_STARTUP_MINUTES),
        scrape_timeout_seconds=parse_number(env.get("SCRAPE_TIMEOUT_SECONDS"), DEFAULT_SCRAPE_TIMEOUT_SECONDS),
        wait_until=env.get("WAIT_UNTIL") or DEFAULT_WAIT_UNTIL,
        headless=parse_bool(headless_raw, True),
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        log_file=env.get("LOG_FILE") or DEFAULT_LOG_FILE,
        data_dir=env.get("DATA_DIR") or DEFAULT_DATA_DIR,
        db_file=env.get("DB_FILE") or DEFAULT_DB_FILE,
        send_baseline_notice=parse_bool(env.get("SEND_BASELINE_NOTICE"), True),
        sites_file=env.get("SITES_FILE") or DEFAULT_SITES_FILE,
        watch_urls=env.get("WATCH_URLS"),
        target_url=env.get("TARGET_URL"),
        css_selector=env.get("CSS_SELECTOR"),
        check_interval_minutes=parse_number(env.get("CHECK_INTERVAL_MINUTES"), DEFAULT_LEGACY_CHECK_INTERVAL_MINUTES),
    )
    return settings.validate()
