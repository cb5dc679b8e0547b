"""
Site Watcher Test Configuration

Centralized pytest setup:
- Automatic path setup
- Log capture for asserting system events
- In-memory fakes for the Fetcher, Classifier and Notifier capabilities
- Isolated SQLite baseline store per test

Usage:
    def test_fallback_logged(log_capture):
        trigger_fallback()
        log_capture.assert_logged("falling back", level="INFO")

    async def test_job(fake_fetcher, fake_notifier, baseline_store):
        fake_fetcher.texts.append("Table available")

Run specific test categories:
    pytest -m unit          # Fast isolated tests only
    pytest -m integration   # Multi-component tests
    pytest -m "not slow"    # Skip slow tests
"""
import sys
import os
import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from dataclasses import dataclass, field

import pytest

# ============================================
# PATH SETUP
# ============================================

project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from sitewatch.alerting.notifier import DeliveryError, NotificationKind, NotificationPayload, Notifier
from sitewatch.database.baseline_store import BaselineStore
from sitewatch.models.site import GoalMetadata, RelevanceMode, SiteConfig
from sitewatch.schemas.classifier_schemas import ClassifierVerdict
from sitewatch.services.classifier import Classifier
from sitewatch.services.fetcher import Fetcher


# ============================================
# PYTEST MARKERS
# ============================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests (several components together)")
    config.addinivalue_line("markers", "slow: Slow tests (real timing, scheduler loops)")


# ============================================
# LOG CAPTURE FIXTURE
# ============================================

@dataclass
class CapturedLog:
    """Single captured log entry."""
    level: str
    message: str
    logger_name: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __str__(self) -> str:
        return f"[{self.level}] {self.message}"


class LogCapture:
    """
    Captures log messages during test execution.

    Usage:
        def test_something(log_capture):
            do_something_that_logs()
            assert log_capture.contains("expected message")
            assert log_capture.contains("error occurred", level="ERROR")
    """

    def __init__(self):
        self.logs: List[CapturedLog] = []

    def capture(self, record: logging.LogRecord) -> None:
        self.logs.append(CapturedLog(
            level=record.levelname,
            message=record.getMessage(),
            logger_name=record.name,
        ))

    def contains(self, substring: str, level: Optional[str] = None) -> bool:
        """Case-insensitive substring search, optionally filtered by level."""
        substring_lower = substring.lower()
        for log in self.logs:
            if level and log.level != level:
                continue
            if substring_lower in log.message.lower():
                return True
        return False

    def get_by_level(self, level: str) -> List[CapturedLog]:
        return [log for log in self.logs if log.level == level]

    def format_all(self) -> str:
        if not self.logs:
            return "(no logs captured)"
        return "\n".join(str(log) for log in self.logs)

    def assert_logged(self, substring: str, level: Optional[str] = None) -> None:
        if not self.contains(substring, level):
            level_info = f" at level {level}" if level else ""
            raise AssertionError(
                f"Expected log containing '{substring}'{level_info} not found.\n"
                f"Captured logs:\n{self.format_all()}"
            )


class LogCaptureHandler(logging.Handler):
    """Logging handler that captures to LogCapture."""

    def __init__(self, capture: LogCapture):
        super().__init__()
        self.capture = capture

    def emit(self, record: logging.LogRecord) -> None:
        self.capture.capture(record)


@pytest.fixture
def log_capture():
    """Capture all log messages during a test."""
    capture = LogCapture()
    handler = LogCaptureHandler(capture)
    handler.setLevel(logging.DEBUG)

    root_logger = logging.getLogger()
    original_level = root_logger.level
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(handler)

    yield capture

    root_logger.removeHandler(handler)
    root_logger.setLevel(original_level)


# ============================================
# FAKE COLLABORATORS
# ============================================

class FakeFetcher(Fetcher):
    """
    Returns queued texts (or raises queued exceptions) in order.
    The last text is repeated once the queue is exhausted.
    """

    def __init__(self, *texts):
        self.texts = list(texts)
        self.calls: List[Tuple[str, str]] = []
        self.closed = False

    async def fetch(self, url, selector, timeout_seconds, wait_until, headless=None):
        self.calls.append((url, selector))
        item = self.texts.pop(0) if len(self.texts) > 1 else self.texts[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self):
        self.closed = True


class FakeClassifier(Classifier):
    """Returns a fixed verdict, or raises a fixed error."""

    def __init__(self, verdict: Optional[ClassifierVerdict] = None, error: Optional[Exception] = None):
        self.verdict = verdict or ClassifierVerdict(relevant=True, reason="Tables opened", summary="- 7pm slot open")
        self.error = error
        self.calls: List[Tuple[str, str, GoalMetadata]] = []

    async def classify(self, old_text, new_text, goal, url=""):
        self.calls.append((old_text, new_text, goal))
        if self.error is not None:
            raise self.error
        return self.verdict


class FakeNotifier(Notifier):
    """Records notifications; optionally fails delivery."""

    def __init__(self, fail: bool = False):
        self.sent: List[Tuple[str, NotificationKind, NotificationPayload]] = []
        self.fail = fail

    async def notify(self, site, kind, payload):
        if self.fail:
            raise DeliveryError("webhook down")
        self.sent.append((site.id, kind, payload))

    def kinds(self) -> List[NotificationKind]:
        return [kind for _, kind, _ in self.sent]


@pytest.fixture
def fake_fetcher():
    return FakeFetcher("")


@pytest.fixture
def fake_classifier():
    return FakeClassifier()


@pytest.fixture
def fake_notifier():
    return FakeNotifier()


@pytest.fixture
def baseline_store(tmp_path):
    """Isolated SQLite baseline store in a temp directory."""
    return BaselineStore.from_path(str(tmp_path / "baselines.db"))


@pytest.fixture
def reservation_goal() -> GoalMetadata:
    return GoalMetadata(
        watch_goal="Table for 2",
        goal_keywords=("available", "book"),
        goal_negative_hints=("waitlist",),
    )


@pytest.fixture
def strict_site(reservation_goal) -> SiteConfig:
    return SiteConfig(
        id="resto-1",
        url="https://example.com/reservations",
        relevance_mode=RelevanceMode.STRICT,
        goal=reservation_goal,
    )


@pytest.fixture
def loose_site(reservation_goal) -> SiteConfig:
    return SiteConfig(
        id="resto-loose",
        url="https://example.com/reservations",
        relevance_mode=RelevanceMode.LOOSE,
        goal=reservation_goal,
    )
