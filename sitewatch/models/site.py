"""
Site configuration model.

A SiteConfig is the immutable per-site descriptor: where to look, how often,
what counts as a relevant change, and which volatile fragments to scrub
before comparing page text.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class RelevanceMode(str, Enum):
    """How a detected change is turned into a notify decision."""
    STRICT = "strict"  # heuristic gate, then semantic classifier verdict
    LOOSE = "loose"    # always notify


DEFAULT_SELECTOR = "main"
DEFAULT_WATCH_GOAL = "Monitor for changes"

# Reservation-oriented defaults used for sites created from bare URLs
DEFAULT_GOAL_KEYWORDS: Tuple[str, ...] = (
    "available", "availability", "open", "book", "reserve", "slots", "seats", "tables",
)
DEFAULT_NEGATIVE_HINTS: Tuple[str, ...] = ("sold out", "fully booked", "waitlist", "notify")


@dataclass(frozen=True)
class ScrubPattern:
    """
    Regex deleted from page text before comparison.

    flags uses the single-letter convention: i (ignore case), m (multiline),
    s (dot matches newline), x (verbose), u (unicode, implied), g (global, implied).
    """
    pattern: str
    flags: str = ""


@dataclass(frozen=True)
class GoalMetadata:
    """What the operator is watching for. Passed verbatim to the classifier."""
    watch_goal: str = DEFAULT_WATCH_GOAL
    goal_date: Optional[str] = None          # ISO date, e.g. "2025-10-21"
    goal_party_size: Optional[str] = None
    goal_keywords: Tuple[str, ...] = ()
    goal_negative_hints: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SiteConfig:
    """
    Immutable per-site descriptor. Loaded once at startup.

    Attributes:
        id: Unique key (baseline namespace, schedule key, throttle key)
        url: Page to fetch
        selector: CSS selector for the watched region
        check_min / check_max: Cadence bounds in minutes
        relevance_mode: strict or loose
        goal: Goal metadata for heuristic and classifier
        scrub_patterns: Ordered regexes removed before fingerprinting
        wait_until: Playwright load state to wait for (None = global default)
        headless: Browser headless override (None = global default)
    """
    id: str
    url: str
    selector: str = DEFAULT_SELECTOR
    check_min: float = 4
    check_max: float = 6
    relevance_mode: RelevanceMode = RelevanceMode.STRICT
    goal: GoalMetadata = field(default_factory=GoalMetadata)
    scrub_patterns: Tuple[ScrubPattern, ...] = ()
    wait_until: Optional[str] = None
    headless: Optional[bool] = None

    def __post_init__(self):
        if not self.id:
            raise ValueError("SiteConfig.id must not be empty")
        if not self.url:
            raise ValueError(f"SiteConfig.url must not be empty ({self.id})")
        if self.check_min <= 0 or self.check_max < self.check_min:
            raise ValueError(
                f"Invalid cadence for {self.id}: check_min={self.check_min}, check_max={self.check_max}"
            )
