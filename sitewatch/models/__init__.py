"""Site Watcher Models Package

Immutable site configuration types.
"""

from .site import (
    RelevanceMode,
    ScrubPattern,
    GoalMetadata,
    SiteConfig,
    DEFAULT_SELECTOR,
    DEFAULT_WATCH_GOAL,
    DEFAULT_GOAL_KEYWORDS,
    DEFAULT_NEGATIVE_HINTS,
)

__all__ = [
    "RelevanceMode",
    "ScrubPattern",
    "GoalMetadata",
    "SiteConfig",
    "DEFAULT_SELECTOR",
    "DEFAULT_WATCH_GOAL",
    "DEFAULT_GOAL_KEYWORDS",
    "DEFAULT_NEGATIVE_HINTS",
]
