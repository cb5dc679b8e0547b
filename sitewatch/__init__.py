"""Site Watcher - Relevance-filtered website change monitoring

Continuously checks a set of pages, fingerprints the watched region, and
alerts on changes that matter for the operator's goal.
"""

__version__ = "1.0.0"

from sitewatch.context import WatcherContext
from sitewatch.models.site import GoalMetadata, RelevanceMode, ScrubPattern, SiteConfig

__all__ = [
    "__version__",
    "WatcherContext",
    "GoalMetadata",
    "RelevanceMode",
    "ScrubPattern",
    "SiteConfig",
]
