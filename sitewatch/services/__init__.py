"""Site Watcher Services Package

Fetching, classification, the per-site job and the scheduler.
"""

from .fetcher import Fetcher, FetchError, FetchTimeout, NavigationFailed, SelectorMissing, PlaywrightFetcher
from .classifier import Classifier, ClassifierError, SemanticClassifier
from .relevance import RelevanceCoordinator, RelevanceDecision
from .site_job import SiteJob, JobOutcome, JobResult
from .scheduler import SiteScheduler, ScheduleEntry, ScheduleState, InvalidTransition
