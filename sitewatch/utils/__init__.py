"""Site Watcher Utils Package

Text fingerprinting and heuristic content analysis.
"""

from .fingerprint import fingerprint, normalize_text, apply_scrub_patterns, process_and_fingerprint
from .content_analysis import HeuristicFilter, HeuristicResult

__all__ = [
    "fingerprint",
    "normalize_text",
    "apply_scrub_patterns",
    "process_and_fingerprint",
    "HeuristicFilter",
    "HeuristicResult",
]
