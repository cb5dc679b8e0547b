"""
Content Analysis - Heuristic relevance pre-filter.

Cheap local keyword/date matcher that runs before any semantic classifier
call. In strict mode a miss here means the classifier is never invoked.

A text is a HIT only if all of the following hold:
- at least one positive goal keyword is present
- no negative hint is present (configured hints + built-in unavailability phrases)
- the goal date, if configured, appears as YYYY-MM-DD or YYYYMMDD

All matching is case-insensitive substring search.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from sitewatch.models.site import GoalMetadata

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HeuristicResult:
    """
    Outcome of one heuristic evaluation.

    Attributes:
        hit: True if the text looks relevant to the goal
        detail: Which categories matched (observability only)
    """
    hit: bool
    detail: str


class HeuristicFilter:
    """
    Keyword/date heuristic for goal relevance.

    A negative hint always overrides positive keywords, regardless of how
    many positives matched or where they appear.
    """

    # Generic unavailability phrases, applied to every site
    BUILTIN_NEGATIVE_HINTS: Tuple[str, ...] = (
        "sold out",
        "fully booked",
        "no availability",
        "not available",
        "unavailable",
        "no tables available",
        "no reservations available",
        "join the waitlist",
    )

    def __init__(self, builtin_negative_hints: Optional[Tuple[str, ...]] = None):
        hints = self.BUILTIN_NEGATIVE_HINTS if builtin_negative_hints is None else builtin_negative_hints
        self._builtin_hints = tuple(h.lower() for h in hints if h)

    def negative_hints_for(self, goal: GoalMetadata) -> List[str]:
        """Configured hints unioned with the built-ins, order preserved, no duplicates."""
        merged: List[str] = []
        for hint in list(goal.goal_negative_hints) + list(self._builtin_hints):
            lowered = hint.lower()
            if lowered and lowered not in merged:
                merged.append(lowered)
        return merged

    @staticmethod
    def date_forms(goal_date: str) -> Tuple[str, str]:
        """ISO form and condensed digit form of a goal date."""
        iso = goal_date.strip()
        return iso, iso.replace('-', '')

    def evaluate(self, text: str, goal: GoalMetadata) -> HeuristicResult:
        """
        Evaluate text against goal metadata.

        Args:
            text: Normalized page text
            goal: Goal keywords, negative hints and optional date

        Returns:
            HeuristicResult with hit flag and a human-readable detail string
        """
        lower_text = (text or "").lower()

        positive_hits = [kw for kw in goal.goal_keywords if kw and kw.lower() in lower_text]
        negative_hits = [hint for hint in self.negative_hints_for(goal) if hint in lower_text]

        date_ok = True
        if goal.goal_date:
            iso, condensed = self.date_forms(goal.goal_date)
            date_ok = iso.lower() in lower_text or condensed in lower_text

        has_positive = bool(positive_hits)
        has_negative = bool(negative_hits)
        hit = has_positive and not has_negative and date_ok

        details = []
        if has_positive:
            details.append(f"positive: {', '.join(positive_hits)}")
        if has_negative:
            details.append(f"negative: {', '.join(negative_hits)}")
        if goal.goal_date:
            details.append(f"date {'found' if date_ok else 'not found'}: {goal.goal_date}")

        detail = '; '.join(details) if details else 'no specific indicators'
        logger.debug(f"🔎 [HEURISTIC] {'HIT' if hit else 'MISS'} ({detail})")
        return HeuristicResult(hit=hit, detail=detail)
