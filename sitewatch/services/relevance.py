"""
Relevance Coordinator

Two-stage decision for a detected change:

    strict: heuristic MISS → notify=False, classifier never called
            heuristic HIT  → classifier verdict decides
    loose:  always notify; classifier (optional) only supplies the summary

Classifier failures fail open: the change is treated as relevant and the
failure text becomes the reason.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sitewatch.models.site import RelevanceMode, SiteConfig
from sitewatch.services.classifier import Classifier
from sitewatch.utils.content_analysis import HeuristicFilter, HeuristicResult

logger = logging.getLogger(__name__)

DEFAULT_CHAR_BUDGET = 6000


@dataclass(frozen=True)
class RelevanceDecision:
    """
    Outcome of relevance evaluation for one change event.

    Attributes:
        notify: Whether an alert should be sent
        reason: Why (classifier reason, heuristic miss, or failure text)
        summary: Human-readable change summary (may be empty)
        heuristic: The heuristic result, attached for loose-mode alerts
        mode: Relevance mode the decision was made under
        classifier_invoked: True if the semantic classifier was called
    """
    notify: bool
    reason: str
    summary: str
    heuristic: HeuristicResult
    mode: RelevanceMode
    classifier_invoked: bool = False


class RelevanceCoordinator:
    """Decides escalation and notification for a change."""

    def __init__(
        self,
        classifier: Optional[Classifier],
        heuristic: Optional[HeuristicFilter] = None,
        char_budget: int = DEFAULT_CHAR_BUDGET,
        loose_mode_summary: bool = True,
    ):
        self._classifier = classifier
        self._heuristic = heuristic or HeuristicFilter()
        self._char_budget = char_budget
        self._loose_mode_summary = loose_mode_summary

        # Stats
        self._heuristic_misses = 0
        self._classifier_calls = 0
        self._fail_open_count = 0

    def truncate(self, text: str) -> str:
        """Cap text at the classifier character budget."""
        return text[:self._char_budget]

    async def decide(self, old_text: str, new_text: str, site: SiteConfig) -> RelevanceDecision:
        """
        Evaluate a change from old_text to new_text for site.

        Returns:
            RelevanceDecision
        """
        heuristic = self._heuristic.evaluate(new_text, site.goal)
        logger.info(f"🔎 [RELEVANCE] {site.id}: heuristic {'HIT' if heuristic.hit else 'MISS'} ({heuristic.detail})")

        if site.relevance_mode == RelevanceMode.LOOSE:
            return await self._decide_loose(old_text, new_text, site, heuristic)
        return await self._decide_strict(old_text, new_text, site, heuristic)

    async def _decide_strict(
        self,
        old_text: str,
        new_text: str,
        site: SiteConfig,
        heuristic: HeuristicResult,
    ) -> RelevanceDecision:
        if not heuristic.hit:
            self._heuristic_misses += 1
            logger.info(f"⏭️ [RELEVANCE] {site.id}: heuristic miss, skipping classifier and notification")
            return RelevanceDecision(
                notify=False,
                reason=f"Heuristic miss ({heuristic.detail})",
                summary="",
                heuristic=heuristic,
                mode=RelevanceMode.STRICT,
            )

        if self._classifier is None:
            return RelevanceDecision(
                notify=True,
                reason=f"Heuristic hit ({heuristic.detail}), no classifier configured",
                summary="",
                heuristic=heuristic,
                mode=RelevanceMode.STRICT,
            )

        self._classifier_calls += 1
        try:
            verdict = await self._classifier.classify(
                self.truncate(old_text), self.truncate(new_text), site.goal, url=site.url
            )
        except Exception as e:
            self._fail_open_count += 1
            logger.error(f"❌ [RELEVANCE] {site.id}: classifier failed, failing open: {type(e).__name__}: {e}")
            return RelevanceDecision(
                notify=True,
                reason=f"Classification error: {e}",
                summary="",
                heuristic=heuristic,
                mode=RelevanceMode.STRICT,
                classifier_invoked=True,
            )

        return RelevanceDecision(
            notify=verdict.relevant,
            reason=verdict.reason,
            summary=verdict.summary,
            heuristic=heuristic,
            mode=RelevanceMode.STRICT,
            classifier_invoked=True,
        )

    async def _decide_loose(
        self,
        old_text: str,
        new_text: str,
        site: SiteConfig,
        heuristic: HeuristicResult,
    ) -> RelevanceDecision:
        summary = ""
        invoked = False

        if self._classifier is not None and self._loose_mode_summary:
            invoked = True
            self._classifier_calls += 1
            try:
                verdict = await self._classifier.classify(
                    self.truncate(old_text), self.truncate(new_text), site.goal, url=site.url
                )
                summary = verdict.summary
            except Exception as e:
                logger.warning(f"⚠️ [RELEVANCE] {site.id}: summary generation failed: {e}")
                summary = f"Summary generation failed: {e}"

        logger.info(f"🟡 [RELEVANCE] {site.id}: loose mode, will notify regardless of relevance")
        return RelevanceDecision(
            notify=True,
            reason="Loose mode: every change is reported",
            summary=summary,
            heuristic=heuristic,
            mode=RelevanceMode.LOOSE,
            classifier_invoked=invoked,
        )

    def get_stats(self) -> dict:
        """Get coordinator statistics."""
        return {
            "heuristic_misses": self._heuristic_misses,
            "classifier_calls": self._classifier_calls,
            "fail_open_count": self._fail_open_count,
        }
