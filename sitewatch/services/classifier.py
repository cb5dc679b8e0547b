"""
Semantic Relevance Classifier

Asks an OpenAI-compatible chat-completions endpoint whether a page change
matters for the operator's watch goal, and for a short summary of the change.

Any failure (HTTP error, timeout, unparseable JSON, structurally invalid
response) raises ClassifierError. The fail-open policy lives in the
RelevanceCoordinator, not here.
"""
import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import requests
from pydantic import ValidationError

from sitewatch.models.site import GoalMetadata
from sitewatch.schemas.classifier_schemas import ClassifierVerdict

logger = logging.getLogger(__name__)


class ClassifierError(Exception):
    """The classifier call failed or returned an invalid response."""


class Classifier(ABC):
    """Capability interface: judge relevance of a change for a goal."""

    @abstractmethod
    async def classify(
        self,
        old_text: str,
        new_text: str,
        goal: GoalMetadata,
        url: str = "",
    ) -> ClassifierVerdict:
        """
        Returns:
            ClassifierVerdict(relevant, reason, summary)

        Raises:
            ClassifierError: on any failure
        """


SYSTEM_PROMPT = """You are a change relevance classifier. You compare two versions of a web page section and decide whether the differences are relevant to the user's watching goal.

Return ONLY valid JSON in this exact format:
{"relevant": boolean, "reason": "brief explanation", "summary": "3-6 terse bullet points"}

Be strict: only return true if the changes directly relate to the goal.
The summary focuses on availability, timeslots, prices, deposits and booking status, with specific numbers or times if visible. If there is no meaningful change, the summary is 'No material change.'"""


def build_user_prompt(old_text: str, new_text: str, goal: GoalMetadata, url: str = "") -> str:
    """User prompt with goal context and both page versions (already truncated by caller)."""
    return f"""Target URL: {url or 'Not specified'}
Goal: {goal.watch_goal or 'Monitor for changes'}
Date of interest: {goal.goal_date or 'Not specified'}
Party size: {goal.goal_party_size or 'Not specified'}

Old version:
{old_text}

New version:
{new_text}

Analyze the differences and determine relevance to the goal. Pay special attention to the date and party size mentioned in the goal."""


def parse_json_response(response_text: str) -> Optional[Dict[str, Any]]:
    """
    Extract a JSON object from model output.

    Accepts bare JSON, JSON inside a fenced code block, or the first
    {...} span in the text. Reasoning-model <think> blocks are stripped.
    """
    if '<think>' in response_text:
        response_text = re.sub(r'<think>[\s\S]*?</think>', '', response_text)

    try:
        data = json.loads(response_text.strip())
        return data if isinstance(data, dict) else None
    except json.JSONDecodeError:
        pass

    json_match = re.search(r'```(?:json)?\s*([\s\S]*?)\s*```', response_text)
    if json_match:
        try:
            data = json.loads(json_match.group(1))
            return data if isinstance(data, dict) else None
        except json.JSONDecodeError:
            pass

    json_match = re.search(r'\{[\s\S]*\}', response_text)
    if json_match:
        try:
            data = json.loads(json_match.group(0))
            return data if isinstance(data, dict) else None
        except json.JSONDecodeError:
            pass

    return None


class SemanticClassifier(Classifier):
    """
    OpenAI-compatible chat-completions classifier.

    The blocking requests call runs in asyncio.to_thread so only the
    calling worker is suspended.
    """

    def __init__(
        self,
        api_key: str,
        api_url: str,
        model: str,
        timeout_seconds: float = 30,
    ):
        self._api_key = api_key
        self._api_url = api_url
        self._model = model
        self._timeout = timeout_seconds
        self._call_count = 0
        self._failure_count = 0

    async def classify(
        self,
        old_text: str,
        new_text: str,
        goal: GoalMetadata,
        url: str = "",
    ) -> ClassifierVerdict:
        try:
            verdict = await self._classify(old_text, new_text, goal, url)
        except ClassifierError:
            self._failure_count += 1
            raise
        self._call_count += 1
        return verdict

    async def _classify(self, old_text: str, new_text: str, goal: GoalMetadata, url: str) -> ClassifierVerdict:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self._model,
            "temperature": 0,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(old_text, new_text, goal, url)},
            ],
        }

        logger.info(f"🤖 [CLASSIFIER] Running relevance classifier ({len(old_text)} → {len(new_text)} chars)")

        try:
            response = await asyncio.to_thread(
                requests.post,
                self._api_url,
                headers=headers,
                json=payload,
                timeout=self._timeout
            )
        except requests.Timeout as e:
            raise ClassifierError(f"Classifier timeout after {self._timeout}s") from e
        except requests.RequestException as e:
            raise ClassifierError(f"Classifier network error: {e}") from e

        if response.status_code != 200:
            raise ClassifierError(f"Classifier HTTP error: {response.status_code} - {response.text[:200]}")

        try:
            data = response.json()
        except ValueError as e:
            raise ClassifierError(f"Classifier returned invalid JSON envelope: {e}") from e

        content = self._extract_message_content(data)
        parsed = parse_json_response(content)
        if parsed is None:
            raise ClassifierError(f"Could not parse classifier output as JSON: {content[:200]}")

        try:
            verdict = ClassifierVerdict.model_validate(parsed)
        except ValidationError as e:
            raise ClassifierError(f"Invalid response format from classifier: {e.errors()[0]['msg']}") from e

        logger.info(
            f"🎯 [CLASSIFIER] Verdict → {'✅ RELEVANT' if verdict.relevant else '❌ NOT RELEVANT'} ({verdict.reason})"
        )
        return verdict

    @staticmethod
    def _extract_message_content(data: Any) -> str:
        """Safe nested access to choices[0].message.content."""
        if not isinstance(data, dict):
            raise ClassifierError("Classifier response is not a JSON object")

        choices = data.get("choices")
        if not choices or not isinstance(choices, list):
            raise ClassifierError("Classifier response missing 'choices'")

        first_choice = choices[0]
        message = first_choice.get("message") if isinstance(first_choice, dict) else None
        if not isinstance(message, dict):
            raise ClassifierError("Classifier response has invalid message format")

        content = message.get("content")
        if not isinstance(content, str) or not content.strip():
            raise ClassifierError("Empty response from classifier")
        return content.strip()

    def get_stats(self) -> Dict[str, int]:
        """Get classifier statistics."""
        return {
            "classifier_calls": self._call_count,
            "classifier_failures": self._failure_count,
        }
