"""
Context Summarizer - compresses agent output into a bounded ContextSummary.

Later agents see these summaries instead of raw output. Summarization is
best-effort: a failing model call or an unparseable reply produces a
fallback summary built from the truncated raw output, so this component
never aborts a run.
"""

from typing import Any, Dict, List, Optional, Tuple
import json
import re

from ..llm import LLMClient
from ..logging_config import get_logger
from ..models import ContextSummary
from ..prompts import build_summarization_prompt

logger = get_logger("summarizer")

CACHE_KEY_CHARS = 100
FALLBACK_CHARS = 250
MAX_LIST_ITEMS = 5

JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)

# Reply field -> ContextSummary field
FIELD_MAP = {
    "keyInsights": "key_insights",
    "decisions": "decisions",
    "artifacts": "artifacts",
    "nextSteps": "next_steps",
}


class SummaryParseError(ValueError):
    """The summarization reply held no usable JSON object."""


class ContextSummarizer:
    """
    Model-backed summarizer with a per-instance cache.

    Cache key is (agent_id, first 100 characters of output). Only successful
    summaries are cached, so a transient failure is retried next time.
    """

    def __init__(self, llm: LLMClient, temperature: float = 0.3):
        self.llm = llm
        self.temperature = temperature
        self._cache: Dict[Tuple[str, str], ContextSummary] = {}

    async def summarize(self, output: str, agent_id: str, role: str) -> ContextSummary:
        """
        Summarize one agent output.

        Never raises for model or parse failures.
        """
        cache_key = (agent_id, output[:CACHE_KEY_CHARS])
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug(f"[Summarizer] Cache hit for {agent_id}")
            return cached

        logger.info(f"[Summarizer] Summarizing {agent_id} ({len(output)} chars)")

        try:
            prompt = build_summarization_prompt(role, output)
            reply = await self.llm.generate(prompt.system, prompt.user, self.temperature)
            fields = parse_summary_reply(reply)
        except Exception as e:
            logger.error(f"[Summarizer] Summarization failed for {agent_id}, using fallback: {e}")
            return fallback_summary(agent_id, role, output)

        summary = ContextSummary(agent_id=agent_id, role=role, **fields)
        self._cache[cache_key] = summary

        logger.debug(
            f"[Summarizer] {agent_id}: {len(summary.key_insights)} insights, "
            f"{len(summary.decisions)} decisions, {len(summary.artifacts)} artifacts, "
            f"{len(summary.next_steps)} next steps"
        )
        return summary

    def clear_cache(self):
        self._cache.clear()
        logger.debug("[Summarizer] Cache cleared")

    @property
    def cache_size(self) -> int:
        return len(self._cache)


def parse_summary_reply(reply: str) -> Dict[str, List[str]]:
    """
    Extract the four summary lists from a model reply.

    Tolerates prose around the JSON object. Non-list fields become empty
    lists; each list is capped at five stringified items.

    Raises:
        SummaryParseError: If no JSON object can be decoded
    """
    match = JSON_OBJECT_PATTERN.search(reply)
    candidate = match.group(0) if match else reply

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise SummaryParseError(f"Summary reply is not JSON: {e}") from e

    if not isinstance(data, dict):
        raise SummaryParseError(f"Summary reply is {type(data).__name__}, expected object")

    return {
        attr: _as_items(data.get(key, data.get(attr)))
        for key, attr in FIELD_MAP.items()
    }


def _as_items(value: Optional[Any]) -> List[str]:
    if not isinstance(value, list):
        return []
    items = [str(item).strip() for item in value if item is not None and str(item).strip()]
    return items[:MAX_LIST_ITEMS]


def fallback_summary(agent_id: str, role: str, output: str) -> ContextSummary:
    """Summary built from the first 250 characters of the raw output."""
    truncated = output[:FALLBACK_CHARS].strip()
    return ContextSummary(
        agent_id=agent_id,
        role=role,
        key_insights=[truncated or "(empty output)"],
    )
