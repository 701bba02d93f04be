"""
Context Selector - ranks summaries by relevance to the agent about to run.

Score (0-1) per summary:
- 0.4 x recency: position in the pool / pool size (newer is better)
- 0.4 x keyword overlap: share of the agent's goal keywords found in the summary
- 0.2 x content richness: capped counts of insights, decisions, artifacts, next steps
"""

import re
from typing import List, Sequence

from ..logging_config import get_logger
from ..models import Agent, ContextSummary

logger = get_logger("selector")

RECENCY_WEIGHT = 0.4
KEYWORD_WEIGHT = 0.4
RICHNESS_WEIGHT = 0.2

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "is", "was", "are", "were", "be",
    "been", "being", "have", "has", "had", "do", "does", "did", "will",
    "would", "should", "could", "may", "might", "must", "can", "this",
    "that", "these", "those", "it", "its",
})

_PUNCTUATION = re.compile(r"[^\w\s]")


def extract_keywords(text: str) -> List[str]:
    """Lower-cased words longer than two characters, minus stop words."""
    words = _PUNCTUATION.sub(" ", text.lower()).split()
    return [word for word in words if len(word) > 2 and word not in STOP_WORDS]


def keyword_overlap(goal: str, summary: ContextSummary) -> float:
    keywords = extract_keywords(goal)
    if not keywords:
        return 0.0
    text = summary.text().lower()
    matches = sum(1 for keyword in keywords if keyword in text)
    return matches / len(keywords)


def content_richness(summary: ContextSummary) -> float:
    return (
        min(len(summary.key_insights) / 5, 1.0) * 0.4
        + min(len(summary.decisions) / 3, 1.0) * 0.3
        + min(len(summary.artifacts) / 3, 1.0) * 0.2
        + min(len(summary.next_steps) / 3, 1.0) * 0.1
    )


class ContextSelector:
    """Deterministic top-N selection over a summary pool."""

    def score(self, agent: Agent, summary: ContextSummary, position: int, total: int) -> float:
        recency = position / total if total else 0.0
        return (
            RECENCY_WEIGHT * recency
            + KEYWORD_WEIGHT * keyword_overlap(agent.goal, summary)
            + RICHNESS_WEIGHT * content_richness(summary)
        )

    def select(
        self,
        agent: Agent,
        summaries: Sequence[ContextSummary],
        max_items: int = 5
    ) -> List[ContextSummary]:
        """
        Return at most ``max_items`` summaries, highest score first.

        Args:
            agent: Agent whose goal drives keyword matching
            summaries: Candidate pool, oldest first
            max_items: Result cap (zero or less selects nothing)

        Returns:
            Summaries sorted by descending score; equal scores keep pool order
        """
        if not summaries or max_items <= 0:
            return []

        total = len(summaries)
        scored = [
            (self.score(agent, summary, position, total), summary)
            for position, summary in enumerate(summaries)
        ]
        # sorted() is stable, so ties keep their original order
        ranked = sorted(scored, key=lambda pair: pair[0], reverse=True)
        selected = [summary for _, summary in ranked[:max_items]]

        logger.debug(
            f"[Selector] {agent.id}: selected {len(selected)}/{total} "
            f"({', '.join(f'{s.agent_id}={score:.2f}' for score, s in ranked[:max_items])})"
        )
        return selected
