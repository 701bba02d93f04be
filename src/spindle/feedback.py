"""
Feedback Processor - reviewer text to {approved, per-agent feedback}.

Reviewer output is free-form model text, so extraction is an ordered list of
heuristics with a deterministic fallback. ``process`` is pure: the same
text, targets and keyword always produce the same result.

Extraction order per target agent (first hit wins):
1. ``<id>: text`` up to the next ``label:`` line or heading
2. heading forms ``**<id>**: text`` / ``## <id>``
3. role keywords, e.g. id ``backend_dev`` matches a line ``Backend Developer: ...``
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence
import re

from .logging_config import get_logger

logger = get_logger("feedback")

GENERIC_FEEDBACK = "Please review and improve based on the reviewer's comments above."

ROLE_KEYWORDS = (
    "backend",
    "frontend",
    "database",
    "api",
    "ui",
    "developer",
    "engineer",
    "designer",
)

# Continuation lines stop at the next "label:" line or markdown heading
_CONTINUATION = r"(?:\n(?![ \t]*(?:[\w-]+[ \t]*(?:\w+[ \t]*)?:|\*\*|##))[^\n]+)*"


@dataclass(frozen=True)
class FeedbackResult:
    approved: bool
    feedback: Dict[str, str] = field(default_factory=dict)


def is_approved(text: str, keyword: str) -> bool:
    """
    Case-insensitive approval check.

    Any of: keyword anywhere, after a status marker (``STATUS:`` or a check
    mark), or at the start of a line.
    """
    if not keyword:
        return False

    escaped = re.escape(keyword)
    checks = (
        re.compile(escaped, re.IGNORECASE),
        re.compile(rf"(?:STATUS[ \t]*:|✅)[ \t]*{escaped}", re.IGNORECASE),
        re.compile(rf"^[ \t]*{escaped}", re.IGNORECASE | re.MULTILINE),
    )
    return any(check.search(text) for check in checks)


def _labelled(agent_id: str) -> re.Pattern:
    return re.compile(
        rf"(?<![\w-]){re.escape(agent_id)}[ \t]*:[ \t]*([^\n]+{_CONTINUATION})",
        re.IGNORECASE
    )


def _heading(agent_id: str) -> re.Pattern:
    return re.compile(
        rf"(?:\*\*|##)[ \t]*{re.escape(agent_id)}(?![\w-])[ \t]*(?:\*\*)?[ \t]*:?\s*"
        rf"([^\n]+(?:\n(?!\*\*|##)[^\n]+)*)",
        re.IGNORECASE
    )


def _role(keyword: str, agent_id: str) -> re.Pattern:
    return re.compile(
        rf"^[ \t]*(?:\*\*)?(?:{re.escape(keyword)}|{re.escape(agent_id)})"
        r"[ \t]*(?:developer|engineer|designer)?[ \t]*(?:\*\*)?[ \t]*:[ \t]*"
        rf"([^\n]+{_CONTINUATION})",
        re.IGNORECASE | re.MULTILINE
    )


def extract_agent_feedback(text: str, agent_id: str) -> Optional[str]:
    """Feedback addressed to one agent, or None."""
    patterns: List[re.Pattern] = [_labelled(agent_id), _heading(agent_id)]
    lowered = agent_id.lower()
    patterns.extend(_role(keyword, agent_id) for keyword in ROLE_KEYWORDS if keyword in lowered)

    for pattern in patterns:
        match = pattern.search(text)
        if match:
            feedback = match.group(1).strip()
            if feedback:
                return feedback
    return None


class FeedbackProcessor:
    """Stateless wrapper so executors can swap in another processor."""

    def process(
        self,
        text: str,
        target_agent_ids: Sequence[str],
        approval_keyword: str
    ) -> FeedbackResult:
        """
        Parse one reviewer verdict.

        Args:
            text: Raw reviewer output
            target_agent_ids: Agents eligible for feedback
            approval_keyword: Keyword signalling approval

        Returns:
            FeedbackResult; when not approved and nothing could be
            extracted, every target gets the same generic instruction
        """
        approved = is_approved(text, approval_keyword)

        feedback: Dict[str, str] = {}
        for agent_id in target_agent_ids:
            extracted = extract_agent_feedback(text, agent_id)
            if extracted:
                feedback[agent_id] = extracted

        if not feedback and not approved:
            logger.info(
                f"[FeedbackProcessor] No agent-specific feedback found, "
                f"using generic feedback for {len(target_agent_ids)} agent(s)"
            )
            feedback = {agent_id: GENERIC_FEEDBACK for agent_id in target_agent_ids}

        logger.debug(
            f"[FeedbackProcessor] approved={approved} feedback for [{', '.join(feedback)}]"
        )
        return FeedbackResult(approved=approved, feedback=feedback)
