"""
Shared fixtures for workflow engine tests.

ScriptedLLM stands in for the model: it classifies each call from the
system prompt (agent turn, review, revision, summary, planning, sub-agent,
synthesis), records it, and answers from per-role scripts.
"""

import asyncio
import json
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from spindle.llm import LLMClient
from spindle.models import Agent, SubAgent
from spindle.prompts import SUMMARIZER_SYSTEM_PROMPT


class ModelError(RuntimeError):
    """Raised by ScriptedLLM for roles configured to fail."""


@dataclass
class Call:
    kind: str
    role: str
    system: str
    user: str
    temperature: Optional[float]


Reply = Union[str, List[str], Callable[[str], str]]

_SUMMARY_ROLE = re.compile(r"^Agent Role: (.+)$", re.MULTILINE)
_SUMMARY_OUTPUT = re.compile(r"^Output: (.*?)\n\nProvide a structured summary", re.MULTILINE | re.DOTALL)


def classify(system: str):
    if system == SUMMARIZER_SYSTEM_PROMPT:
        return "summary", ""
    match = re.match(r"You are acting as: (.+)", system)
    if match:
        role = match.group(1).strip()
        if "IMPORTANT REVIEW INSTRUCTIONS" in system:
            return "review", role
        if "IMPORTANT REVISION INSTRUCTIONS" in system:
            return "revision", role
        return "agent", role
    match = re.match(r"You are (.+?), a team lead", system)
    if match:
        return "plan", match.group(1)
    match = re.match(r"You are (.+?), working as part of", system)
    if match:
        return "sub_agent", match.group(1)
    match = re.match(r"You are (.+?)\.\n", system)
    if match:
        return "synthesis", match.group(1)
    return "unknown", ""


class ScriptedLLM(LLMClient):
    """
    Deterministic fake model.

    Args:
        replies: role -> reply. A string is returned every time, a list is
            consumed in order (last item repeats), a callable gets the user
            prompt. Unscripted roles answer "<role> output".
        fail_roles: roles whose calls raise ModelError
        delays: role -> seconds to sleep before answering
        fail_summaries: make every summarization call raise
    """

    name = "scripted"

    def __init__(
        self,
        replies: Optional[Dict[str, Reply]] = None,
        fail_roles=(),
        delays: Optional[Dict[str, float]] = None,
        fail_summaries: bool = False
    ):
        self.replies = dict(replies or {})
        self.fail_roles = set(fail_roles)
        self.delays = dict(delays or {})
        self.fail_summaries = fail_summaries
        self.calls: List[Call] = []
        self.completed: List[str] = []
        self._positions: Dict[str, int] = {}

    async def generate(self, system, user, temperature=None):
        kind, role = classify(system)
        if kind == "summary":
            role = _SUMMARY_ROLE.search(user).group(1)
        self.calls.append(Call(kind, role, system, user, temperature))

        if kind == "summary":
            if self.fail_summaries:
                raise ModelError("summarizer down")
            output = _SUMMARY_OUTPUT.search(user).group(1)
            return json.dumps({
                "keyInsights": [f"insight about {output}"],
                "decisions": [],
                "artifacts": [],
                "nextSteps": [],
            })

        if role in self.delays:
            await asyncio.sleep(self.delays[role])
        if role in self.fail_roles:
            raise ModelError(f"model failure for {role}")

        reply = self._reply(role, user)
        self.completed.append(role)
        return reply

    def _reply(self, role: str, user: str) -> str:
        script = self.replies.get(role)
        if script is None:
            return f"{role} output"
        if callable(script):
            return script(user)
        if isinstance(script, list):
            position = self._positions.get(role, 0)
            self._positions[role] = position + 1
            return script[min(position, len(script) - 1)]
        return script

    def calls_of(self, kind: str, role: Optional[str] = None) -> List[Call]:
        return [c for c in self.calls if c.kind == kind and (role is None or c.role == role)]


def make_agent(agent_id: str, role: Optional[str] = None, goal: Optional[str] = None, **kwargs) -> Agent:
    return Agent(
        id=agent_id,
        role=role or agent_id.capitalize(),
        goal=goal or f"Do the {agent_id} work",
        **kwargs
    )


def make_sub_agent(sub_agent_id: str, role: Optional[str] = None, **kwargs) -> SubAgent:
    return SubAgent(
        id=sub_agent_id,
        role=role or sub_agent_id.capitalize(),
        goal=f"Handle {sub_agent_id}",
        **kwargs
    )


@pytest.fixture
def llm():
    return ScriptedLLM()
