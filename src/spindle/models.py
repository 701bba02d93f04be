"""
Workflow data model.

Agents, sub-agents and workflow descriptors are immutable once loaded.
ContextSummary and RelevantMemory are the compressed forms of agent work
that later prompts consume instead of raw output text.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Union


class DelegationStrategy(Enum):
    """How a parent agent selects and orders its sub-agents."""
    AUTO = "auto"
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


@dataclass(frozen=True)
class SubAgent:
    """
    A specialist that a parent agent can delegate to.

    ``specialization`` and ``trigger_conditions`` are only read by the
    auto delegation planner.
    """
    id: str
    role: str
    goal: str
    tools: Tuple[str, ...] = ()
    specialization: Optional[str] = None
    trigger_conditions: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Agent:
    """A named role with a goal, invoked by the workflow topology."""
    id: str
    role: str
    goal: str
    tools: Tuple[str, ...] = ()
    sub_agents: Tuple[SubAgent, ...] = ()
    delegation_strategy: DelegationStrategy = DelegationStrategy.AUTO
    enable_persistent_memory: bool = False

    @property
    def has_sub_agents(self) -> bool:
        return len(self.sub_agents) > 0

    def get_sub_agent(self, sub_agent_id: str) -> Optional[SubAgent]:
        for sub_agent in self.sub_agents:
            if sub_agent.id == sub_agent_id:
                return sub_agent
        return None


@dataclass(frozen=True)
class FeedbackLoopConfig:
    """Bounded review/revise cycle wrapped around a parallel workflow."""
    enabled: bool
    feedback_targets: Tuple[str, ...]
    max_iterations: int = 5
    approval_keyword: str = "APPROVED"


@dataclass(frozen=True)
class SequentialWorkflow:
    """Steps run strictly one after another."""
    steps: Tuple[str, ...]
    type: str = "sequential"


@dataclass(frozen=True)
class ParallelWorkflow:
    """Branches fan out concurrently, then one aggregator fans in."""
    branches: Tuple[str, ...]
    aggregator: str
    feedback_loop: Optional[FeedbackLoopConfig] = None
    type: str = "parallel"

    @property
    def has_feedback_loop(self) -> bool:
        return self.feedback_loop is not None and self.feedback_loop.enabled


Workflow = Union[SequentialWorkflow, ParallelWorkflow]


@dataclass(frozen=True)
class MemorySettings:
    """Persistent memory wiring from the ``memory`` config section."""
    enabled: bool = False
    namespace: str = "spindle:workflows"
    db_path: Optional[str] = None


@dataclass(frozen=True)
class WorkflowConfig:
    """A validated workflow descriptor plus the agents it references."""
    agents: Tuple[Agent, ...]
    workflow: Workflow
    memory: MemorySettings = field(default_factory=MemorySettings)


@dataclass
class ContextSummary:
    """
    Bounded, structured compression of one agent's output.

    ``full_output_reference`` points back at the agent whose full output
    lives in the run timeline.
    """
    agent_id: str
    role: str
    key_insights: List[str] = field(default_factory=list)
    decisions: List[str] = field(default_factory=list)
    artifacts: List[str] = field(default_factory=list)
    next_steps: List[str] = field(default_factory=list)
    full_output_reference: str = ""

    def __post_init__(self):
        if not self.full_output_reference:
            self.full_output_reference = self.agent_id

    def text(self) -> str:
        """All list items joined, for keyword matching."""
        return " ".join(self.key_insights + self.decisions + self.artifacts + self.next_steps)


@dataclass(frozen=True)
class RelevantMemory:
    """A ranked match from the persistent memory store (read-only here)."""
    role: str
    content: str
    key_insights: Tuple[str, ...] = ()
    decisions: Tuple[str, ...] = ()
    timestamp: float = 0.0
    score: float = 0.0
    agent_id: str = ""
