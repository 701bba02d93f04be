"""
Run State - the single mutable store threaded through one workflow run.

Executors never assign fields directly. Every agent turn reaches the store
through ``commit()``, which is called once per sequential step and once per
fan-out barrier, so concurrent branches only ever read an immutable
``RunSnapshot`` taken before they started.
"""

from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple
)
import time
import uuid

from .logging_config import get_logger
from .models import ContextSummary

if TYPE_CHECKING:
    from .executors.iterative import FeedbackOutcome

logger = get_logger("state")


@dataclass(frozen=True)
class TimelineEntry:
    """One completed agent invocation. The timeline is append-only."""
    agent_id: str
    role: str
    output: str
    started_at: float
    ended_at: float
    branch_id: Optional[str] = None
    branch_index: Optional[int] = None
    is_aggregator: bool = False
    iteration: Optional[int] = None

    @property
    def duration(self) -> float:
        return max(self.ended_at - self.started_at, 0.0)

    def to_event(self) -> Dict[str, Any]:
        """Event record for logging/visualization consumers."""
        event: Dict[str, Any] = {
            "agent_id": self.agent_id,
            "role": self.role,
            "output": self.output,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
        }
        if self.branch_id is not None:
            event["branch_id"] = self.branch_id
            event["branch_index"] = self.branch_index
        if self.is_aggregator:
            event["is_aggregator"] = True
        if self.iteration is not None:
            event["iteration"] = self.iteration
        return event


@dataclass
class FeedbackIteration:
    """One reviewer verdict inside a feedback loop."""
    iteration: int
    reviewer_output: str
    approved: bool
    feedback: Dict[str, str]
    timestamp: float = field(default_factory=time.time)


@dataclass
class AgentTurn:
    """
    A finished but not yet committed agent invocation.

    Produced by concurrent tasks, collected at a barrier, then handed to
    ``RunState.commit`` together with its siblings.
    """
    entry: TimelineEntry
    summary: ContextSummary
    sub_agent_outputs: Dict[str, str] = field(default_factory=dict)

    @property
    def agent_id(self) -> str:
        return self.entry.agent_id

    @property
    def output(self) -> str:
        return self.entry.output


@dataclass(frozen=True)
class PreviousOutput:
    agent_id: str
    role: str
    output: str


@dataclass(frozen=True)
class RunSnapshot:
    """Point-in-time, read-only view handed to agent turns."""
    user_input: str
    summaries: Tuple[ContextSummary, ...]
    previous_outputs: Tuple[PreviousOutput, ...]
    outputs: Mapping[str, str]


TurnListener = Callable[[TimelineEntry], None]


class RunState:
    """
    Shared store for a single run.

    Invariants:
    - ``outputs[id]`` equals the output of the latest timeline entry for id
    - ``summaries[id]`` always belongs to that same latest output
    - every id in ``outputs``/``summaries`` has at least one timeline entry
    """

    def __init__(self, user_input: str, run_id: Optional[str] = None):
        self._user_input = user_input
        self.run_id = run_id or uuid.uuid4().hex[:12]

        self.outputs: Dict[str, str] = {}
        self.timeline: List[TimelineEntry] = []
        self.summaries: Dict[str, ContextSummary] = {}
        self.sub_agent_outputs: Dict[str, Dict[str, str]] = {}
        self.feedback_iterations: List[FeedbackIteration] = []
        self.revisions: Dict[str, Dict[int, str]] = {}
        self.feedback_outcome: Optional["FeedbackOutcome"] = None

        self._listeners: List[TurnListener] = []
        self._fan_out_count = 0

        logger.info(f"[RunState] Run {self.run_id} initialized ({len(user_input)} chars of user input)")

    @property
    def user_input(self) -> str:
        return self._user_input

    def add_listener(self, listener: TurnListener):
        """Subscribe to committed timeline entries (read-only stream)."""
        self._listeners.append(listener)

    def new_branch_id(self) -> str:
        """Allocate the shared branch id for the next parallel fan-out."""
        self._fan_out_count += 1
        return f"fanout-{self._fan_out_count}"

    def commit(self, turns: Sequence[AgentTurn], revision_iteration: Optional[int] = None):
        """
        Commit a batch of agent turns atomically.

        Args:
            turns: Completed turns, in the order they should appear
            revision_iteration: When set, also record each output under
                ``revisions[agent_id][revision_iteration]``
        """
        for turn in turns:
            if turn.summary.agent_id != turn.agent_id:
                raise ValueError(
                    f"Summary for {turn.summary.agent_id} committed with turn of {turn.agent_id}"
                )

        for turn in turns:
            agent_id = turn.agent_id

            self.timeline.append(turn.entry)
            self.outputs[agent_id] = turn.output

            # Re-insert so a fresh summary takes the most recent position
            self.summaries.pop(agent_id, None)
            self.summaries[agent_id] = turn.summary

            if turn.sub_agent_outputs:
                self.sub_agent_outputs[agent_id] = dict(turn.sub_agent_outputs)

            if revision_iteration is not None:
                self.revisions.setdefault(agent_id, {})[revision_iteration] = turn.output

        logger.debug(
            f"[RunState] Committed {len(turns)} turn(s): "
            f"{', '.join(t.agent_id for t in turns)} (timeline={len(self.timeline)})"
        )

        for turn in turns:
            self._notify(turn.entry)

    def record_feedback(self, feedback_iteration: FeedbackIteration):
        self.feedback_iterations.append(feedback_iteration)

    def snapshot(self) -> RunSnapshot:
        return RunSnapshot(
            user_input=self._user_input,
            summaries=tuple(self.summaries.values()),
            previous_outputs=tuple(self.get_previous_outputs()),
            outputs=dict(self.outputs),
        )

    def get_summaries(self) -> List[ContextSummary]:
        """Summaries ordered from oldest to most recent."""
        return list(self.summaries.values())

    def get_previous_outputs(self) -> List[PreviousOutput]:
        return [
            PreviousOutput(agent_id=e.agent_id, role=e.role, output=e.output)
            for e in self.timeline
        ]

    def get_last_output(self) -> Optional[str]:
        if not self.timeline:
            return None
        return self.timeline[-1].output

    def _notify(self, entry: TimelineEntry):
        for listener in self._listeners:
            try:
                listener(entry)
            except Exception as e:
                logger.warning(
                    f"[RunState] Listener {listener!r} failed on {entry.agent_id}: {e}"
                )
