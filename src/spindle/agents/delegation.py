"""
Sub-agent delegation.

A parent agent with declared sub-agents does not call the model directly.
Instead the coordinator:

1. Plans: which sub-agents run and in which mode. ``sequential`` and
   ``parallel`` strategies are deterministic; ``auto`` asks the parent to
   choose and parses its JSON reply leniently.
2. Executes: sequential mode threads each output into the next sub-agent's
   prompt; parallel mode gives every sub-agent only the parent's context.
3. Synthesizes: one call merges the contributions into the parent's output.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
import json
import time

from ..concurrency import gather_all
from ..llm import LLMClient
from ..logging_config import get_logger
from ..memory import MemoryStore, NullMemoryStore
from ..models import Agent, DelegationStrategy, RelevantMemory, SubAgent
from ..prompts import build_planning_prompt, build_sub_agent_prompt, build_synthesis_prompt
from ..state import RunSnapshot
from ..tools import ToolInvoker, format_results

logger = get_logger("delegation")


class DelegationMode(Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


@dataclass(frozen=True)
class DelegationPlan:
    """
    Validated execution plan: Sequential(ids) or Parallel(ids).

    ``sub_agent_ids`` only ever holds ids declared on the parent.
    """
    mode: DelegationMode
    sub_agent_ids: Tuple[str, ...]
    reason: str = ""
    fallback: bool = False

    @classmethod
    def sequential(cls, ids, reason: str = "", fallback: bool = False) -> "DelegationPlan":
        return cls(DelegationMode.SEQUENTIAL, tuple(ids), reason, fallback)

    @classmethod
    def parallel(cls, ids, reason: str = "") -> "DelegationPlan":
        return cls(DelegationMode.PARALLEL, tuple(ids), reason)


@dataclass
class DelegationResult:
    output: str
    sub_agent_outputs: Dict[str, str] = field(default_factory=dict)
    plan: Optional[DelegationPlan] = None


def _first_json_object(text: str) -> Optional[Dict[str, Any]]:
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            value, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict):
            return value
        start = text.find("{", start + 1)
    return None


def parse_plan(reply: str, parent: Agent) -> DelegationPlan:
    """
    Parse an auto-delegation reply into a plan. Never raises.

    Unknown and duplicate ids are dropped. A reply with no JSON object, or
    one selecting no valid sub-agent, falls back to every declared
    sub-agent in sequence.
    """
    declared = [sub_agent.id for sub_agent in parent.sub_agents]

    def fallback(why: str) -> DelegationPlan:
        logger.warning(f"[Delegation] {parent.id}: {why}, using all sub-agents sequentially")
        return DelegationPlan.sequential(
            declared, reason="Fallback: using all sub-agents", fallback=True
        )

    data = _first_json_object(reply or "")
    if data is None:
        return fallback("no JSON plan in reply")

    requested = data.get("sub_agents")
    if not isinstance(requested, list):
        return fallback("plan has no sub_agents list")

    selected: List[str] = []
    for sub_agent_id in requested:
        if isinstance(sub_agent_id, str) and sub_agent_id in declared and sub_agent_id not in selected:
            selected.append(sub_agent_id)
        elif sub_agent_id not in selected:
            logger.debug(f"[Delegation] {parent.id}: dropping unknown sub-agent {sub_agent_id!r}")

    if not selected:
        return fallback("plan selected no declared sub-agents")

    reason = data.get("reason")
    reason = reason if isinstance(reason, str) and reason else "No reason provided"

    sequence = data.get("sequence")
    if isinstance(sequence, str) and sequence.strip().lower() == DelegationMode.PARALLEL.value:
        return DelegationPlan.parallel(selected, reason)
    return DelegationPlan.sequential(selected, reason)


class SubAgentCoordinator:
    """
    Plans, runs and synthesizes a parent agent's sub-agents.

    Model failures in planning, sub-agent turns or synthesis propagate
    unchanged; only plan parsing and memory lookups degrade.
    """

    def __init__(
        self,
        llm: LLMClient,
        tool_invoker: Optional[ToolInvoker] = None,
        memory: Optional[MemoryStore] = None,
        temperature: float = 0.2,
        memory_top_k: int = 3
    ):
        self.llm = llm
        self.tool_invoker = tool_invoker
        self.memory = memory or NullMemoryStore()
        self.temperature = temperature
        self.memory_top_k = memory_top_k

    async def plan(self, parent: Agent, snapshot: RunSnapshot) -> DelegationPlan:
        declared = [sub_agent.id for sub_agent in parent.sub_agents]
        strategy = parent.delegation_strategy

        if strategy == DelegationStrategy.SEQUENTIAL:
            return DelegationPlan.sequential(declared, "Sequential delegation strategy")
        if strategy == DelegationStrategy.PARALLEL:
            return DelegationPlan.parallel(declared, "Parallel delegation strategy")

        logger.info(f"[Delegation] Planning for {parent.id} ({len(declared)} sub-agents available)")
        prompt = build_planning_prompt(parent, snapshot.user_input, snapshot.summaries)
        reply = await self.llm.generate(prompt.system, prompt.user, self.temperature)
        return parse_plan(reply, parent)

    async def execute(
        self,
        parent: Agent,
        plan: DelegationPlan,
        snapshot: RunSnapshot
    ) -> Dict[str, str]:
        """
        Run the planned sub-agents.

        Returns:
            sub-agent id -> output, in plan order
        """
        sub_agents = [parent.get_sub_agent(sub_agent_id) for sub_agent_id in plan.sub_agent_ids]
        sub_agents = [sub_agent for sub_agent in sub_agents if sub_agent is not None]

        if plan.mode == DelegationMode.PARALLEL:
            logger.info(f"[Delegation] {parent.id}: {len(sub_agents)} sub-agents in parallel")
            results = await gather_all([
                self._run_sub_agent(sub_agent, parent, snapshot, {})
                for sub_agent in sub_agents
            ])
            return {sub_agent.id: output for sub_agent, output in zip(sub_agents, results)}

        outputs: Dict[str, str] = {}
        for position, sub_agent in enumerate(sub_agents, 1):
            logger.info(
                f"[Delegation] {parent.id}: sub-agent {position}/{len(sub_agents)} {sub_agent.id}"
            )
            outputs[sub_agent.id] = await self._run_sub_agent(
                sub_agent, parent, snapshot, dict(outputs)
            )
        return outputs

    async def synthesize(
        self,
        parent: Agent,
        sub_agent_outputs: Dict[str, str],
        user_input: str
    ) -> str:
        logger.info(f"[Delegation] {parent.id}: synthesizing {len(sub_agent_outputs)} contributions")
        prompt = build_synthesis_prompt(parent, user_input, sub_agent_outputs)
        return await self.llm.generate(prompt.system, prompt.user, self.temperature)

    async def run(self, parent: Agent, snapshot: RunSnapshot) -> DelegationResult:
        """Plan, execute and synthesize; the result is the parent's output."""
        plan = await self.plan(parent, snapshot)
        logger.info(
            f"[Delegation] {parent.id}: {plan.mode.value} plan "
            f"[{', '.join(plan.sub_agent_ids)}] ({plan.reason})"
        )
        sub_agent_outputs = await self.execute(parent, plan, snapshot)
        output = await self.synthesize(parent, sub_agent_outputs, snapshot.user_input)
        return DelegationResult(output=output, sub_agent_outputs=sub_agent_outputs, plan=plan)

    async def _run_sub_agent(
        self,
        sub_agent: SubAgent,
        parent: Agent,
        snapshot: RunSnapshot,
        previous_sub_outputs: Dict[str, str]
    ) -> str:
        start = time.time()

        tool_output = None
        if sub_agent.tools and self.tool_invoker is not None:
            results = await self.tool_invoker.invoke_tools(
                sub_agent.tools, snapshot.user_input, snapshot.previous_outputs
            )
            tool_output = format_results(results)

        memories: List[RelevantMemory] = []
        if parent.enable_persistent_memory:
            memories = await self._recall(f"{sub_agent.role}: {sub_agent.goal}", sub_agent.id)

        prompt = build_sub_agent_prompt(
            sub_agent,
            parent,
            snapshot.user_input,
            previous_sub_outputs,
            tool_output=tool_output,
            memories=memories
        )
        output = await self.llm.generate(prompt.system, prompt.user, self.temperature)

        logger.debug(
            f"[Delegation] Sub-agent {sub_agent.id} done in {time.time() - start:.2f}s "
            f"({len(output)} chars)"
        )
        return output

    async def _recall(self, text: str, sub_agent_id: str) -> List[RelevantMemory]:
        try:
            return await self.memory.query(text, self.memory_top_k)
        except Exception as e:
            logger.warning(f"[Delegation] Memory lookup failed for {sub_agent_id}: {e}")
            return []
