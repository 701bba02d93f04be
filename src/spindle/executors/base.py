"""
Agent turn runner shared by every executor.

A turn is: resolve the agent, gather context (tools, persistent memory,
prior summaries), call the model or delegate to sub-agents, then summarize.
The result is an uncommitted ``AgentTurn``; the calling executor decides
when it becomes visible in RunState.
"""

from typing import Callable, List, Optional, Sequence
import time

from ..agents.delegation import SubAgentCoordinator
from ..agents.registry import AgentRegistry
from ..context.selector import ContextSelector
from ..context.summarizer import ContextSummarizer, fallback_summary
from ..llm import LLMClient
from ..logging_config import get_logger
from ..memory import MemoryEntry, MemoryStore, NullMemoryStore
from ..models import Agent, ContextSummary, RelevantMemory
from ..prompts import Prompt, build_agent_prompt
from ..state import AgentTurn, RunSnapshot, RunState, TimelineEntry
from ..tools import ToolInvoker, format_results

logger = get_logger("turns")

# Custom prompts (review, revision) receive the agent and its recalled memories
PromptBuilder = Callable[[Agent, List[RelevantMemory]], Prompt]


class AgentTurnRunner:
    """
    Executes single agent turns against a point-in-time snapshot.

    Only the model call (and sub-agent delegation) can fail a turn.
    Summarization and memory lookups degrade to safe defaults.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        llm: LLMClient,
        summarizer: ContextSummarizer,
        coordinator: Optional[SubAgentCoordinator] = None,
        tool_invoker: Optional[ToolInvoker] = None,
        memory: Optional[MemoryStore] = None,
        selector: Optional[ContextSelector] = None,
        temperature: float = 0.2,
        max_context_items: Optional[int] = None,
        memory_top_k: int = 5
    ):
        self.registry = registry
        self.llm = llm
        self.summarizer = summarizer
        self.tool_invoker = tool_invoker
        self.memory = memory or NullMemoryStore()
        self.coordinator = coordinator or SubAgentCoordinator(
            llm, tool_invoker=tool_invoker, memory=self.memory, temperature=temperature
        )
        self.selector = selector or ContextSelector()
        self.temperature = temperature
        self.max_context_items = max_context_items
        self.memory_top_k = memory_top_k

    async def run_turn(
        self,
        agent_id: str,
        snapshot: RunSnapshot,
        prompt_builder: Optional[PromptBuilder] = None,
        branch_id: Optional[str] = None,
        branch_index: Optional[int] = None,
        is_aggregator: bool = False,
        iteration: Optional[int] = None,
        select_context: bool = True
    ) -> AgentTurn:
        """
        Run one agent turn.

        Args:
            agent_id: Agent to invoke
            snapshot: Read-only view of the run before this turn
            prompt_builder: Overrides the standard prompt (review/revision);
                such turns never delegate to sub-agents
            branch_id: Shared id of the fan-out this turn belongs to
            branch_index: 1-based position within the fan-out
            is_aggregator: Marks aggregator/reviewer turns
            iteration: Feedback-loop iteration number
            select_context: Apply max_context_items selection; aggregators
                pass False so every branch summary reaches them

        Returns:
            Uncommitted AgentTurn

        Raises:
            AgentNotFoundError: Unknown agent id
            Exception: Any model-call failure, unchanged
        """
        agent = self.registry.get(agent_id)
        started_at = time.time()
        sub_agent_outputs = {}

        if prompt_builder is not None:
            memories = await self.recall(agent)
            prompt = prompt_builder(agent, memories)
            output = await self.llm.generate(prompt.system, prompt.user, self.temperature)
        elif agent.has_sub_agents:
            logger.info(f"[Turn] {agent.id} delegating to {len(agent.sub_agents)} sub-agent(s)")
            result = await self.coordinator.run(agent, snapshot)
            output = result.output
            sub_agent_outputs = result.sub_agent_outputs
        else:
            prompt = await self.build_prompt(agent, snapshot, select_context)
            output = await self.llm.generate(prompt.system, prompt.user, self.temperature)

        ended_at = time.time()
        logger.info(f"[Turn] {agent.id} completed in {ended_at - started_at:.2f}s ({len(output)} chars)")

        summary = await self.summarize(output, agent)

        entry = TimelineEntry(
            agent_id=agent.id,
            role=agent.role,
            output=output,
            started_at=started_at,
            ended_at=ended_at,
            branch_id=branch_id,
            branch_index=branch_index,
            is_aggregator=is_aggregator,
            iteration=iteration,
        )
        return AgentTurn(entry=entry, summary=summary, sub_agent_outputs=sub_agent_outputs)

    async def build_prompt(
        self,
        agent: Agent,
        snapshot: RunSnapshot,
        select_context: bool = True
    ) -> Prompt:
        """Standard prompt: user input, memories, tool output, prior summaries."""
        summaries: Sequence[ContextSummary] = snapshot.summaries
        if select_context and self.max_context_items is not None:
            summaries = self.selector.select(agent, summaries, self.max_context_items)

        tool_output = None
        if agent.tools:
            if self.tool_invoker is None:
                logger.debug(f"[Turn] {agent.id} declares tools but no invoker is configured")
            else:
                results = await self.tool_invoker.invoke_tools(
                    agent.tools, snapshot.user_input, snapshot.previous_outputs
                )
                tool_output = format_results(results)

        memories = await self.recall(agent)

        return build_agent_prompt(
            agent,
            snapshot.user_input,
            summaries=summaries,
            tool_output=tool_output,
            memories=memories
        )

    async def recall(self, agent: Agent) -> List[RelevantMemory]:
        if not agent.enable_persistent_memory:
            return []
        try:
            memories = await self.memory.query(f"{agent.role}: {agent.goal}", self.memory_top_k)
        except Exception as e:
            logger.warning(f"[Turn] Memory query failed for {agent.id}, continuing without: {e}")
            return []
        if memories:
            logger.info(f"[Turn] {agent.id}: {len(memories)} relevant memories")
        return memories

    async def summarize(self, output: str, agent: Agent) -> ContextSummary:
        try:
            return await self.summarizer.summarize(output, agent.id, agent.role)
        except Exception as e:
            logger.error(f"[Turn] Summarizer raised for {agent.id}, using fallback: {e}")
            return fallback_summary(agent.id, agent.role, output)

    async def remember(self, turns: Sequence[AgentTurn], state: RunState):
        """Store committed turns of memory-enabled agents. Never raises."""
        for turn in turns:
            agent = self.registry.get(turn.agent_id)
            if not agent.enable_persistent_memory:
                continue

            metadata = {"duration": turn.entry.duration}
            if turn.entry.iteration is not None:
                metadata["iteration"] = turn.entry.iteration
            if turn.entry.branch_id is not None:
                metadata["branch_id"] = turn.entry.branch_id
                metadata["branch_index"] = turn.entry.branch_index
            if turn.entry.is_aggregator:
                metadata["is_aggregator"] = True

            entry = MemoryEntry(
                agent_id=agent.id,
                role=agent.role,
                content=turn.output,
                key_insights=list(turn.summary.key_insights),
                decisions=list(turn.summary.decisions),
                artifacts=list(turn.summary.artifacts),
                workflow_id=state.run_id,
                metadata=metadata,
            )
            try:
                await self.memory.store(entry)
            except Exception as e:
                logger.warning(f"[Turn] Memory store skipped for {agent.id}: {e}")
