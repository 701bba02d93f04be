"""
Workflow Engine - top-level dispatcher.

Integrates all components:
- Sequential, parallel and iterative-feedback executors
- Context compression (summarizer, optional selector)
- Sub-agent delegation
- Optional tools and persistent memory

Topology plus feedback configuration selects exactly one executor:
sequential workflow -> SequentialExecutor; parallel with an enabled feedback
loop -> IterativeFeedbackExecutor; any other parallel -> ParallelExecutor.
"""

from dataclasses import dataclass
from typing import Iterable, Optional
import time

from .agents.delegation import SubAgentCoordinator
from .agents.registry import AgentRegistry
from .context.selector import ContextSelector
from .context.summarizer import ContextSummarizer
from .executors.base import AgentTurnRunner
from .executors.iterative import IterativeFeedbackExecutor
from .executors.parallel import ParallelExecutor
from .executors.sequential import SequentialExecutor
from .llm import LLMClient
from .logging_config import get_logger
from .memory import MemoryStore, NullMemoryStore
from .models import ParallelWorkflow, SequentialWorkflow, WorkflowConfig
from .state import RunState, TurnListener
from .tools import ToolInvoker

logger = get_logger("engine")


@dataclass
class EngineConfig:
    """Configuration for the workflow engine."""
    # Model temperatures
    temperature: float = 0.2
    summary_temperature: float = 0.3

    # Context selection (None = every committed summary)
    max_context_items: Optional[int] = None

    # Persistent memory lookups
    memory_top_k: int = 5
    sub_agent_memory_top_k: int = 3


class WorkflowEngine:
    """
    Runs one validated workflow against a RunState.

    Example:
        ```python
        engine = WorkflowEngine(AnthropicClient())
        state = await engine.run(load_config("workflow.yaml"), RunState("Build a todo app"))
        print(state.get_last_output())
        ```
    """

    def __init__(
        self,
        llm: LLMClient,
        config: Optional[EngineConfig] = None,
        tool_invoker: Optional[ToolInvoker] = None,
        memory: Optional[MemoryStore] = None,
        summarizer: Optional[ContextSummarizer] = None,
        listeners: Iterable[TurnListener] = ()
    ):
        """
        Initialize workflow engine.

        Args:
            llm: Model client used for every agent, planning and summary call
            config: Engine configuration (defaults applied when omitted)
            tool_invoker: Tool registry for agents that declare tools
            memory: Persistent memory (no-op store when omitted)
            summarizer: Shared summarizer (one per engine keeps its cache warm)
            listeners: Callbacks receiving every committed TimelineEntry
        """
        self.llm = llm
        self.config = config or EngineConfig()
        self.tool_invoker = tool_invoker
        self.memory = memory or NullMemoryStore()
        self.summarizer = summarizer or ContextSummarizer(
            llm, temperature=self.config.summary_temperature
        )
        self.selector = ContextSelector()
        self.listeners = list(listeners)

    def _build_runner(self, workflow_config: WorkflowConfig) -> AgentTurnRunner:
        coordinator = SubAgentCoordinator(
            self.llm,
            tool_invoker=self.tool_invoker,
            memory=self.memory,
            temperature=self.config.temperature,
            memory_top_k=self.config.sub_agent_memory_top_k
        )
        return AgentTurnRunner(
            registry=AgentRegistry(workflow_config.agents),
            llm=self.llm,
            summarizer=self.summarizer,
            coordinator=coordinator,
            tool_invoker=self.tool_invoker,
            memory=self.memory,
            selector=self.selector,
            temperature=self.config.temperature,
            max_context_items=self.config.max_context_items,
            memory_top_k=self.config.memory_top_k
        )

    async def run(self, workflow_config: WorkflowConfig, state: RunState) -> RunState:
        """
        Execute the workflow, mutating and returning ``state``.

        Raises:
            AgentNotFoundError: A step references an unknown agent
            Exception: Model-call failures, unchanged
        """
        for listener in self.listeners:
            state.add_listener(listener)

        runner = self._build_runner(workflow_config)
        workflow = workflow_config.workflow
        start = time.time()

        if isinstance(workflow, SequentialWorkflow):
            logger.info(f"[Engine] Run {state.run_id}: sequential workflow")
            await SequentialExecutor(runner).run(workflow, state)
        elif isinstance(workflow, ParallelWorkflow):
            parallel = ParallelExecutor(runner)
            if workflow.has_feedback_loop:
                logger.info(f"[Engine] Run {state.run_id}: parallel workflow with feedback loop")
                await IterativeFeedbackExecutor(runner, parallel).run(workflow, state)
            else:
                logger.info(f"[Engine] Run {state.run_id}: parallel workflow")
                await parallel.run(workflow, state)
        else:
            raise TypeError(f"Unsupported workflow type: {type(workflow).__name__}")

        logger.info(
            f"[Engine] Run {state.run_id} complete in {time.time() - start:.2f}s "
            f"({len(state.timeline)} agent turns)"
        )
        return state


async def run_workflow(
    workflow_config: WorkflowConfig,
    user_input: str,
    llm: LLMClient,
    config: Optional[EngineConfig] = None,
    tool_invoker: Optional[ToolInvoker] = None,
    memory: Optional[MemoryStore] = None,
    listeners: Iterable[TurnListener] = ()
) -> RunState:
    """
    Create a RunState for ``user_input`` and run the workflow on it.

    Returns:
        The completed RunState
    """
    engine = WorkflowEngine(
        llm,
        config=config,
        tool_invoker=tool_invoker,
        memory=memory,
        listeners=listeners
    )
    return await engine.run(workflow_config, RunState(user_input))
