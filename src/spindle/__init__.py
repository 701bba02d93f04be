"""
Spindle - declarative multi-agent workflow engine.

Runs a set of named agents (role + goal + optional sub-agents) against a
language model, in an order set by the workflow topology:
- Sequential: steps run one after another
- Parallel: branches fan out concurrently, one aggregator fans in
- Iterative feedback: parallel branches revised until a reviewer approves
  or the iteration limit is reached

Agents see each other's work as compressed summaries, not raw output.

Usage:
    from spindle import AnthropicClient, load_config, run_workflow

    state = await run_workflow(
        load_config("workflow.yaml"),
        "Build a REST API for a todo app",
        AnthropicClient(),
    )
    print(state.get_last_output())
"""

from .config import load_config, parse_config
from .engine import EngineConfig, WorkflowEngine, run_workflow
from .errors import (
    AgentNotFoundError,
    CircuitOpenError,
    ConfigError,
    SchemaValidationError,
    SemanticValidationError,
    SpindleError,
)
from .executors import FeedbackOutcome, FeedbackState
from .feedback import FeedbackProcessor, FeedbackResult
from .llm import AnthropicClient, CircuitBreaker, LLMClient
from .memory import MemoryEntry, MemoryStore, MnemosyneMemoryStore, NullMemoryStore
from .models import (
    Agent,
    ContextSummary,
    DelegationStrategy,
    FeedbackLoopConfig,
    ParallelWorkflow,
    RelevantMemory,
    SequentialWorkflow,
    SubAgent,
    WorkflowConfig,
)
from .state import RunState, TimelineEntry
from .tools import ToolInvoker, ToolResult

__version__ = "0.1.0"

__all__ = [
    # Engine
    "WorkflowEngine",
    "EngineConfig",
    "run_workflow",
    "RunState",
    "TimelineEntry",
    "FeedbackOutcome",
    "FeedbackState",
    "FeedbackProcessor",
    "FeedbackResult",
    # Configuration
    "load_config",
    "parse_config",
    "Agent",
    "SubAgent",
    "DelegationStrategy",
    "FeedbackLoopConfig",
    "SequentialWorkflow",
    "ParallelWorkflow",
    "WorkflowConfig",
    "ContextSummary",
    "RelevantMemory",
    # Collaborators
    "LLMClient",
    "AnthropicClient",
    "CircuitBreaker",
    "ToolInvoker",
    "ToolResult",
    "MemoryStore",
    "MemoryEntry",
    "NullMemoryStore",
    "MnemosyneMemoryStore",
    # Errors
    "SpindleError",
    "ConfigError",
    "SchemaValidationError",
    "SemanticValidationError",
    "AgentNotFoundError",
    "CircuitOpenError",
]
