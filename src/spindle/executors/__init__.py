"""
Workflow executors.

- SequentialExecutor: steps strictly in order
- ParallelExecutor: concurrent fan-out, barrier commit, aggregator
- IterativeFeedbackExecutor: bounded review/revise loop
"""

from .base import AgentTurnRunner
from .iterative import FeedbackOutcome, FeedbackState, IterativeFeedbackExecutor
from .parallel import ParallelExecutor
from .sequential import SequentialExecutor

__all__ = [
    "AgentTurnRunner",
    "SequentialExecutor",
    "ParallelExecutor",
    "IterativeFeedbackExecutor",
    "FeedbackOutcome",
    "FeedbackState",
]
