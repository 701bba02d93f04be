"""
Parallel Executor - concurrent fan-out, barrier, then one aggregator.

Every branch reads the same pre-fan-out snapshot. Nothing is committed
until all branches finished; one failing branch cancels its siblings and
fails the whole fan-out with RunState untouched.
"""

from typing import List, Sequence
import time

from ..concurrency import gather_all
from ..logging_config import get_logger
from ..models import ParallelWorkflow
from ..state import AgentTurn, RunState
from .base import AgentTurnRunner

logger = get_logger("parallel")


class ParallelExecutor:

    def __init__(self, runner: AgentTurnRunner):
        self.runner = runner

    async def fan_out(self, branches: Sequence[str], state: RunState) -> List[AgentTurn]:
        """
        Run all branches concurrently and commit them together.

        Returns:
            Committed branch turns, in branch order
        """
        snapshot = state.snapshot()
        branch_id = state.new_branch_id()
        start = time.time()
        logger.info(f"[Parallel] Fan-out {branch_id}: {len(branches)} branch(es) [{', '.join(branches)}]")

        turns = await gather_all([
            self.runner.run_turn(
                agent_id,
                snapshot,
                branch_id=branch_id,
                branch_index=index
            )
            for index, agent_id in enumerate(branches, 1)
        ])

        state.commit(turns)
        await self.runner.remember(turns, state)

        logger.info(f"[Parallel] Fan-out {branch_id} committed after {time.time() - start:.2f}s")
        return turns

    async def aggregate(self, aggregator: str, state: RunState) -> AgentTurn:
        """Run the aggregator against every summary committed so far, unselected."""
        logger.info(f"[Parallel] Aggregator: {aggregator}")
        turn = await self.runner.run_turn(
            aggregator, state.snapshot(), is_aggregator=True, select_context=False
        )
        state.commit([turn])
        await self.runner.remember([turn], state)
        return turn

    async def run(self, workflow: ParallelWorkflow, state: RunState) -> RunState:
        await self.fan_out(workflow.branches, state)
        await self.aggregate(workflow.aggregator, state)
        logger.info(f"[Parallel] Complete ({len(state.timeline)} timeline entries)")
        return state
