"""Sequential Executor - steps run strictly one after another."""

from ..logging_config import get_logger
from ..models import SequentialWorkflow
from ..state import RunState
from .base import AgentTurnRunner

logger = get_logger("sequential")


class SequentialExecutor:
    """
    Step k sees the summaries of steps 1..k-1 and nothing later.

    Each step's snapshot is taken after the previous step's commit, so
    ordering needs no extra synchronization.
    """

    def __init__(self, runner: AgentTurnRunner):
        self.runner = runner

    async def run(self, workflow: SequentialWorkflow, state: RunState) -> RunState:
        total = len(workflow.steps)
        logger.info(f"[Sequential] Starting {total} step(s): {' -> '.join(workflow.steps)}")

        for position, agent_id in enumerate(workflow.steps, 1):
            logger.info(f"[Sequential] Step {position}/{total}: {agent_id}")
            turn = await self.runner.run_turn(agent_id, state.snapshot())
            state.commit([turn])
            await self.runner.remember([turn], state)

        logger.info(f"[Sequential] Complete ({len(state.timeline)} timeline entries)")
        return state
