"""
Iterative Feedback Executor - bounded review/revise loop around a fan-out.

State machine::

    INITIAL --fan-out--> REVIEW
    REVIEW  --approved--> APPROVED                      (terminal)
    REVIEW  --rejected, iteration < max--> REVISE --> REVIEW (iteration + 1)
    REVIEW  --rejected, iteration == max--> EXHAUSTED   (terminal)

The loop runs at most ``max_iterations`` reviews, whatever the reviewer says.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional

from ..concurrency import gather_all
from ..feedback import FeedbackProcessor, FeedbackResult
from ..logging_config import get_logger
from ..models import Agent, FeedbackLoopConfig, ParallelWorkflow, RelevantMemory
from ..prompts import build_review_prompt, build_revision_prompt
from ..state import AgentTurn, FeedbackIteration, PreviousOutput, RunState
from .base import AgentTurnRunner
from .parallel import ParallelExecutor

logger = get_logger("iterative")

MISSING_FEEDBACK = "Please review and improve your output."


class FeedbackState(Enum):
    INITIAL = "initial"
    REVIEW = "review"
    REVISE = "revise"
    APPROVED = "approved"
    EXHAUSTED = "exhausted"

    @property
    def is_terminal(self) -> bool:
        return self in (FeedbackState.APPROVED, FeedbackState.EXHAUSTED)


@dataclass
class FeedbackOutcome:
    """How a feedback loop ended. Non-convergence is a result, not an error."""
    approved: bool
    iterations: int
    final_state: FeedbackState
    final_outputs: Dict[str, str] = field(default_factory=dict)


class IterativeFeedbackExecutor:

    def __init__(
        self,
        runner: AgentTurnRunner,
        parallel: ParallelExecutor,
        processor: Optional[FeedbackProcessor] = None
    ):
        self.runner = runner
        self.parallel = parallel
        self.processor = processor or FeedbackProcessor()

    async def run(self, workflow: ParallelWorkflow, state: RunState) -> RunState:
        loop = workflow.feedback_loop
        phase = FeedbackState.INITIAL
        logger.info(
            f"[Feedback] Starting loop: reviewer={workflow.aggregator} "
            f"targets=[{', '.join(loop.feedback_targets)}] max_iterations={loop.max_iterations}"
        )

        await self.parallel.fan_out(workflow.branches, state)
        phase = self._transition(phase, FeedbackState.REVIEW)

        iteration = 1
        feedback: Mapping[str, str] = {}
        while not phase.is_terminal:
            if phase == FeedbackState.REVIEW:
                result = await self._review(workflow, loop, state, iteration)
                feedback = result.feedback

                if result.approved:
                    logger.info(f"[Feedback] Approved at iteration {iteration}")
                    phase = self._transition(phase, FeedbackState.APPROVED)
                elif iteration >= loop.max_iterations:
                    logger.warning(
                        f"[Feedback] Max iterations ({loop.max_iterations}) reached without approval"
                    )
                    phase = self._transition(phase, FeedbackState.EXHAUSTED)
                else:
                    phase = self._transition(phase, FeedbackState.REVISE)

            elif phase == FeedbackState.REVISE:
                await self._revise(loop, state, feedback, iteration)
                iteration += 1
                phase = self._transition(phase, FeedbackState.REVIEW)

        state.feedback_outcome = FeedbackOutcome(
            approved=phase == FeedbackState.APPROVED,
            iterations=iteration,
            final_state=phase,
            final_outputs={
                agent_id: state.outputs[agent_id]
                for agent_id in workflow.branches
                if agent_id in state.outputs
            },
        )
        logger.info(
            f"[Feedback] Complete: {phase.value} after {iteration} iteration(s)"
        )
        return state

    async def _review(
        self,
        workflow: ParallelWorkflow,
        loop: FeedbackLoopConfig,
        state: RunState,
        iteration: int
    ) -> FeedbackResult:
        branch_outputs = self._branch_outputs(workflow, state)

        def review_prompt(reviewer: Agent, memories: List[RelevantMemory]):
            return build_review_prompt(
                reviewer,
                state.user_input,
                branch_outputs,
                iteration,
                loop.approval_keyword,
                memories
            )

        logger.info(f"[Feedback] Review {iteration}/{loop.max_iterations} by {workflow.aggregator}")
        turn = await self.runner.run_turn(
            workflow.aggregator,
            state.snapshot(),
            prompt_builder=review_prompt,
            is_aggregator=True,
            iteration=iteration
        )
        state.commit([turn])
        await self.runner.remember([turn], state)

        result = self.processor.process(turn.output, loop.feedback_targets, loop.approval_keyword)
        state.record_feedback(FeedbackIteration(
            iteration=iteration,
            reviewer_output=turn.output,
            approved=result.approved,
            feedback=dict(result.feedback),
        ))
        return result

    async def _revise(
        self,
        loop: FeedbackLoopConfig,
        state: RunState,
        feedback: Mapping[str, str],
        iteration: int
    ) -> List[AgentTurn]:
        """Revise every feedback target concurrently, then commit together."""
        snapshot = state.snapshot()
        branch_id = f"revision-{iteration}"
        targets = list(dict.fromkeys(loop.feedback_targets))
        logger.info(f"[Feedback] Revision round {iteration}: [{', '.join(targets)}]")

        def revision_prompt(agent_id: str):
            previous_output = snapshot.outputs.get(agent_id, "")
            agent_feedback = feedback.get(agent_id) or MISSING_FEEDBACK

            def build(agent: Agent, memories: List[RelevantMemory]):
                return build_revision_prompt(
                    agent, snapshot.user_input, previous_output, agent_feedback, iteration, memories
                )
            return build

        turns = await gather_all([
            self.runner.run_turn(
                agent_id,
                snapshot,
                prompt_builder=revision_prompt(agent_id),
                branch_id=branch_id,
                branch_index=index,
                iteration=iteration
            )
            for index, agent_id in enumerate(targets, 1)
        ])

        state.commit(turns, revision_iteration=iteration)
        await self.runner.remember(turns, state)
        return turns

    def _branch_outputs(self, workflow: ParallelWorkflow, state: RunState) -> List[PreviousOutput]:
        outputs = []
        for agent_id in workflow.branches:
            if agent_id not in state.outputs:
                continue
            role = self.runner.registry.get(agent_id).role
            outputs.append(PreviousOutput(agent_id=agent_id, role=role, output=state.outputs[agent_id]))
        return outputs

    @staticmethod
    def _transition(current: FeedbackState, target: FeedbackState) -> FeedbackState:
        logger.debug(f"[Feedback] {current.value} -> {target.value}")
        return target
