"""Agent lookup by id."""

from typing import Dict, Iterable, Iterator, List

from ..errors import AgentNotFoundError
from ..models import Agent


class AgentRegistry:
    """
    Read-only id -> Agent map for one workflow.

    Raises AgentNotFoundError (fatal) for unknown ids, so a bad reference
    fails the run instead of silently skipping a step.
    """

    def __init__(self, agents: Iterable[Agent]):
        self._agents: Dict[str, Agent] = {}
        for agent in agents:
            if agent.id in self._agents:
                raise ValueError(f"Duplicate agent id: {agent.id}")
            self._agents[agent.id] = agent

    def get(self, agent_id: str) -> Agent:
        try:
            return self._agents[agent_id]
        except KeyError:
            raise AgentNotFoundError(agent_id, self._agents) from None

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    def __iter__(self) -> Iterator[Agent]:
        return iter(self._agents.values())

    def __len__(self) -> int:
        return len(self._agents)

    @property
    def ids(self) -> List[str]:
        return list(self._agents)
