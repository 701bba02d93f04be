"""Agent registry and sub-agent delegation."""

from .delegation import (
    DelegationMode,
    DelegationPlan,
    DelegationResult,
    SubAgentCoordinator,
    parse_plan,
)
from .registry import AgentRegistry

__all__ = [
    "AgentRegistry",
    "DelegationMode",
    "DelegationPlan",
    "DelegationResult",
    "SubAgentCoordinator",
    "parse_plan",
]
