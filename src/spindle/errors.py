"""
Error types with actionable context.

Configuration problems carry details and recovery suggestions so the CLI
can print a readable report. Model-call failures are never wrapped here:
they propagate to the caller exactly as the client raised them.
"""

from typing import Iterable, List, Optional

RULE = "══════════════════════════════════════════════════════════════"


class SpindleError(Exception):
    """Base class for errors raised by the workflow engine."""


class ConfigError(SpindleError):
    """Invalid, unreadable or inconsistent workflow configuration."""

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        suggestions: Iterable[str] = ()
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        self.suggestions: List[str] = list(suggestions)

    def format(self) -> str:
        """Format error as a human-readable report."""
        parts = [
            f"╔{RULE}",
            f"║ {type(self).__name__}: {self.message}",
        ]

        if self.details:
            parts.append(f"╠{RULE}")
            parts.append("║ Details:")
            for line in self.details.splitlines():
                parts.append(f"║   {line}")

        if self.suggestions:
            parts.append(f"╠{RULE}")
            parts.append("║ Suggestions:")
            for suggestion in self.suggestions:
                parts.append(f"║   → {suggestion}")

        parts.append(f"╚{RULE}")

        return "\n".join(parts)


class SchemaValidationError(ConfigError):
    """Configuration does not match the expected structure."""

    def __init__(self, issues: List[str], suggestions: Iterable[str] = ()):
        super().__init__(
            "Your configuration file has validation errors",
            "\n".join(f"• {issue}" for issue in issues),
            suggestions
        )
        self.issues = issues


class SemanticValidationError(ConfigError):
    """Configuration is well-formed but references are inconsistent."""

    def __init__(self, issues: List[str], suggestions: Iterable[str] = ()):
        message = issues[0] if len(issues) == 1 else f"{len(issues)} semantic errors in workflow"
        super().__init__(
            message,
            "\n".join(f"• {issue}" for issue in issues),
            suggestions
        )
        self.issues = issues


class AgentNotFoundError(SpindleError, KeyError):
    """A workflow referenced an agent id that is not registered."""

    def __init__(self, agent_id: str, available: Iterable[str] = ()):
        self.agent_id = agent_id
        self.available = sorted(available)
        super().__init__(
            f"Agent not found in registry: {agent_id} "
            f"(available: {', '.join(self.available) or 'none'})"
        )

    def __str__(self) -> str:
        return self.args[0]


class CircuitOpenError(SpindleError):
    """The model client is refusing calls after repeated failures."""
