"""
Workflow configuration loading.

YAML file -> raw mapping -> schema validation -> immutable models ->
semantic validation. Every failure is a ConfigError subclass carrying
details and suggestions for the CLI report.
"""

from pathlib import Path
from typing import Any, Dict, Union

import yaml

from .errors import ConfigError, SchemaValidationError, SemanticValidationError
from .logging_config import get_logger
from .models import (
    Agent,
    DelegationStrategy,
    FeedbackLoopConfig,
    MemorySettings,
    ParallelWorkflow,
    SequentialWorkflow,
    SubAgent,
    Workflow,
    WorkflowConfig,
)
from .validation import validate_schema, validate_workflow

logger = get_logger("config")

EXAMPLE_CONFIG = """\
agents:
  - id: researcher
    role: Researcher
    goal: Gather the facts
workflow:
  type: sequential
  steps:
    - agent: researcher"""


def load_config(path: Union[str, Path]) -> WorkflowConfig:
    """
    Load and validate a workflow configuration file.

    Args:
        path: Path to a YAML workflow file

    Returns:
        Validated WorkflowConfig

    Raises:
        ConfigError: File missing, unreadable, empty or not YAML
        SchemaValidationError: Structure does not match the schema
        SemanticValidationError: Agent references are inconsistent
    """
    path = Path(path)

    if not path.exists():
        raise ConfigError(
            f"Configuration file not found: {path}",
            suggestions=[
                "Check the path (relative paths resolve from the current directory)",
                f"Current directory: {Path.cwd()}",
            ]
        )
    if path.is_dir():
        raise ConfigError(
            f"Configuration path is a directory: {path}",
            suggestions=["Pass the workflow YAML file, not its directory"]
        )

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(
            f"Cannot read configuration file: {path}",
            details=str(e),
            suggestions=["Check file permissions and encoding (UTF-8 expected)"]
        ) from e

    if not text.strip():
        raise ConfigError(
            f"Configuration file is empty: {path}",
            details=f"Minimal example:\n{EXAMPLE_CONFIG}",
            suggestions=["Define at least one agent and a workflow"]
        )

    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        location = ""
        mark = getattr(e, "problem_mark", None)
        if mark is not None:
            location = f" (line {mark.line + 1}, column {mark.column + 1})"
        raise ConfigError(
            f"Invalid YAML in {path.name}{location}",
            details=str(e),
            suggestions=[
                "Use spaces, not tabs, for indentation",
                "Quote values containing ':' or '#'",
            ]
        ) from e

    if not isinstance(raw, dict):
        raise ConfigError(
            f"Configuration must be a YAML mapping, got {type(raw).__name__}",
            details=f"Minimal example:\n{EXAMPLE_CONFIG}",
            suggestions=["Top level keys are 'agents', 'workflow' and optionally 'memory'"]
        )

    config = parse_config(raw)
    logger.info(
        f"[Config] Loaded {path.name}: {len(config.agents)} agent(s), "
        f"{config.workflow.type} workflow"
    )
    return config


def parse_config(raw: Dict[str, Any]) -> WorkflowConfig:
    """
    Validate raw configuration data and build the workflow model.

    Raises:
        SchemaValidationError: Structural problems (all reported at once)
        SemanticValidationError: Reference problems (all reported at once)
    """
    schema = validate_schema(raw)
    for warning in schema.warnings:
        logger.warning(f"[Config] {warning}")
    if not schema.valid:
        raise SchemaValidationError(
            schema.errors,
            suggestions=[
                "Each agent needs non-empty 'id', 'role' and 'goal'",
                "workflow.type is 'sequential' (with steps) or 'parallel' (with branches and then)",
            ]
        )

    config = WorkflowConfig(
        agents=tuple(_build_agent(agent) for agent in raw["agents"]),
        workflow=_build_workflow(raw["workflow"]),
        memory=_build_memory(raw.get("memory") or {}),
    )

    semantic = validate_workflow(config)
    for warning in semantic.warnings:
        logger.warning(f"[Config] {warning}")
    if not semantic.valid:
        raise SemanticValidationError(
            semantic.errors,
            suggestions=[
                f"Defined agents: {', '.join(agent.id for agent in config.agents)}",
                "Check workflow references for typos",
            ]
        )

    return config


def _build_sub_agent(data: Dict[str, Any]) -> SubAgent:
    return SubAgent(
        id=data["id"],
        role=data["role"],
        goal=data["goal"],
        tools=tuple(data.get("tools") or ()),
        specialization=data.get("specialization"),
        trigger_conditions=tuple(data.get("trigger_conditions") or ()),
    )


def _build_agent(data: Dict[str, Any]) -> Agent:
    return Agent(
        id=data["id"],
        role=data["role"],
        goal=data["goal"],
        tools=tuple(data.get("tools") or ()),
        sub_agents=tuple(_build_sub_agent(s) for s in data.get("sub_agents") or ()),
        delegation_strategy=DelegationStrategy(data.get("delegation_strategy") or "auto"),
        enable_persistent_memory=bool(data.get("enable_persistent_memory", False)),
    )


def _build_workflow(data: Dict[str, Any]) -> Workflow:
    if data["type"] == "sequential":
        return SequentialWorkflow(steps=tuple(step["agent"] for step in data["steps"]))

    then = data["then"]
    feedback_loop = None
    if then.get("feedback_loop") is not None:
        loop = then["feedback_loop"]
        feedback_loop = FeedbackLoopConfig(
            enabled=loop["enabled"],
            feedback_targets=tuple(loop["feedback_targets"]),
            max_iterations=loop.get("max_iterations") or 5,
            approval_keyword=loop.get("approval_keyword") or "APPROVED",
        )

    return ParallelWorkflow(
        branches=tuple(data["branches"]),
        aggregator=then["agent"],
        feedback_loop=feedback_loop,
    )


def _build_memory(data: Dict[str, Any]) -> MemorySettings:
    defaults = MemorySettings()
    return MemorySettings(
        enabled=data.get("enabled", defaults.enabled),
        namespace=data.get("namespace") or defaults.namespace,
        db_path=data.get("db_path"),
    )
