"""
Workflow configuration validation.

Two passes:
- Schema: raw YAML data has the expected structure and types
- Semantic: a well-formed workflow references agents consistently

Both return a ValidationResult; ``spindle.config`` turns errors into
exceptions.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .models import ParallelWorkflow, SequentialWorkflow, WorkflowConfig

DELEGATION_STRATEGIES = ("auto", "sequential", "parallel")
WORKFLOW_TYPES = ("sequential", "parallel")
MIN_ITERATIONS = 1
MAX_ITERATIONS = 10


@dataclass
class ValidationResult:
    """Result of validation check."""
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _check_text(data: Dict[str, Any], key: str, path: str, errors: List[str]):
    if key not in data:
        errors.append(f"{path}.{key}: required")
    elif not _is_text(data[key]):
        errors.append(f"{path}.{key}: must be a non-empty string")


def _check_text_list(data: Dict[str, Any], key: str, path: str, errors: List[str]):
    value = data.get(key)
    if value is None:
        return
    if not isinstance(value, list):
        errors.append(f"{path}.{key}: must be a list of strings")
        return
    for i, item in enumerate(value):
        if not _is_text(item):
            errors.append(f"{path}.{key}[{i}]: must be a non-empty string")


def _check_sub_agent(data: Any, path: str, errors: List[str]):
    if not isinstance(data, dict):
        errors.append(f"{path}: must be a mapping")
        return
    for key in ("id", "role", "goal"):
        _check_text(data, key, path, errors)
    _check_text_list(data, "tools", path, errors)
    _check_text_list(data, "trigger_conditions", path, errors)
    if "specialization" in data and data["specialization"] is not None and not isinstance(data["specialization"], str):
        errors.append(f"{path}.specialization: must be a string")


def _check_agent(data: Any, path: str, errors: List[str]):
    if not isinstance(data, dict):
        errors.append(f"{path}: must be a mapping")
        return
    for key in ("id", "role", "goal"):
        _check_text(data, key, path, errors)
    _check_text_list(data, "tools", path, errors)

    sub_agents = data.get("sub_agents")
    if sub_agents is not None:
        if not isinstance(sub_agents, list):
            errors.append(f"{path}.sub_agents: must be a list")
        else:
            for i, sub_agent in enumerate(sub_agents):
                _check_sub_agent(sub_agent, f"{path}.sub_agents[{i}]", errors)

    strategy = data.get("delegation_strategy")
    if strategy is not None and strategy not in DELEGATION_STRATEGIES:
        errors.append(
            f"{path}.delegation_strategy: must be one of {', '.join(DELEGATION_STRATEGIES)} "
            f"(got {strategy!r})"
        )

    memory = data.get("enable_persistent_memory")
    if memory is not None and not isinstance(memory, bool):
        errors.append(f"{path}.enable_persistent_memory: must be true or false")


def _check_feedback_loop(data: Any, path: str, errors: List[str]):
    if not isinstance(data, dict):
        errors.append(f"{path}: must be a mapping")
        return

    if not isinstance(data.get("enabled"), bool):
        errors.append(f"{path}.enabled: required, must be true or false")

    max_iterations = data.get("max_iterations")
    if max_iterations is not None:
        if isinstance(max_iterations, bool) or not isinstance(max_iterations, int):
            errors.append(f"{path}.max_iterations: must be an integer")
        elif not MIN_ITERATIONS <= max_iterations <= MAX_ITERATIONS:
            errors.append(
                f"{path}.max_iterations: must be between {MIN_ITERATIONS} and "
                f"{MAX_ITERATIONS} (got {max_iterations})"
            )

    keyword = data.get("approval_keyword")
    if keyword is not None and not _is_text(keyword):
        errors.append(f"{path}.approval_keyword: must be a non-empty string")

    targets = data.get("feedback_targets")
    if not isinstance(targets, list) or not targets:
        errors.append(f"{path}.feedback_targets: required, must be a non-empty list of agent ids")
    else:
        _check_text_list(data, "feedback_targets", path, errors)


def _check_workflow(data: Any, errors: List[str]):
    path = "workflow"
    if not isinstance(data, dict):
        errors.append(f"{path}: required, must be a mapping")
        return

    workflow_type = data.get("type")
    if workflow_type not in WORKFLOW_TYPES:
        errors.append(f"{path}.type: must be one of {', '.join(WORKFLOW_TYPES)} (got {workflow_type!r})")
        return

    if workflow_type == "sequential":
        steps = data.get("steps")
        if not isinstance(steps, list):
            errors.append(f"{path}.steps: required, must be a list of {{agent: id}}")
            return
        for i, step in enumerate(steps):
            if not isinstance(step, dict):
                errors.append(f"{path}.steps[{i}]: must be a mapping with an 'agent' key")
            else:
                _check_text(step, "agent", f"{path}.steps[{i}]", errors)
        return

    branches = data.get("branches")
    if not isinstance(branches, list):
        errors.append(f"{path}.branches: required, must be a list of agent ids")
    else:
        _check_text_list(data, "branches", path, errors)

    then = data.get("then")
    if not isinstance(then, dict):
        errors.append(f"{path}.then: required, must be a mapping with an 'agent' key")
        return
    _check_text(then, "agent", f"{path}.then", errors)
    if then.get("feedback_loop") is not None:
        _check_feedback_loop(then["feedback_loop"], f"{path}.then.feedback_loop", errors)


def _check_memory(data: Any, errors: List[str]):
    path = "memory"
    if not isinstance(data, dict):
        errors.append(f"{path}: must be a mapping")
        return
    if "enabled" in data and not isinstance(data["enabled"], bool):
        errors.append(f"{path}.enabled: must be true or false")
    if "namespace" in data and not _is_text(data["namespace"]):
        errors.append(f"{path}.namespace: must be a non-empty string")
    if data.get("db_path") is not None and not _is_text(data["db_path"]):
        errors.append(f"{path}.db_path: must be a non-empty string")


def validate_schema(raw: Any) -> ValidationResult:
    """
    Check the structure of raw configuration data.

    Args:
        raw: Parsed YAML document

    Returns:
        ValidationResult with one error per offending dotted path
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not isinstance(raw, dict):
        return ValidationResult(valid=False, errors=["Configuration must be a mapping"])

    agents = raw.get("agents")
    if not isinstance(agents, list) or not agents:
        errors.append("agents: required, must be a non-empty list")
    else:
        for i, agent in enumerate(agents):
            _check_agent(agent, f"agents[{i}]", errors)

    _check_workflow(raw.get("workflow"), errors)

    if raw.get("memory") is not None:
        _check_memory(raw["memory"], errors)

    for key in raw:
        if key not in ("agents", "workflow", "memory"):
            warnings.append(f"{key}: unknown top-level key ignored")

    return ValidationResult(valid=len(errors) == 0, errors=errors, warnings=warnings)


def validate_workflow(config: WorkflowConfig) -> ValidationResult:
    """
    Check that a structurally valid workflow is internally consistent.

    Checks:
    - Agent ids are unique, sub-agent ids unique within their parent
    - Every step, branch, aggregator and feedback target is a known agent
    - Sequential steps and parallel branches are non-empty
    - The aggregator is not also a branch

    Returns:
        ValidationResult with errors and warnings
    """
    errors: List[str] = []
    warnings: List[str] = []

    ids = [agent.id for agent in config.agents]
    for agent_id, count in Counter(ids).items():
        if count > 1:
            errors.append(f"Duplicate agent id '{agent_id}' ({count} definitions)")

    for agent in config.agents:
        sub_ids = Counter(sub_agent.id for sub_agent in agent.sub_agents)
        for sub_agent_id, count in sub_ids.items():
            if count > 1:
                errors.append(f"Agent '{agent.id}' has duplicate sub-agent id '{sub_agent_id}'")

    known = set(ids)

    def check_reference(agent_id: str, where: str):
        if agent_id not in known:
            errors.append(f"{where} references unknown agent '{agent_id}'")

    workflow = config.workflow
    if isinstance(workflow, SequentialWorkflow):
        if not workflow.steps:
            errors.append("Sequential workflow has no steps")
        for i, agent_id in enumerate(workflow.steps):
            check_reference(agent_id, f"workflow.steps[{i}]")

    elif isinstance(workflow, ParallelWorkflow):
        if not workflow.branches:
            errors.append("Parallel workflow has no branches")
        for i, agent_id in enumerate(workflow.branches):
            check_reference(agent_id, f"workflow.branches[{i}]")
        for agent_id, count in Counter(workflow.branches).items():
            if count > 1:
                warnings.append(f"Agent '{agent_id}' is listed {count} times as a branch")

        check_reference(workflow.aggregator, "workflow.then.agent")
        if workflow.aggregator in workflow.branches:
            errors.append(
                f"Aggregator '{workflow.aggregator}' is also a branch; "
                "it must run after the fan-out"
            )

        loop = workflow.feedback_loop
        if loop is not None:
            for agent_id, count in Counter(loop.feedback_targets).items():
                if count > 1:
                    warnings.append(
                        f"Feedback target '{agent_id}' is listed {count} times; it is revised once per round"
                    )
            for i, agent_id in enumerate(loop.feedback_targets):
                check_reference(agent_id, f"workflow.then.feedback_loop.feedback_targets[{i}]")
                if agent_id in known and agent_id not in workflow.branches:
                    warnings.append(
                        f"Feedback target '{agent_id}' is not a branch; "
                        "it will be revised without having produced a branch output"
                    )

    return ValidationResult(valid=len(errors) == 0, errors=errors, warnings=warnings)
