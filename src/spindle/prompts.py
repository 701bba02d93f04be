"""
Prompt construction.

Every builder is a pure function of its inputs and returns a ``Prompt``
pair. Executors decide *what* context an agent sees; this module only
decides how that context is laid out as text.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Mapping, Optional, Sequence

from .models import Agent, ContextSummary, RelevantMemory, SubAgent
from .state import PreviousOutput

MEMORY_CONTENT_LIMIT = 500

SUMMARIZER_SYSTEM_PROMPT = (
    "You are a precise context summarization assistant. "
    "Extract and structure key information from agent outputs."
)


@dataclass(frozen=True)
class Prompt:
    system: str
    user: str


def _role_header(role: str, goal: str) -> str:
    return f"You are acting as: {role}\n\nYour goal:\n{goal}"


def _format_timestamp(timestamp: float) -> str:
    if not timestamp:
        return "Unknown"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")


def format_summaries(summaries: Sequence[ContextSummary]) -> str:
    """Render summaries as ``[role]`` blocks, oldest first."""
    blocks = []
    for summary in summaries:
        lines = [f"[{summary.role}]"]
        if summary.key_insights:
            lines.append(f"Key Insights: {'; '.join(summary.key_insights)}")
        if summary.decisions:
            lines.append(f"Decisions: {'; '.join(summary.decisions)}")
        if summary.artifacts:
            lines.append(f"Artifacts: {'; '.join(summary.artifacts)}")
        if summary.next_steps:
            lines.append(f"Next Steps: {'; '.join(summary.next_steps)}")
        lines.append("---")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def format_memories(memories: Sequence[RelevantMemory]) -> str:
    """Render persistent-memory matches with their relevance."""
    lines = [
        "--- RELEVANT CONTEXT FROM PAST WORKFLOWS ---",
        "You have access to relevant insights from previous work:",
        "",
    ]
    for i, memory in enumerate(memories, 1):
        relevance = round(memory.score * 100)
        source = f"{memory.role} ({memory.agent_id})" if memory.agent_id else memory.role
        lines.append(f"[Memory {i} - {relevance}% relevant]")
        lines.append(f"From: {source}")
        lines.append(f"Date: {_format_timestamp(memory.timestamp)}")
        if memory.key_insights:
            lines.append(f"Key Insights: {'; '.join(memory.key_insights)}")
        if memory.decisions:
            lines.append(f"Decisions: {'; '.join(memory.decisions)}")
        if memory.content:
            if len(memory.content) <= MEMORY_CONTENT_LIMIT:
                lines.append(f"Content: {memory.content}")
            else:
                lines.append(f"Content (excerpt): {memory.content[:MEMORY_CONTENT_LIMIT]}...")
        lines.append("---")
    lines.append("")
    lines.append("Use these insights to inform your current work.")
    lines.append("--- END OF PAST WORKFLOW CONTEXT ---")
    return "\n".join(lines)


def build_agent_prompt(
    agent: Agent,
    user_input: str,
    summaries: Sequence[ContextSummary] = (),
    tool_output: Optional[str] = None,
    memories: Sequence[RelevantMemory] = ()
) -> Prompt:
    """
    Build the prompt for an ordinary agent turn.

    Args:
        agent: Agent being invoked
        user_input: The run's original user input
        summaries: Prior agents' summaries, oldest first
        tool_output: Rendered tool results, if the agent declares tools
        memories: Matches from past workflows

    Returns:
        Prompt with role/goal system text and context-bearing user text
    """
    system = (
        f"{_role_header(agent.role, agent.goal)}\n\n"
        "Follow the goal strictly. Be concise, clear, and relevant."
    )

    sections = [f"User input:\n{user_input}"]
    if memories:
        sections.append(format_memories(memories))
    if tool_output:
        sections.append(tool_output.strip())
    if summaries:
        sections.append(f"Previous agent work:\n\n{format_summaries(summaries)}")

    return Prompt(system=system, user="\n\n".join(sections).strip())


def build_review_prompt(
    reviewer: Agent,
    user_input: str,
    branch_outputs: Sequence[PreviousOutput],
    iteration: int,
    approval_keyword: str,
    memories: Sequence[RelevantMemory] = ()
) -> Prompt:
    """Reviewer prompt: every branch output in full plus approval rules."""
    if iteration > 1:
        iteration_note = "This is a revision. Check if previous feedback has been addressed."
    else:
        iteration_note = "This is the initial review."

    system = (
        f"{_role_header(reviewer.role, reviewer.goal)}\n\n"
        "IMPORTANT REVIEW INSTRUCTIONS:\n"
        "1. Review the outputs from all agents carefully\n"
        f"2. If everything is satisfactory and meets all requirements, respond with "
        f"\"{approval_keyword}\" at the very start of your response\n"
        "3. If changes are needed, provide specific, actionable feedback for each agent\n"
        "4. Format your feedback clearly with agent ids followed by a colon and "
        "specific suggestions (for example \"backend: add input validation\")\n"
        "5. Be constructive and specific about what needs to change\n\n"
        f"Iteration: {iteration}\n"
        f"{iteration_note}"
    )

    sections = [f"User Request:\n{user_input}"]
    if memories:
        sections.append(format_memories(memories))

    outputs = ["Agent Outputs to Review:"]
    for branch in branch_outputs:
        outputs.append(f"--- {branch.role} ({branch.agent_id}) ---\n{branch.output}")
    sections.append("\n\n".join(outputs))

    if iteration > 1:
        sections.append(
            f"This is revision iteration {iteration}. "
            "Please check if your previous feedback has been adequately addressed."
        )

    return Prompt(system=system, user="\n\n".join(sections))


def build_revision_prompt(
    agent: Agent,
    user_input: str,
    previous_output: str,
    feedback: str,
    iteration: int,
    memories: Sequence[RelevantMemory] = ()
) -> Prompt:
    """Revision prompt carrying the agent's last output and its feedback."""
    system = (
        f"{_role_header(agent.role, agent.goal)}\n\n"
        "IMPORTANT REVISION INSTRUCTIONS:\n"
        "- You are revising your previous work based on reviewer feedback\n"
        "- Carefully incorporate ALL the feedback provided\n"
        "- Maintain the good aspects of your previous output\n"
        "- Address ALL concerns raised by the reviewer\n\n"
        f"Revision Iteration: {iteration}"
    )
    sections = [f"Original Request:\n{user_input}"]
    if memories:
        sections.append(format_memories(memories))
    sections.extend([
        f"Your Previous Output:\n{previous_output}",
        f"Reviewer Feedback for You:\n{feedback}",
        "Please revise your output to fully address the reviewer's feedback "
        "while maintaining quality.",
    ])
    return Prompt(system=system, user="\n\n".join(sections))


def build_summarization_prompt(role: str, output: str) -> Prompt:
    user = (
        "Extract key information from the following agent output:\n\n"
        f"Agent Role: {role}\n"
        f"Output: {output}\n\n"
        "Provide a structured summary in the following JSON format:\n"
        "{\n"
        '  "keyInsights": ["insight1", "insight2", "insight3"],\n'
        '  "decisions": ["decision1", "decision2"],\n'
        '  "artifacts": ["artifact1", "artifact2"],\n'
        '  "nextSteps": ["step1", "step2"]\n'
        "}\n\n"
        "Guidelines:\n"
        "- keyInsights: 3-5 most important findings or observations\n"
        "- decisions: Key decisions or choices made\n"
        "- artifacts: Files, outputs, or deliverables created (if any)\n"
        "- nextSteps: Recommendations or suggestions for subsequent work\n\n"
        "Keep the entire summary under 250 words. "
        "Return ONLY the JSON object, no additional text."
    )
    return Prompt(system=SUMMARIZER_SYSTEM_PROMPT, user=user)


def build_planning_prompt(
    parent: Agent,
    user_input: str,
    summaries: Sequence[ContextSummary] = ()
) -> Prompt:
    """Ask a parent agent which sub-agents to involve, and in what order."""
    roster = []
    for sub_agent in parent.sub_agents:
        triggers = ", ".join(sub_agent.trigger_conditions) or "Any"
        roster.append(
            f"- {sub_agent.id} ({sub_agent.role})\n"
            f"  Goal: {sub_agent.goal}\n"
            f"  Specialization: {sub_agent.specialization or 'General'}\n"
            f"  Triggers: {triggers}"
        )

    system = (
        f"You are {parent.role}, a team lead with specialized sub-agents.\n"
        f"Your goal: {parent.goal}\n\n"
        f"Available sub-agents:\n{chr(10).join(roster)}\n\n"
        "Your task: Analyze the user's request and determine:\n"
        "1. Which sub-agents should be involved\n"
        "2. In what order (sequential or parallel)\n"
        "3. Why each sub-agent is needed\n\n"
        "Respond with a JSON plan:\n"
        "{\n"
        '  "sub_agents": ["id1", "id2"],\n'
        '  "sequence": "sequential" or "parallel",\n'
        '  "reason": "explanation"\n'
        "}"
    )

    if summaries:
        context = "\n".join(
            f"{s.role}: {', '.join(s.key_insights) or 'No insights'}" for s in summaries
        )
    else:
        context = "No previous context"

    user = (
        f"User Request: {user_input}\n\n"
        f"Previous Context:\n{context}\n\n"
        "Create an execution plan for your sub-agents."
    )
    return Prompt(system=system, user=user)


def build_sub_agent_prompt(
    sub_agent: SubAgent,
    parent: Agent,
    user_input: str,
    previous_sub_outputs: Optional[Mapping[str, str]] = None,
    tool_output: Optional[str] = None,
    memories: Sequence[RelevantMemory] = ()
) -> Prompt:
    system = (
        f"You are {sub_agent.role}, working as part of {parent.role}'s team.\n"
        f"Your specialization: {sub_agent.specialization or 'General tasks'}\n"
        f"Your specific goal: {sub_agent.goal}\n\n"
        "IMPORTANT:\n"
        "- Focus only on your specialization\n"
        "- Provide detailed, high-quality output\n"
        "- Build on previous sub-agents' work if available"
    )

    sections = [f"Original Request: {user_input}\nParent Agent Goal: {parent.goal}"]
    if tool_output:
        sections.append(f"Tool Outputs:\n{tool_output.strip()}")
    if previous_sub_outputs:
        work = ["Previous Sub-Agent Work:"]
        for sub_agent_id, output in previous_sub_outputs.items():
            work.append(f"--- {sub_agent_id} ---\n{output}")
        sections.append("\n\n".join(work))
    if memories:
        sections.append(format_memories(memories))
    sections.append(f"Provide your {sub_agent.role} contribution.")

    return Prompt(system=system, user="\n\n".join(sections))


def build_synthesis_prompt(
    parent: Agent,
    user_input: str,
    sub_agent_outputs: Mapping[str, str]
) -> Prompt:
    system = (
        f"You are {parent.role}.\n"
        f"Your goal: {parent.goal}\n\n"
        "Your sub-agents have completed their specialized work.\n"
        "Now synthesize their outputs into a cohesive final deliverable.\n\n"
        "IMPORTANT:\n"
        "- Integrate all sub-agent contributions\n"
        "- Ensure consistency and quality\n"
        "- Provide a complete, unified solution"
    )

    contributions = ["Sub-Agent Contributions:"]
    for sub_agent_id, output in sub_agent_outputs.items():
        sub_agent = parent.get_sub_agent(sub_agent_id)
        label = sub_agent.role if sub_agent else sub_agent_id
        contributions.append(f"--- {label} ---\n{output}")

    user = (
        f"Original Request: {user_input}\n\n"
        f"{chr(10).join(contributions)}\n\n"
        "Provide the final integrated solution."
    )
    return Prompt(system=system, user=user)
