"""
Console reporting for workflow runs.

Renders the read-only stream of committed timeline entries with Rich:
- One panel per completed agent turn (role, duration, tags, output preview)
- Workflow header, feedback-loop verdict and timeline table
- The final output
"""

from typing import Optional

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .models import ParallelWorkflow, WorkflowConfig
from .state import RunState, TimelineEntry

PREVIEW_CHARS = 600


class ConsoleReporter:
    """
    RunState listener that prints each completed turn.

    Example:
        ```python
        reporter = ConsoleReporter()
        engine = WorkflowEngine(llm, listeners=[reporter])
        ```
    """

    def __init__(self, console: Optional[Console] = None, preview_chars: int = PREVIEW_CHARS):
        self.console = console or Console()
        self.preview_chars = preview_chars
        self._turns = 0

    def __call__(self, entry: TimelineEntry):
        self._turns += 1
        self.console.print(self._turn_panel(entry))

    def workflow_start(self, config: WorkflowConfig, user_input: str):
        workflow = config.workflow
        if isinstance(workflow, ParallelWorkflow):
            shape = f"parallel: [{', '.join(workflow.branches)}] -> {workflow.aggregator}"
            if workflow.has_feedback_loop:
                shape += f" (feedback loop, max {workflow.feedback_loop.max_iterations} iterations)"
        else:
            shape = f"sequential: {' -> '.join(workflow.steps)}"

        header = Text()
        header.append("Workflow ", style="bold")
        header.append(shape, style="cyan")
        header.append(f"\nAgents: {len(config.agents)}", style="dim")
        header.append(f"\nInput: {user_input[:200]}", style="dim")
        self.console.print(Panel(header, title="spindle", border_style="blue"))

    def feedback_summary(self, state: RunState):
        outcome = state.feedback_outcome
        if outcome is None:
            return

        for record in state.feedback_iterations:
            status = "[green]approved[/green]" if record.approved else "[yellow]changes requested[/yellow]"
            self.console.print(f"Review {record.iteration}: {status}")
            for agent_id, feedback in record.feedback.items():
                self.console.print(f"  [cyan]{agent_id}[/cyan]: {self._preview(feedback, 160)}")

        if outcome.approved:
            self.console.print(
                f"[bold green]Approved after {outcome.iterations} iteration(s)[/bold green]"
            )
        else:
            self.console.print(
                f"[bold yellow]Not approved: stopped after {outcome.iterations} "
                f"iteration(s)[/bold yellow]"
            )

    def timeline_table(self, state: RunState) -> Table:
        table = Table(title="Timeline", show_header=True, header_style="bold")
        table.add_column("#", justify="right")
        table.add_column("Agent", style="cyan")
        table.add_column("Role")
        table.add_column("Tags", style="yellow")
        table.add_column("Duration", justify="right")
        table.add_column("Chars", justify="right")

        for position, entry in enumerate(state.timeline, 1):
            table.add_row(
                str(position),
                entry.agent_id,
                entry.role,
                self._tags(entry),
                f"{entry.duration:.2f}s",
                str(len(entry.output)),
            )
        return table

    def final_output(self, state: RunState):
        self.console.print(self.timeline_table(state))
        self.feedback_summary(state)

        output = state.get_last_output()
        if output is None:
            self.console.print("[dim]No output produced[/dim]")
            return
        last = state.timeline[-1]
        self.console.print(
            Panel(Markdown(output), title=f"Final output: {last.role}", border_style="green")
        )

    def _turn_panel(self, entry: TimelineEntry) -> Panel:
        tags = self._tags(entry)
        title = f"{entry.role} ({entry.agent_id})"
        subtitle = f"{entry.duration:.2f}s" + (f" | {tags}" if tags else "")
        style = "magenta" if entry.is_aggregator else "cyan"
        return Panel(
            Text(self._preview(entry.output, self.preview_chars)),
            title=title,
            subtitle=subtitle,
            border_style=style,
        )

    @staticmethod
    def _tags(entry: TimelineEntry) -> str:
        tags = []
        if entry.branch_id is not None:
            tags.append(f"{entry.branch_id}#{entry.branch_index}")
        if entry.is_aggregator:
            tags.append("aggregator")
        if entry.iteration is not None:
            tags.append(f"iteration {entry.iteration}")
        return ", ".join(tags)

    @staticmethod
    def _preview(text: str, limit: int) -> str:
        text = text.strip()
        if len(text) <= limit:
            return text
        return text[:limit].rstrip() + "..."
