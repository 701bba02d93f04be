"""
Command line entry point.

Usage:
    spindle run workflow.yaml "Build a REST API for a todo app"
    spindle run workflow.yaml request.txt --log-level DEBUG
"""

from pathlib import Path
from typing import List, Optional
import argparse
import asyncio
import sys

from rich.console import Console

from . import __version__
from .config import load_config
from .engine import EngineConfig, WorkflowEngine
from .errors import ConfigError
from .llm import DEFAULT_MODEL, AnthropicClient
from .logging_config import configure_logging, get_logger
from .memory import create_memory_store
from .reporter import ConsoleReporter
from .state import RunState
from .tools import ToolInvoker

logger = get_logger("cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="spindle",
        description="Run declarative multi-agent workflows"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run a workflow")
    run.add_argument("config", help="Workflow YAML file")
    run.add_argument("input", help="User input text, or a path to a file containing it")
    run.add_argument("--api-key", default=None, help="Anthropic API key (default: ANTHROPIC_API_KEY)")
    run.add_argument("--model", default=DEFAULT_MODEL, help="Model id")
    run.add_argument("--max-context-items", type=int, default=None,
                     help="Rank prior summaries and keep only the top N per agent")
    run.add_argument("--workspace", default=".", help="Root directory for the workspace_files tool")
    run.add_argument("--log-level", default="WARNING",
                     choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    run.add_argument("--log-file", default=None, help="Also write logs to this file")
    run.add_argument("--quiet", action="store_true", help="Only print the final output")
    return parser


def read_input(value: str) -> str:
    path = Path(value)
    try:
        if path.is_file():
            return path.read_text(encoding="utf-8")
    except OSError:
        pass
    return value


async def run_command(args: argparse.Namespace, console: Console) -> RunState:
    workflow_config = load_config(args.config)
    user_input = read_input(args.input)

    llm = AnthropicClient(api_key=args.api_key, model=args.model)
    memory = create_memory_store(
        workflow_config.memory.enabled,
        workflow_config.memory.namespace,
        workflow_config.memory.db_path
    )
    reporter = ConsoleReporter(console)

    engine = WorkflowEngine(
        llm,
        config=EngineConfig(max_context_items=args.max_context_items),
        tool_invoker=ToolInvoker.with_builtins(Path(args.workspace)),
        memory=memory,
        listeners=[] if args.quiet else [reporter]
    )

    if not args.quiet:
        reporter.workflow_start(workflow_config, user_input)

    state = await engine.run(workflow_config, RunState(user_input))

    if args.quiet:
        output = state.get_last_output()
        if output is not None:
            console.print(output, markup=False, highlight=False)
    else:
        reporter.final_output(state)
    return state


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, args.log_file)
    console = Console()

    try:
        asyncio.run(run_command(args, console))
    except ConfigError as e:
        console.print(e.format(), markup=False, highlight=False)
        return 1
    except KeyboardInterrupt:
        logger.warning("[CLI] Interrupted")
        return 130
    except Exception as e:
        logger.exception(f"[CLI] Workflow failed: {e}")
        console.print(f"[bold red]Workflow failed:[/bold red] {type(e).__name__}: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
