"""
Tests for the command line entry point.

The Anthropic client is replaced by ScriptedLLM, so these runs exercise
config loading, the engine and reporting end to end without network access.
"""

import pytest

from conftest import ScriptedLLM
from spindle import cli

WORKFLOW = """\
agents:
  - id: researcher
    role: Researcher
    goal: Gather the facts
  - id: writer
    role: Writer
    goal: Write the article
workflow:
  type: sequential
  steps:
    - agent: researcher
    - agent: writer
"""


@pytest.fixture
def workflow_file(tmp_path):
    path = tmp_path / "workflow.yaml"
    path.write_text(WORKFLOW)
    return path


@pytest.fixture
def scripted(monkeypatch):
    llm = ScriptedLLM(replies={"Writer": "The final article"})
    monkeypatch.setattr(cli, "AnthropicClient", lambda api_key=None, model=None: llm)
    return llm


class TestParser:

    def test_defaults(self):
        args = cli.build_parser().parse_args(["run", "wf.yaml", "hello"])

        assert args.command == "run"
        assert args.max_context_items is None
        assert args.log_level == "WARNING"
        assert args.quiet is False

    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])


class TestReadInput:

    def test_plain_text(self):
        assert cli.read_input("Build a todo app") == "Build a todo app"

    def test_file(self, tmp_path):
        path = tmp_path / "request.txt"
        path.write_text("From a file")
        assert cli.read_input(str(path)) == "From a file"


class TestMain:

    def test_quiet_run_prints_final_output(self, workflow_file, scripted, capsys):
        code = cli.main(["run", str(workflow_file), "Write about owls", "--quiet"])

        assert code == 0
        assert capsys.readouterr().out.strip() == "The final article"
        assert [c.role for c in scripted.calls_of("agent")] == ["Researcher", "Writer"]

    def test_full_run_reports_turns(self, workflow_file, scripted, capsys):
        code = cli.main(["run", str(workflow_file), "Write about owls"])

        out = capsys.readouterr().out
        assert code == 0
        assert "Researcher (researcher)" in out
        assert "Timeline" in out
        assert "The final article" in out

    def test_missing_config(self, tmp_path, scripted, capsys):
        code = cli.main(["run", str(tmp_path / "nope.yaml"), "X"])

        assert code == 1
        assert "Configuration file not found" in capsys.readouterr().out
        assert scripted.calls == []

    def test_model_failure(self, workflow_file, monkeypatch, capsys):
        llm = ScriptedLLM(fail_roles=["Writer"])
        monkeypatch.setattr(cli, "AnthropicClient", lambda api_key=None, model=None: llm)

        code = cli.main(["run", str(workflow_file), "X", "--quiet"])

        assert code == 1
        assert "Workflow failed" in capsys.readouterr().out
