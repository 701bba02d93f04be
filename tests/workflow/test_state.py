"""
Unit tests for RunState.

Tests cover:
- commit() keeps outputs/summaries consistent with the latest timeline entry
- summaries move to the most recent position when recomputed
- revisions and sub-agent outputs are recorded
- snapshots are isolated from later commits
- listeners receive committed entries and cannot break a run
"""

import pytest

from spindle.models import ContextSummary
from spindle.state import AgentTurn, FeedbackIteration, RunState, TimelineEntry


def make_turn(agent_id, output, role=None, **entry_fields):
    role = role or agent_id.capitalize()
    entry = TimelineEntry(
        agent_id=agent_id,
        role=role,
        output=output,
        started_at=1.0,
        ended_at=2.5,
        **entry_fields
    )
    summary = ContextSummary(agent_id=agent_id, role=role, key_insights=[f"about {output}"])
    return AgentTurn(entry=entry, summary=summary)


class TestCommit:

    def test_commit_appends_timeline_and_sets_output(self):
        state = RunState("X")
        state.commit([make_turn("researcher", "facts")])

        assert [e.agent_id for e in state.timeline] == ["researcher"]
        assert state.outputs["researcher"] == "facts"
        assert state.summaries["researcher"].key_insights == ["about facts"]

    def test_recommit_overwrites_output_and_keeps_history(self):
        state = RunState("X")
        state.commit([make_turn("writer", "draft 1")])
        state.commit([make_turn("writer", "draft 2")])

        assert state.outputs["writer"] == "draft 2"
        assert [e.output for e in state.timeline] == ["draft 1", "draft 2"]
        assert state.summaries["writer"].key_insights == ["about draft 2"]

    def test_outputs_match_latest_timeline_entry(self):
        state = RunState("X")
        state.commit([make_turn("a", "a1"), make_turn("b", "b1")])
        state.commit([make_turn("a", "a2")])

        for agent_id, output in state.outputs.items():
            latest = [e for e in state.timeline if e.agent_id == agent_id][-1]
            assert latest.output == output
        assert set(state.summaries) <= {e.agent_id for e in state.timeline}

    def test_resummarized_agent_moves_to_most_recent(self):
        state = RunState("X")
        state.commit([make_turn("a", "a1"), make_turn("b", "b1")])
        state.commit([make_turn("a", "a2")])

        assert [s.agent_id for s in state.get_summaries()] == ["b", "a"]

    def test_mismatched_summary_rejected_before_any_write(self):
        state = RunState("X")
        bad = make_turn("a", "a1")
        bad.summary.agent_id = "b"

        with pytest.raises(ValueError):
            state.commit([make_turn("c", "c1"), bad])

        assert state.timeline == []
        assert state.outputs == {}

    def test_revision_iteration_recorded(self):
        state = RunState("X")
        state.commit([make_turn("backend", "v1")])
        state.commit([make_turn("backend", "v2", iteration=1)], revision_iteration=1)

        assert state.revisions == {"backend": {1: "v2"}}

    def test_sub_agent_outputs_recorded(self):
        state = RunState("X")
        turn = make_turn("lead", "merged")
        turn.sub_agent_outputs = {"api": "api work", "db": "db work"}
        state.commit([turn])

        assert state.sub_agent_outputs["lead"] == {"api": "api work", "db": "db work"}

    def test_record_feedback_appends(self):
        state = RunState("X")
        state.record_feedback(FeedbackIteration(1, "fix it", False, {"a": "fix it"}))
        state.record_feedback(FeedbackIteration(2, "APPROVED", True, {}))

        assert [f.iteration for f in state.feedback_iterations] == [1, 2]


class TestSnapshot:

    def test_snapshot_not_affected_by_later_commits(self):
        state = RunState("build it")
        state.commit([make_turn("a", "a1")])
        snapshot = state.snapshot()

        state.commit([make_turn("b", "b1")])

        assert snapshot.user_input == "build it"
        assert [s.agent_id for s in snapshot.summaries] == ["a"]
        assert dict(snapshot.outputs) == {"a": "a1"}
        assert [p.agent_id for p in snapshot.previous_outputs] == ["a"]

    def test_last_output(self):
        state = RunState("X")
        assert state.get_last_output() is None
        state.commit([make_turn("a", "a1"), make_turn("b", "b1")])
        assert state.get_last_output() == "b1"

    def test_branch_ids_are_unique_per_fan_out(self):
        state = RunState("X")
        assert state.new_branch_id() == "fanout-1"
        assert state.new_branch_id() == "fanout-2"


class TestListeners:

    def test_listener_receives_each_committed_entry(self):
        state = RunState("X")
        events = []
        state.add_listener(lambda entry: events.append(entry.to_event()))

        state.commit([make_turn("a", "a1", branch_id="fanout-1", branch_index=1)])
        state.commit([make_turn("r", "r1", is_aggregator=True, iteration=2)])

        assert events[0]["agent_id"] == "a"
        assert events[0]["branch_id"] == "fanout-1"
        assert "is_aggregator" not in events[0]
        assert events[1]["is_aggregator"] is True
        assert events[1]["iteration"] == 2

    def test_failing_listener_is_ignored(self):
        state = RunState("X")
        seen = []

        def broken(entry):
            raise RuntimeError("display crashed")

        state.add_listener(broken)
        state.add_listener(lambda entry: seen.append(entry.agent_id))
        state.commit([make_turn("a", "a1")])

        assert seen == ["a"]
        assert state.outputs["a"] == "a1"

    def test_entry_duration(self):
        assert make_turn("a", "x").entry.duration == pytest.approx(1.5)
