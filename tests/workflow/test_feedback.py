"""
Unit tests for FeedbackProcessor.

Tests cover:
- approval detection (anywhere, status marker, line start, case)
- per-agent extraction: labelled, heading and role-keyword forms
- generic fallback when nothing is extracted
- purity: identical inputs give identical results
"""

import pytest

from spindle.feedback import GENERIC_FEEDBACK, FeedbackProcessor, extract_agent_feedback, is_approved


@pytest.fixture
def processor():
    return FeedbackProcessor()


class TestApproval:

    def test_keyword_with_trailing_text(self, processor):
        result = processor.process("APPROVED: ship it", ["backend"], "APPROVED")
        assert result.approved is True

    def test_case_insensitive(self):
        assert is_approved("Looks great, approved.", "APPROVED")

    def test_status_marker(self):
        assert is_approved("Review done\nSTATUS: LGTM", "LGTM")

    def test_check_mark(self):
        assert is_approved("✅ Ship", "SHIP")

    def test_not_approved(self):
        assert not is_approved("Backend: add versioning", "APPROVED")

    def test_custom_keyword(self):
        assert is_approved("lgtm", "LGTM")
        assert not is_approved("APPROVED", "LGTM")

    def test_keyword_with_regex_characters(self):
        assert is_approved("ok (final)", "(final)")
        assert not is_approved("final", "(final)")


class TestExtraction:

    def test_labelled_feedback_for_each_target(self, processor):
        text = "Backend: add versioning\nFrontend: add loading state"
        result = processor.process(text, ["backend", "frontend"], "APPROVED")

        assert result.approved is False
        assert result.feedback == {
            "backend": "add versioning",
            "frontend": "add loading state",
        }

    def test_labelled_feedback_spans_continuation_lines(self):
        text = "backend: add versioning\nand document it\nfrontend: fine"
        assert extract_agent_feedback(text, "backend") == "add versioning\nand document it"

    def test_id_must_not_be_part_of_longer_word(self):
        text = "mybackend: ignore this"
        assert extract_agent_feedback(text, "backend") is None

    def test_heading_form(self):
        text = "## api\nUse plural resource names\n## ui\nOk"
        assert extract_agent_feedback(text, "api") == "Use plural resource names"

    def test_bold_heading_form(self):
        text = "**writer**: tighten the intro"
        assert extract_agent_feedback(text, "writer") == "tighten the intro"

    def test_role_keyword_heuristic(self):
        text = "Overall decent.\nBackend Developer: paginate the list endpoint"
        assert extract_agent_feedback(text, "backend_dev") == "paginate the list endpoint"

    def test_role_keyword_only_for_matching_ids(self):
        text = "Backend Developer: paginate"
        assert extract_agent_feedback(text, "writer") is None

    def test_first_pattern_wins(self):
        text = "backend: from label\n## backend\nfrom heading"
        assert extract_agent_feedback(text, "backend") == "from label"

    def test_generic_fallback_when_nothing_extracted(self, processor):
        result = processor.process("Needs more work overall.", ["a", "b"], "APPROVED")

        assert result.approved is False
        assert result.feedback == {"a": GENERIC_FEEDBACK, "b": GENERIC_FEEDBACK}

    def test_no_fallback_when_approved(self, processor):
        result = processor.process("APPROVED", ["a", "b"], "APPROVED")
        assert result.feedback == {}

    def test_partial_extraction_has_no_fallback_entries(self, processor):
        result = processor.process("a: fix tests", ["a", "b"], "APPROVED")
        assert result.feedback == {"a": "fix tests"}

    def test_process_is_idempotent(self, processor):
        text = "Backend: add versioning\n**frontend**: spinner\nSTATUS: pending"
        first = processor.process(text, ["backend", "frontend"], "APPROVED")
        second = processor.process(text, ["backend", "frontend"], "APPROVED")
        assert first == second
