"""Tests for extraction response parsing."""

import json

import pytest

from prpsync.exceptions import InvalidResponseFormatError, MalformedExtractionError
from prpsync.extraction.parser import (
    parse_prp_content,
    parse_task_drafts,
    strip_code_fences,
)
from prpsync.persistence.models import TaskType


class TestStripCodeFences:
    """Tests for fence removal."""

    def test_json_fence(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_plain_fence(self):
        assert strip_code_fences('```\n[1]\n```') == "[1]"

    def test_no_fence(self):
        assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


class TestParsePRPContent:
    """Tests for full document validation."""

    def test_valid_document(self, prp_json):
        content = parse_prp_content(f"```json\n{prp_json}\n```")
        assert content.name == "Realtime Chat"
        assert len(content.tasks) == 3
        assert content.tasks[0].type == TaskType.CREATE
        assert content.context.codebase_tree is None

    def test_invalid_json(self):
        with pytest.raises(InvalidResponseFormatError):
            parse_prp_content("Here is your PRP: {name: oops")

    def test_missing_field_is_malformed(self, payload_factory):
        payload = payload_factory()
        del payload["goal"]
        with pytest.raises(MalformedExtractionError) as exc_info:
            parse_prp_content(json.dumps(payload))
        assert "goal" in exc_info.value.details["fields"]

    def test_missing_tasks_is_malformed(self, payload_factory):
        """A document without a task list is rejected, not read as empty."""
        payload = payload_factory()
        del payload["tasks"]
        with pytest.raises(MalformedExtractionError) as exc_info:
            parse_prp_content(json.dumps(payload))
        assert "tasks" in exc_info.value.details["fields"]

    def test_wrong_type_is_not_coerced(self, payload_factory):
        """A number where text is expected is rejected, not stringified."""
        with pytest.raises(MalformedExtractionError):
            parse_prp_content(json.dumps(payload_factory(goal=42)))

    def test_bad_task_type_is_malformed(self, payload_factory):
        payload = payload_factory()
        payload["tasks"][0]["type"] = "refactor"
        with pytest.raises(MalformedExtractionError):
            parse_prp_content(json.dumps(payload))

    def test_empty_why_is_malformed(self, payload_factory):
        with pytest.raises(MalformedExtractionError):
            parse_prp_content(json.dumps(payload_factory(why=[])))

    def test_array_is_malformed(self):
        with pytest.raises(MalformedExtractionError):
            parse_prp_content("[]")


class TestParseTaskDrafts:
    """Tests for extract-more task parsing."""

    def test_truncates_to_max(self):
        items = [{"title": f"T{i}", "description": "d", "type": "test"} for i in range(5)]
        drafts = parse_task_drafts(json.dumps(items), max_tasks=2)
        assert [d.title for d in drafts] == ["T0", "T1"]

    def test_defaults_for_partial_items(self):
        """Partially malformed items get placeholders, not a failed batch."""
        items = [
            {"description": "no title"},
            {"title": "Typed oddly", "type": "refactor"},
            "not an object",
        ]
        drafts = parse_task_drafts(json.dumps(items), max_tasks=10)

        assert drafts[0].title == "Task 1"
        assert drafts[0].type == TaskType.OTHER
        assert drafts[1].description == ""
        assert drafts[1].type == TaskType.OTHER
        assert drafts[2].title == "Task 3"

    def test_non_array_is_malformed(self):
        with pytest.raises(MalformedExtractionError):
            parse_task_drafts('{"tasks": []}', max_tasks=5)

    def test_invalid_json(self):
        with pytest.raises(InvalidResponseFormatError):
            parse_task_drafts("nope", max_tasks=5)
