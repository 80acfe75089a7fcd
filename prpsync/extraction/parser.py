"""
Extraction Response Parser

Turns raw model text into validated PRP structures. JSON syntax failures
raise InvalidResponseFormatError; well-formed JSON of the wrong shape raises
MalformedExtractionError. Nothing here retries.
"""

import json
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from prpsync.exceptions import InvalidResponseFormatError, MalformedExtractionError
from prpsync.persistence.models import PRPContent, TaskDraft, TaskType

_VALID_TASK_TYPES = {t.value for t in TaskType}


def strip_code_fences(text: str) -> str:
    """
    Remove an optional surrounding markdown code fence.

    Handles a leading ```json or ``` and a trailing ```.
    """
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def load_json(text: str) -> Any:
    """
    Parse model output as JSON after stripping code fences.

    Raises:
        InvalidResponseFormatError: If the text is not valid JSON
    """
    cleaned = strip_code_fences(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise InvalidResponseFormatError(
            "Invalid JSON response from AI",
            {"error": e.msg, "position": e.pos, "response_preview": cleaned[:200]},
        )


def parse_prp_content(text: str) -> PRPContent:
    """
    Parse and validate a full PRP document.

    Raises:
        InvalidResponseFormatError: If the text is not valid JSON
        MalformedExtractionError: If the JSON does not match the PRP shape
    """
    data = load_json(text)
    if not isinstance(data, dict):
        raise MalformedExtractionError(
            "Invalid PRP structure from AI",
            {"expected": "object", "got": type(data).__name__},
        )

    try:
        return PRPContent.model_validate(data)
    except PydanticValidationError as e:
        raise MalformedExtractionError(
            "Invalid PRP structure from AI",
            {
                "error_count": e.error_count(),
                "fields": [".".join(str(p) for p in err["loc"]) for err in e.errors()][:10],
            },
        )


def _optional_text(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def coerce_task(item: Any, position: int) -> TaskDraft:
    """
    Build a TaskDraft from one loosely-shaped item.

    Missing or non-string fields fall back to placeholders: title
    ``Task {position}``, empty description, type ``other``.
    """
    if not isinstance(item, dict):
        item = {}

    title = item.get("title")
    description = item.get("description")
    task_type = item.get("type")
    if not isinstance(task_type, str) or task_type not in _VALID_TASK_TYPES:
        task_type = TaskType.OTHER.value

    return TaskDraft(
        title=title if isinstance(title, str) and title else f"Task {position}",
        description=description if isinstance(description, str) else "",
        type=TaskType(task_type),
        file_path=_optional_text(item.get("file_path")),
        pseudocode=_optional_text(item.get("pseudocode")),
    )


def parse_task_drafts(text: str, max_tasks: int) -> list[TaskDraft]:
    """
    Parse a list of additional tasks, keeping at most ``max_tasks``.

    Raises:
        InvalidResponseFormatError: If the text is not valid JSON
        MalformedExtractionError: If the JSON is not an array
    """
    data = load_json(text)
    if not isinstance(data, list):
        raise MalformedExtractionError(
            "Expected array of tasks from AI",
            {"got": type(data).__name__},
        )

    return [coerce_task(item, i + 1) for i, item in enumerate(data[:max_tasks])]
