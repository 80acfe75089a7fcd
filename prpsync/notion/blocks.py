"""
Notion block and property builders.

Pure functions producing the JSON payloads the Notion API expects for a
PRP page. The block order is fixed: title, description, video
information, goal, why, what, success criteria, then one section per task.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from prpsync.persistence.models import PRPContent

# Notion rejects rich text objects longer than this
MAX_TEXT_LENGTH = 2000

Block = dict[str, Any]


class TaskLike(Protocol):
    title: str
    description: str | None
    file_path: str | None
    pseudocode: str | None


@dataclass
class PageSource:
    """Where a PRP came from and who parsed it; written to page properties."""

    prp_id: str
    youtube_url: str
    video_title: str
    channel_title: str
    created_by: str


def rich_text(content: str, link: str | None = None) -> dict[str, Any]:
    text: dict[str, Any] = {"content": content[:MAX_TEXT_LENGTH]}
    if link:
        text["link"] = {"url": link}
    return {"type": "text", "text": text}


def _block(block_type: str, body: dict[str, Any]) -> Block:
    return {"object": "block", "type": block_type, block_type: body}


def heading(level: int, content: str) -> Block:
    return _block(f"heading_{level}", {"rich_text": [rich_text(content)]})


def paragraph(content: str) -> Block:
    return _block("paragraph", {"rich_text": [rich_text(content)]})


def bullet(*parts: dict[str, Any]) -> Block:
    return _block("bulleted_list_item", {"rich_text": list(parts)})


def todo(content: str, checked: bool = False) -> Block:
    return _block("to_do", {"rich_text": [rich_text(content)], "checked": checked})


def callout(content: str, emoji: str) -> Block:
    return _block(
        "callout",
        {"rich_text": [rich_text(content)], "icon": {"type": "emoji", "emoji": emoji}},
    )


def code(content: str, language: str = "typescript") -> Block:
    return _block("code", {"rich_text": [rich_text(content)], "language": language})


def build_prp_blocks(
    content: PRPContent,
    source: PageSource,
    tasks: Sequence[TaskLike] | None = None,
) -> list[Block]:
    """
    Build the full ordered block list for a PRP page.

    Args:
        content: The PRP document
        source: Video and provenance details
        tasks: Tasks to render; defaults to the document's own task list
    """
    if tasks is None:
        tasks = content.tasks

    blocks: list[Block] = [
        heading(1, content.name),
        paragraph(content.description),
        heading(2, "📹 Video Information"),
        bullet(rich_text(f"Title: {source.video_title}")),
        bullet(rich_text(f"Channel: {source.channel_title}")),
        bullet(rich_text("URL: "), rich_text(source.youtube_url, link=source.youtube_url)),
        heading(2, "🎯 Goal"),
        paragraph(content.goal),
        heading(2, "❓ Why"),
    ]
    blocks.extend(bullet(rich_text(reason)) for reason in content.why)

    blocks.append(heading(2, "📋 What"))
    blocks.append(paragraph(content.what))

    blocks.append(heading(2, "✅ Success Criteria"))
    blocks.extend(todo(criterion) for criterion in content.success_criteria)

    if tasks:
        blocks.append(heading(2, "🔨 Tasks"))
        for i, task in enumerate(tasks, start=1):
            blocks.append(heading(3, f"{i}. {task.title}"))
            if task.description:
                blocks.append(paragraph(task.description))
            if task.file_path:
                blocks.append(callout(f"📁 File: {task.file_path}", "📁"))
            if task.pseudocode:
                blocks.append(code(task.pseudocode))

    return blocks


def _text_property(value: str) -> dict[str, Any]:
    return {"rich_text": [{"text": {"content": value[:MAX_TEXT_LENGTH]}}]}


def build_page_properties(content: PRPContent, source: PageSource, task_count: int) -> dict[str, Any]:
    """Database properties for a newly created PRP page."""
    return {
        "Name": {"title": [{"text": {"content": content.name[:MAX_TEXT_LENGTH]}}]},
        "YouTube URL": {"url": source.youtube_url},
        "Video Title": _text_property(source.video_title),
        "Channel": _text_property(source.channel_title),
        "Created By": _text_property(source.created_by),
        "PRP ID": _text_property(source.prp_id),
        "Task Count": {"number": task_count},
        "Status": {"select": {"name": "Parsed"}},
    }


def build_update_properties(
    name: str,
    video_title: str,
    task_count: int,
    status: str = "Updated",
) -> dict[str, Any]:
    """Property subset refreshed when re-syncing an existing page."""
    return {
        "Name": {"title": [{"text": {"content": name[:MAX_TEXT_LENGTH]}}]},
        "Video Title": _text_property(video_title),
        "Task Count": {"number": task_count},
        "Status": {"select": {"name": status}},
    }


def page_url(page_id: str) -> str:
    """Browser URL for a page id."""
    return f"https://notion.so/{page_id.replace('-', '')}"
