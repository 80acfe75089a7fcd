"""
PRP Persistence Models

Row dataclasses for the ``parsed_prps`` and ``prp_tasks`` tables and the
``prp_summaries`` view, plus the pydantic value types describing the
structured PRP document stored inside each ``parsed_prps`` row.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from prpsync.exceptions import StorageError


# ============================================================================
# ENUMS - Type-safe status values matching SQL schema
# ============================================================================


class SyncStatus(str, Enum):
    """Notion sync lifecycle of a PRP."""

    NOT_SYNCED = "not_synced"
    SYNCING = "syncing"
    SYNCED = "synced"
    FAILED = "failed"

    def can_transition_to(self, target: SyncStatus) -> bool:
        return target in VALID_SYNC_TRANSITIONS[self]


# Sync state only moves forward; nothing returns to not_synced
VALID_SYNC_TRANSITIONS: dict[SyncStatus, set[SyncStatus]] = {
    SyncStatus.NOT_SYNCED: {SyncStatus.SYNCING, SyncStatus.SYNCED, SyncStatus.FAILED},
    SyncStatus.SYNCING: {SyncStatus.SYNCED, SyncStatus.FAILED},
    SyncStatus.SYNCED: {SyncStatus.SYNCING, SyncStatus.SYNCED, SyncStatus.FAILED},
    SyncStatus.FAILED: {SyncStatus.SYNCING, SyncStatus.SYNCED, SyncStatus.FAILED},
}


class TaskStatus(str, Enum):
    """Task lifecycle status."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"


class TaskType(str, Enum):
    """Kind of implementation work a task describes."""

    CREATE = "create"
    MODIFY = "modify"
    TEST = "test"
    DEPLOY = "deploy"
    ANALYZE = "analyze"
    DESIGN = "design"
    DOCUMENT = "document"
    RESEARCH = "research"
    REVIEW = "review"
    OTHER = "other"


class DocumentationType(str, Enum):
    """Kind of reference listed in a PRP's context."""

    URL = "url"
    FILE = "file"
    DOCFILE = "docfile"


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================


def generate_id() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


def now_iso() -> str:
    """Get current UTC datetime as ISO string."""
    return datetime.now(timezone.utc).isoformat()


def to_json(value: list | dict | None) -> str | None:
    """Convert list or dict to JSON string."""
    if value is None:
        return None
    return json.dumps(value)


def parse_datetime(value: str | datetime | None) -> datetime | None:
    """Parse ISO datetime string to datetime object."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError, AttributeError):
        return None


def iso_or_none(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# ============================================================================
# VALUE TYPES - the structured PRP document
# ============================================================================


class DocumentationRef(BaseModel):
    """A reference the implementer should read."""

    model_config = ConfigDict(extra="ignore")

    type: DocumentationType
    path: str
    why: str


class PRPContext(BaseModel):
    """Background material for a PRP."""

    model_config = ConfigDict(extra="ignore")

    documentation: list[DocumentationRef]
    codebase_tree: str | None = None
    gotchas: list[str]


class TaskDraft(BaseModel):
    """A task as produced by extraction, before it has an id or order."""

    model_config = ConfigDict(extra="ignore")

    title: str
    description: str
    type: TaskType
    file_path: str | None = None
    pseudocode: str | None = None


class PRPContent(BaseModel):
    """The structured Product Requirements Prompt document."""

    model_config = ConfigDict(extra="ignore")

    name: str
    description: str
    goal: str
    why: list[str] = Field(min_length=1)
    what: str
    success_criteria: list[str] = Field(min_length=1)
    context: PRPContext
    tasks: list[TaskDraft]

    def to_storage(self) -> dict[str, Any]:
        """JSON-compatible dict as stored in ``parsed_prps.parsed_content``."""
        return self.model_dump(mode="json")


# ============================================================================
# ROW ENTITIES
# ============================================================================


@dataclass
class ParsedPRP:
    """
    A PRP parsed from one video.

    Maps to: parsed_prps table
    """

    id: str = field(default_factory=generate_id)
    youtube_url: str = ""
    video_id: str = ""
    video_title: str = ""
    video_description: str | None = None
    channel_title: str | None = None
    published_at: datetime | None = None
    duration: str | None = None
    transcript: str | None = None
    content: dict[str, Any] = field(default_factory=dict)
    created_by: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    notion_page_id: str | None = None
    notion_sync_status: SyncStatus = SyncStatus.NOT_SYNCED
    notion_sync_error: str | None = None
    notion_synced_at: datetime | None = None

    @property
    def name(self) -> str:
        return self.content.get("name", "")

    def prp_content(self) -> PRPContent:
        """
        Decode and validate the stored document.

        Raises:
            StorageError: If the stored JSON no longer matches the PRP shape
        """
        try:
            return PRPContent.model_validate(self.content)
        except PydanticValidationError as e:
            raise StorageError(
                "Stored PRP content is invalid",
                {"prp_id": self.id, "errors": e.error_count()},
            )

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> ParsedPRP:
        """Create from database row."""
        raw_content = row["parsed_content"]
        return cls(
            id=row["id"],
            youtube_url=row["youtube_url"],
            video_id=row["video_id"],
            video_title=row["video_title"],
            video_description=row["video_description"],
            channel_title=row["channel_title"],
            published_at=parse_datetime(row["published_at"]),
            duration=row["duration"],
            transcript=row["transcript"],
            content=json.loads(raw_content) if raw_content else {},
            created_by=row["created_by"],
            created_at=parse_datetime(row["created_at"]) or datetime.now(timezone.utc),
            updated_at=parse_datetime(row["updated_at"]) or datetime.now(timezone.utc),
            notion_page_id=row["notion_page_id"],
            notion_sync_status=SyncStatus(row["notion_sync_status"] or "not_synced"),
            notion_sync_error=row["notion_sync_error"],
            notion_synced_at=parse_datetime(row["notion_synced_at"]),
        )

    def to_row(self) -> tuple:
        """Convert to database row for INSERT."""
        return (
            self.id,
            self.youtube_url,
            self.video_id,
            self.video_title,
            self.video_description,
            self.channel_title,
            iso_or_none(self.published_at),
            self.duration,
            self.transcript,
            to_json(self.content),
            self.created_by,
            self.created_at.isoformat(),
            self.updated_at.isoformat(),
            self.notion_page_id,
            self.notion_sync_status.value,
            self.notion_sync_error,
            iso_or_none(self.notion_synced_at),
        )


@dataclass
class PRPTask:
    """
    One implementation task belonging to a PRP.

    Maps to: prp_tasks table
    """

    id: str = field(default_factory=generate_id)
    prp_id: str = ""
    order: int = 0
    title: str = ""
    description: str | None = None
    type: TaskType = TaskType.OTHER
    file_path: str | None = None
    pseudocode: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None
    completed_by: str | None = None

    @classmethod
    def from_draft(cls, prp_id: str, order: int, draft: TaskDraft) -> PRPTask:
        return cls(
            prp_id=prp_id,
            order=order,
            title=draft.title,
            description=draft.description,
            type=draft.type,
            file_path=draft.file_path or None,
            pseudocode=draft.pseudocode or None,
        )

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> PRPTask:
        """Create from database row."""
        return cls(
            id=row["id"],
            prp_id=row["prp_id"],
            order=row["order_num"],
            title=row["title"],
            description=row["description"],
            type=TaskType(row["type"]),
            file_path=row["file_path"],
            pseudocode=row["pseudocode"],
            status=TaskStatus(row["status"]),
            created_at=parse_datetime(row["created_at"]) or datetime.now(timezone.utc),
            updated_at=parse_datetime(row["updated_at"]) or datetime.now(timezone.utc),
            completed_at=parse_datetime(row["completed_at"]),
            completed_by=row["completed_by"],
        )

    def to_row(self) -> tuple:
        """Convert to database row for INSERT."""
        return (
            self.id,
            self.prp_id,
            self.order,
            self.title,
            self.description,
            self.type.value,
            self.file_path,
            self.pseudocode,
            self.status.value,
            self.created_at.isoformat(),
            self.updated_at.isoformat(),
            iso_or_none(self.completed_at),
            self.completed_by,
        )

    def to_dict(self) -> dict[str, Any]:
        """Shape used in tool responses."""
        return {
            "id": self.id,
            "order": self.order,
            "title": self.title,
            "description": self.description,
            "type": self.type.value,
            "file_path": self.file_path,
            "pseudocode": self.pseudocode,
            "status": self.status.value,
            "completed_at": iso_or_none(self.completed_at),
            "completed_by": self.completed_by,
        }


@dataclass
class PRPSummary:
    """
    Per-PRP task counts for list views.

    Maps to: prp_summaries view (computed at query time)
    """

    id: str
    youtube_url: str
    video_title: str
    channel_title: str | None
    created_by: str
    created_at: datetime | None
    notion_sync_status: SyncStatus
    notion_page_id: str | None
    prp_name: str | None
    prp_description: str | None
    total_tasks: int = 0
    completed_tasks: int = 0
    in_progress_tasks: int = 0
    pending_tasks: int = 0
    blocked_tasks: int = 0

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> PRPSummary:
        """Create from view row."""
        return cls(
            id=row["id"],
            youtube_url=row["youtube_url"],
            video_title=row["video_title"],
            channel_title=row["channel_title"],
            created_by=row["created_by"],
            created_at=parse_datetime(row["created_at"]),
            notion_sync_status=SyncStatus(row["notion_sync_status"]),
            notion_page_id=row["notion_page_id"],
            prp_name=row["prp_name"],
            prp_description=row["prp_description"],
            total_tasks=row["total_tasks"] or 0,
            completed_tasks=row["completed_tasks"] or 0,
            in_progress_tasks=row["in_progress_tasks"] or 0,
            pending_tasks=row["pending_tasks"] or 0,
            blocked_tasks=row["blocked_tasks"] or 0,
        )

    def to_dict(self) -> dict[str, Any]:
        """Shape used by the list tool."""
        return {
            "id": self.id,
            "name": self.prp_name,
            "description": self.prp_description,
            "video_title": self.video_title,
            "channel": self.channel_title,
            "created_by": self.created_by,
            "created_at": iso_or_none(self.created_at),
            "tasks": {
                "total": self.total_tasks,
                "completed": self.completed_tasks,
                "in_progress": self.in_progress_tasks,
                "pending": self.pending_tasks,
                "blocked": self.blocked_tasks,
            },
            "notion": {
                "status": self.notion_sync_status.value,
                "page_id": self.notion_page_id,
            },
        }


@dataclass
class TaskStatusChange:
    """Result of a status update, with the parent PRP's name."""

    task: PRPTask
    old_status: TaskStatus
    prp_name: str


@dataclass
class SyncRecord:
    """Sync columns of one PRP, as reported by the sync status tool."""

    id: str
    video_title: str
    prp_name: str | None
    notion_sync_status: SyncStatus
    notion_page_id: str | None
    notion_synced_at: datetime | None
    notion_sync_error: str | None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> SyncRecord:
        return cls(
            id=row["id"],
            video_title=row["video_title"],
            prp_name=row["prp_name"],
            notion_sync_status=SyncStatus(row["notion_sync_status"]),
            notion_page_id=row["notion_page_id"],
            notion_synced_at=parse_datetime(row["notion_synced_at"]),
            notion_sync_error=row["notion_sync_error"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "video_title": self.video_title,
            "prp_name": self.prp_name,
            "notion_sync_status": self.notion_sync_status.value,
            "notion_page_id": self.notion_page_id,
            "notion_synced_at": iso_or_none(self.notion_synced_at),
            "notion_sync_error": self.notion_sync_error,
        }
