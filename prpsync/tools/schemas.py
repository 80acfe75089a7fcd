"""
Tool parameter schemas.

Every tool validates its raw arguments against one of these models before
doing anything else. Unknown arguments are rejected.
"""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from prpsync.persistence.models import SyncStatus, TaskStatus
from prpsync.youtube.client import is_youtube_url


class ToolParams(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ParseYoutubePRPParams(ToolParams):
    youtube_url: str = Field(description="YouTube video URL containing a PRP")
    notion_database_id: str | None = Field(
        default=None, description="Notion database to sync to"
    )
    auto_sync: bool = Field(default=False, description="Sync to Notion after parsing")

    @field_validator("youtube_url")
    @classmethod
    def _known_host(cls, value: str) -> str:
        if not is_youtube_url(value):
            raise ValueError("Must be a valid YouTube URL")
        return value


class ListParsedPRPsParams(ToolParams):
    created_by: str | None = Field(default=None, description="Filter by creator username")
    sync_status: SyncStatus | None = Field(default=None, description="Filter by Notion sync status")
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)


class GetPRPDetailsParams(ToolParams):
    prp_id: UUID
    include_tasks: bool = True


class ExtractTasksParams(ToolParams):
    prp_id: UUID
    max_tasks: int = Field(default=20, ge=1, le=100)


class UpdateTaskStatusParams(ToolParams):
    task_id: UUID
    status: TaskStatus


class SyncToNotionParams(ToolParams):
    prp_id: UUID
    database_id: str = Field(min_length=1)
    update_existing: bool = Field(default=False, description="Update the page if it already exists")


class CheckNotionSyncStatusParams(ToolParams):
    prp_ids: list[UUID] | None = None
    sync_status: SyncStatus | None = None
