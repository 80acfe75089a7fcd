"""
PRP Tools - the pipeline orchestrator

Composes the YouTube, extraction, Notion and persistence layers into the
tool operations. Each invocation is independent: it re-reads what it needs
from the repository, keeps no state between calls, and never holds a
database connection across a network call.

Every invocation returns an envelope. The one error allowed to escape is
SyncStateLostError, raised when recording a failed sync also fails.
"""

import logging
import time
import uuid
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from prpsync.auth import Authorizer
from prpsync.exceptions import (
    ConfigError,
    ForbiddenError,
    NotFoundError,
    PRPError,
    StorageError,
    SyncStateLostError,
    ValidationError,
)
from prpsync.extraction.client import ExtractionClient
from prpsync.logging import (
    ToolLogEntry,
    get_current_user,
    now_iso,
    set_current_user,
    set_request_id,
    tool_logger,
)
from prpsync.notion.blocks import PageSource, build_update_properties, page_url
from prpsync.notion.client import NotionClient
from prpsync.persistence.models import (
    ParsedPRP,
    PRPContent,
    PRPTask,
    SyncStatus,
    TaskStatus,
    parse_datetime,
)
from prpsync.persistence.repository import PRPRepository
from prpsync.tools import envelope
from prpsync.tools.registry import TOOL_REGISTRY, ToolSpec
from prpsync.tools.schemas import (
    CheckNotionSyncStatusParams,
    ExtractTasksParams,
    GetPRPDetailsParams,
    ListParsedPRPsParams,
    ParseYoutubePRPParams,
    SyncToNotionParams,
    UpdateTaskStatusParams,
)
from prpsync.youtube.client import YouTubeClient, extract_video_id

logger = logging.getLogger(__name__)

ToolResult = tuple[str, dict[str, Any]]


def _validation_error(e: PydanticValidationError) -> ValidationError:
    errors = [
        {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
        for err in e.errors()
    ]
    return ValidationError("Invalid parameters", {"errors": errors})


class PRPTools:
    """
    Tool handlers bound to one acting user.

    Usage:
        tools = PRPTools(repo, youtube, extractor, notion, authorizer, "alice")
        result = await tools.parse_youtube_prp("https://youtu.be/dQw4w9WgXcQ")
        result = await tools.invoke("listParsedPRPs", {"limit": 10})
    """

    def __init__(
        self,
        repository: PRPRepository,
        youtube: YouTubeClient | None,
        extractor: ExtractionClient | None,
        notion: NotionClient | None,
        authorizer: Authorizer,
        current_user: str,
    ):
        """
        Initialize tools.

        Args:
            repository: PRP storage
            youtube: Video metadata client (None if not configured)
            extractor: Model client (None if not configured)
            notion: Notion client (None if not configured)
            authorizer: Policy for privileged operations
            current_user: Username supplied by the identity provider
        """
        self.repository = repository
        self._youtube = youtube
        self._extractor = extractor
        self._notion = notion
        self.authorizer = authorizer
        self.current_user = current_user

    # =========================================================================
    # DISPATCH
    # =========================================================================

    async def invoke(self, name: str, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Run a tool by its public name.

        Returns:
            A success or error envelope

        Raises:
            SyncStateLostError: If a failed sync could not be recorded
        """
        spec = TOOL_REGISTRY.get(name)
        if spec is None:
            return envelope.error(
                ValidationError(f"Unknown tool: {name}", {"tool": name}),
            )

        request_id = str(uuid.uuid4())
        set_request_id(request_id)
        set_current_user(self.current_user)
        start_time = time.monotonic()
        log_entry = ToolLogEntry(
            timestamp=now_iso(),
            request_id=request_id,
            tool=name,
            user=get_current_user(),
        )

        try:
            result = await self._dispatch(spec, arguments or {})
        except SyncStateLostError as e:
            log_entry.outcome = "error"
            log_entry.error_kind = e.kind
            log_entry.latency_ms = int((time.monotonic() - start_time) * 1000)
            tool_logger.error(log_entry.to_json())
            logger.error(f"{name}: sync state lost for PRP {e.prp_id}")
            raise
        except PRPError as e:
            result = envelope.error(e, {"operation": name})
            log_entry.outcome = "error"
            log_entry.error_kind = e.kind
        except Exception as e:
            logger.exception(f"{name}: unexpected {type(e).__name__}")
            result = envelope.error(e, {"operation": name})
            log_entry.outcome = "error"
            log_entry.error_kind = "internal"

        log_entry.summary = result.get("message") or result.get("error", "")
        log_entry.latency_ms = int((time.monotonic() - start_time) * 1000)
        if log_entry.outcome == "success":
            tool_logger.info(log_entry.to_json())
        else:
            tool_logger.warning(log_entry.to_json())
        return result

    async def _dispatch(self, spec: ToolSpec, arguments: dict[str, Any]) -> dict[str, Any]:
        try:
            params = spec.params.model_validate(arguments)
        except PydanticValidationError as e:
            raise _validation_error(e)

        if spec.privileged:
            self._require_privileged(spec.name)

        body: Callable[[Any], Awaitable[ToolResult]] = getattr(self, f"_{spec.handler}")
        message, data = await body(params)
        return envelope.success(message, data)

    def _require_privileged(self, tool: str) -> None:
        if not self.authorizer.is_privileged(self.current_user):
            logger.warning(f"{self.current_user or '<anonymous>'} denied {tool}")
            raise ForbiddenError(f"Insufficient permissions to run {tool}", self.current_user)

    # =========================================================================
    # COLLABORATORS
    # =========================================================================

    @property
    def youtube(self) -> YouTubeClient:
        if self._youtube is None:
            raise ConfigError("YouTube API key is not configured")
        return self._youtube

    @property
    def extractor(self) -> ExtractionClient:
        if self._extractor is None:
            raise ConfigError("Model API key is not configured")
        return self._extractor

    @property
    def notion(self) -> NotionClient:
        if self._notion is None:
            raise ConfigError("Notion token is not configured")
        return self._notion

    async def close(self) -> None:
        """Close every configured client."""
        for client in (self._youtube, self._extractor, self._notion):
            if client is not None:
                await client.close()

    def _load_prp(self, prp_id: str) -> ParsedPRP:
        prp = self.repository.get_prp(prp_id)
        if prp is None:
            raise NotFoundError("PRP not found", {"prp_id": prp_id})
        return prp

    # =========================================================================
    # PUBLIC OPERATIONS
    # =========================================================================

    async def parse_youtube_prp(
        self,
        youtube_url: str,
        notion_database_id: str | None = None,
        auto_sync: bool = False,
    ) -> dict[str, Any]:
        return await self.invoke(
            "parseYoutubePRP",
            {
                "youtube_url": youtube_url,
                "notion_database_id": notion_database_id,
                "auto_sync": auto_sync,
            },
        )

    async def list_parsed_prps(
        self,
        created_by: str | None = None,
        sync_status: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> dict[str, Any]:
        return await self.invoke(
            "listParsedPRPs",
            {"created_by": created_by, "sync_status": sync_status, "limit": limit, "offset": offset},
        )

    async def get_prp_details(self, prp_id: str, include_tasks: bool = True) -> dict[str, Any]:
        return await self.invoke("getPRPDetails", {"prp_id": prp_id, "include_tasks": include_tasks})

    async def extract_tasks(self, prp_id: str, max_tasks: int = 20) -> dict[str, Any]:
        return await self.invoke("extractTasks", {"prp_id": prp_id, "max_tasks": max_tasks})

    async def update_task_status(self, task_id: str, status: str) -> dict[str, Any]:
        return await self.invoke("updateTaskStatus", {"task_id": task_id, "status": status})

    async def sync_to_notion(
        self,
        prp_id: str,
        database_id: str,
        update_existing: bool = False,
    ) -> dict[str, Any]:
        return await self.invoke(
            "syncToNotion",
            {"prp_id": prp_id, "database_id": database_id, "update_existing": update_existing},
        )

    async def check_notion_sync_status(
        self,
        prp_ids: Sequence[str] | None = None,
        sync_status: str | None = None,
    ) -> dict[str, Any]:
        return await self.invoke(
            "checkNotionSyncStatus",
            {"prp_ids": list(prp_ids) if prp_ids is not None else None, "sync_status": sync_status},
        )

    # =========================================================================
    # HANDLER BODIES
    # =========================================================================

    async def _parse_youtube_prp(self, params: ParseYoutubePRPParams) -> ToolResult:
        # Stages run strictly in order; each needs the previous one's output
        video_id = extract_video_id(params.youtube_url)
        metadata = await self.youtube.get_video_metadata(video_id)
        transcript = await self.youtube.get_video_transcript(video_id, metadata)
        content = await self.extractor.parse(transcript, metadata)

        prp = ParsedPRP(
            youtube_url=params.youtube_url,
            video_id=video_id,
            video_title=metadata.title,
            video_description=metadata.description,
            channel_title=metadata.channel_title,
            published_at=parse_datetime(metadata.published_at),
            duration=metadata.duration,
            transcript=transcript,
            content=content.to_storage(),
            created_by=self.current_user,
        )
        tasks = [
            PRPTask.from_draft(prp.id, order, draft)
            for order, draft in enumerate(content.tasks, start=1)
        ]
        self.repository.insert_prp(prp, tasks)

        data: dict[str, Any] = {
            "prp_id": prp.id,
            "prp_name": content.name,
            "video_title": metadata.title,
            "channel_title": metadata.channel_title,
            "task_count": len(tasks),
            "sync_status": SyncStatus.NOT_SYNCED.value,
        }
        message = f'Parsed PRP "{content.name}" with {len(tasks)} tasks'

        if params.auto_sync and params.notion_database_id:
            try:
                page_id, _ = await self._push_to_notion(
                    prp, content, tasks, params.notion_database_id, update_existing=False
                )
            except SyncStateLostError:
                raise
            except Exception as e:
                # The parse itself succeeded; report the sync failure alongside it
                data["sync_status"] = SyncStatus.FAILED.value
                data["sync_error"] = envelope.public_message(e)
                message += " (Notion sync failed)"
            else:
                data["notion_page_id"] = page_id
                data["sync_status"] = SyncStatus.SYNCED.value
                message += " and synced to Notion"

        return message, data

    async def _list_parsed_prps(self, params: ListParsedPRPsParams) -> ToolResult:
        total, summaries = self.repository.list_summaries(
            limit=params.limit,
            offset=params.offset,
            created_by=params.created_by,
            sync_status=params.sync_status,
        )
        data = {
            "total": total,
            "limit": params.limit,
            "offset": params.offset,
            "hasMore": params.offset + params.limit < total,
            "prps": [summary.to_dict() for summary in summaries],
        }
        return f"Found {total} PRPs (showing {len(summaries)})", data

    async def _get_prp_details(self, params: GetPRPDetailsParams) -> ToolResult:
        prp = self._load_prp(str(params.prp_id))

        data: dict[str, Any] = {
            "id": prp.id,
            "youtube_url": prp.youtube_url,
            "video": {
                "id": prp.video_id,
                "title": prp.video_title,
                "description": prp.video_description,
                "channel": prp.channel_title,
                "published_at": prp.published_at.isoformat() if prp.published_at else None,
                "duration": prp.duration,
            },
            "prp": prp.content,
            "metadata": {
                "created_by": prp.created_by,
                "created_at": prp.created_at.isoformat(),
                "updated_at": prp.updated_at.isoformat(),
                "notion_sync_status": prp.notion_sync_status.value,
                "notion_page_id": prp.notion_page_id,
                "notion_synced_at": (
                    prp.notion_synced_at.isoformat() if prp.notion_synced_at else None
                ),
            },
        }
        if params.include_tasks:
            data["tasks"] = [task.to_dict() for task in self.repository.get_tasks(prp.id)]

        return f'PRP "{prp.name}" details', data

    async def _extract_tasks(self, params: ExtractTasksParams) -> ToolResult:
        prp = self._load_prp(str(params.prp_id))
        content = prp.prp_content()
        existing = self.repository.get_tasks(prp.id)

        drafts = await self.extractor.extract_more(
            content, params.max_tasks, existing_count=len(existing)
        )
        new_tasks = self.repository.append_tasks(prp.id, drafts)

        # Orders are gap-free, so the last new order is the total
        total = new_tasks[-1].order if new_tasks else len(existing)
        data = {
            "prp_id": prp.id,
            "prp_name": content.name,
            "new_task_count": len(new_tasks),
            "total_task_count": total,
            "tasks": [task.to_dict() for task in new_tasks],
        }
        return f"Extracted {len(new_tasks)} new tasks for PRP \"{content.name}\"", data

    async def _update_task_status(self, params: UpdateTaskStatusParams) -> ToolResult:
        task_id = str(params.task_id)
        change = self.repository.update_task_status(task_id, params.status, self.current_user)
        if change is None:
            raise NotFoundError("Task not found", {"task_id": task_id})

        task = change.task
        data = {
            "task_id": task.id,
            "task_title": task.title,
            "old_status": change.old_status.value,
            "new_status": task.status.value,
            "prp_id": task.prp_id,
            "prp_name": change.prp_name,
            "updated_by": self.current_user,
        }
        if task.status == TaskStatus.COMPLETED:
            data["completed_at"] = task.completed_at.isoformat() if task.completed_at else None
        return f'Task "{task.title}" status updated to {task.status.value}', data

    async def _sync_to_notion(self, params: SyncToNotionParams) -> ToolResult:
        prp = self._load_prp(str(params.prp_id))

        if prp.notion_page_id and not params.update_existing:
            data = {
                "prp_id": prp.id,
                "prp_name": prp.name,
                "notion_page_id": prp.notion_page_id,
                "notion_page_url": page_url(prp.notion_page_id),
                "action": "none",
                "already_synced": True,
            }
            return f'PRP "{prp.name}" is already synced to Notion', data

        content = prp.prp_content()
        tasks = self.repository.get_tasks(prp.id)
        page_id, action = await self._push_to_notion(
            prp, content, tasks, params.database_id, params.update_existing
        )

        data = {
            "prp_id": prp.id,
            "prp_name": content.name,
            "notion_page_id": page_id,
            "notion_page_url": page_url(page_id),
            "action": action,
            "already_synced": False,
        }
        return f'Successfully synced PRP "{content.name}" to Notion', data

    async def _check_notion_sync_status(self, params: CheckNotionSyncStatusParams) -> ToolResult:
        records = self.repository.sync_records(
            prp_ids=[str(prp_id) for prp_id in params.prp_ids] if params.prp_ids else None,
            sync_status=params.sync_status,
        )
        counts = {status: 0 for status in SyncStatus}
        for record in records:
            counts[record.notion_sync_status] += 1

        data = {
            "summary": {
                "total": len(records),
                "synced": counts[SyncStatus.SYNCED],
                "failed": counts[SyncStatus.FAILED],
                "not_synced": counts[SyncStatus.NOT_SYNCED],
                "syncing": counts[SyncStatus.SYNCING],
            },
            "results": [record.to_dict() for record in records],
        }
        return f"Sync status for {len(records)} PRPs", data

    # =========================================================================
    # NOTION SYNC
    # =========================================================================

    async def _push_to_notion(
        self,
        prp: ParsedPRP,
        content: PRPContent,
        tasks: Sequence[PRPTask],
        database_id: str,
        update_existing: bool,
    ) -> tuple[str, str]:
        """
        Create or update the PRP's page and record the outcome.

        Returns:
            Tuple of (page id, "created" or "updated")

        Raises:
            PRPError: The Notion failure, after it has been recorded
            SyncStateLostError: If recording the failure also failed
            StorageError: If the page was written but recording success failed
        """
        try:
            notion = self.notion
            page_id = None
            if update_existing:
                page_id = await notion.find_page_by_embedded_id(database_id, prp.id)

            if page_id:
                await notion.update_page(
                    page_id, build_update_properties(content.name, prp.video_title, len(tasks))
                )
                action = "updated"
            else:
                source = PageSource(
                    prp_id=prp.id,
                    youtube_url=prp.youtube_url,
                    video_title=prp.video_title,
                    channel_title=prp.channel_title or "",
                    created_by=prp.created_by,
                )
                page_id = await notion.create_page(database_id, content, source, tasks)
                action = "created"
        except Exception as e:
            self._record_sync_failure(prp.id, e)
            raise

        self.repository.update_sync_state(prp.id, SyncStatus.SYNCED, page_id=page_id)
        return page_id, action

    def _record_sync_failure(self, prp_id: str, exc: Exception) -> None:
        sync_error = (exc.message if isinstance(exc, PRPError) else type(exc).__name__)[:500]
        logger.warning(f"Notion sync failed for PRP {prp_id}: {sync_error}")
        try:
            self.repository.update_sync_state(prp_id, SyncStatus.FAILED, error=sync_error)
        except StorageError as storage_error:
            raise SyncStateLostError(
                "Failed to record Notion sync failure", prp_id, sync_error
            ) from storage_error
