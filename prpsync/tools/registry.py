"""
Tool registry: public tool name -> handler, parameter schema, description.

A host shell registers tools by iterating TOOL_REGISTRY and dispatching to
``PRPTools.invoke(name, arguments)``.
"""

from dataclasses import dataclass

from prpsync.tools.schemas import (
    CheckNotionSyncStatusParams,
    ExtractTasksParams,
    GetPRPDetailsParams,
    ListParsedPRPsParams,
    ParseYoutubePRPParams,
    SyncToNotionParams,
    ToolParams,
    UpdateTaskStatusParams,
)


@dataclass(frozen=True)
class ToolSpec:
    name: str
    handler: str  # PRPTools method name
    params: type[ToolParams]
    description: str
    privileged: bool = False

    def input_schema(self) -> dict:
        """JSON schema of the parameters, for hosts that advertise tools."""
        return self.params.model_json_schema()


TOOL_REGISTRY: dict[str, ToolSpec] = {
    spec.name: spec
    for spec in (
        ToolSpec(
            "parseYoutubePRP",
            "parse_youtube_prp",
            ParseYoutubePRPParams,
            "Parse a PRP from a YouTube video and store it, optionally syncing to Notion",
        ),
        ToolSpec(
            "listParsedPRPs",
            "list_parsed_prps",
            ListParsedPRPsParams,
            "List parsed PRPs with task counts and sync status",
        ),
        ToolSpec(
            "getPRPDetails",
            "get_prp_details",
            GetPRPDetailsParams,
            "Get the full PRP document, its tasks and sync metadata",
        ),
        ToolSpec(
            "extractTasks",
            "extract_tasks",
            ExtractTasksParams,
            "Extract additional implementation tasks for a PRP (privileged)",
            privileged=True,
        ),
        ToolSpec(
            "updateTaskStatus",
            "update_task_status",
            UpdateTaskStatusParams,
            "Update the status of a PRP task (privileged)",
            privileged=True,
        ),
        ToolSpec(
            "syncToNotion",
            "sync_to_notion",
            SyncToNotionParams,
            "Create or update the Notion page for a PRP (privileged)",
            privileged=True,
        ),
        ToolSpec(
            "checkNotionSyncStatus",
            "check_notion_sync_status",
            CheckNotionSyncStatusParams,
            "Summarize Notion sync status across PRPs",
        ),
    )
}
