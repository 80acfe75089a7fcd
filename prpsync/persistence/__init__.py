"""
prpsync Persistence Layer

SQLite storage for parsed PRPs, their tasks and their Notion sync state.
"""

from prpsync.persistence.models import (
    # Enums
    DocumentationType,
    # Value types
    DocumentationRef,
    # Row entities
    ParsedPRP,
    PRPContent,
    PRPContext,
    PRPSummary,
    PRPTask,
    SyncRecord,
    SyncStatus,
    TaskDraft,
    TaskStatus,
    TaskStatusChange,
    TaskType,
)
from prpsync.persistence.repository import PRPRepository

__all__ = [
    # Enums
    "DocumentationType",
    "SyncStatus",
    "TaskStatus",
    "TaskType",
    # Value types
    "DocumentationRef",
    "PRPContent",
    "PRPContext",
    "TaskDraft",
    # Row entities
    "ParsedPRP",
    "PRPSummary",
    "PRPTask",
    "SyncRecord",
    "TaskStatusChange",
    # Repository
    "PRPRepository",
]
