"""PRP extraction: prompts, response parsing and the model client."""

from prpsync.extraction.client import ExtractionClient
from prpsync.extraction.parser import (
    parse_prp_content,
    parse_task_drafts,
    strip_code_fences,
)

__all__ = [
    "ExtractionClient",
    "parse_prp_content",
    "parse_task_drafts",
    "strip_code_fences",
]
