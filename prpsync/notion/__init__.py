"""Notion page builders and API client."""

from prpsync.notion.blocks import (
    PageSource,
    build_page_properties,
    build_prp_blocks,
    build_update_properties,
    page_url,
)
from prpsync.notion.client import NotionClient

__all__ = [
    "NotionClient",
    "PageSource",
    "build_page_properties",
    "build_prp_blocks",
    "build_update_properties",
    "page_url",
]
