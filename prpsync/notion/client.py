"""
Notion Client - mirrors PRPs into a Notion database

Only the handful of endpoints the sync needs: database lookup, page
create/update and database query. Responses are validated
with pydantic before any field is read.
"""

import logging
from collections.abc import Sequence
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from prpsync.exceptions import (
    CollectionNotFoundError,
    NotFoundError,
    RateLimitError,
    UpstreamError,
)
from prpsync.notion.blocks import (
    PageSource,
    TaskLike,
    build_page_properties,
    build_prp_blocks,
)
from prpsync.persistence.models import PRPContent
from prpsync.retry import RetryPolicy

logger = logging.getLogger(__name__)

NOTION_API_BASE = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"
DEFAULT_TIMEOUT = 30.0

# Per-request ceiling on children blocks
MAX_BLOCKS_PER_REQUEST = 100


# ============================================================================
# RESPONSE SCHEMAS
# ============================================================================


class NotionObject(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str


class QueryResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    results: list[NotionObject] = []


class NotionErrorBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: str = ""
    code: str = ""


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, (RateLimitError, httpx.TransportError))


def _is_missing_target(exc: UpstreamError) -> bool:
    # Notion answers 400 validation_error for a malformed database id
    if exc.status == 404:
        return True
    return exc.status == 400 and exc.details.get("code") == "validation_error"


class NotionClient:
    """
    Client for the Notion REST API.

    Usage:
        async with NotionClient(token) as notion:
            page_id = await notion.create_page(database_id, content, source)
    """

    def __init__(
        self,
        token: str,
        retry: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize Notion client.

        Args:
            token: Notion integration token
            retry: Retry policy; its classifier is replaced with this client's
            transport: Optional httpx transport (tests use MockTransport)
            timeout: Per-request timeout in seconds
        """
        self._retry = (retry or RetryPolicy()).with_classifier(is_retryable, "notion")
        self._client = httpx.AsyncClient(
            base_url=NOTION_API_BASE,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {token}",
                "Notion-Version": NOTION_VERSION,
                "Content-Type": "application/json",
            },
        )

    async def __aenter__(self) -> "NotionClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    async def _send(self, method: str, path: str, body: dict[str, Any] | None) -> dict[str, Any]:
        """One request attempt, raising typed errors for non-2xx responses."""
        response = await self._client.request(method, path, json=body)

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                "Notion API rate limit exceeded",
                service="notion",
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if response.is_error:
            try:
                error = NotionErrorBody.model_validate(response.json())
            except (ValueError, PydanticValidationError):
                error = NotionErrorBody()
            raise UpstreamError(
                error.message or f"Notion API error: {response.status_code}",
                status=response.status_code,
                service="notion",
                details={"code": error.code} if error.code else None,
            )

        try:
            return response.json()
        except ValueError:
            raise UpstreamError(
                "Notion API returned a non-JSON response",
                status=response.status_code,
                service="notion",
            )

    async def _request(
        self, method: str, path: str, body: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        try:
            return await self._retry.execute(self._send, method, path, body)
        except httpx.TransportError as e:
            raise UpstreamError(
                f"Notion API unreachable: {type(e).__name__}",
                service="notion",
            ) from e

    async def _database_request(
        self, database_id: str, method: str, path: str, body: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Request against a database; a missing or malformed target is CollectionNotFoundError."""
        try:
            return await self._request(method, path, body)
        except RateLimitError:
            raise
        except UpstreamError as e:
            if _is_missing_target(e):
                raise CollectionNotFoundError(
                    f"Database {database_id} not found or not accessible", database_id
                ) from e
            raise

    @staticmethod
    def _parse(model: type[BaseModel], data: dict[str, Any], operation: str) -> Any:
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            raise UpstreamError(
                f"Unexpected Notion response for {operation}",
                service="notion",
                details={"error_count": e.error_count()},
            )

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    async def validate_database(self, database_id: str) -> bool:
        """
        Check that a database exists and is shared with the integration.

        Returns:
            False if the database is missing or the id is malformed, True on success

        Raises:
            UpstreamError: For any other failure
        """
        try:
            await self._database_request(database_id, "GET", f"databases/{database_id}")
            return True
        except CollectionNotFoundError:
            return False

    async def create_page(
        self,
        database_id: str,
        content: PRPContent,
        source: PageSource,
        tasks: Sequence[TaskLike] | None = None,
    ) -> str:
        """
        Create a formatted PRP page in a database.

        Only the first 100 blocks are attached; the rest are dropped.

        Returns:
            The new page id

        Raises:
            CollectionNotFoundError: If the database is missing or not shared
            UpstreamError: If the API fails
        """
        if not await self.validate_database(database_id):
            raise CollectionNotFoundError(
                f"Database {database_id} not found or not accessible", database_id
            )

        blocks = build_prp_blocks(content, source, tasks)
        if len(blocks) > MAX_BLOCKS_PER_REQUEST:
            logger.warning(
                f"PRP {source.prp_id} has {len(blocks)} blocks; "
                f"only the first {MAX_BLOCKS_PER_REQUEST} are attached"
            )

        task_count = len(tasks) if tasks is not None else len(content.tasks)
        data = await self._database_request(
            database_id,
            "POST",
            "pages",
            {
                "parent": {"database_id": database_id},
                "properties": build_page_properties(content, source, task_count),
                "children": blocks[:MAX_BLOCKS_PER_REQUEST],
            },
        )
        page = self._parse(NotionObject, data, "create_page")
        logger.info(f"Created Notion page {page.id} for PRP {source.prp_id}")
        return page.id

    async def update_page(self, page_id: str, properties: dict[str, Any]) -> None:
        """
        Patch a page's properties; content blocks are left alone.

        Raises:
            NotFoundError: If the page no longer exists
        """
        try:
            await self._request("PATCH", f"pages/{page_id}", {"properties": properties})
        except RateLimitError:
            raise
        except UpstreamError as e:
            if e.status == 404:
                raise NotFoundError("Notion page not found", {"page_id": page_id}) from e
            raise
        logger.info(f"Updated Notion page {page_id}")

    async def find_page_by_embedded_id(self, database_id: str, prp_id: str) -> str | None:
        """
        Find the page whose ``PRP ID`` property equals ``prp_id``.

        Returns:
            The first matching page id, or None

        Raises:
            CollectionNotFoundError: If the database is missing or not shared
        """
        data = await self._database_request(
            database_id,
            "POST",
            f"databases/{database_id}/query",
            {"filter": {"property": "PRP ID", "rich_text": {"equals": prp_id}}},
        )
        result = self._parse(QueryResponse, data, "query")
        return result.results[0].id if result.results else None
