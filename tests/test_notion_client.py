"""Tests for Notion blocks and client."""

import json

import httpx
import pytest

from prpsync.exceptions import (
    CollectionNotFoundError,
    NotFoundError,
    RateLimitError,
    UpstreamError,
)
from prpsync.extraction.parser import parse_prp_content
from prpsync.notion.blocks import (
    PageSource,
    build_page_properties,
    build_prp_blocks,
    build_update_properties,
    page_url,
)
from prpsync.notion.client import NotionClient

SOURCE = PageSource(
    prp_id="prp-123",
    youtube_url="https://youtu.be/dQw4w9WgXcQ",
    video_title="Building a Chat App",
    channel_title="Dev Channel",
    created_by="alice",
)


class Recorder:
    """MockTransport handler recording requests and replaying responses."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        key = (request.method, request.url.path.removeprefix("/v1/"))
        response = self.routes[key]
        return response() if callable(response) else response

    def body(self, index):
        return json.loads(self.requests[index].content)


def make_client(recorder, retry=None) -> NotionClient:
    return NotionClient("secret-token", retry=retry, transport=httpx.MockTransport(recorder))


class TestBlocks:
    """Tests for block builders."""

    def test_block_order(self, prp_json):
        content = parse_prp_content(prp_json)
        blocks = build_prp_blocks(content, SOURCE)

        types = [block["type"] for block in blocks]
        assert types[:6] == [
            "heading_1",
            "paragraph",
            "heading_2",
            "bulleted_list_item",
            "bulleted_list_item",
            "bulleted_list_item",
        ]
        headings = [
            block["heading_2"]["rich_text"][0]["text"]["content"]
            for block in blocks
            if block["type"] == "heading_2"
        ]
        assert headings == [
            "📹 Video Information",
            "🎯 Goal",
            "❓ Why",
            "📋 What",
            "✅ Success Criteria",
            "🔨 Tasks",
        ]

    def test_url_bullet_is_linked(self, prp_json):
        blocks = build_prp_blocks(parse_prp_content(prp_json), SOURCE)
        url_parts = blocks[5]["bulleted_list_item"]["rich_text"]
        assert url_parts[1]["text"]["link"] == {"url": SOURCE.youtube_url}

    def test_task_sections(self, prp_json):
        """File paths become callouts and pseudocode becomes code blocks."""
        blocks = build_prp_blocks(parse_prp_content(prp_json), SOURCE)
        tasks_start = next(
            i for i, b in enumerate(blocks)
            if b["type"] == "heading_2" and "Tasks" in b["heading_2"]["rich_text"][0]["text"]["content"]
        )
        task_types = [b["type"] for b in blocks[tasks_start + 1 :]]
        assert task_types == [
            "heading_3", "paragraph", "callout",
            "heading_3", "paragraph", "code",
            "heading_3", "paragraph",
        ]
        callout = blocks[tasks_start + 3]["callout"]
        assert callout["rich_text"][0]["text"]["content"] == "📁 File: src/step_1.py"
        assert blocks[tasks_start + 1]["heading_3"]["rich_text"][0]["text"]["content"] == "1. Task number 1"

    def test_success_criteria_are_unchecked_todos(self, prp_json):
        blocks = build_prp_blocks(parse_prp_content(prp_json), SOURCE)
        todos = [b for b in blocks if b["type"] == "to_do"]
        assert len(todos) == 1
        assert todos[0]["to_do"]["checked"] is False

    def test_properties(self, prp_json):
        props = build_page_properties(parse_prp_content(prp_json), SOURCE, task_count=3)
        assert props["PRP ID"]["rich_text"][0]["text"]["content"] == "prp-123"
        assert props["Task Count"] == {"number": 3}
        assert props["Status"] == {"select": {"name": "Parsed"}}
        assert props["YouTube URL"] == {"url": SOURCE.youtube_url}

    def test_update_properties_subset(self):
        props = build_update_properties("Chat", "Video", 4)
        assert set(props) == {"Name", "Video Title", "Task Count", "Status"}
        assert props["Status"] == {"select": {"name": "Updated"}}

    def test_page_url(self):
        assert page_url("abcd-1234-ef") == "https://notion.so/abcd1234ef"


class TestNotionClient:
    """Tests for API calls."""

    @pytest.mark.asyncio
    async def test_create_page(self, prp_json):
        recorder = Recorder(
            {
                ("GET", "databases/db-1"): httpx.Response(200, json={"id": "db-1"}),
                ("POST", "pages"): httpx.Response(200, json={"id": "page-9", "object": "page"}),
            }
        )
        async with make_client(recorder) as client:
            page_id = await client.create_page("db-1", parse_prp_content(prp_json), SOURCE)

        assert page_id == "page-9"
        request = recorder.requests[1]
        assert request.headers["Authorization"] == "Bearer secret-token"
        assert request.headers["Notion-Version"] == "2022-06-28"
        body = recorder.body(1)
        assert body["parent"] == {"database_id": "db-1"}
        assert body["properties"]["Task Count"] == {"number": 3}

    @pytest.mark.asyncio
    async def test_create_page_truncates_to_100_blocks(self, payload_factory):
        content = parse_prp_content(json.dumps(payload_factory(task_count=60)))
        recorder = Recorder(
            {
                ("GET", "databases/db-1"): httpx.Response(200, json={"id": "db-1"}),
                ("POST", "pages"): httpx.Response(200, json={"id": "page-9"}),
            }
        )
        async with make_client(recorder) as client:
            await client.create_page("db-1", content, SOURCE)

        assert len(recorder.requests) == 2
        assert len(recorder.body(1)["children"]) == 100

    @pytest.mark.asyncio
    async def test_missing_database(self, prp_json):
        recorder = Recorder(
            {
                ("GET", "databases/db-x"): httpx.Response(
                    404, json={"object": "error", "code": "object_not_found", "message": "Not found"}
                ),
            }
        )
        async with make_client(recorder) as client:
            with pytest.raises(CollectionNotFoundError) as exc_info:
                await client.create_page("db-x", parse_prp_content(prp_json), SOURCE)

        assert exc_info.value.database_id == "db-x"
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_find_page_by_embedded_id(self):
        recorder = Recorder(
            {("POST", "databases/db-1/query"): httpx.Response(200, json={"results": [{"id": "page-1"}]})}
        )
        async with make_client(recorder) as client:
            assert await client.find_page_by_embedded_id("db-1", "prp-123") == "page-1"

        assert recorder.body(0) == {
            "filter": {"property": "PRP ID", "rich_text": {"equals": "prp-123"}}
        }

    @pytest.mark.asyncio
    async def test_find_page_no_match(self):
        recorder = Recorder(
            {("POST", "databases/db-1/query"): httpx.Response(200, json={"results": []})}
        )
        async with make_client(recorder) as client:
            assert await client.find_page_by_embedded_id("db-1", "prp-123") is None

    @pytest.mark.asyncio
    async def test_update_page(self):
        recorder = Recorder({("PATCH", "pages/page-1"): httpx.Response(200, json={"id": "page-1"})})
        async with make_client(recorder) as client:
            await client.update_page("page-1", build_update_properties("Chat", "Video", 2))

        assert recorder.body(0)["properties"]["Task Count"] == {"number": 2}

    @pytest.mark.asyncio
    async def test_error_carries_status_and_message(self):
        recorder = Recorder(
            {("PATCH", "pages/page-1"): httpx.Response(400, json={"code": "validation_error", "message": "Bad property"})}
        )
        async with make_client(recorder) as client:
            with pytest.raises(UpstreamError) as exc_info:
                await client.update_page("page-1", {})

        assert exc_info.value.status == 400
        assert exc_info.value.message == "Bad property"
        assert exc_info.value.details["code"] == "validation_error"

    @pytest.mark.asyncio
    async def test_rate_limit_retried(self, fast_retry, sleeps):
        recorder = Recorder({("PATCH", "pages/page-1"): lambda: httpx.Response(429)})
        async with make_client(recorder, retry=fast_retry) as client:
            with pytest.raises(RateLimitError):
                await client.update_page("page-1", {})

        assert len(recorder.requests) == 3
        assert len(sleeps) == 2


class TestMissingDatabase:
    """A missing or malformed database surfaces as CollectionNotFoundError."""

    @pytest.mark.asyncio
    async def test_query_against_missing_database(self):
        recorder = Recorder(
            {
                ("POST", "databases/db-missing/query"): httpx.Response(
                    404, json={"object": "error", "code": "object_not_found", "message": "Could not find database"}
                )
            }
        )
        async with make_client(recorder) as client:
            with pytest.raises(CollectionNotFoundError) as exc_info:
                await client.find_page_by_embedded_id("db-missing", "prp-123")

        assert exc_info.value.kind == "collection_not_found"
        assert exc_info.value.database_id == "db-missing"

    @pytest.mark.asyncio
    async def test_malformed_database_id(self, prp_json):
        """Notion rejects a badly shaped id with 400 validation_error."""
        recorder = Recorder(
            {
                ("GET", "databases/not-an-id"): httpx.Response(
                    400, json={"code": "validation_error", "message": "path failed validation"}
                )
            }
        )
        async with make_client(recorder) as client:
            assert await client.validate_database("not-an-id") is False
            with pytest.raises(CollectionNotFoundError):
                await client.create_page("not-an-id", parse_prp_content(prp_json), SOURCE)

    @pytest.mark.asyncio
    async def test_database_removed_before_create(self, prp_json):
        recorder = Recorder(
            {
                ("GET", "databases/db-1"): httpx.Response(200, json={"id": "db-1"}),
                ("POST", "pages"): httpx.Response(
                    404, json={"code": "object_not_found", "message": "Could not find database"}
                ),
            }
        )
        async with make_client(recorder) as client:
            with pytest.raises(CollectionNotFoundError) as exc_info:
                await client.create_page("db-1", parse_prp_content(prp_json), SOURCE)

        assert exc_info.value.database_id == "db-1"

    @pytest.mark.asyncio
    async def test_other_errors_stay_upstream(self):
        recorder = Recorder(
            {("POST", "databases/db-1/query"): httpx.Response(500, json={"message": "oops"})}
        )
        async with make_client(recorder) as client:
            with pytest.raises(UpstreamError) as exc_info:
                await client.find_page_by_embedded_id("db-1", "prp-123")

        assert not isinstance(exc_info.value, CollectionNotFoundError)
        assert exc_info.value.status == 500

    @pytest.mark.asyncio
    async def test_missing_page_on_update(self):
        recorder = Recorder(
            {("PATCH", "pages/page-gone"): httpx.Response(404, json={"code": "object_not_found"})}
        )
        async with make_client(recorder) as client:
            with pytest.raises(NotFoundError):
                await client.update_page("page-gone", {})


class TestNonJSONResponses:
    """Tests for 2xx bodies that are not JSON."""

    @pytest.mark.asyncio
    async def test_html_body_is_upstream_error(self):
        recorder = Recorder(
            {("POST", "databases/db-1/query"): httpx.Response(200, text="<html>maintenance</html>")}
        )
        async with make_client(recorder) as client:
            with pytest.raises(UpstreamError) as exc_info:
                await client.find_page_by_embedded_id("db-1", "prp-123")

        assert exc_info.value.service == "notion"
        assert exc_info.value.status == 200
