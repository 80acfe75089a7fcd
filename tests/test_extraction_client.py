"""Tests for the extraction client."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from prpsync.exceptions import InvalidResponseFormatError, RateLimitError, UpstreamError
from prpsync.extraction.client import ExtractionClient
from prpsync.extraction.parser import parse_prp_content
from prpsync.logging import ExtractionLogEntry, set_request_id
from prpsync.youtube.client import VideoMetadata

METADATA = VideoMetadata(
    id="dQw4w9WgXcQ",
    title="Building a Chat App",
    description="We build realtime chat.",
    channel_title="Dev Channel",
    published_at="2024-01-15T10:00:00Z",
    duration="12m",
)

REQUEST = httpx.Request("POST", "https://openrouter.ai/api/v1/chat/completions")


def completion(content: str):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content), finish_reason="stop")],
        model="google/gemini-2.0-flash-001",
        usage=SimpleNamespace(prompt_tokens=10, completion_tokens=20, total_tokens=30),
    )


def rate_limited():
    return openai.RateLimitError(
        "Rate limit reached",
        response=httpx.Response(429, request=REQUEST),
        body=None,
    )


@pytest.fixture
def sdk():
    """Mocked AsyncOpenAI client."""
    client = MagicMock()
    client.chat.completions.create = AsyncMock()
    return client


@pytest.fixture
def extractor(sdk, fast_retry):
    return ExtractionClient("test-key", retry=fast_retry, client=sdk)


class TestParse:
    """Tests for full PRP extraction."""

    @pytest.mark.asyncio
    async def test_parse_builds_prompt_and_validates(self, extractor, sdk, prp_json):
        sdk.chat.completions.create.return_value = completion(f"```json\n{prp_json}\n```")

        content = await extractor.parse("[transcript]", METADATA)

        assert content.name == "Realtime Chat"
        kwargs = sdk.chat.completions.create.call_args.kwargs
        prompt = kwargs["messages"][0]["content"]
        assert "Video Title: Building a Chat App" in prompt
        assert "Channel: Dev Channel" in prompt
        assert "[transcript]" in prompt
        assert "Ensure all arrays have at least one item." in prompt
        assert kwargs["max_tokens"] == 4096
        assert extractor.get_usage_stats()["total_tokens"] == 30

    @pytest.mark.asyncio
    async def test_malformed_json_fails_without_retry(self, extractor, sdk, sleeps):
        """Bad JSON is not a transient failure."""
        sdk.chat.completions.create.return_value = completion("I could not find a PRP.")

        with pytest.raises(InvalidResponseFormatError):
            await extractor.parse("[transcript]", METADATA)

        assert sdk.chat.completions.create.await_count == 1
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_rate_limit_retried_then_surfaces(self, extractor, sdk, sleeps):
        sdk.chat.completions.create.side_effect = rate_limited()

        with pytest.raises(RateLimitError) as exc_info:
            await extractor.parse("[transcript]", METADATA)

        assert sdk.chat.completions.create.await_count == 3
        assert len(sleeps) == 2
        assert isinstance(exc_info.value, UpstreamError)
        assert exc_info.value.service == "openrouter"

    @pytest.mark.asyncio
    async def test_connection_error_recovers(self, extractor, sdk, prp_json):
        sdk.chat.completions.create.side_effect = [
            openai.APIConnectionError(request=REQUEST),
            completion(prp_json),
        ]
        content = await extractor.parse("[transcript]", METADATA)
        assert len(content.tasks) == 3

    @pytest.mark.asyncio
    async def test_auth_error_is_upstream(self, extractor, sdk):
        sdk.chat.completions.create.side_effect = openai.AuthenticationError(
            "bad key", response=httpx.Response(401, request=REQUEST), body=None
        )
        with pytest.raises(UpstreamError) as exc_info:
            await extractor.parse("[transcript]", METADATA)
        assert exc_info.value.status == 401
        assert sdk.chat.completions.create.await_count == 1

    @pytest.mark.asyncio
    async def test_call_is_logged(self, extractor, sdk, prp_json, isolated_logs):
        sdk.chat.completions.create.return_value = completion(prp_json)
        await extractor.parse("[transcript]", METADATA)

        lines = (isolated_logs / "extraction.jsonl").read_text().splitlines()
        entry = ExtractionLogEntry.from_dict(json.loads(lines[-1]))
        assert entry.method == "parse"
        assert entry.attempts == 1
        assert entry.total_tokens == 30
        assert entry.error is None

    @pytest.mark.asyncio
    async def test_log_carries_tool_request_id(self, extractor, sdk, prp_json, isolated_logs):
        """Extraction entries share the id of the tool call that made them."""
        sdk.chat.completions.create.return_value = completion(prp_json)
        set_request_id("req-42")
        try:
            await extractor.parse("[transcript]", METADATA)
        finally:
            set_request_id("")

        lines = (isolated_logs / "extraction.jsonl").read_text().splitlines()
        entry = ExtractionLogEntry.from_dict(json.loads(lines[-1]))
        assert entry.request_id == "req-42"


class TestExtractMore:
    """Tests for additional task extraction."""

    @pytest.mark.asyncio
    async def test_extract_more(self, extractor, sdk, prp_json):
        content = parse_prp_content(prp_json)
        items = [{"title": "Write tests", "description": "d", "type": "test"}] * 4
        sdk.chat.completions.create.return_value = completion(json.dumps(items))

        drafts = await extractor.extract_more(content, max_tasks=2, existing_count=5)

        assert len(drafts) == 2
        kwargs = sdk.chat.completions.create.call_args.kwargs
        prompt = kwargs["messages"][0]["content"]
        assert "Existing tasks count: 5" in prompt
        assert "extract 2 detailed implementation tasks" in prompt
        assert kwargs["max_tokens"] == 2048


class TestSummarize:
    """Tests for PRP summaries."""

    @pytest.mark.asyncio
    async def test_summarize_strips_text(self, extractor, sdk, prp_json):
        content = parse_prp_content(prp_json)
        sdk.chat.completions.create.return_value = completion("  A chat feature.  \n")

        summary = await extractor.summarize(content)

        assert summary == "A chat feature."
        kwargs = sdk.chat.completions.create.call_args.kwargs
        assert "Tasks: 3 tasks defined" in kwargs["messages"][0]["content"]
        assert kwargs["max_tokens"] == 500
