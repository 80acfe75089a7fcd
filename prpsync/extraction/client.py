"""
Extraction Client - PRP extraction through an OpenAI-compatible endpoint

Gemini is reached through OpenRouter with the openai SDK. The SDK's own
retries are disabled so the shared RetryPolicy decides what is retried:
rate limits and connection failures are, everything else is not.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from openai import APIConnectionError, APIStatusError, AsyncOpenAI, OpenAIError
from openai import RateLimitError as OpenAIRateLimitError

from prpsync.config import DEFAULT_MODEL
from prpsync.exceptions import PRPError, RateLimitError, UpstreamError
from prpsync.extraction.parser import parse_prp_content, parse_task_drafts
from prpsync.extraction.prompts import (
    EXTRACT_MORE_TASKS_PROMPT,
    PRP_PARSING_PROMPT,
    SUMMARIZE_PROMPT,
)
from prpsync.logging import (
    ExtractionLogEntry,
    extraction_logger,
    get_current_user,
    get_request_id,
    now_iso,
)
from prpsync.persistence.models import PRPContent, TaskDraft
from prpsync.retry import RetryPolicy
from prpsync.youtube.client import VideoMetadata

logger = logging.getLogger(__name__)

# OpenRouter API
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_TIMEOUT = 120.0  # seconds

PARSE_MAX_TOKENS = 4096
EXTRACT_MORE_MAX_TOKENS = 2048
SUMMARY_MAX_TOKENS = 500


def is_retryable(exc: BaseException) -> bool:
    """Rate limits, timeouts and connection failures are retried."""
    return isinstance(exc, (OpenAIRateLimitError, APIConnectionError))


@dataclass
class CompletionResult:
    """Text and usage from one completion."""

    content: str
    model: str
    finish_reason: str = ""
    usage: dict[str, int] = field(default_factory=dict)


class ExtractionClient:
    """
    Client extracting structured PRPs from transcripts.

    Usage:
        extractor = ExtractionClient(api_key)
        content = await extractor.parse(transcript, metadata)
        extra = await extractor.extract_more(content, max_tasks=10, existing_count=3)
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.1,
        retry: RetryPolicy | None = None,
        client: AsyncOpenAI | None = None,
    ):
        """
        Initialize extraction client.

        Args:
            api_key: OpenRouter API key
            model: Model identifier (default: google/gemini-2.0-flash-001)
            temperature: Sampling temperature
            retry: Retry policy; its classifier is replaced with this client's
            client: Pre-built AsyncOpenAI client (tests inject a mock)
        """
        self.model = model
        self.temperature = temperature
        self._api_key = api_key
        self._retry = (retry or RetryPolicy()).with_classifier(is_retryable, "extraction")

        self._client = client
        self._client_loop: asyncio.AbstractEventLoop | None = None
        self._owns_client = client is None

        self.total_tokens_used = 0
        self.request_count = 0

    async def _get_client(self) -> AsyncOpenAI:
        """Get or create the AsyncOpenAI client, recreating it if the event loop changed."""
        if not self._owns_client:
            return self._client  # type: ignore[return-value]

        current_loop = asyncio.get_running_loop()
        if self._client is not None and self._client_loop is not current_loop:
            self._client = None

        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self._api_key,
                base_url=OPENROUTER_BASE_URL,
                timeout=DEFAULT_TIMEOUT,
                max_retries=0,
            )
            self._client_loop = current_loop

        return self._client

    async def close(self) -> None:
        """Close the client and release resources."""
        if self._client is not None and self._owns_client:
            await self._client.close()
            self._client = None
            self._client_loop = None

    async def _complete_once(self, prompt: str, max_tokens: int) -> CompletionResult:
        client = await self._get_client()
        response = await client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.temperature,
            max_tokens=max_tokens,
        )

        if not response.choices or response.choices[0].message is None:
            raise UpstreamError("No response generated by the model", service="openrouter")

        choice = response.choices[0]
        usage = response.usage
        return CompletionResult(
            content=choice.message.content or "",
            model=response.model or self.model,
            finish_reason=choice.finish_reason or "",
            usage={
                "prompt_tokens": usage.prompt_tokens if usage else 0,
                "completion_tokens": usage.completion_tokens if usage else 0,
                "total_tokens": usage.total_tokens if usage else 0,
            },
        )

    async def complete(self, prompt: str, max_tokens: int, method: str) -> CompletionResult:
        """
        Run one prompt under the retry policy and log the call.

        Raises:
            RateLimitError: If still rate limited after all attempts
            UpstreamError: On any other API failure
        """
        log_entry = ExtractionLogEntry(
            timestamp=now_iso(),
            request_id=get_request_id() or str(uuid.uuid4()),
            user=get_current_user(),
            method=method,
            prompt_preview=prompt[:2000],
            max_tokens=max_tokens,
        )
        start_time = time.monotonic()
        attempts_before = self._retry.stats.total_attempts

        try:
            result = await self._retry.execute(self._complete_once, prompt, max_tokens)
        except Exception as e:
            log_entry.attempts = self._retry.stats.total_attempts - attempts_before
            log_entry.error = str(e)[:500]
            log_entry.error_type = type(e).__name__
            log_entry.latency_ms = int((time.monotonic() - start_time) * 1000)
            extraction_logger.error(log_entry.to_json())
            raise self._translate(e) from e

        self.request_count += 1
        self.total_tokens_used += result.usage.get("total_tokens", 0)

        log_entry.attempts = self._retry.stats.total_attempts - attempts_before
        log_entry.response_preview = result.content[:5000]
        log_entry.model = result.model
        log_entry.finish_reason = result.finish_reason
        log_entry.prompt_tokens = result.usage.get("prompt_tokens", 0)
        log_entry.completion_tokens = result.usage.get("completion_tokens", 0)
        log_entry.total_tokens = result.usage.get("total_tokens", 0)
        log_entry.latency_ms = int((time.monotonic() - start_time) * 1000)
        extraction_logger.info(log_entry.to_json())

        return result

    @staticmethod
    def _translate(exc: Exception) -> PRPError:
        """Map SDK errors onto the package taxonomy."""
        if isinstance(exc, PRPError):
            return exc
        if isinstance(exc, OpenAIRateLimitError):
            retry_after = exc.response.headers.get("retry-after")
            return RateLimitError(
                "Model API rate limit exceeded",
                service="openrouter",
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if isinstance(exc, APIStatusError):
            return UpstreamError(
                f"Model API error: {type(exc).__name__}",
                status=exc.status_code,
                service="openrouter",
            )
        if isinstance(exc, APIConnectionError):
            return UpstreamError(
                f"Model API unreachable: {type(exc).__name__}",
                service="openrouter",
            )
        if isinstance(exc, OpenAIError):
            return UpstreamError(f"Model API error: {type(exc).__name__}", service="openrouter")
        return UpstreamError(f"Unexpected model client error: {type(exc).__name__}", service="openrouter")

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    async def parse(self, transcript: str, metadata: VideoMetadata) -> PRPContent:
        """
        Extract a full PRP document from a transcript.

        Args:
            transcript: Transcript text (possibly the description fallback)
            metadata: Video metadata embedded in the prompt

        Returns:
            Validated PRPContent

        Raises:
            InvalidResponseFormatError: If the model output is not JSON
            MalformedExtractionError: If the JSON does not match the PRP shape
            UpstreamError: If the model API fails
        """
        prompt = PRP_PARSING_PROMPT.format(
            title=metadata.title,
            description=metadata.description,
            channel=metadata.channel_title,
            published_at=metadata.published_at,
            transcript=transcript,
        )
        result = await self.complete(prompt, PARSE_MAX_TOKENS, method="parse")
        content = parse_prp_content(result.content)
        logger.info(f"Extracted PRP '{content.name}' with {len(content.tasks)} tasks")
        return content

    async def extract_more(
        self,
        content: PRPContent,
        max_tasks: int = 20,
        existing_count: int | None = None,
    ) -> list[TaskDraft]:
        """
        Ask for up to ``max_tasks`` additional tasks for an existing PRP.

        Items missing a title, description or valid type get placeholders
        instead of failing the batch. Ids and order are assigned on storage.

        Args:
            content: The stored PRP document
            max_tasks: Upper bound on returned tasks
            existing_count: Number of stored tasks; defaults to the document's own list
        """
        if existing_count is None:
            existing_count = len(content.tasks)

        prompt = EXTRACT_MORE_TASKS_PROMPT.format(
            max_tasks=max_tasks,
            name=content.name,
            goal=content.goal,
            what=content.what,
            existing_count=existing_count,
        )
        result = await self.complete(prompt, EXTRACT_MORE_MAX_TOKENS, method="extract_more")
        return parse_task_drafts(result.content, max_tasks)

    async def summarize(self, content: PRPContent, task_count: int | None = None) -> str:
        """Plain 2-3 sentence summary of a PRP."""
        prompt = SUMMARIZE_PROMPT.format(
            name=content.name,
            goal=content.goal,
            task_count=len(content.tasks) if task_count is None else task_count,
        )
        result = await self.complete(prompt, SUMMARY_MAX_TOKENS, method="summarize")
        return result.content.strip()

    def get_usage_stats(self) -> dict[str, Any]:
        """Get usage statistics."""
        return {
            "model": self.model,
            "total_tokens": self.total_tokens_used,
            "request_count": self.request_count,
        }
