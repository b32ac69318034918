"""
Retrying review oracle caller for a single diff chunk
"""

import asyncio
import logging
import math
from typing import Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
)

from deep_review.agents.prompts import PromptContext
from deep_review.agents.providers import ReviewProvider
from deep_review.exceptions import (
    ProviderClientException,
    RateLimitException,
    TokenLimitExceededException,
)
from deep_review.utils.tracing import get_run_id

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
TOKEN_WARNING_THRESHOLD = 180_000
TOKEN_LIMIT_MARKER = "TOKEN LIMIT EXCEEDED"

NON_RETRYABLE_EXCEPTIONS = (ProviderClientException, TokenLimitExceededException)

Sleep = Callable[[float], Awaitable[None]]


def estimate_token_count(prompt: str, diff: str) -> int:
    """Rough token estimate: ~4 characters per token for code"""
    return math.ceil((len(prompt) + len(diff)) / CHARS_PER_TOKEN)


def token_limit_placeholder(chunk_index: int, total_chunks: int) -> str:
    """Review text standing in for a chunk that was too large to review"""
    return f"""**CHUNK {chunk_index + 1}/{total_chunks} - {TOKEN_LIMIT_MARKER}**

This chunk was too large to process completely.

- This chunk contains significant code changes
- Manual review is required for this section
- Consider breaking down large files into smaller changes

*Note: This is an automated placeholder due to token limits. Full review requires manual inspection.*"""


def is_token_limit_placeholder(text: Optional[str]) -> bool:
    return bool(text) and TOKEN_LIMIT_MARKER in text.split("\n", 1)[0]


class RetryableCaller:
    """Call the review oracle for one chunk with bounded retries and backoff"""

    def __init__(self, provider: ReviewProvider, sleep: Sleep = asyncio.sleep):
        self.provider = provider
        self.config = provider.config
        self._sleep = sleep
        self._missing_key_reported = False

    @property
    def has_api_key(self) -> bool:
        return bool(self.provider.api_key)

    def _backoff(self, retry_state: RetryCallState) -> float:
        """Seconds to wait before the next attempt"""
        attempt = retry_state.attempt_number
        error = retry_state.outcome.exception() if retry_state.outcome else None

        if isinstance(error, RateLimitException):
            if error.retry_after:
                return float(error.retry_after)
            return float(2**attempt)
        return self.config.base_delay * 2 ** (attempt - 1)

    async def call(self, chunk: str, prompt: PromptContext) -> Optional[str]:
        """
        Review one chunk

        Returns:
            The oracle's raw text, a manual-review placeholder when the chunk
            exceeds the provider's token limit, or None on failure
        """
        provider_name = self.provider.name.upper()
        if not self.has_api_key:
            if not self._missing_key_reported:
                logger.warning(f"No {provider_name} API key found. Skipping LLM review.")
                self._missing_key_reported = True
            return None

        chunk_number = prompt.chunk_index + 1
        instructions = prompt.render()
        log_extra = {
            "run_id": get_run_id(),
            "chunk_index": prompt.chunk_index,
            "provider": self.provider.name,
        }

        estimated_tokens = estimate_token_count(instructions, chunk)
        if estimated_tokens > TOKEN_WARNING_THRESHOLD:
            logger.warning(
                f"Chunk {chunk_number} estimated at {estimated_tokens} tokens - may exceed limits",
                extra={**log_extra, "operation": "token_estimate"},
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.max_attempts),
            wait=self._backoff,
            retry=(
                retry_if_exception_type(Exception)
                & retry_if_not_exception_type(NON_RETRYABLE_EXCEPTIONS)
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    logger.info(
                        f"Calling {provider_name} LLM for chunk {chunk_number}/{prompt.total_chunks} "
                        f"(attempt {attempt.retry_state.attempt_number}/{self.config.max_attempts})",
                        extra={**log_extra, "operation": "llm_call"},
                    )
                    text = await asyncio.wait_for(
                        self.provider.complete(instructions, chunk),
                        timeout=self.config.timeout,
                    )
        except TokenLimitExceededException as e:
            logger.error(
                f"Token limit exceeded for chunk {chunk_number}: {e.message}",
                extra={**log_extra, "operation": "llm_token_limit"},
            )
            return token_limit_placeholder(prompt.chunk_index, prompt.total_chunks)
        except ProviderClientException as e:
            logger.error(
                f"{provider_name} rejected chunk {chunk_number}, not retrying: {e.message}",
                extra={**log_extra, "operation": "llm_client_error", "status_code": e.status_code},
            )
            return None
        except Exception as e:
            logger.error(
                f"LLM review failed for chunk {chunk_number} after "
                f"{retrying.statistics.get('attempt_number', self.config.max_attempts)} attempts: {e}",
                extra={**log_extra, "operation": "llm_call_failed", "error_type": type(e).__name__},
            )
            return None

        logger.info(
            f"Received valid response for chunk {chunk_number}/{prompt.total_chunks} ({len(text)} chars)",
            extra={**log_extra, "operation": "llm_call_success"},
        )
        return text
