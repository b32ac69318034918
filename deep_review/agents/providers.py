"""
Review oracle providers (one implementation per LLM vendor)
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional, Type

import anthropic
import openai
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from deep_review.config.settings import ProviderConfig
from deep_review.exceptions import (
    AIProviderException,
    ConfigurationException,
    InvalidProviderResponseException,
    ProviderClientException,
    ProviderServerException,
    RateLimitException,
    TokenLimitExceededException,
)

logger = logging.getLogger(__name__)

_TOKEN_LIMIT_HINTS = ("token", "context length", "context_length", "too long", "too large")


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds"""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds > 0 else None


class ReviewProvider(ABC):
    """Untrusted, rate-limited remote review oracle"""

    def __init__(self, config: ProviderConfig):
        self.config = config

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def model(self) -> str:
        return self.config.model

    @property
    def api_key(self) -> Optional[str]:
        return self.config.api_key

    async def complete(self, instructions: str, code: str) -> str:
        """
        Send one review request and return the oracle's text

        Raises:
            AIProviderException: or one of its subclasses, classified by status
        """
        response = await self._send(instructions, code)

        if not self.validate_response(response):
            raise InvalidProviderResponseException(
                f"Invalid response structure from {self.name.upper()} API",
                provider=self.name,
                model=self.model,
            )

        text = self.extract_text(response)
        if not isinstance(text, str) or not text.strip():
            raise InvalidProviderResponseException(
                f"Empty or invalid response from {self.name.upper()} API",
                provider=self.name,
                model=self.model,
            )
        return text

    def classify_status_error(
        self, status_code: int, message: str, headers: Mapping[str, str]
    ) -> AIProviderException:
        """Map an HTTP error status onto the provider exception hierarchy"""
        common: Dict[str, Any] = {
            "provider": self.name,
            "model": self.model,
            "status_code": status_code,
        }
        prefix = f"{self.name.upper()} API error: {status_code}"

        if status_code == 429:
            return RateLimitException(
                f"{prefix} - rate limited",
                retry_after=parse_retry_after(headers.get("retry-after")),
                **common,
            )
        if status_code == 413 or (
            status_code == 400
            and any(hint in message.lower() for hint in _TOKEN_LIMIT_HINTS)
        ):
            return TokenLimitExceededException(f"{prefix} - {message}", **common)
        if status_code >= 500:
            return ProviderServerException(f"{prefix} - {message}", **common)
        return ProviderClientException(f"{prefix} - {message}", **common)

    @abstractmethod
    async def _send(self, instructions: str, code: str) -> Any:
        """Perform the vendor call, translating SDK errors"""

    @abstractmethod
    def validate_response(self, response: Any) -> bool:
        """Check the vendor-specific response shape"""

    @abstractmethod
    def extract_text(self, response: Any) -> Optional[str]:
        """Pull the single textual message out of a valid response"""


class ClaudeReviewProvider(ReviewProvider):
    """Anthropic Messages API"""

    def __init__(self, config: ProviderConfig):
        super().__init__(config)
        self._client: Optional[AsyncAnthropic] = None

    @property
    def client(self) -> AsyncAnthropic:
        if self._client is None:
            if self.config.base_url:
                logger.info(f"Using custom Anthropic base URL: {self.config.base_url}")
            self._client = AsyncAnthropic(
                api_key=self.api_key,
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                max_retries=0,
            )
        return self._client

    async def _send(self, instructions: str, code: str) -> Any:
        try:
            return await self.client.messages.create(
                model=self.model,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                system=instructions,
                messages=[{"role": "user", "content": code}],
            )
        except anthropic.APIStatusError as e:
            raise self.classify_status_error(
                e.status_code, str(e.message), e.response.headers
            ) from e
        except anthropic.APIConnectionError as e:
            raise AIProviderException(
                f"Connection to {self.name.upper()} API failed: {e}",
                provider=self.name,
                model=self.model,
                original_error=e,
            ) from e

    def validate_response(self, response: Any) -> bool:
        content = getattr(response, "content", None)
        return isinstance(content, list) and len(content) > 0

    def extract_text(self, response: Any) -> Optional[str]:
        parts = [
            block.text
            for block in response.content
            if getattr(block, "type", None) == "text" and getattr(block, "text", None)
        ]
        return "".join(parts) if parts else None


class OpenAIReviewProvider(ReviewProvider):
    """OpenAI Chat Completions API"""

    def __init__(self, config: ProviderConfig):
        super().__init__(config)
        self._client: Optional[AsyncOpenAI] = None

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if self.config.base_url:
                logger.info(f"Using custom OpenAI base URL: {self.config.base_url}")
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                max_retries=0,
            )
        return self._client

    async def _send(self, instructions: str, code: str) -> Any:
        try:
            return await self.client.chat.completions.create(
                model=self.model,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                messages=[
                    {"role": "system", "content": instructions},
                    {"role": "user", "content": code},
                ],
            )
        except openai.APIStatusError as e:
            raise self.classify_status_error(
                e.status_code, str(e.message), e.response.headers
            ) from e
        except openai.APIConnectionError as e:
            raise AIProviderException(
                f"Connection to {self.name.upper()} API failed: {e}",
                provider=self.name,
                model=self.model,
                original_error=e,
            ) from e

    def validate_response(self, response: Any) -> bool:
        choices = getattr(response, "choices", None)
        return isinstance(choices, list) and len(choices) > 0

    def extract_text(self, response: Any) -> Optional[str]:
        message = getattr(response.choices[0], "message", None)
        return getattr(message, "content", None)


PROVIDERS: Dict[str, Type[ReviewProvider]] = {
    "claude": ClaudeReviewProvider,
    "openai": OpenAIReviewProvider,
}


def get_review_provider(config: ProviderConfig) -> ReviewProvider:
    """
    Build the review provider for a configuration

    Raises:
        ConfigurationException: If the provider name is unknown
    """
    provider_class = PROVIDERS.get(config.name)
    if provider_class is None:
        raise ConfigurationException(
            message=f"Unsupported LLM provider: {config.name}",
            config_key="llm_provider",
            details={"supported": sorted(PROVIDERS)},
        )
    return provider_class(config)
