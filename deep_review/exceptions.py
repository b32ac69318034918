"""
Custom exception hierarchy for the DeepReview pull request reviewer
"""

from typing import Any, Dict, Optional


class DeepReviewException(Exception):
    """Base exception for all DeepReview errors"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


class ConfigurationException(DeepReviewException):
    """Configuration validation errors (fatal for the whole run)"""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        details = kwargs.get("details", {})
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, details, kwargs.get("original_error"))
        self.config_key = config_key


class AIProviderException(DeepReviewException):
    """Review oracle call failed; retryable unless a subclass says otherwise"""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.get("details", {})
        if provider:
            details["provider"] = provider
        if model:
            details["model"] = model
        if status_code:
            details["status_code"] = status_code

        super().__init__(message, details, kwargs.get("original_error"))
        self.provider = provider
        self.model = model
        self.status_code = status_code


class RateLimitException(AIProviderException):
    """Provider signalled too many requests"""

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs):
        details = kwargs.pop("details", {})
        if retry_after:
            details["retry_after"] = retry_after

        super().__init__(message, details=details, **kwargs)
        self.retry_after = retry_after


class ProviderServerException(AIProviderException):
    """Provider returned a 5xx response"""


class InvalidProviderResponseException(AIProviderException):
    """Provider response did not have the expected shape or carried no text"""


class ProviderClientException(AIProviderException):
    """Provider rejected the request; retrying will not help"""


class TokenLimitExceededException(AIProviderException):
    """Request payload exceeded the provider's size or token limit"""


class GitOperationException(DeepReviewException):
    """Git command failed while collecting the diff"""

    def __init__(self, message: str, command: Optional[str] = None, **kwargs):
        details = kwargs.get("details", {})
        if command:
            details["command"] = command

        super().__init__(message, details, kwargs.get("original_error"))
        self.command = command


class GitHubAPIException(DeepReviewException):
    """GitHub API related errors"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.get("details", {})
        if status_code:
            details["status_code"] = status_code
        if response_body:
            details["response_body"] = response_body

        super().__init__(message, details, kwargs.get("original_error"))
        self.status_code = status_code


class ReviewProcessException(DeepReviewException):
    """Review process execution errors"""

    def __init__(
        self,
        message: str,
        pr_number: Optional[int] = None,
        repository: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.get("details", {})
        if pr_number:
            details["pr_number"] = pr_number
        if repository:
            details["repository"] = repository

        super().__init__(message, details, kwargs.get("original_error"))
        self.pr_number = pr_number
        self.repository = repository
