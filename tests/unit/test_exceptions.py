"""Unit tests for custom exception handling."""

import pytest

from deep_review.exceptions import (
    AIProviderException,
    ConfigurationException,
    DeepReviewException,
    GitHubAPIException,
    GitOperationException,
    InvalidProviderResponseException,
    ProviderClientException,
    ProviderServerException,
    RateLimitException,
    ReviewProcessException,
    TokenLimitExceededException,
)


class TestDeepReviewException:
    """Test the base DeepReviewException exception."""

    def test_basic_error_creation(self):
        """Test creating basic error with message."""
        error = DeepReviewException("Test error message")

        assert str(error) == "Test error message"
        assert error.message == "Test error message"
        assert error.details == {}

    def test_error_with_details(self):
        """Test creating error with details."""
        error = DeepReviewException("Test error", details={"key": "value"})

        assert error.details == {"key": "value"}
        assert str(error) == "Test error - Details: {'key': 'value'}"

    def test_error_with_original_error(self):
        """Test creating error with original error."""
        original = ValueError("Original error")
        error = DeepReviewException("Wrapped error", original_error=original)

        assert error.original_error is original


class TestConfigurationException:
    """Test ConfigurationException."""

    def test_config_key_in_details(self):
        error = ConfigurationException("Bad chunk size", config_key="chunk_size")

        assert error.config_key == "chunk_size"
        assert error.details["config_key"] == "chunk_size"
        assert isinstance(error, DeepReviewException)


class TestAIProviderExceptions:
    """Test the provider exception hierarchy."""

    def test_provider_details(self):
        error = AIProviderException("failed", provider="openai", model="gpt-4o", status_code=503)

        assert error.details == {"provider": "openai", "model": "gpt-4o", "status_code": 503}
        assert error.status_code == 503

    def test_rate_limit_retry_after(self):
        error = RateLimitException("slow down", retry_after=12, provider="claude", status_code=429)

        assert error.retry_after == 12
        assert error.details["retry_after"] == 12
        assert error.details["provider"] == "claude"

    def test_rate_limit_without_retry_after(self):
        error = RateLimitException("slow down")

        assert error.retry_after is None
        assert "retry_after" not in error.details

    @pytest.mark.parametrize(
        "exception_class",
        [
            RateLimitException,
            ProviderServerException,
            InvalidProviderResponseException,
            ProviderClientException,
            TokenLimitExceededException,
        ],
    )
    def test_subclasses_are_provider_errors(self, exception_class):
        assert issubclass(exception_class, AIProviderException)


class TestOtherExceptions:
    """Test git, GitHub and process exceptions."""

    def test_git_operation_command(self):
        error = GitOperationException("git failed", command="git diff --name-only")

        assert error.command == "git diff --name-only"
        assert error.details["command"] == "git diff --name-only"

    def test_github_api_status_and_body(self):
        error = GitHubAPIException("API error", status_code=422, response_body="Validation Failed")

        assert error.status_code == 422
        assert error.details == {"status_code": 422, "response_body": "Validation Failed"}

    def test_review_process_context(self):
        error = ReviewProcessException("failed", pr_number=12, repository="org/repo")

        assert error.details == {"pr_number": 12, "repository": "org/repo"}
