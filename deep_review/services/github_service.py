"""
GitHub API integration: review comment and label publishing
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from deep_review.config.settings import Settings
from deep_review.exceptions import GitHubAPIException
from deep_review.services.comment_formatter import COMMENT_MARKER
from deep_review.utils.tracing import get_run_id
from deep_review.utils.version import get_user_agent

logger = logging.getLogger(__name__)

REVIEW_LABEL = "deep review completed"
REVIEW_LABEL_COLOR = "0366d6"
REVIEW_LABEL_DESCRIPTION = "Pull request has been reviewed by AI code reviewer"


def _is_transient(error: BaseException) -> bool:
    if isinstance(error, httpx.RequestError):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code >= 500
    return False


class GitHubService:
    """Publish review results to a pull request"""

    def __init__(
        self,
        token: str,
        repository: str,
        pr_number: int,
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.repository = repository
        self.pr_number = pr_number
        self.client = httpx.AsyncClient(
            base_url=api_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": get_user_agent(),
            },
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["GitHubService"]:
        """Build the publisher, or None when the run has no pull request to publish to"""
        pr_number = settings.resolved_pr_number
        if not (settings.github_token and settings.github_repository and pr_number):
            logger.info("Not a pull request run (missing token, repository or PR number), skipping publish")
            return None
        return cls(
            token=settings.github_token,
            repository=settings.github_repository,
            pr_number=pr_number,
            api_url=settings.github_api_url,
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "GitHubService":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception(_is_transient),
        reraise=True,
    )
    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        response = await self.client.request(method, url, **kwargs)
        response.raise_for_status()
        return response

    async def _call(self, operation: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Make a request, translating httpx errors into GitHubAPIException"""
        try:
            return await self._request(method, url, **kwargs)
        except httpx.HTTPStatusError as e:
            logger.error(
                f"GitHub API error {e.response.status_code} during {operation}",
                extra={
                    "run_id": get_run_id(),
                    "operation": operation,
                    "status_code": e.response.status_code,
                },
            )
            raise GitHubAPIException(
                message=f"GitHub API error during {operation}",
                status_code=e.response.status_code,
                response_body=e.response.text,
                original_error=e,
            )
        except httpx.RequestError as e:
            logger.error(
                f"Network error during {operation}: {e}",
                extra={"run_id": get_run_id(), "operation": operation, "error_type": "network_error"},
            )
            raise GitHubAPIException(
                message=f"Network error during {operation}",
                details={"repository": self.repository, "pr_number": self.pr_number},
                original_error=e,
            )

    @property
    def _issue_url(self) -> str:
        return f"/repos/{self.repository}/issues/{self.pr_number}"

    async def list_review_comments(self) -> List[Dict[str, Any]]:
        """Comments carrying the review marker, newest first"""
        response = await self._call(
            "list_comments", "GET", f"{self._issue_url}/comments", params={"per_page": 100}
        )
        comments = [
            comment for comment in response.json() if COMMENT_MARKER in (comment.get("body") or "")
        ]
        # ISO-8601 timestamps sort lexicographically
        comments.sort(key=lambda comment: comment.get("created_at", ""), reverse=True)
        return comments

    async def delete_previous_comments(self) -> Optional[Dict[str, Any]]:
        """
        Delete older review comments, keeping the most recent one

        Returns:
            The kept comment, or None if there was none or listing failed
        """
        try:
            comments = await self.list_review_comments()
        except GitHubAPIException as e:
            logger.warning(f"Error listing previous comments: {e}")
            return None

        if not comments:
            return None

        newest, stale = comments[0], comments[1:]
        for comment in stale:
            logger.info(
                f"Deleting old DeepReview comment: {comment['id']} (created: {comment.get('created_at')})"
            )
            try:
                await self._call(
                    "delete_comment",
                    "DELETE",
                    f"/repos/{self.repository}/issues/comments/{comment['id']}",
                )
            except GitHubAPIException as e:
                logger.warning(f"Could not delete comment {comment['id']}: {e}")

        if stale:
            logger.info(f"Deleted {len(stale)} old DeepReview comment(s), kept the most recent one")
        return newest

    async def post_comment(self, body: str) -> bool:
        """Update the existing review comment in place, or create one"""
        existing = await self.delete_previous_comments()
        try:
            if existing:
                await self._call(
                    "update_comment",
                    "PATCH",
                    f"/repos/{self.repository}/issues/comments/{existing['id']}",
                    json={"body": body},
                )
                logger.info(f"Updated existing PR comment {existing['id']}")
            else:
                await self._call(
                    "create_comment", "POST", f"{self._issue_url}/comments", json={"body": body}
                )
                logger.info("Added new PR comment")
        except GitHubAPIException as e:
            logger.error(f"Error adding PR comment: {e}")
            return False
        return True

    async def add_review_label(self) -> bool:
        """Add the review label to the pull request, creating it in the repository if needed"""
        try:
            response = await self._call("list_labels", "GET", f"{self._issue_url}/labels")
            if any(
                label.get("name", "").lower() == REVIEW_LABEL.lower() for label in response.json()
            ):
                logger.info(f"Label \"{REVIEW_LABEL}\" already exists on PR")
                return True

            await self._add_label()
            return True
        except GitHubAPIException as e:
            if e.status_code != 422:
                logger.warning(f"Error adding \"{REVIEW_LABEL}\" label: {e}")
                return False

        try:
            await self._call(
                "create_label",
                "POST",
                f"/repos/{self.repository}/labels",
                json={
                    "name": REVIEW_LABEL,
                    "color": REVIEW_LABEL_COLOR,
                    "description": REVIEW_LABEL_DESCRIPTION,
                },
            )
            logger.info(f"Created \"{REVIEW_LABEL}\" label in repository")
            await self._add_label()
            return True
        except GitHubAPIException as e:
            logger.warning(f"Could not create \"{REVIEW_LABEL}\" label: {e}")
            return False

    async def _add_label(self) -> None:
        await self._call(
            "add_label", "POST", f"{self._issue_url}/labels", json={"labels": [REVIEW_LABEL]}
        )
        logger.info(f"Added \"{REVIEW_LABEL}\" label to PR")

    async def publish(self, body: str) -> bool:
        """Post the review comment, then label the pull request"""
        if not await self.post_comment(body):
            return False
        await self.add_review_label()
        return True
