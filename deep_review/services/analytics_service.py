"""
Analytics sink: fire-and-forget review summaries posted to a logging endpoint
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

import httpx

from deep_review.models.review_models import AggregateReviewResult, ReviewMetadata
from deep_review.utils.tracing import get_run_id
from deep_review.utils.version import get_user_agent

logger = logging.getLogger(__name__)


def build_review_log_data(
    result: AggregateReviewResult,
    metadata: ReviewMetadata,
    timestamp: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Flatten a review result into the analytics payload"""
    issues = [
        {
            "id": issue.id,
            "category": issue.category,
            "severity": issue.severity_proposed,
            "severity_score": issue.severity_score,
            "confidence": issue.confidence,
            "file": issue.file,
            "lines": issue.lines,
            "chunk": issue.chunk,
            "risk_factors": issue.risk_factors.model_dump(),
            "risk_factors_notes": issue.risk_factors_notes,
        }
        for issue in result.issues
    ]

    return {
        "department": metadata.department,
        "team": metadata.team,
        "head_branch": metadata.head_branch,
        "files_reviewed": metadata.files_reviewed,
        "issues": issues,
        "review_timestamp": (timestamp or datetime.now(timezone.utc)).isoformat(),
        "repository": metadata.repository or "unknown/unknown",
        "pr_number": metadata.pr_number,
        "merge_blocked": result.merge_blocked,
        "outcome": result.outcome.value,
        "language": metadata.language,
        "provider": metadata.provider,
    }


class AnalyticsService:
    """Send review payloads without ever blocking or failing the review"""

    def __init__(
        self,
        endpoint: Optional[str],
        enabled: bool = True,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint
        self.enabled = enabled and bool(endpoint)
        self.timeout = timeout
        self._transport = transport
        self._pending: Set[asyncio.Task] = set()

    def log_review_data(self, payload: Dict[str, Any]) -> Optional[asyncio.Task]:
        """Schedule the payload for delivery and return immediately"""
        if not self.enabled:
            logger.info("Review logging disabled in configuration")
            return None

        task = asyncio.create_task(self._send(payload))
        self._pending.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.warning("Review data logging was cancelled before completion")
            return
        error = task.exception()
        if error is not None:
            logger.warning(
                f"Failed to log review data: {error}",
                extra={"run_id": get_run_id(), "operation": "analytics_failed"},
            )

    async def _send(self, payload: Dict[str, Any]) -> None:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                self.endpoint,
                json=payload,
                headers={"User-Agent": get_user_agent()},
            )
            response.raise_for_status()
        logger.info(
            "Review data logged successfully",
            extra={"run_id": get_run_id(), "operation": "analytics_sent"},
        )

    async def wait_pending(self, timeout: Optional[float] = None) -> None:
        """Give in-flight sends a bounded grace period; never raises"""
        if not self._pending:
            return
        timeout = self.timeout if timeout is None else timeout
        _, pending = await asyncio.wait(set(self._pending), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"Abandoned {len(pending)} review log request(s) after {timeout}s")
