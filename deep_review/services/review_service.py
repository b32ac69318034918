"""
Review service for orchestrating a chunked diff review
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from deep_review.agents.prompts import build_review_prompt
from deep_review.agents.providers import ReviewProvider, get_review_provider
from deep_review.config.settings import ChunkingConfig, SeverityScoring, Settings
from deep_review.exceptions import ReviewProcessException
from deep_review.models.review_models import AggregateReviewResult, ChunkReviewRecord
from deep_review.services.chunk_scheduler import ChunkScheduler
from deep_review.services.chunker import DiffChunker, byte_size
from deep_review.services.llm_service import RetryableCaller
from deep_review.services.reconciler import Reconciler
from deep_review.services.response_parser import ResponseParser
from deep_review.utils.tracing import get_run_id

logger = logging.getLogger(__name__)


class ReviewService:
    """Chunk a diff, review every chunk and reconcile the results"""

    def __init__(
        self,
        provider: ReviewProvider,
        chunking: Optional[ChunkingConfig] = None,
        scoring: Optional[SeverityScoring] = None,
        language: str = "js",
        verify_scores: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.provider = provider
        self.chunking = chunking or ChunkingConfig()
        self.instructions = build_review_prompt(language)
        self.chunker = DiffChunker(self.chunking.chunk_warning_threshold)
        self.caller = RetryableCaller(provider, sleep=sleep)
        self.scheduler = ChunkScheduler(self.chunking, sleep=sleep)
        self.parser = ResponseParser()
        self.reconciler = Reconciler(scoring, verify_scores=verify_scores)

    @classmethod
    def from_settings(
        cls, settings: Settings, provider: Optional[ReviewProvider] = None
    ) -> "ReviewService":
        return cls(
            provider=provider or get_review_provider(settings.provider_config()),
            chunking=settings.chunking_config(),
            scoring=settings.severity_scoring(),
            language=settings.language,
            verify_scores=settings.verify_severity_scores,
        )

    async def review_diff(
        self, diff: str, project_context: str = ""
    ) -> Optional[AggregateReviewResult]:
        """
        Review a combined diff

        Args:
            diff: Diff text with per-file headers
            project_context: Repository context shared by every chunk

        Returns:
            The reconciled result, or None when the review was skipped
            (no API key configured or nothing to review)

        Raises:
            ReviewProcessException: If the pipeline itself breaks
        """
        if not self.caller.has_api_key:
            logger.warning(
                f"No {self.provider.name.upper()} API key found. Skipping LLM review.",
                extra={"run_id": get_run_id(), "operation": "review_skipped"},
            )
            return None

        chunks = self.chunker.split(diff, self.chunking.max_chunk_bytes)
        if not chunks:
            logger.info("No changes detected - nothing to review")
            return None

        logger.info(
            f"Starting review of {len(chunks)} chunks ({round(byte_size(diff) / 1024)}KB) "
            f"with {self.provider.name.upper()} ({self.provider.model})",
            extra={"run_id": get_run_id(), "operation": "review_start", "chunks": len(chunks)},
        )

        try:
            results = await self.scheduler.process(
                chunks, self.caller, self.instructions, project_context
            )
            records: List[ChunkReviewRecord] = []
            for result in results:
                records.extend(self.parser.parse_result(result))
            return self.reconciler.reconcile(records)
        except Exception as e:
            logger.error(
                f"Review pipeline failed: {e}",
                extra={
                    "run_id": get_run_id(),
                    "operation": "review_failed",
                    "error_type": type(e).__name__,
                },
            )
            raise ReviewProcessException(
                message="Review pipeline failed",
                details={"chunks": len(chunks)},
                original_error=e,
            )
