"""
Chunk scheduler: runs the oracle over every chunk with bounded concurrency
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from deep_review.agents.prompts import PromptContext
from deep_review.config.settings import ChunkingConfig
from deep_review.models.review_models import ChunkResult
from deep_review.services.llm_service import RetryableCaller, is_token_limit_placeholder
from deep_review.utils.tracing import get_run_id

logger = logging.getLogger(__name__)

# Hard ceiling on simultaneous oracle calls
MAX_CONCURRENCY = 2


class ChunkScheduler:
    """Decide sequential vs. grouped execution and collect per-chunk results"""

    def __init__(
        self,
        config: Optional[ChunkingConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or ChunkingConfig()
        self._sleep = sleep

    @property
    def concurrency(self) -> int:
        return max(1, min(self.config.max_concurrency, MAX_CONCURRENCY))

    async def process(
        self,
        chunks: List[str],
        caller: RetryableCaller,
        instructions: str,
        project_context: str = "",
    ) -> List[ChunkResult]:
        """
        Review every chunk and return one result per chunk, in input order

        A failed chunk never stops the others from being attempted.
        """
        total = len(chunks)
        if total == 0:
            return []

        prompts = [
            PromptContext(
                instructions=instructions,
                chunk_index=index,
                total_chunks=total,
                project_context=project_context,
            )
            for index in range(total)
        ]

        if total <= self.config.sequential_threshold:
            logger.info(
                f"Processing {total} chunks sequentially (small batch)",
                extra={"run_id": get_run_id(), "operation": "schedule_sequential"},
            )
            return await self._process_sequentially(chunks, prompts, caller)

        logger.info(
            f"Processing {total} chunks with controlled concurrency (max {self.concurrency})",
            extra={"run_id": get_run_id(), "operation": "schedule_grouped"},
        )
        return await self._process_in_groups(chunks, prompts, caller)

    async def _process_sequentially(
        self, chunks: List[str], prompts: List[PromptContext], caller: RetryableCaller
    ) -> List[ChunkResult]:
        results: List[ChunkResult] = []
        for index, (chunk, prompt) in enumerate(zip(chunks, prompts)):
            logger.info(f"Processing chunk {index + 1}/{len(chunks)}")
            results.append(await self._run_one(chunk, prompt, caller))

            if index + 1 < len(chunks):
                await self._delay("request")
        return results

    async def _process_in_groups(
        self, chunks: List[str], prompts: List[PromptContext], caller: RetryableCaller
    ) -> List[ChunkResult]:
        results: List[ChunkResult] = []
        step = self.concurrency

        for start in range(0, len(chunks), step):
            group = [
                self._run_one(chunks[index], prompts[index], caller)
                for index in range(start, min(start + step, len(chunks)))
            ]
            # gather preserves argument order regardless of completion order
            results.extend(await asyncio.gather(*group))

            if start + step < len(chunks):
                await self._delay("batch")
        return results

    async def _delay(self, kind: str) -> None:
        seconds = self.config.request_delay_seconds
        if seconds <= 0:
            return
        logger.info(f"Waiting {seconds:.1f}s before next {kind}...")
        await self._sleep(seconds)

    async def _run_one(
        self, chunk: str, prompt: PromptContext, caller: RetryableCaller
    ) -> ChunkResult:
        try:
            text = await caller.call(chunk, prompt)
        except Exception as e:
            logger.error(
                f"Unexpected error reviewing chunk {prompt.chunk_index + 1}: {e}",
                extra={
                    "run_id": get_run_id(),
                    "operation": "chunk_failed",
                    "chunk_index": prompt.chunk_index,
                    "error_type": type(e).__name__,
                },
            )
            return ChunkResult(chunk_index=prompt.chunk_index, success=False, error=str(e))

        if text is None:
            return ChunkResult(
                chunk_index=prompt.chunk_index,
                success=False,
                error="Review oracle returned no result",
            )

        return ChunkResult(
            chunk_index=prompt.chunk_index,
            success=True,
            raw_text=text,
            manual_review_required=is_token_limit_placeholder(text),
        )
