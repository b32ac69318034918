"""
End-to-end review of a large diff through chunking, retries, parsing and reconciliation
"""

import pytest

from deep_review.config.settings import ChunkingConfig
from deep_review.exceptions import ProviderServerException
from deep_review.models.review_models import ReviewMetadata, ReviewOutcome
from deep_review.services.analytics_service import build_review_log_data
from deep_review.services.comment_formatter import format_review_comment
from deep_review.services.git_service import list_diff_files
from deep_review.services.review_service import ReviewService

CHUNK_BYTES = 300 * 1024
FILE_BYTES = CHUNK_BYTES - 1024


@pytest.fixture
def large_diff(make_diff):
    return make_diff(
        ("src/db/users.js", FILE_BYTES),
        ("src/reports/export.js", FILE_BYTES),
        ("src/legacy/sync.js", FILE_BYTES),
    )


@pytest.fixture
def oracle(make_provider, make_response, make_issue):
    """Chunk 1 finds SQL injection, chunk 2 a slow loop, chunk 3 always fails"""

    def reply(code):
        if "--- File: src/db/users.js ---" in code:
            return make_response(
                issues=[make_issue()],
                tagged_summary="SQL injection in user lookup.",
            )
        if "--- File: src/reports/export.js ---" in code:
            return make_response(
                issues=[
                    make_issue(
                        id="PERF-01",
                        category="performance",
                        severity_proposed="suggestion",
                        severity_score=2.1,
                        confidence=0.7,
                        file="src/reports/export.js",
                        lines=[40, 52],
                    )
                ]
            )
        return ProviderServerException("upstream unavailable", provider="claude", status_code=503)

    return make_provider(reply)


class TestLargeDiffReview:
    """Review of a diff that spans several chunks with one persistently failing chunk"""

    @pytest.mark.asyncio
    async def test_partial_failure_still_blocks(self, oracle, large_diff, no_sleep):
        service = ReviewService(
            oracle, chunking=ChunkingConfig(max_chunk_bytes=CHUNK_BYTES), sleep=no_sleep
        )

        result = await service.review_diff(large_diff)

        assert result.chunks_processed == 3
        assert result.processing_stats.failed_chunks == 1
        assert result.processing_stats.successful_chunks == 2
        assert result.merge_blocked
        assert result.outcome == ReviewOutcome.BLOCKED
        assert [issue.id for issue in result.issues] == ["SEC-01", "PERF-01"]
        assert [issue.chunk for issue in result.issues] == [1, 2]
        assert result.summaries == [
            "Chunk 1: SQL injection in user lookup.",
            "Chunk 2: Reviewed the chunk.",
        ]

    @pytest.mark.asyncio
    async def test_failing_chunk_is_retried(self, oracle, large_diff, no_sleep):
        service = ReviewService(
            oracle, chunking=ChunkingConfig(max_chunk_bytes=CHUNK_BYTES), sleep=no_sleep
        )

        await service.review_diff(large_diff)

        legacy_calls = [code for code in oracle.calls if "src/legacy/sync.js" in code]
        assert len(oracle.calls) == 5
        assert len(legacy_calls) == oracle.config.max_attempts
        delays = [call.args[0] for call in no_sleep.await_args_list]
        assert delays == [2.0, 2.0, 1.0, 2.0]

    @pytest.mark.asyncio
    async def test_results_render_and_log(self, oracle, large_diff, no_sleep):
        service = ReviewService(
            oracle, chunking=ChunkingConfig(max_chunk_bytes=CHUNK_BYTES), sleep=no_sleep
        )
        metadata = ReviewMetadata(team="payments", files_reviewed=3)

        result = await service.review_diff(large_diff)
        comment = format_review_comment(result, metadata)
        payload = build_review_log_data(result, metadata)

        assert "DO NOT MERGE" in comment
        assert "1 of 3 chunk results could not be reviewed" in comment
        assert payload["merge_blocked"] is True
        assert len(payload["issues"]) == 2


class TestCrossChunkDuplicates:
    """The same finding reported by several chunks appears once"""

    @pytest.mark.asyncio
    async def test_duplicate_findings_merge(
        self, make_provider, make_response, make_issue, make_diff, no_sleep
    ):
        issue = make_issue(
            id="MAINT-01",
            category="Maintainability",
            severity_proposed="suggestion",
            severity_score=1.5,
            confidence=0.4,
            file="src/shared.js",
            lines=[1, 3],
        )
        louder = dict(issue, confidence=0.8, severity_score=2.5)
        replies = {"a.js": [issue], "d.js": [louder]}

        def reply(code):
            path = list_diff_files(code)[0]
            return make_response(issues=replies.get(path, []))

        provider = make_provider(reply)
        service = ReviewService(
            provider,
            chunking=ChunkingConfig(max_chunk_bytes=150, request_delay_seconds=0),
            sleep=no_sleep,
        )

        result = await service.review_diff(
            make_diff(("a.js", 120), ("b.js", 120), ("c.js", 120), ("d.js", 120))
        )

        assert result.chunks_processed == 4
        assert len(result.issues) == 1
        merged = result.issues[0]
        assert merged.category == "maintainability"
        assert merged.chunks == [1, 4]
        assert merged.confidence == 0.8
        assert merged.severity_score == 2.5
        assert result.outcome == ReviewOutcome.SAFE
