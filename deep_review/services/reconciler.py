"""
Reconciler: merge per-chunk review records into one review outcome
"""

import logging
from typing import Dict, List, Optional

from deep_review.config.settings import SeverityScoring
from deep_review.models.review_models import (
    AggregateReviewResult,
    ChunkReviewRecord,
    Issue,
    IssueCategory,
    ProcessingStats,
    ReviewOutcome,
)
from deep_review.utils.tracing import get_run_id

logger = logging.getLogger(__name__)

CATEGORY_ORDER = {category.value: position for position, category in enumerate(IssueCategory)}


def _sort_key(issue: Issue):
    first_line = issue.lines[0] if issue.lines else 0
    return (
        -issue.severity_score,
        CATEGORY_ORDER.get(issue.category, len(CATEGORY_ORDER)),
        issue.id,
        issue.file,
        first_line,
    )


class Reconciler:
    """Deduplicate issues, compute statistics and decide whether to block the merge"""

    def __init__(self, scoring: Optional[SeverityScoring] = None, verify_scores: bool = False):
        self.scoring = scoring or SeverityScoring()
        self.verify_scores = verify_scores

    def reconcile(self, records: List[ChunkReviewRecord]) -> AggregateReviewResult:
        """
        Build the final review result

        Args:
            records: Parsed records for every chunk, in chunk order

        Returns:
            Aggregate result; never raises for empty or fully failed input
        """
        issues = self.deduplicate(self._flatten(records))
        issues.sort(key=_sort_key)

        summaries = [
            f"Chunk {record.chunk_number}: {record.summary}"
            for record in records
            if record.summary
        ]

        total_critical = sum(record.metrics.critical_count for record in records)
        total_suggestion = sum(record.metrics.suggestion_count for record in records)

        stats = self.processing_stats(records)
        merge_blocked = self.merge_blocked(records, issues, total_critical)

        if merge_blocked:
            outcome = ReviewOutcome.BLOCKED
        elif stats.successful_chunks == 0:
            outcome = ReviewOutcome.INDETERMINATE
        else:
            outcome = ReviewOutcome.SAFE

        manual_review_chunks = sorted(
            {record.chunk_number for record in records if record.manual_review_required}
        )
        mismatches = self.count_score_mismatches(issues) if self.verify_scores else 0

        log_extra = {"run_id": get_run_id(), "operation": "reconcile"}
        if stats.total_chunks and stats.failed_chunks:
            if stats.successful_chunks:
                logger.warning(
                    f"Review coverage reduced: {stats.failed_chunks}/{stats.total_chunks} "
                    f"chunk results failed ({stats.success_rate:.1f}% success)",
                    extra=log_extra,
                )
            else:
                logger.error("No review results available: every chunk failed", extra=log_extra)

        logger.info(
            f"Reconciled {len(issues)} unique issues from {stats.total_chunks} chunk results "
            f"(outcome: {outcome.value})",
            extra={**log_extra, "merge_blocked": merge_blocked},
        )

        return AggregateReviewResult(
            issues=issues,
            summaries=summaries,
            total_critical_count=total_critical,
            total_suggestion_count=total_suggestion,
            chunks_processed=len(records),
            processing_stats=stats,
            merge_blocked=merge_blocked,
            outcome=outcome,
            manual_review_chunks=manual_review_chunks,
            score_mismatches=mismatches,
        )

    def _flatten(self, records: List[ChunkReviewRecord]) -> List[Issue]:
        flattened = []
        for record in records:
            if not record.success:
                continue
            for issue in record.issues:
                flattened.append(
                    issue.model_copy(
                        update={
                            "chunk": record.chunk_number,
                            "original_id": issue.original_id or issue.id,
                            "chunks": [record.chunk_number],
                        },
                        deep=True,
                    )
                )
        return flattened

    @staticmethod
    def deduplicate(issues: List[Issue]) -> List[Issue]:
        """Fold repeats of the same finding into the first occurrence"""
        canonical: Dict[str, Issue] = {}
        for issue in issues:
            existing = canonical.get(issue.dedup_key)
            if existing is None:
                canonical[issue.dedup_key] = issue
                continue

            if issue.chunk not in existing.chunks:
                existing.chunks.append(issue.chunk)
            existing.confidence = max(existing.confidence, issue.confidence)
            existing.severity_score = max(existing.severity_score, issue.severity_score)

        return list(canonical.values())

    def merge_blocked(
        self, records: List[ChunkReviewRecord], issues: List[Issue], total_critical: int
    ) -> bool:
        for record in records:
            if record.recommends_blocking:
                logger.info(f"Merge blocked: chunk {record.chunk_number} recommends do_not_merge")
                return True

        for issue in issues:
            if issue.is_critical and issue.confidence >= self.scoring.blocking_confidence:
                logger.info(
                    f"Merge blocked: critical issue {issue.id} with confidence {issue.confidence}"
                )
                return True

        if total_critical > 0:
            logger.info(f"Merge blocked: {total_critical} critical issues reported in chunk metrics")
            return True

        return False

    @staticmethod
    def processing_stats(records: List[ChunkReviewRecord]) -> ProcessingStats:
        processed = len(records)
        failed = sum(1 for record in records if not record.success)
        successful = processed - failed
        return ProcessingStats(
            total_chunks=processed,
            successful_chunks=successful,
            failed_chunks=failed,
            success_rate=(successful / processed * 100) if processed else 0.0,
            dropped_issues=sum(record.dropped_issues for record in records),
        )

    def count_score_mismatches(self, issues: List[Issue]) -> int:
        """Compare reported scores with the weighted formula; reported values are kept as-is"""
        mismatches = 0
        for issue in issues:
            expected = self.scoring.compute_score(issue.risk_factors.model_dump())
            if abs(expected - issue.severity_score) > self.scoring.score_tolerance:
                mismatches += 1
                logger.warning(
                    f"Issue {issue.id} reports severity_score {issue.severity_score} "
                    f"but its risk factors give {expected}"
                )
                continue

            expects_critical = self.scoring.proposes_critical(
                issue.severity_score, issue.risk_factors.evidence_strength
            )
            if expects_critical != issue.is_critical:
                mismatches += 1
                logger.warning(
                    f"Issue {issue.id} proposed as '{issue.severity_proposed}' "
                    f"inconsistent with its score {issue.severity_score}"
                )
        return mismatches
