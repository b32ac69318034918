"""
Tests for deep_review/services/reconciler.py
"""

import logging

import pytest

from deep_review.config.settings import SeverityScoring
from deep_review.models.review_models import (
    ChunkMetrics,
    ChunkReviewRecord,
    Issue,
    ReviewOutcome,
)
from deep_review.services.reconciler import Reconciler


def make_issue(**overrides) -> Issue:
    fields = {
        "id": "SEC-01",
        "category": "security",
        "severity_proposed": "suggestion",
        "severity_score": 2.0,
        "confidence": 0.5,
        "file": "src/app.js",
        "lines": [1, 5],
    }
    fields.update(overrides)
    return Issue(**fields)


def record(chunk_index=0, issues=None, **overrides) -> ChunkReviewRecord:
    return ChunkReviewRecord(chunk_index=chunk_index, issues=issues or [], **overrides)


@pytest.fixture
def reconciler():
    return Reconciler()


class TestDeduplication:
    """Test issue flattening and deduplication"""

    def test_issues_are_tagged_with_chunk_number(self, reconciler):
        result = reconciler.reconcile(
            [record(0, [make_issue(id="A")]), record(1, [make_issue(id="B")])]
        )

        chunks = {issue.id: issue.chunk for issue in result.issues}
        assert chunks == {"A": 1, "B": 2}

    def test_duplicates_fold_into_first_occurrence(self, reconciler):
        first = make_issue(confidence=0.4, severity_score=2.0, why_it_matters="first")
        second = make_issue(confidence=0.8, severity_score=1.5, why_it_matters="second")
        third = make_issue(confidence=0.3, severity_score=3.1, why_it_matters="third")

        result = reconciler.reconcile(
            [record(0, [first]), record(2, [second]), record(2, [third])]
        )

        assert len(result.issues) == 1
        merged = result.issues[0]
        assert merged.chunks == [1, 3]
        assert merged.confidence == 0.8
        assert merged.severity_score == 3.1
        assert merged.why_it_matters == "first"
        assert merged.chunk == 1

    def test_different_lines_are_distinct(self, reconciler):
        result = reconciler.reconcile(
            [record(0, [make_issue(lines=[1, 5]), make_issue(lines=[6, 9])])]
        )

        assert len(result.issues) == 2

    def test_input_records_are_not_mutated(self, reconciler):
        original = make_issue(confidence=0.2)
        records = [record(0, [original]), record(1, [make_issue(confidence=0.9)])]

        reconciler.reconcile(records)

        assert original.confidence == 0.2
        assert original.chunks == []

    def test_failed_records_contribute_no_issues(self, reconciler):
        failed = ChunkReviewRecord(chunk_index=0, success=False, issues=[make_issue()])

        result = reconciler.reconcile([failed])

        assert result.issues == []


class TestOrdering:
    """Test final issue ordering"""

    def test_sorted_by_score_descending(self, reconciler):
        issues = [
            make_issue(id="LOW", severity_score=1.0),
            make_issue(id="HIGH", severity_score=4.5),
            make_issue(id="MID", severity_score=3.0),
        ]

        result = reconciler.reconcile([record(0, issues)])

        assert [issue.id for issue in result.issues] == ["HIGH", "MID", "LOW"]

    def test_ties_follow_category_then_id(self, reconciler):
        issues = [
            make_issue(id="BEST-01", category="best_practices", severity_score=3.0),
            make_issue(id="PERF-02", category="performance", severity_score=3.0),
            make_issue(id="PERF-01", category="performance", severity_score=3.0),
            make_issue(id="SEC-01", category="security", severity_score=3.0),
        ]

        result = reconciler.reconcile([record(0, issues)])

        assert [issue.id for issue in result.issues] == ["SEC-01", "PERF-01", "PERF-02", "BEST-01"]


class TestMergeDecision:
    """Test the layered merge-block decision"""

    def test_clean_run_is_safe(self, reconciler):
        result = reconciler.reconcile(
            [record(0, [make_issue()], final_recommendation="safe_to_merge")]
        )

        assert not result.merge_blocked
        assert result.outcome == ReviewOutcome.SAFE

    def test_explicit_blocking_recommendation(self, reconciler):
        result = reconciler.reconcile([record(0, final_recommendation="do_not_merge")])

        assert result.merge_blocked
        assert result.outcome == ReviewOutcome.BLOCKED

    def test_confident_critical_issue_blocks(self, reconciler):
        issue = make_issue(severity_proposed="critical", confidence=0.6)

        result = reconciler.reconcile([record(0, [issue])])

        assert result.merge_blocked

    def test_low_confidence_critical_does_not_block(self, reconciler):
        issue = make_issue(severity_proposed="critical", confidence=0.59)

        result = reconciler.reconcile([record(0, [issue])])

        assert not result.merge_blocked

    def test_metrics_critical_count_blocks(self, reconciler):
        result = reconciler.reconcile(
            [record(0, metrics=ChunkMetrics(critical_count=1, suggestion_count=0))]
        )

        assert result.merge_blocked

    def test_monotonic_flip(self, reconciler):
        clean = [make_issue(id="S-1")]
        critical = make_issue(id="C-1", severity_proposed="critical", confidence=0.9)

        assert not reconciler.reconcile([record(0, clean)]).merge_blocked
        assert reconciler.reconcile([record(0, clean + [critical])]).merge_blocked
        assert not reconciler.reconcile([record(0, clean)]).merge_blocked

    def test_failed_record_with_blocking_phrase_blocks(self, reconciler):
        failed = ChunkReviewRecord.failure(0, "No <JSON> block", final_recommendation="do_not_merge")

        result = reconciler.reconcile([failed])

        assert result.merge_blocked
        assert result.outcome == ReviewOutcome.BLOCKED

    def test_total_failure_is_indeterminate(self, reconciler, caplog):
        records = [ChunkReviewRecord.failure(i, "no result") for i in range(3)]

        with caplog.at_level(logging.ERROR):
            result = reconciler.reconcile(records)

        assert not result.merge_blocked
        assert result.outcome == ReviewOutcome.INDETERMINATE
        assert "No review results available" in caplog.text

    def test_empty_input_is_indeterminate(self, reconciler):
        result = reconciler.reconcile([])

        assert result.chunks_processed == 0
        assert result.processing_stats.success_rate == 0.0
        assert result.outcome == ReviewOutcome.INDETERMINATE


class TestStatistics:
    """Test processing statistics and aggregates"""

    def test_partial_failure_statistics(self, reconciler, caplog):
        records = [record(0), record(1), ChunkReviewRecord.failure(2, "no result"), record(3)]

        with caplog.at_level(logging.WARNING):
            result = reconciler.reconcile(records)

        stats = result.processing_stats
        assert result.chunks_processed == 4
        assert stats.total_chunks == 4
        assert stats.failed_chunks == 1
        assert stats.successful_chunks == 3
        assert stats.success_rate == 75.0
        assert "Review coverage reduced" in caplog.text

    def test_totals_and_summaries(self, reconciler):
        records = [
            record(0, summary="first", metrics=ChunkMetrics(critical_count=1, suggestion_count=2)),
            record(1, metrics=ChunkMetrics(critical_count=0, suggestion_count=3)),
            record(2, summary="third"),
        ]

        result = reconciler.reconcile(records)

        assert result.total_critical_count == 1
        assert result.total_suggestion_count == 5
        assert result.summaries == ["Chunk 1: first", "Chunk 3: third"]

    def test_summary_of_failed_chunk_is_kept(self, reconciler):
        records = [
            record(0, summary="first"),
            ChunkReviewRecord.failure(1, "Invalid JSON in response"),
        ]
        records[1].summary = "second"

        result = reconciler.reconcile(records)

        assert result.summaries == ["Chunk 1: first", "Chunk 2: second"]
        assert result.processing_stats.failed_chunks == 1

    def test_dropped_issues_and_manual_review_are_reported(self, reconciler):
        records = [
            record(0, dropped_issues=2),
            ChunkReviewRecord.failure(1, "token limit", manual_review_required=True),
        ]

        result = reconciler.reconcile(records)

        assert result.processing_stats.dropped_issues == 2
        assert result.manual_review_chunks == [2]


class TestScoreVerification:
    """Test the optional severity cross-check"""

    def test_disabled_by_default(self, reconciler):
        issue = make_issue(severity_score=4.9)

        assert reconciler.reconcile([record(0, [issue])]).score_mismatches == 0

    def test_mismatches_are_counted_not_rewritten(self, caplog):
        reconciler = Reconciler(SeverityScoring(), verify_scores=True)
        consistent = make_issue(
            id="OK-1",
            severity_proposed="critical",
            severity_score=4.25,
            risk_factors={
                "impact": 5,
                "exploitability": 4,
                "likelihood": 4,
                "blast_radius": 3,
                "evidence_strength": 4,
            },
        )
        wrong_score = make_issue(id="BAD-1", severity_score=4.9)

        with caplog.at_level(logging.WARNING):
            result = reconciler.reconcile([record(0, [consistent, wrong_score])])

        assert result.score_mismatches == 1
        assert {issue.id: issue.severity_score for issue in result.issues}["BAD-1"] == 4.9
        assert "BAD-1" in caplog.text
