"""
Markdown rendering of a review result for the pull request comment
"""

from datetime import datetime, timezone
from typing import List, Optional

from deep_review.config.languages import get_language_for_file
from deep_review.models.review_models import (
    AggregateReviewResult,
    Issue,
    ReviewMetadata,
    ReviewOutcome,
)

COMMENT_MARKER = "## 🤖 DeepReview"

_STATUS = {
    ReviewOutcome.BLOCKED: (
        "❌ **DO NOT MERGE**",
        "Issues found that must be addressed before merging",
    ),
    ReviewOutcome.SAFE: (
        "✅ **SAFE TO MERGE**",
        "No critical issues found in the reviewed changes",
    ),
    ReviewOutcome.INDETERMINATE: (
        "⚠️ **MANUAL REVIEW REQUIRED**",
        "No review results available; this is not an approval",
    ),
}

_NEXT_STEPS = {
    ReviewOutcome.BLOCKED: [
        "🔍 Review the critical issues above",
        "🛠️ Fix the issues mentioned in the review",
        "🔄 Push changes and re-run the review",
        "✅ Merge only after all critical issues are resolved",
    ],
    ReviewOutcome.SAFE: [
        "✅ Review the suggestions above",
        "🚀 Safe to merge when ready",
        "💡 Consider any optimization suggestions as future improvements",
    ],
    ReviewOutcome.INDETERMINATE: [
        "👀 Review the changes manually",
        "🔄 Re-run the review once the provider is reachable",
    ],
}


def _format_lines(lines: List[int]) -> str:
    return "-".join(str(line) for line in lines) or "n/a"


def format_issue(issue: Issue, include_tests: bool = True) -> str:
    language = get_language_for_file(issue.file)
    marker = "🔴" if issue.is_critical else "🟡"
    chunks = ", ".join(str(chunk) for chunk in (issue.chunks or [issue.chunk]))

    parts = [f"{marker} {issue.original_id or issue.id} - {issue.category.upper()} (Chunk {chunks})"]
    if issue.snippet:
        parts.append(f"```{language}\n{issue.snippet}\n```")
    parts.append(f"- **File**: `{issue.file}` (lines {_format_lines(issue.lines)})")
    parts.append(f"- **Severity Score**: {issue.severity_score:.1f}/5.0")
    parts.append(f"- **Confidence**: {round(issue.confidence * 100)}%")
    if issue.why_it_matters:
        parts.append(f"- **Impact**: {issue.why_it_matters}")
    if issue.fix_summary:
        parts.append(f"- **Fix Summary**: {issue.fix_summary}")
    if issue.fix_code_patch:
        parts.append(f"```{language}\n{issue.fix_code_patch}\n```")
    if include_tests and issue.tests:
        parts.append(f"- **Test**: {issue.tests}")
    return "\n".join(parts) + "\n"


def _issue_details(result: AggregateReviewResult) -> str:
    if not result.issues:
        return ""

    sections = ["## 🔍 **Issues Found**\n"]
    critical = result.critical_issues
    suggestions = result.suggestions

    if critical:
        sections.append(f"### 🚨 **Critical Issues ({len(critical)})**")
        sections.extend(format_issue(issue) for issue in critical)

    if suggestions:
        sections.append(f"### 💡 **Suggestions ({len(suggestions)})**")
        sections.extend(format_issue(issue, include_tests=False) for issue in suggestions)

    return "\n".join(sections)


def _metrics(result: AggregateReviewResult) -> str:
    stats = result.processing_stats
    lines = [
        "### 📊 **Review Metrics**",
        f"- **Critical Issues**: {result.total_critical_count}",
        f"- **Suggestions**: {result.total_suggestion_count}",
        f"- **Total Issues**: {len(result.issues)}",
        f"- **Chunks Processed**: {result.chunks_processed}",
        f"- **Successful / Failed**: {stats.successful_chunks} / {stats.failed_chunks} "
        f"({stats.success_rate:.0f}% success)",
    ]
    return "\n".join(lines) + "\n"


def _coverage_warning(result: AggregateReviewResult) -> Optional[str]:
    stats = result.processing_stats
    notes = []
    if result.outcome == ReviewOutcome.INDETERMINATE:
        notes.append(
            "> ⚠️ **No review results available.** Every chunk failed, so this run "
            "cannot vouch for the changes."
        )
    elif stats.failed_chunks:
        notes.append(
            f"> ⚠️ **Reduced coverage:** {stats.failed_chunks} of {stats.total_chunks} "
            f"chunk results could not be reviewed."
        )
    if result.manual_review_chunks:
        chunks = ", ".join(str(chunk) for chunk in result.manual_review_chunks)
        notes.append(f"> 📝 Chunks {chunks} exceeded the provider token limit and need manual review.")
    return "\n".join(notes) if notes else None


def format_review_comment(
    result: AggregateReviewResult,
    metadata: ReviewMetadata,
    review_date: Optional[datetime] = None,
) -> str:
    """Render the full pull request comment for a review run"""
    status, description = _STATUS[result.outcome]
    review_date = review_date or datetime.now(timezone.utc)

    parts = [COMMENT_MARKER, "", f"**Overall Assessment**: {status} - {description}", ""]

    warning = _coverage_warning(result)
    if warning:
        parts.extend([warning, ""])

    if result.summaries:
        parts.extend(["**AI Summary**:", *[f"- {summary}" for summary in result.summaries], ""])

    parts.extend(
        [
            "**Review Details:**",
            f"- **Department**: {metadata.department}",
            f"- **Team**: {metadata.team or 'n/a'}",
            f"- **Provider**: {metadata.provider.upper()}",
            f"- **Files Reviewed**: {metadata.files_reviewed} files",
            f"- **Review Date**: {review_date.strftime('%Y-%m-%d %H:%M:%S %Z')}",
            f"- **Base Branch**: {metadata.base_branch}",
            f"- **Head Branch**: {metadata.head_branch}",
            f"- **Path Filter**: {', '.join(p or '(all)' for p in metadata.path_to_files) or '(all)'}",
            f"- **Ignored Patterns**: {', '.join(metadata.ignore_patterns) or '(none)'}",
            "",
            "---",
            "",
        ]
    )

    details = _issue_details(result)
    if details:
        parts.extend([details, ""])
    parts.extend([_metrics(result), "---", "", "**What to do next:**"])
    parts.extend(
        f"{position}. {step}" for position, step in enumerate(_NEXT_STEPS[result.outcome], start=1)
    )

    return "\n".join(parts) + "\n"
