"""
DeepReview pull request reviewer
Command line / GitHub Action entry point
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from deep_review.config.settings import Settings
from deep_review.exceptions import (
    ConfigurationException,
    DeepReviewException,
)
from deep_review.models.review_models import AggregateReviewResult, ReviewMetadata, ReviewOutcome
from deep_review.services.analytics_service import AnalyticsService, build_review_log_data
from deep_review.services.comment_formatter import format_review_comment
from deep_review.services.context_service import ContextService
from deep_review.services.git_service import GitService, list_diff_files
from deep_review.services.github_service import GitHubService
from deep_review.services.review_service import ReviewService
from deep_review.utils.tracing import new_run_id
from deep_review.utils.version import get_version

logger = logging.getLogger(__name__)

EXIT_SAFE = 0
EXIT_BLOCKED = 1
EXIT_INDETERMINATE = 2
EXIT_ERROR = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="deep-review",
        description="Chunked LLM code review of the current branch against its base branch",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {get_version()}")
    parser.add_argument("--provider", dest="llm_provider", help="LLM provider: claude or openai")
    parser.add_argument("--team", help="Team owning the reviewed code")
    parser.add_argument("--department", help="Department owning the reviewed code")
    parser.add_argument("--language", help="Review language: js, python, java or php")
    parser.add_argument("--base-branch", dest="base_branch", help="Branch to diff against")
    parser.add_argument(
        "--path-to-files", dest="path_to_files", help="Comma-separated path prefixes to review"
    )
    parser.add_argument(
        "--ignore-patterns", dest="ignore_patterns", help="Comma-separated file suffixes to skip"
    )
    parser.add_argument("--chunk-size", dest="chunk_size", type=int, help="Max chunk size in bytes")
    parser.add_argument(
        "--diff-file", dest="diff_file", help="Review a saved diff instead of invoking git"
    )
    parser.add_argument(
        "--no-publish",
        dest="publish",
        action="store_false",
        help="Do not post a pull request comment or label",
    )
    return parser


SETTING_OPTIONS = (
    "llm_provider",
    "team",
    "department",
    "language",
    "base_branch",
    "path_to_files",
    "ignore_patterns",
    "chunk_size",
)


def load_settings(args: argparse.Namespace) -> Settings:
    """
    Build settings from the environment with command line overrides

    Raises:
        ConfigurationException: If any value is invalid or the team is missing
    """
    overrides: Dict[str, Any] = {
        name: getattr(args, name) for name in SETTING_OPTIONS if getattr(args, name) is not None
    }

    try:
        settings = Settings(**overrides)
    except ValidationError as e:
        first = e.errors()[0]
        key = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ConfigurationException(
            f"Invalid configuration: {first.get('msg')}", config_key=key, original_error=e
        )

    if not settings.team:
        raise ConfigurationException("A team name is required (input 'team')", config_key="team")
    return settings


def exit_code_for(result: Optional[AggregateReviewResult], fail_on_indeterminate: bool) -> int:
    """Map a review outcome to the process exit code; a skipped review is not a failure"""
    if result is None or result.outcome == ReviewOutcome.SAFE:
        return EXIT_SAFE
    if result.outcome == ReviewOutcome.BLOCKED:
        return EXIT_BLOCKED
    if fail_on_indeterminate:
        return EXIT_INDETERMINATE
    logger.warning("Review outcome is indeterminate; not failing the run as configured")
    return EXIT_SAFE


def log_review_details(settings: Settings) -> None:
    logger.info(f"Starting LLM Code Review using {settings.llm_provider.upper()} LLM")
    logger.info(
        "Review Details: "
        f"department={settings.department} team={settings.team} "
        f"base_branch={settings.resolved_base_branch} language={settings.language} "
        f"path_to_files={', '.join(settings.parsed_path_to_files) or '(all)'} "
        f"ignore_patterns={', '.join(settings.parsed_ignore_patterns)} "
        f"chunk_size={round(settings.chunk_size / 1024)}KB "
        f"max_concurrent_requests={settings.max_concurrent_requests} "
        f"batch_delay={settings.batch_delay_ms}ms"
    )


def log_final_decision(result: AggregateReviewResult, blocking_confidence: float = 0.6) -> None:
    stats = result.processing_stats
    logger.info(
        f"Review Summary: {result.total_critical_count} critical, "
        f"{result.total_suggestion_count} suggestions across {result.chunks_processed} chunk results"
    )

    if result.outcome == ReviewOutcome.BLOCKED:
        critical = result.critical_issues
        confident = [issue for issue in critical if issue.confidence >= blocking_confidence]
        logger.error(
            f"MERGE BLOCKED: LLM review found {len(critical)} critical issues "
            f"({len(confident)} with high confidence >= {blocking_confidence})"
        )
        for issue in confident:
            logger.info(
                f"  - {issue.original_id or issue.id}: {issue.category} (Chunk {issue.chunk}, "
                f"score: {issue.severity_score:.1f}, {round(issue.confidence * 100)}% confidence) "
                f"{issue.file} lines {'-'.join(str(line) for line in issue.lines)}"
            )
    elif result.outcome == ReviewOutcome.SAFE:
        logger.info(
            f"MERGE APPROVED: No critical issues found across {stats.successful_chunks} reviewed "
            f"chunk results. {len(result.suggestions)} suggestions available for consideration."
        )
    else:
        logger.error("No review results available: manual review required before merging")


async def run(
    settings: Settings, diff_file: Optional[str] = None, publish: bool = True
) -> int:
    """Execute one review run and return the process exit code"""
    new_run_id()
    log_review_details(settings)

    git = GitService(
        base_branch=settings.resolved_base_branch,
        language=settings.language,
        path_to_files=settings.parsed_path_to_files,
        ignore_patterns=settings.parsed_ignore_patterns,
    )

    project_context = ""
    if diff_file:
        diff = Path(diff_file).read_text(encoding="utf-8")
        changed_files: List[str] = list_diff_files(diff)
    else:
        changed_files = await git.get_changed_files()
        if not changed_files:
            logger.info("No changes detected - nothing to review")
            return EXIT_SAFE
        diff = await git.get_full_diff(changed_files)
        project_context = await ContextService(git).get_comprehensive_context(changed_files)

    result = await ReviewService.from_settings(settings).review_diff(diff, project_context)
    if result is None:
        return EXIT_SAFE

    scoring = settings.severity_scoring()
    log_final_decision(result, scoring.blocking_confidence)

    metadata = ReviewMetadata(
        department=settings.department,
        team=settings.team,
        provider=settings.llm_provider,
        language=settings.language,
        base_branch=settings.resolved_base_branch,
        head_branch=settings.github_ref_name or "HEAD",
        path_to_files=settings.parsed_path_to_files,
        ignore_patterns=settings.parsed_ignore_patterns,
        files_reviewed=len(changed_files),
        repository=settings.github_repository,
        pr_number=settings.resolved_pr_number,
    )

    if publish:
        github = GitHubService.from_settings(settings)
        if github is not None:
            async with github:
                await github.publish(format_review_comment(result, metadata))

    analytics = AnalyticsService(
        endpoint=settings.logging_endpoint,
        enabled=settings.enable_review_logging,
        timeout=settings.logging_timeout,
    )
    analytics.log_review_data(build_review_log_data(result, metadata))
    await analytics.wait_pending()

    return exit_code_for(result, settings.fail_on_indeterminate)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args)
    except ConfigurationException as e:
        logging.basicConfig(level=logging.INFO)
        logger.error(f"Configuration error: {e}")
        return EXIT_ERROR

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        return asyncio.run(run(settings, diff_file=args.diff_file, publish=args.publish))
    except DeepReviewException as e:
        logger.error(f"Review failed: {e}")
        return EXIT_ERROR
    except OSError as e:
        logger.error(f"Could not read diff: {e}")
        return EXIT_ERROR


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
