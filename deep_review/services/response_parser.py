"""
Response parser for tagged review oracle output

Extracts structured records from the <JSON>...</JSON> and
<SUMMARY>...</SUMMARY> blocks of a chunk response. Every field coming from
the oracle is treated as optional and untyped; malformed data becomes a
failed record or a dropped issue, never an exception.
"""

import json
import logging
import math
import re
from typing import Any, Dict, List, Optional

from deep_review.models.review_models import (
    BLOCKING_RECOMMENDATION,
    ChunkMetrics,
    ChunkResult,
    ChunkReviewRecord,
    Issue,
    Occurrence,
    RiskFactors,
)
from deep_review.services.llm_service import is_token_limit_placeholder
from deep_review.utils.tracing import get_run_id

logger = logging.getLogger(__name__)

JSON_OPEN, JSON_CLOSE = "<JSON>", "</JSON>"
SUMMARY_OPEN, SUMMARY_CLOSE = "<SUMMARY>", "</SUMMARY>"

JSON_BLOCK = re.compile(r"<JSON>\s*([\s\S]*?)\s*</JSON>")
SUMMARY_BLOCK = re.compile(r"<SUMMARY>\s*([\s\S]*?)\s*</SUMMARY>")
CODE_FENCE = re.compile(r"^```(?:json)?\s*([\s\S]*?)\s*```$")

REQUIRED_ISSUE_FIELDS = ("id", "category", "severity_proposed")

# Only explicit blocking language is honoured when no JSON is present;
# approval language is never taken as a "safe" signal.
BLOCKING_PHRASES = (
    "do not merge",
    "block merge",
    "merge blocked",
    "not safe to merge",
    "critical issues found",
    "must be fixed",
    "blockers found",
)

_CATEGORY_ALIASES = {
    "best_practice": "best_practices",
    "bestpractices": "best_practices",
    "best_practise": "best_practices",
    "best_practises": "best_practices",
    "perf": "performance",
    "sec": "security",
    "maintenance": "maintainability",
}


def normalize_category(value: str) -> str:
    key = re.sub(r"[\s\-]+", "_", value.strip().lower())
    return _CATEGORY_ALIASES.get(key, key)


def _to_int(value: Any) -> int:
    """Coerce to a non-negative integer, 0 when unparseable"""
    if isinstance(value, bool):
        return 0
    try:
        number = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(0, number)


def _to_float(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool) or value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def _to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return "\n".join(str(item) for item in value)
    return str(value)


def _to_lines(value: Any) -> List[int]:
    if isinstance(value, bool):
        return []
    if isinstance(value, (int, float)):
        line = _to_int(value)
        return [line, line]
    if isinstance(value, (list, tuple)):
        return [_to_int(item) for item in value[:2]]
    if isinstance(value, str):
        return [_to_int(part) for part in re.findall(r"\d+", value)[:2]]
    return []


def _to_risk_factors(value: Any) -> RiskFactors:
    if not isinstance(value, dict):
        return RiskFactors()
    return RiskFactors(
        impact=_to_int(value.get("impact")),
        exploitability=_to_int(value.get("exploitability")),
        likelihood=_to_int(value.get("likelihood")),
        blast_radius=_to_int(value.get("blast_radius")),
        evidence_strength=_to_int(value.get("evidence_strength")),
    )


def _to_occurrences(value: Any) -> List[Occurrence]:
    if not isinstance(value, list):
        return []
    return [
        Occurrence(file=_to_str(item.get("file")), lines=_to_lines(item.get("lines")))
        for item in value
        if isinstance(item, dict)
    ]


def _has_unclosed_tag(text: str, open_tag: str, close_tag: str) -> bool:
    return text.rfind(open_tag) > text.rfind(close_tag)


class ResponseParser:
    """Turn one chunk's raw oracle text into validated review records"""

    def parse(self, raw_text: Optional[str], chunk_index: int) -> List[ChunkReviewRecord]:
        """
        Parse a chunk response

        Each <JSON> block becomes one record. A block that fails to parse
        becomes a failed record; a response with no block at all becomes a
        single failed record.

        Args:
            raw_text: Oracle output for the chunk
            chunk_index: 0-based chunk position

        Returns:
            At least one record, in block order
        """
        if not raw_text or not raw_text.strip():
            return [ChunkReviewRecord.failure(chunk_index, "Empty response from review oracle")]

        json_truncated = _has_unclosed_tag(raw_text, JSON_OPEN, JSON_CLOSE)
        summary_truncated = _has_unclosed_tag(raw_text, SUMMARY_OPEN, SUMMARY_CLOSE)
        if json_truncated or summary_truncated:
            logger.warning(
                f"Detected potentially truncated LLM response for chunk {chunk_index + 1} "
                f"- missing closing tags",
                extra={
                    "run_id": get_run_id(),
                    "operation": "response_truncated",
                    "chunk_index": chunk_index,
                },
            )

        records = [
            self._parse_block(match.group(1), chunk_index)
            for match in JSON_BLOCK.finditer(raw_text)
        ]

        if json_truncated:
            tail = raw_text[raw_text.rfind(JSON_OPEN) + len(JSON_OPEN):]
            records.append(self._parse_block(tail, chunk_index, truncated=True))

        summary = self._extract_summary(raw_text)
        if not records:
            record = self._no_json_record(raw_text, chunk_index)
            record.summary = summary
            return [record]

        if summary:
            # The tagged summary wins over inline ones; keep one per chunk
            for record in records:
                record.summary = None
            target = next((record for record in records if record.success), records[0])
            target.summary = summary

        return records

    def parse_result(self, result: ChunkResult) -> List[ChunkReviewRecord]:
        """Parse a scheduler result; a failed call becomes a single failed record"""
        if not result.success:
            return [
                ChunkReviewRecord.failure(
                    result.chunk_index,
                    result.error or "Chunk review failed",
                    manual_review_required=result.manual_review_required,
                )
            ]
        return self.parse(result.raw_text, result.chunk_index)

    def _extract_summary(self, raw_text: str) -> Optional[str]:
        for match in SUMMARY_BLOCK.finditer(raw_text):
            content = match.group(1).strip()
            if content:
                return content
        return None

    def _no_json_record(self, raw_text: str, chunk_index: int) -> ChunkReviewRecord:
        manual_review = is_token_limit_placeholder(raw_text)
        lowered = raw_text.lower()
        blocking_phrase = next((phrase for phrase in BLOCKING_PHRASES if phrase in lowered), None)

        if manual_review:
            error = "Chunk exceeded the provider token limit; manual review required"
        else:
            error = "No <JSON> block found in response"
            logger.warning(f"JSON not found in response for chunk {chunk_index + 1}")

        if blocking_phrase and not manual_review:
            logger.info(f"Found blocking phrase in unstructured response: \"{blocking_phrase}\"")

        return ChunkReviewRecord.failure(
            chunk_index,
            error,
            final_recommendation=BLOCKING_RECOMMENDATION
            if blocking_phrase and not manual_review
            else None,
            manual_review_required=manual_review,
        )

    def _parse_block(
        self, block: str, chunk_index: int, truncated: bool = False
    ) -> ChunkReviewRecord:
        text = block.strip()
        fenced = CODE_FENCE.match(text)
        if fenced:
            text = fenced.group(1)

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning(f"Error parsing JSON object for chunk {chunk_index + 1}: {e}")
            return ChunkReviewRecord.failure(
                chunk_index, f"Invalid JSON: {e}", truncated=truncated
            )

        if not isinstance(data, dict):
            return ChunkReviewRecord.failure(
                chunk_index, "JSON block is not an object", truncated=truncated
            )

        record = self.validate_chunk_data(data, chunk_index)
        record.truncated = truncated
        return record

    def validate_chunk_data(self, data: Dict[str, Any], chunk_index: int) -> ChunkReviewRecord:
        """Build a record from one decoded JSON object, keeping only well-formed issues"""
        summary = data.get("summary")
        summary = summary.strip() if isinstance(summary, str) and summary.strip() else None

        issues: List[Issue] = []
        dropped = 0
        raw_issues = data.get("issues")
        if isinstance(raw_issues, list):
            for item in raw_issues:
                issue = self.build_issue(item, chunk_index)
                if issue is None:
                    dropped += 1
                else:
                    issues.append(issue)
        elif raw_issues is not None:
            logger.warning(f"Chunk {chunk_index + 1} 'issues' is not a list; ignoring it")

        if dropped:
            logger.warning(f"Dropped {dropped} malformed issues from chunk {chunk_index + 1}")

        metrics = ChunkMetrics()
        raw_metrics = data.get("metrics")
        if isinstance(raw_metrics, dict):
            metrics = ChunkMetrics(
                critical_count=_to_int(raw_metrics.get("critical_count")),
                suggestion_count=_to_int(raw_metrics.get("suggestion_count")),
            )

        recommendation = data.get("final_recommendation")
        recommendation = (
            recommendation.strip().lower() if isinstance(recommendation, str) else None
        )

        return ChunkReviewRecord(
            chunk_index=chunk_index,
            success=True,
            summary=summary,
            issues=issues,
            metrics=metrics,
            final_recommendation=recommendation or None,
            dropped_issues=dropped,
        )

    def build_issue(self, item: Any, chunk_index: int) -> Optional[Issue]:
        """Minimal shape validation: id, category and severity_proposed must be non-empty strings"""
        if not isinstance(item, dict):
            return None
        for field in REQUIRED_ISSUE_FIELDS:
            value = item.get(field)
            if not isinstance(value, str) or not value.strip():
                return None

        issue_id = item["id"].strip()
        notes = item.get("risk_factors_notes")

        return Issue(
            id=issue_id,
            category=normalize_category(item["category"]),
            severity_proposed=item["severity_proposed"].strip().lower(),
            severity_score=round(_to_float(item.get("severity_score")), 2),
            risk_factors=_to_risk_factors(item.get("risk_factors")),
            risk_factors_notes=(
                {str(key): _to_str(value) for key, value in notes.items()}
                if isinstance(notes, dict)
                else {}
            ),
            confidence=_to_float(item.get("confidence")),
            file=_to_str(item.get("file")),
            lines=_to_lines(item.get("lines")),
            snippet=_to_str(item.get("snippet")),
            why_it_matters=_to_str(item.get("why_it_matters")),
            fix_summary=_to_str(item.get("fix_summary")),
            fix_code_patch=_to_str(item.get("fix_code_patch")),
            tests=_to_str(item.get("tests")),
            occurrences=_to_occurrences(item.get("occurrences")),
            chunk=chunk_index + 1,
            original_id=issue_id,
        )
