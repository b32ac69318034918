"""
Data models for the chunked review pipeline
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class IssueCategory(str, Enum):
    """Categories the oracle is instructed to use"""

    SECURITY = "security"
    PERFORMANCE = "performance"
    MAINTAINABILITY = "maintainability"
    BEST_PRACTICES = "best_practices"


class ReviewOutcome(str, Enum):
    """Final decision of a review run"""

    SAFE = "safe"
    BLOCKED = "blocked"
    INDETERMINATE = "indeterminate"


BLOCKING_RECOMMENDATION = "do_not_merge"
SAFE_RECOMMENDATION = "safe_to_merge"


class RiskFactors(BaseModel):
    """0-5 sub-scores behind an issue's severity score"""

    impact: int = 0
    exploitability: int = 0
    likelihood: int = 0
    blast_radius: int = 0
    evidence_strength: int = 0


class Occurrence(BaseModel):
    """Another location where the same issue appears"""

    file: str = ""
    lines: List[int] = Field(default_factory=list)


class Issue(BaseModel):
    """One structured finding returned by the oracle for a chunk"""

    id: str = Field(..., description="Issue identifier, e.g. SEC-01")
    category: str = Field(..., description="Normalized issue category")
    severity_proposed: str = Field(..., description="critical or suggestion")
    severity_score: float = Field(0.0, description="Weighted 0-5 score, 2 decimals")
    risk_factors: RiskFactors = Field(default_factory=RiskFactors)
    risk_factors_notes: Dict[str, str] = Field(default_factory=dict)
    confidence: float = Field(0.0, description="Oracle confidence in [0, 1]")
    file: str = ""
    lines: List[int] = Field(default_factory=list, description="[start, end], 1-based")
    snippet: str = ""
    why_it_matters: str = ""
    fix_summary: str = ""
    fix_code_patch: str = ""
    tests: str = ""
    occurrences: List[Occurrence] = Field(default_factory=list)

    # Assigned by the pipeline
    chunk: int = Field(0, description="1-based origin chunk number")
    original_id: str = Field("", description="Identifier before deduplication")
    chunks: List[int] = Field(
        default_factory=list, description="Every chunk that reported this issue"
    )

    @property
    def is_critical(self) -> bool:
        return self.severity_proposed == "critical"

    @property
    def dedup_key(self) -> str:
        lines = "-".join(str(line) for line in self.lines)
        return f"{self.file}:{lines}:{self.category}:{self.id}"


class ChunkMetrics(BaseModel):
    critical_count: int = 0
    suggestion_count: int = 0


class ChunkResult(BaseModel):
    """Raw outcome of calling the oracle for one chunk"""

    model_config = ConfigDict(frozen=True)

    chunk_index: int
    success: bool
    raw_text: Optional[str] = None
    error: Optional[str] = None
    manual_review_required: bool = False


class ChunkReviewRecord(BaseModel):
    """Validated parse result for one JSON block of a chunk response"""

    chunk_index: int
    success: bool = True
    summary: Optional[str] = None
    issues: List[Issue] = Field(default_factory=list)
    metrics: ChunkMetrics = Field(default_factory=ChunkMetrics)
    final_recommendation: Optional[str] = None
    error: Optional[str] = None
    truncated: bool = False
    manual_review_required: bool = False
    dropped_issues: int = 0

    @property
    def chunk_number(self) -> int:
        return self.chunk_index + 1

    @property
    def recommends_blocking(self) -> bool:
        return self.final_recommendation == BLOCKING_RECOMMENDATION

    @classmethod
    def failure(
        cls,
        chunk_index: int,
        error: str,
        final_recommendation: Optional[str] = None,
        truncated: bool = False,
        manual_review_required: bool = False,
    ) -> "ChunkReviewRecord":
        return cls(
            chunk_index=chunk_index,
            success=False,
            error=error,
            final_recommendation=final_recommendation,
            truncated=truncated,
            manual_review_required=manual_review_required,
        )


class ProcessingStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_chunks: int = 0
    successful_chunks: int = 0
    failed_chunks: int = 0
    success_rate: float = 0.0
    dropped_issues: int = 0


class AggregateReviewResult(BaseModel):
    """Final, reconciled outcome of a review run"""

    model_config = ConfigDict(frozen=True)

    issues: List[Issue] = Field(default_factory=list)
    summaries: List[str] = Field(default_factory=list)
    total_critical_count: int = 0
    total_suggestion_count: int = 0
    chunks_processed: int = 0
    processing_stats: ProcessingStats = Field(default_factory=ProcessingStats)
    merge_blocked: bool = False
    outcome: ReviewOutcome = ReviewOutcome.INDETERMINATE
    manual_review_chunks: List[int] = Field(default_factory=list)
    score_mismatches: int = 0

    @property
    def critical_issues(self) -> List[Issue]:
        return [issue for issue in self.issues if issue.is_critical]

    @property
    def suggestions(self) -> List[Issue]:
        return [issue for issue in self.issues if not issue.is_critical]


class ReviewMetadata(BaseModel):
    """Who and what a review run covered; shared by the comment and analytics payload"""

    department: str = "web"
    team: Optional[str] = None
    provider: str = "claude"
    language: str = "js"
    base_branch: str = "develop"
    head_branch: str = "HEAD"
    path_to_files: List[str] = Field(default_factory=list)
    ignore_patterns: List[str] = Field(default_factory=list)
    files_reviewed: int = 0
    repository: Optional[str] = None
    pr_number: Optional[int] = None
