"""
Application configuration management
"""

import re
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from deep_review.config.languages import LANGUAGE_ROLE_CONFIGS

SUPPORTED_PROVIDERS = ("claude", "openai")

DEFAULT_IGNORE_PATTERNS = [".json", ".md", ".lock", ".test.js", ".spec.js"]


def _input_alias(name: str) -> AliasChoices:
    """Accept a setting under its own name and as a GitHub Action input"""
    return AliasChoices(name, f"INPUT_{name.upper()}")


def _split_csv(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class ChunkingConfig(BaseModel):
    """Chunking and scheduling parameters"""

    model_config = ConfigDict(frozen=True)

    max_chunk_bytes: int = 300 * 1024
    sequential_threshold: int = 3
    max_concurrency: int = Field(2, ge=1, le=2)
    request_delay_seconds: float = Field(2.0, ge=0)
    chunk_warning_threshold: int = 50


class ProviderConfig(BaseModel):
    """Review oracle endpoint descriptor"""

    model_config = ConfigDict(frozen=True)

    name: str
    api_key: Optional[str] = Field(None, repr=False)
    model: str
    base_url: Optional[str] = None
    max_tokens: int = 8000
    temperature: float = 0.0
    timeout: float = 60.0
    max_attempts: int = 3
    base_delay: float = 1.0


class SeverityScoring(BaseModel):
    """
    Severity constants handed to the oracle in the prompt.

    Used for documentation and optional cross-checking only; reported
    scores are never recomputed into the result.
    """

    model_config = ConfigDict(frozen=True)

    impact_weight: float = 0.35
    exploitability_weight: float = 0.30
    likelihood_weight: float = 0.20
    blast_radius_weight: float = 0.10
    evidence_strength_weight: float = 0.05
    critical_score_threshold: float = 3.60
    critical_min_evidence: int = 3
    blocking_confidence: float = 0.6
    score_tolerance: float = 0.05

    def compute_score(self, risk_factors: Dict[str, Any]) -> float:
        """Weighted severity score, rounded to 2 decimals"""
        score = (
            self.impact_weight * float(risk_factors.get("impact") or 0)
            + self.exploitability_weight * float(risk_factors.get("exploitability") or 0)
            + self.likelihood_weight * float(risk_factors.get("likelihood") or 0)
            + self.blast_radius_weight * float(risk_factors.get("blast_radius") or 0)
            + self.evidence_strength_weight
            * float(risk_factors.get("evidence_strength") or 0)
        )
        return round(score, 2)

    def proposes_critical(self, score: float, evidence_strength: int) -> bool:
        return (
            score >= self.critical_score_threshold
            and evidence_strength >= self.critical_min_evidence
        )


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Runtime
    log_level: str = Field("INFO")

    # Review oracle
    llm_provider: str = Field("claude", validation_alias=_input_alias("llm_provider"))
    openai_api_key: Optional[str] = Field(
        None, validation_alias=_input_alias("openai_api_key"), repr=False
    )
    claude_api_key: Optional[str] = Field(
        None, validation_alias=_input_alias("claude_api_key"), repr=False
    )
    openai_model_name: str = Field("gpt-4o")
    claude_model_name: str = Field("claude-sonnet-4-20250514")
    openai_base_url: Optional[str] = Field(None)
    claude_base_url: Optional[str] = Field(None)
    max_tokens: int = Field(8000, validation_alias=_input_alias("max_tokens"))
    temperature: float = Field(0.0, validation_alias=_input_alias("temperature"))
    request_timeout: float = Field(60.0)

    # Review scope
    department: str = Field("web", validation_alias=_input_alias("department"))
    team: Optional[str] = Field(None, validation_alias=_input_alias("team"))
    language: str = Field("js", validation_alias=_input_alias("language"))
    base_branch: Optional[str] = Field(None, validation_alias=_input_alias("base_branch"))
    path_to_files: str = Field("", validation_alias=_input_alias("path_to_files"))
    ignore_patterns: str = Field("", validation_alias=_input_alias("ignore_patterns"))

    # Chunking and scheduling
    chunk_size: int = Field(300 * 1024)
    batch_delay_ms: int = Field(2000)
    max_concurrent_requests: int = Field(2)

    # GitHub
    github_token: Optional[str] = Field(None, repr=False)
    github_repository: Optional[str] = Field(None)
    github_ref: Optional[str] = Field(None)
    github_ref_name: Optional[str] = Field(None)
    github_base_ref: Optional[str] = Field(None)
    github_api_url: str = Field("https://api.github.com")
    pr_number: Optional[int] = Field(None)

    # Analytics sink
    enable_review_logging: bool = Field(True)
    logging_endpoint: Optional[str] = Field(None)
    logging_timeout: float = Field(10.0)

    # Decision policy
    verify_severity_scores: bool = Field(False)
    fail_on_indeterminate: bool = Field(True)

    @field_validator("llm_provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        """Validate provider name"""
        v = v.strip().lower()
        if v not in SUPPORTED_PROVIDERS:
            raise ValueError(
                f"Unsupported LLM provider '{v}'. Expected one of: {', '.join(SUPPORTED_PROVIDERS)}"
            )
        return v

    @field_validator("language")
    @classmethod
    def validate_language(cls, v: str) -> str:
        """Validate review language"""
        v = v.strip().lower()
        if v not in LANGUAGE_ROLE_CONFIGS:
            raise ValueError(
                f"Unsupported language '{v}'. Expected one of: {', '.join(LANGUAGE_ROLE_CONFIGS)}"
            )
        return v

    @field_validator("chunk_size")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        """Chunk size must be a positive byte count"""
        if v <= 0:
            raise ValueError("Chunk size must be a positive number of bytes")
        return v

    @field_validator("batch_delay_ms")
    @classmethod
    def validate_batch_delay(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Batch delay cannot be negative")
        return v

    @field_validator("max_concurrent_requests")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        """Concurrency is capped at 2 in-flight oracle calls"""
        if v < 1 or v > 2:
            raise ValueError("max_concurrent_requests must be 1 or 2")
        return v

    @field_validator("github_api_url")
    @classmethod
    def validate_github_api_url(cls, v: str) -> str:
        """Validate GitHub API URL format"""
        if not v.startswith(("http://", "https://")):
            raise ValueError("GitHub API URL must include protocol (http:// or https://)")
        return v.rstrip("/")

    @property
    def parsed_path_to_files(self) -> List[str]:
        """Path prefixes to review; an empty prefix matches every file"""
        return _split_csv(self.path_to_files) or [""]

    @property
    def parsed_ignore_patterns(self) -> List[str]:
        return _split_csv(self.ignore_patterns) or list(DEFAULT_IGNORE_PATTERNS)

    @property
    def resolved_base_branch(self) -> str:
        """Explicit input first, then the pull request base, then 'develop'"""
        return self.base_branch or self.github_base_ref or "develop"

    @property
    def resolved_pr_number(self) -> Optional[int]:
        if self.pr_number:
            return self.pr_number
        match = re.match(r"^refs/pull/(\d+)/", self.github_ref or "")
        return int(match.group(1)) if match else None

    @property
    def active_api_key(self) -> Optional[str]:
        if self.llm_provider == "openai":
            return self.openai_api_key
        return self.claude_api_key

    def chunking_config(self) -> ChunkingConfig:
        return ChunkingConfig(
            max_chunk_bytes=self.chunk_size,
            max_concurrency=self.max_concurrent_requests,
            request_delay_seconds=self.batch_delay_ms / 1000,
        )

    def provider_config(self) -> ProviderConfig:
        if self.llm_provider == "openai":
            model, base_url = self.openai_model_name, self.openai_base_url
        else:
            model, base_url = self.claude_model_name, self.claude_base_url
        return ProviderConfig(
            name=self.llm_provider,
            api_key=self.active_api_key,
            model=model,
            base_url=base_url,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            timeout=self.request_timeout,
        )

    def severity_scoring(self) -> SeverityScoring:
        return SeverityScoring()

    def __repr__(self) -> str:
        """Secure representation that doesn't expose secrets"""
        return (
            f"<{self.__class__.__name__} provider={self.llm_provider} "
            f"team={self.team} language={self.language}>"
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
        populate_by_name=True,
    )

