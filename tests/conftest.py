"""Pytest configuration and fixtures for the DeepReview tests."""

import json
import os
from typing import Any, Callable, Dict, List, Optional, Union
from unittest.mock import AsyncMock

import pytest

from deep_review.agents.providers import ReviewProvider
from deep_review.config.settings import ChunkingConfig, ProviderConfig

# ============================================================================
# Provider Fixtures
# ============================================================================

Reply = Union[str, Exception]


class FakeReviewProvider(ReviewProvider):
    """Provider whose replies are scripted by the test.

    ``replies`` is either a list consumed in call order or a callable
    receiving the reviewed code and returning a reply. A reply that is an
    exception is raised from ``complete``.
    """

    def __init__(
        self,
        config: ProviderConfig,
        replies: Union[List[Reply], Callable[[str], Reply]],
    ):
        super().__init__(config)
        self._replies = replies
        self.calls: List[str] = []

    async def complete(self, instructions: str, code: str) -> str:
        self.calls.append(code)
        if callable(self._replies):
            reply = self._replies(code)
        else:
            reply = self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def _send(self, instructions: str, code: str) -> Any:
        raise NotImplementedError

    def validate_response(self, response: Any) -> bool:
        return True

    def extract_text(self, response: Any) -> Optional[str]:
        return response


@pytest.fixture
def provider_config() -> ProviderConfig:
    """Provider configuration with a key and fast backoff."""
    return ProviderConfig(
        name="claude",
        api_key="test-claude-key",
        model="claude-test",
        timeout=5.0,
        base_delay=1.0,
    )


@pytest.fixture
def make_provider(provider_config: ProviderConfig):
    """Factory building a scripted provider."""

    def _make(replies, config: Optional[ProviderConfig] = None) -> FakeReviewProvider:
        return FakeReviewProvider(config or provider_config, replies)

    return _make


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Replacement for asyncio.sleep that records delays without waiting."""
    return AsyncMock(return_value=None)


@pytest.fixture
def chunking_config() -> ChunkingConfig:
    return ChunkingConfig(max_chunk_bytes=1024, request_delay_seconds=2.0)


# ============================================================================
# Oracle Response Fixtures
# ============================================================================


@pytest.fixture
def make_issue() -> Callable[..., Dict[str, Any]]:
    """Factory for a well-formed issue dictionary as the oracle emits it."""

    def _make(**overrides: Any) -> Dict[str, Any]:
        issue = {
            "id": "SEC-01",
            "category": "security",
            "severity_proposed": "critical",
            "severity_score": 4.2,
            "risk_factors": {
                "impact": 5,
                "exploitability": 4,
                "likelihood": 4,
                "blast_radius": 3,
                "evidence_strength": 4,
            },
            "risk_factors_notes": {"impact": "user data exposed"},
            "confidence": 0.9,
            "file": "src/db/users.js",
            "lines": [10, 14],
            "snippet": "db.query(`SELECT * FROM users WHERE id = ${id}`)",
            "why_it_matters": "Allows SQL injection.",
            "fix_summary": "Use parameterized queries.",
            "fix_code_patch": "db.query('SELECT * FROM users WHERE id = ?', [id])",
            "tests": "Query with id \"1 OR 1=1\" returns one row",
            "occurrences": [],
        }
        issue.update(overrides)
        return issue

    return _make


@pytest.fixture
def make_response() -> Callable[..., str]:
    """Factory for a tagged oracle response."""

    def _make(
        issues: Optional[List[Dict[str, Any]]] = None,
        summary: str = "Reviewed the chunk.",
        final_recommendation: Optional[str] = None,
        tagged_summary: Optional[str] = None,
        metrics: Optional[Dict[str, Any]] = None,
    ) -> str:
        issues = issues or []
        critical = sum(
            1
            for issue in issues
            if isinstance(issue, dict) and issue.get("severity_proposed") == "critical"
        )
        payload = {
            "summary": summary,
            "issues": issues,
            "metrics": metrics
            if metrics is not None
            else {"critical_count": critical, "suggestion_count": len(issues) - critical},
            "final_recommendation": final_recommendation
            or ("do_not_merge" if critical else "safe_to_merge"),
        }
        text = f"<JSON>\n{json.dumps(payload)}\n</JSON>"
        if tagged_summary is not None:
            text += f"\n<SUMMARY>\n{tagged_summary}\n</SUMMARY>"
        return text

    return _make


@pytest.fixture
def make_diff() -> Callable[..., str]:
    """Factory for a combined diff with one section per (path, body size)."""

    def _make(*files: tuple) -> str:
        sections = []
        for path, size in files:
            body = "+" + "x" * max(0, size - 1)
            sections.append(f"--- File: {path} ---\n{body}\n")
        return "".join(sections)

    return _make


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture
def clean_env(monkeypatch):
    """Remove environment variables that would leak into Settings."""
    for key in list(os.environ):
        upper = key.upper()
        if upper.startswith("INPUT_") or upper.startswith("GITHUB_") or upper in {
            "LLM_PROVIDER",
            "CLAUDE_API_KEY",
            "OPENAI_API_KEY",
            "TEAM",
            "LANGUAGE",
            "CHUNK_SIZE",
            "BATCH_DELAY_MS",
            "PR_NUMBER",
            "LOGGING_ENDPOINT",
        }:
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(os.path.dirname(__file__))
    return monkeypatch
