"""
Tests for deep_review/services/context_service.py
"""

from unittest.mock import AsyncMock

import pytest

from deep_review.exceptions import GitOperationException
from deep_review.services import context_service
from deep_review.services.context_service import TRUNCATION_MARKER, ContextService
from deep_review.services.git_service import GitService


@pytest.fixture
def project(tmp_path):
    (tmp_path / "package.json").write_text('{"dependencies": {"express": "^4.18.0"}}')
    src = tmp_path / "src"
    src.mkdir()
    (src / "app.js").write_text(
        "const express = require('express');\nimport db from './db';\n\nfunction start() {}\n"
    )
    (src / "notes.md").write_text("# notes\n")
    modules = tmp_path / "node_modules" / "express"
    modules.mkdir(parents=True)
    (modules / "index.js").write_text("module.exports = {};\n")
    return tmp_path


@pytest.fixture
def service(project):
    git = GitService("develop", "js", [""], [], cwd=str(project))
    return ContextService(git)


class TestLocalContext:
    """Test context read from the working tree"""

    def test_dependency_context(self, service):
        context = service.get_dependency_context()

        assert context.startswith("--- Dependencies Context ---\n--- package.json ---")
        assert "express" in context

    def test_no_manifests(self, tmp_path):
        service = ContextService(GitService("develop", "js", [""], [], cwd=str(tmp_path)))

        assert service.get_dependency_context() == ""
        assert service.get_project_structure() == ""

    def test_project_structure_skips_excluded_and_foreign_files(self, service):
        context = service.get_project_structure()

        assert "=== src/app.js ===" in context
        assert "const express = require('express');" in context
        assert "function start() {}" in context
        assert "notes.md" not in context
        assert "node_modules" not in context

    def test_project_structure_is_capped(self, tmp_path, monkeypatch):
        monkeypatch.setattr(context_service, "MAX_PROJECT_FILES", 3)
        for position in range(6):
            (tmp_path / f"m{position}.py").write_text("import os\n")
        service = ContextService(GitService("develop", "python", [""], [], cwd=str(tmp_path)))

        context = service.get_project_structure()

        assert context.count("=== ") == 3


class TestGitContext:
    """Test context read through git"""

    @pytest.mark.asyncio
    async def test_file_relationships(self, service):
        async def run_git(*args):
            if args[1] == "HEAD:src/new.js":
                raise GitOperationException("not in HEAD")
            return "import a from './a';\nconst b = 1;\nimport c from './c';\n"

        service.git.run_git = run_git

        context = await service.get_file_relationship_context(["src/app.js", "src/new.js"])

        assert "src/app.js imports:\nimport a from './a';\nimport c from './c';" in context
        assert "src/new.js" not in context

    @pytest.mark.asyncio
    async def test_recent_commits(self, service):
        service.git.run_git = AsyncMock(return_value="abc123 Fix login\n")

        context = await service.get_recent_commit_context()

        assert "abc123 Fix login" in context
        assert "origin/develop..HEAD" in service.git.run_git.call_args.args

    @pytest.mark.asyncio
    async def test_recent_commits_failure_is_empty(self, service):
        service.git.run_git = AsyncMock(side_effect=GitOperationException("no origin"))

        assert await service.get_recent_commit_context() == ""

    @pytest.mark.asyncio
    async def test_comprehensive_context_is_truncated(self, service, monkeypatch):
        monkeypatch.setattr(context_service, "MAX_CONTEXT_SIZE", 100)
        service.git.run_git = AsyncMock(return_value="abc123 Fix login\n")

        context = await service.get_comprehensive_context(["src/app.js"])

        assert context.endswith(TRUNCATION_MARKER)
        assert len(context) == 100 + len(TRUNCATION_MARKER)

    @pytest.mark.asyncio
    async def test_comprehensive_context_combines_parts(self, service):
        service.git.run_git = AsyncMock(return_value="")

        context = await service.get_comprehensive_context([])

        assert "--- Dependencies Context ---" in context
        assert "--- Project Structure Context ---" in context
        assert "Recent Commits" not in context
