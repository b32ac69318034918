"""
Repository context shared across all chunks of a review run
"""

import logging
import os
import re
from pathlib import Path
from typing import List, Optional

from deep_review.config.languages import get_language_extensions
from deep_review.exceptions import GitOperationException
from deep_review.services.git_service import GitService

logger = logging.getLogger(__name__)

MAX_CONTEXT_SIZE = 50 * 1024
MAX_PROJECT_FILES = 20
MAX_COMMIT_HISTORY = 10
MAX_IMPORT_LINES = 10
MAX_MANIFEST_BYTES = 8 * 1024

DEPENDENCY_MANIFESTS = ("package.json", "pyproject.toml", "requirements.txt", "composer.json", "pom.xml")
EXCLUDED_DIRECTORIES = {
    "node_modules",
    "dist",
    ".git",
    "coverage",
    ".nyc_output",
    "build",
    "out",
    ".venv",
    "venv",
    "__pycache__",
    "vendor",
    "target",
}

TRUNCATION_MARKER = "\n\n--- [Context truncated due to size limits] ---"

IMPORT_LINE = re.compile(r"^\s*(import\s.+|from\s+\S+\s+import\s.+|.*\brequire\(.+\).*|use\s+[\w\\]+;)$")
DECLARATION_LINE = re.compile(r"^\s*(export\s|class\s|def\s|async\s+def\s|function\s|interface\s|public\s)")


class ContextService:
    """Best-effort project context; every part degrades to an empty string"""

    def __init__(self, git: GitService, root: Optional[str] = None):
        self.git = git
        self.root = Path(root or git.cwd or ".")
        self.extensions = get_language_extensions(git.language) or []

    def get_dependency_context(self) -> str:
        parts = []
        for name in DEPENDENCY_MANIFESTS:
            manifest = self.root / name
            if not manifest.is_file():
                continue
            try:
                content = manifest.read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                logger.warning(f"Could not read {name}: {e}")
                continue
            parts.append(f"--- {name} ---\n{content[:MAX_MANIFEST_BYTES]}")

        if not parts:
            return ""
        body = "\n".join(parts)
        return f"--- Dependencies Context ---\n{body}\n--- End Dependencies ---\n"

    def get_project_structure(self) -> str:
        entries = []
        try:
            for directory, subdirectories, files in os.walk(self.root):
                subdirectories[:] = sorted(d for d in subdirectories if d not in EXCLUDED_DIRECTORIES)
                for name in sorted(files):
                    if self.extensions and not any(name.endswith(ext) for ext in self.extensions):
                        continue
                    path = Path(directory) / name
                    entries.append(self._describe_file(path))
                    if len(entries) >= MAX_PROJECT_FILES:
                        break
                if len(entries) >= MAX_PROJECT_FILES:
                    break
        except OSError as e:
            logger.warning(f"Could not get project structure: {e}")
            return ""

        if not entries:
            return ""
        body = "\n".join(entries)
        return f"--- Project Structure Context ---\n{body}\n--- End Project Structure ---\n"

    def _describe_file(self, path: Path) -> str:
        relative = path.relative_to(self.root).as_posix()
        try:
            with open(path, "r", encoding="utf-8", errors="replace") as f:
                head = [next(f, "") for _ in range(10)]
        except OSError:
            return f"=== {relative} ==="

        declarations = [
            line.rstrip() for line in head if IMPORT_LINE.match(line) or DECLARATION_LINE.match(line)
        ][:5]
        return "\n".join([f"=== {relative} ==="] + declarations)

    async def get_file_relationship_context(self, changed_files: List[str]) -> str:
        sections = []
        for path in changed_files:
            try:
                content = await self.git.run_git("show", f"HEAD:{path}")
            except GitOperationException:
                # deleted or not yet committed
                continue

            imports = [line for line in content.splitlines() if IMPORT_LINE.match(line)]
            if imports:
                lines = "\n".join(imports[:MAX_IMPORT_LINES])
                sections.append(f"{path} imports:\n{lines}")

        if not sections:
            return ""
        body = "\n\n".join(sections)
        return f"--- File Relationships Context ---\n{body}\n--- End File Relationships ---\n"

    async def get_recent_commit_context(self) -> str:
        try:
            log = await self.git.run_git(
                "log",
                "--oneline",
                "--no-merges",
                f"-n{MAX_COMMIT_HISTORY}",
                f"origin/{self.git.base_branch}..HEAD",
            )
        except GitOperationException as e:
            logger.warning(f"Could not get recent commit context: {e}")
            return ""

        if not log.strip():
            return ""
        return f"--- Recent Commits Context ---\n{log.strip()}\n--- End Recent Commits ---\n"

    async def get_comprehensive_context(self, changed_files: List[str]) -> str:
        """
        Combine every context part in priority order, capped at MAX_CONTEXT_SIZE characters

        Args:
            changed_files: Files in the diff, used for import relationships

        Returns:
            Context text, possibly empty
        """
        contexts = [
            self.get_dependency_context(),
            self.get_project_structure(),
            await self.get_file_relationship_context(changed_files),
            await self.get_recent_commit_context(),
        ]
        combined = "\n".join(context for context in contexts if context.strip())

        if len(combined) > MAX_CONTEXT_SIZE:
            logger.warning(
                f"Context size ({round(len(combined) / 1024)}KB) exceeds limit, truncating..."
            )
            return combined[:MAX_CONTEXT_SIZE] + TRUNCATION_MARKER

        return combined
