"""
Git diff source: changed files and per-file diffs against the base branch
"""

import asyncio
import logging
from typing import List, Optional, Sequence

from deep_review.config.languages import LANGUAGE_FILE_CONFIGS, get_language_extensions
from deep_review.exceptions import GitOperationException
from deep_review.services.chunker import FILE_HEADER, DiffChunker, byte_size
from deep_review.utils.tracing import get_run_id

logger = logging.getLogger(__name__)

DIFF_OPTIONS = (
    "--unified=25",
    "--no-prefix",
    "--ignore-blank-lines",
    "--ignore-space-at-eol",
    "--no-color",
)


def file_header(path: str) -> str:
    return f"{FILE_HEADER}{path} ---\n"


class GitService:
    """Collect the reviewable diff of the current branch"""

    def __init__(
        self,
        base_branch: str,
        language: str,
        path_to_files: Sequence[str],
        ignore_patterns: Sequence[str],
        cwd: Optional[str] = None,
    ):
        self.base_branch = base_branch
        self.language = language
        self.path_to_files = list(path_to_files) or [""]
        self.ignore_patterns = list(ignore_patterns)
        self.cwd = cwd
        self._extensions = get_language_extensions(language)
        if self._extensions is None:
            logger.warning(f"Unknown language: {language}, defaulting to all files")

    @property
    def diff_range(self) -> str:
        return f"origin/{self.base_branch}...HEAD"

    async def run_git(self, *args: str) -> str:
        """
        Run a git command and return its stdout

        Raises:
            GitOperationException: If git cannot be started or exits non-zero
        """
        command = " ".join(("git",) + args)
        try:
            process = await asyncio.create_subprocess_exec(
                "git",
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self.cwd,
            )
            stdout, stderr = await process.communicate()
        except OSError as e:
            raise GitOperationException(
                f"Could not run git: {e}", command=command, original_error=e
            )

        if process.returncode != 0:
            raise GitOperationException(
                f"git exited with status {process.returncode}",
                command=command,
                details={"stderr": stderr.decode("utf-8", errors="replace").strip()},
            )

        return stdout.decode("utf-8", errors="replace")

    def matches_language(self, path: str) -> bool:
        if self._extensions is None:
            return True
        return any(path.endswith(extension) for extension in self._extensions)

    def should_review(self, path: str) -> bool:
        """Path prefix, ignore suffix and language filters combined"""
        matches_path = any(path.startswith(prefix) for prefix in self.path_to_files)
        ignored = any(path.endswith(pattern) for pattern in self.ignore_patterns)
        return matches_path and not ignored and self.matches_language(path)

    async def get_changed_files(self) -> List[str]:
        language_name = LANGUAGE_FILE_CONFIGS.get(self.language, {}).get("name", "Unknown")
        logger.info(
            f"Detecting changed files against origin/{self.base_branch} "
            f"(language filter: {self.language} - {language_name})",
            extra={"run_id": get_run_id(), "operation": "git_changed_files"},
        )

        output = await self.run_git("diff", "--name-only", self.diff_range)
        files = [line.strip() for line in output.splitlines() if line.strip()]
        changed = [path for path in files if self.should_review(path)]

        logger.info(f"Found {len(changed)} changed files matching language: {self.language}")
        return changed

    async def get_file_diff(self, path: str) -> str:
        return await self.run_git("diff", self.diff_range, *DIFF_OPTIONS, "--", path)

    async def get_full_diff(self, changed_files: Optional[List[str]] = None) -> str:
        """
        Build the combined diff with one `--- File: <path> ---` section per file

        Files whose diff cannot be produced or is empty are skipped.
        """
        if changed_files is None:
            changed_files = await self.get_changed_files()
        if not changed_files:
            return ""

        sections = []
        for position, path in enumerate(changed_files, start=1):
            logger.debug(f"Processing diff for: {path} ({position}/{len(changed_files)})")
            try:
                diff = await self.get_file_diff(path)
            except GitOperationException as e:
                logger.warning(f"Could not get diff for {path}: {e}")
                continue

            if diff.strip():
                sections.append(f"{file_header(path)}{diff.rstrip()}\n\n")

        if not sections:
            logger.warning("No valid diffs could be generated for any files")
            return ""

        full_diff = "".join(sections)
        logger.info(
            f"Generated diff of {len(sections)} files, "
            f"total size: {round(byte_size(full_diff) / 1024)}KB",
            extra={"run_id": get_run_id(), "operation": "git_full_diff"},
        )
        return full_diff


def list_diff_files(diff: str) -> List[str]:
    """File paths named by the per-file headers of a combined diff"""
    paths = (DiffChunker.section_path(section) for section in DiffChunker.split_sections(diff))
    return [path for path in paths if path]
