"""
Diff chunker

Splits an oversized diff into size-bounded chunks without ever splitting
a single file's section across two chunks.
"""

import logging
import re
from typing import List, Optional

logger = logging.getLogger(__name__)

# Per-file header emitted by the diff source
FILE_HEADER = "--- File: "
FILE_HEADER_LINE = re.compile(r"^--- File: (.+?) ---$")
HUNK_HEADER = re.compile(r"^@@ -\d+(?:,(\d+))? \+\d+(?:,(\d+))? @@")
DIFF_LINE = re.compile(r"[^\n]*\n|[^\n]+\Z")


def byte_size(text: str) -> int:
    return len(text.encode("utf-8"))


def _hunk_length(count: Optional[str]) -> int:
    return 1 if count is None else int(count)


class DiffChunker:
    """Split a diff into chunks on file boundaries"""

    def __init__(self, chunk_warning_threshold: int = 50):
        self.chunk_warning_threshold = chunk_warning_threshold

    @staticmethod
    def split_sections(diff: str) -> List[str]:
        """
        Split a diff into per-file sections

        Text before the first header is kept as its own section. Lines inside
        a hunk body are never taken as headers, so a removed line reading
        `-- File: x ---` stays within its file.
        """
        sections: List[str] = []
        current: List[str] = []
        old_left = new_left = 0

        for line in DIFF_LINE.findall(diff):
            content = line.rstrip("\r\n")

            if old_left > 0 or new_left > 0:
                marker = content[:1]
                if marker == "-":
                    old_left -= 1
                elif marker == "+":
                    new_left -= 1
                elif marker != "\\":
                    old_left -= 1
                    new_left -= 1
                current.append(line)
                continue

            if current and FILE_HEADER_LINE.match(content):
                sections.append("".join(current))
                current = []

            hunk = HUNK_HEADER.match(content)
            if hunk:
                old_left = _hunk_length(hunk.group(1))
                new_left = _hunk_length(hunk.group(2))
            current.append(line)

        if current:
            sections.append("".join(current))
        return sections

    @staticmethod
    def section_path(section: str) -> Optional[str]:
        """Path named by a section's header, None for a preamble"""
        match = FILE_HEADER_LINE.match(section.split("\n", 1)[0].rstrip("\r"))
        return match.group(1) if match else None

    def split(self, diff: str, max_chunk_bytes: int) -> List[str]:
        """
        Split a diff into chunks of at most max_chunk_bytes where possible

        A single file section larger than the budget is still emitted whole,
        so the bound is a soft target. Concatenating the returned chunks in
        order reproduces the input exactly.

        Args:
            diff: Unified diff with per-file headers
            max_chunk_bytes: Target upper bound per chunk in UTF-8 bytes

        Returns:
            Ordered list of chunks; empty for an empty diff
        """
        if not diff:
            return []

        if max_chunk_bytes <= 0:
            logger.warning(
                f"Invalid chunk size: {max_chunk_bytes}, treating the whole diff as one chunk"
            )
            return [diff]

        chunks: List[str] = []
        current: List[str] = []
        current_size = 0

        for section in self.split_sections(diff):
            section_size = byte_size(section)

            if current and current_size + section_size > max_chunk_bytes:
                chunks.append("".join(current))
                current = [section]
                current_size = section_size
            else:
                current.append(section)
                current_size += section_size

        if current:
            chunks.append("".join(current))

        logger.info(
            f"Split diff into {len(chunks)} chunks (max {round(max_chunk_bytes / 1024)}KB each)"
        )

        if len(chunks) > self.chunk_warning_threshold:
            logger.warning(
                f"Large number of chunks ({len(chunks)}) created. Consider increasing chunk size."
            )

        return chunks
