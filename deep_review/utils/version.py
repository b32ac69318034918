"""
Package version and the User-Agent derived from it
"""

import re
from functools import lru_cache
from pathlib import Path

VERSION_FILE = Path(__file__).resolve().parent.parent / "version.txt"
SEMVER = re.compile(r"^\d+\.\d+\.\d+$")


@lru_cache()
def get_version() -> str:
    """
    Read the package version shipped in deep_review/version.txt

    Raises:
        FileNotFoundError: If version.txt is missing or unreadable
        ValueError: If its content is not MAJOR.MINOR.PATCH
    """
    try:
        version = VERSION_FILE.read_text(encoding="utf-8").strip()
    except OSError as e:
        raise FileNotFoundError(f"Cannot read version file {VERSION_FILE}: {e}")

    if not SEMVER.match(version):
        raise ValueError(f"Invalid version '{version}' in {VERSION_FILE}, expected MAJOR.MINOR.PATCH")
    return version


def get_user_agent() -> str:
    """User-Agent header sent with outbound HTTP requests"""
    return f"DeepReview/{get_version()}"
