"""
Utility modules for the DeepReview pull request reviewer
"""

from .tracing import get_run_id, new_run_id, set_run_id
from .version import get_user_agent, get_version

__all__ = ["get_run_id", "get_user_agent", "get_version", "new_run_id", "set_run_id"]
