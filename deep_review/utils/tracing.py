"""
Per-run identifier propagated into structured log records
"""

import uuid
from contextvars import ContextVar
from typing import Optional

run_id_context: ContextVar[Optional[str]] = ContextVar("run_id", default=None)


def get_run_id() -> Optional[str]:
    """Get the identifier of the review run in progress"""
    return run_id_context.get()


def set_run_id(run_id: str) -> None:
    run_id_context.set(run_id)


def new_run_id() -> str:
    """Start a new review run and return its identifier"""
    run_id = str(uuid.uuid4())
    set_run_id(run_id)
    return run_id
