"""Per-request and per-job context utilities."""
from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)


def get_request_id() -> str | None:
    """Return the current request (or job run) id if available."""
    return request_id_ctx_var.get()


@contextmanager
def job_context(job_name: str, run_key: str) -> Iterator[str]:
    """Tag log records emitted inside a batch job with ``<job>:<run_key>``."""
    run_id = f"{job_name}:{run_key}"
    token = request_id_ctx_var.set(run_id)
    try:
        yield run_id
    finally:
        request_id_ctx_var.reset(token)
