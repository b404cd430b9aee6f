"""Request context for discovery calls.

A ContextVar carries the correlation id across awaits and into provider
tasks (asyncio copies the context when a task is created). The caller's
paper and user ids are bound into structlog's contextvars so every log
line of one discovery call carries them; the engine never interprets them.

Usage:
    with discovery_context(paper_id="p-1", user_id="u-9") as corr_id:
        await coordinator.discover(source, config)
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Generator, Optional

import structlog

_correlation_id_var: ContextVar[Optional[str]] = ContextVar(
    "correlation_id", default=None
)


def set_correlation_id(corr_id: Optional[str] = None) -> str:
    """Set the correlation ID for the current context (UUID4 if omitted)."""
    if corr_id is None:
        corr_id = str(uuid.uuid4())
    _correlation_id_var.set(corr_id)
    return corr_id


def get_correlation_id() -> Optional[str]:
    return _correlation_id_var.get()


def clear_correlation_id() -> None:
    _correlation_id_var.set(None)


@contextmanager
def discovery_context(
    paper_id: str,
    user_id: Optional[str] = None,
    corr_id: Optional[str] = None,
) -> Generator[str, None, None]:
    """Scope a correlation id and caller ids to one discovery call.

    Reuses an enclosing correlation id when one is already set so a batch
    caller can group many discoveries under a single id. Previous values
    are restored on exit.
    """
    corr_id = corr_id or get_correlation_id() or str(uuid.uuid4())
    token = _correlation_id_var.set(corr_id)
    bound = {"paper_id": paper_id}
    if user_id is not None:
        bound["user_id"] = user_id
    context_tokens = structlog.contextvars.bind_contextvars(**bound)
    try:
        yield corr_id
    finally:
        structlog.contextvars.reset_contextvars(**context_tokens)
        _correlation_id_var.reset(token)
