"""Langfuse tracing for search sessions.

Provider calls are traced as generations and every session run as one span.
Nothing is sent unless the Langfuse keys are set in the environment.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, Iterator, Optional
import logging
import os

import langfuse

logger = logging.getLogger(__name__)

LANGFUSE_ENV = ("LANGFUSE_PUBLIC_KEY", "LANGFUSE_SECRET_KEY", "LANGFUSE_HOST")

_langfuse: Optional[Any] = None


def is_enabled() -> bool:
    return all(os.getenv(name) for name in LANGFUSE_ENV)


def get_langfuse_client() -> Optional[Any]:
    """Shared Langfuse client, created on first use; ``None`` without keys."""
    global _langfuse
    if not is_enabled():
        return None
    if _langfuse is None:
        _langfuse = langfuse.get_client()
        logger.info("📈 TRACING: Langfuse client ready")
    return _langfuse


def observe(**options: Any) -> Callable:
    """``langfuse.observe`` when tracing is on, the identity decorator otherwise.

    Decided at decoration time, so the keys must be set before the decorated
    module is imported.
    """
    if is_enabled():
        return langfuse.observe(**options)
    return lambda fn: fn


class SessionTrace:
    """Records the outcome of one session on its trace."""

    def __init__(self, span: Any = None, client: Any = None) -> None:
        self.span = span
        self.client = client

    def record_output(self, output: Dict[str, Any], metadata: Optional[Dict[str, Any]] = None) -> None:
        if self.span is None:
            return
        self.span.update_trace(output=output, metadata=metadata)

    def flush(self) -> None:
        if self.client is not None:
            self.client.flush()


@contextmanager
def session_span(
    session_id: str,
    query: str,
    *,
    tags: Optional[Iterable[str]] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Iterator[SessionTrace]:
    """Trace one session run; yields an inert handle when tracing is off."""
    client = get_langfuse_client()
    if client is None:
        yield SessionTrace()
        return
    with client.start_as_current_span(name="search-session", input={"query": query}) as span:
        span.update_trace(session_id=session_id, tags=list(tags or []), metadata=metadata)
        yield SessionTrace(span, client)


__all__ = ["SessionTrace", "session_span", "get_langfuse_client", "observe", "is_enabled"]
