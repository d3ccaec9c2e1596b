from __future__ import annotations

"""Drive sessions by consuming provider update streams.

Each session is consumed by its own asyncio task, strictly in arrival order.
Sessions interleave freely. Cancelling a session stops consumption and keeps
every update committed so far.
"""

import asyncio
import logging
from typing import AsyncIterator, Callable, Dict, List, Optional, Sequence

from tools import get_provider
from tools.types import StreamProvider
from .config import load_config
from .errors import classify_provider_error
from .state import ChatMessage, SearchOptions, Session, StreamUpdate
from .store import SessionStore
from .tracing import session_span

logger = logging.getLogger(__name__)


class StreamHandle:
    """Cancellation handle for one running session."""

    def __init__(self, session_id: str, task: "asyncio.Task[Session]", store: SessionStore) -> None:
        self.session_id = session_id
        self._task = task
        self._store = store

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> bool:
        """Stop consuming the stream. Already-applied updates stay in place."""
        return self._task.cancel()

    async def wait(self) -> Session:
        """Wait for the stream to end (or be cancelled) and return the session."""
        try:
            await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise
        return self._store.get(self.session_id)


class SessionRunner:
    """Submit queries, feed their updates to the store and track running streams."""

    def __init__(
        self,
        store: SessionStore,
        provider_lookup: Callable[[str], StreamProvider] = get_provider,
    ) -> None:
        self.store = store
        self._lookup = provider_lookup
        self._handles: Dict[str, StreamHandle] = {}

    # Provider ----------------------------------------------------------------
    def resolve_provider(self, options: SearchOptions) -> StreamProvider:
        name = options.provider or load_config().get("provider", {}).get("default", "openai")
        return self._lookup(name)

    # Consumption -------------------------------------------------------------
    async def consume(self, session_id: str, updates: AsyncIterator[StreamUpdate]) -> Session:
        """Apply every update of ``updates`` to the session, in order."""
        session = self.store.get(session_id)
        last: Optional[StreamUpdate] = None
        with session_span(session_id, session.query, tags=[f"persona:{session.options.persona}"]) as trace:
            try:
                async for update in updates:
                    last = update
                    session = self.store.apply(session_id, update)
                    if session.is_terminal:
                        break
                else:
                    if last is not None and not session.is_terminal:
                        logger.warning(f"⚠️ RUNNER: Stream for {session_id} ended without a final update")
                        session = self.store.apply(
                            session_id,
                            last.model_copy(update={"task_mutations": [], "is_final": True}),
                        )
                    elif last is None:
                        session = self.store.apply(session_id, StreamUpdate(is_final=True))
            except asyncio.CancelledError:
                logger.info(f"🛑 RUNNER: Session {session_id} cancelled after {self.store.get(session_id).update_count} updates")
                raise
            except Exception as exc:
                category, message = classify_provider_error(exc)
                logger.exception("Provider stream for session %s failed", session_id, exc_info=exc)
                session = self.store.fail(session_id, category.value, message)
            finally:
                aclose = getattr(updates, "aclose", None)
                if aclose is not None:
                    try:
                        await aclose()
                    except Exception as close_exc:
                        logger.debug("Closing stream for %s raised %s", session_id, close_exc)

            trace.record_output(
                {"status": session.status.value, "report_chars": len(session.report)},
                metadata={"layout": session.layout.value, "updates": session.update_count},
            )
            trace.flush()
        return session

    # Submission --------------------------------------------------------------
    def submit(
        self,
        query: str,
        options: Optional[SearchOptions] = None,
        *,
        history: Optional[Sequence[ChatMessage]] = None,
        parent_id: Optional[str] = None,
    ) -> StreamHandle:
        """Create a session and start streaming it. Must run inside an event loop.

        Raises:
            KeyError: If the requested provider is not registered.
        """
        options = options or SearchOptions()
        provider = self.resolve_provider(options)
        session = self.store.create(query, options, history=history, parent_id=parent_id)
        updates = provider.stream(query, options, list(session.history))
        task = asyncio.get_running_loop().create_task(
            self.consume(session.id, updates), name=f"session-{session.id}"
        )
        handle = StreamHandle(session.id, task, self.store)
        self._handles[session.id] = handle
        task.add_done_callback(lambda t, sid=session.id: self._finished(sid, t))
        logger.info(f"🚀 RUNNER: Started session {session.id} on provider '{provider.name}'")
        return handle

    async def run(self, query: str, options: Optional[SearchOptions] = None) -> Session:
        return await self.submit(query, options).wait()

    def retry(self, session_id: str) -> StreamHandle:
        """Re-submit a finished session's query from scratch as a new session."""
        source = self.store.get(session_id)
        if not source.is_terminal:
            raise ValueError(f"Session '{session_id}' is still {source.status.value}")
        logger.info(f"🔁 RUNNER: Retrying session {session_id}")
        return self.submit(source.query, source.options, history=source.history, parent_id=source.id)

    def follow_up(self, session_id: str, query: str, options: Optional[SearchOptions] = None) -> StreamHandle:
        """Ask a new question with the finished session's conversation as context."""
        source = self.store.get(session_id)
        if not source.is_terminal:
            raise ValueError(f"Session '{session_id}' is still {source.status.value}")
        if options is None:
            options = source.options.model_copy(update={"file_context": None})
        return self.submit(query, options, history=source.conversation(), parent_id=source.id)

    def cancel(self, session_id: str) -> bool:
        self.store.get(session_id)
        handle = self._handles.get(session_id)
        if handle is None:
            return False
        logger.info(f"🛑 RUNNER: Cancelling session {session_id}")
        return handle.cancel()

    def _finished(self, session_id: str, task: "asyncio.Task[Session]") -> None:
        self._handles.pop(session_id, None)
        if task.cancelled():
            # Also covers tasks cancelled before their first step
            self.store.release_watchers(session_id)

    def handle(self, session_id: str) -> Optional[StreamHandle]:
        return self._handles.get(session_id)

    def active_ids(self) -> List[str]:
        return [sid for sid, h in self._handles.items() if not h.done]

    async def shutdown(self) -> None:
        handles = list(self._handles.values())
        for handle in handles:
            handle.cancel()
        for handle in handles:
            await handle.wait()


__all__ = ["SessionRunner", "StreamHandle"]
