from __future__ import annotations

"""Session store: the single writer for session and task state.

Every change to a session goes through :meth:`SessionStore.apply` or
:meth:`SessionStore.fail`. Tasks are kept per session id and are only
touched together with their owning session.
"""

import asyncio
import logging
from typing import AsyncIterator, Dict, List, Optional, Sequence

from . import reducer
from .debug_log import dbg
from .errors import SessionNotFoundError
from .state import ChatMessage, SearchOptions, Session, StreamUpdate, Task
from .tasks import apply_task_mutations

logger = logging.getLogger(__name__)


class SessionStore:
    """In-memory sessions keyed by id, newest first."""

    def __init__(self, max_sessions: Optional[int] = None) -> None:
        self.max_sessions = max_sessions
        self._sessions: Dict[str, Session] = {}
        self._order: List[str] = []
        self._tasks: Dict[str, List[Task]] = {}
        self._watchers: Dict[str, List[asyncio.Queue]] = {}
        self._abandoned: set = set()

    # Lookup ------------------------------------------------------------------
    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, session_id: str) -> Session:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(session_id) from None

    def list(self, *, active_only: bool = False) -> List[Session]:
        sessions = [self._sessions[sid] for sid in self._order]
        if active_only:
            return [s for s in sessions if not s.is_terminal]
        return sessions

    def tasks(self, session_id: str) -> List[Task]:
        self.get(session_id)
        return list(self._tasks.get(session_id, []))

    # Lifecycle ---------------------------------------------------------------
    def create(
        self,
        query: str,
        options: Optional[SearchOptions] = None,
        *,
        history: Optional[Sequence[ChatMessage]] = None,
        parent_id: Optional[str] = None,
    ) -> Session:
        session = Session(
            query=query,
            options=options or SearchOptions(),
            history=list(history or []),
            parent_id=parent_id,
        )
        self._sessions[session.id] = session
        self._order.insert(0, session.id)
        self._tasks[session.id] = []
        logger.info(f"🆕 STORE: Created session {session.id} for: {query[:100]}")
        self._prune()
        return session

    def apply(self, session_id: str, update: StreamUpdate) -> Session:
        """Apply one provider update to a session and its tasks, in that order."""
        session = self.get(session_id)
        if session.is_terminal:
            logger.warning(f"⚠️ STORE: Dropping update for {session.status.value} session {session_id}")
            dbg.event("update_rejected", session_id, status=session.status.value)
            return session

        updated = reducer.apply(session, update)
        tasks = apply_task_mutations(self._tasks.get(session_id, []), session_id, update.task_mutations)

        dbg.stream_update(
            session_id,
            chars=len(update.raw_text),
            mutations=len(update.task_mutations),
            references=len(update.references),
            is_final=update.is_final,
        )
        if update.is_final:
            logger.info(
                f"✅ STORE: Session {session_id} completed "
                f"({len(updated.report)} report chars, {len(updated.log_lines)} log lines, {len(tasks)} tasks)"
            )
        self._commit(updated, tasks)
        return updated

    def fail(self, session_id: str, category: str, message: str) -> Session:
        session = self.get(session_id)
        failed = reducer.fail(session, category, message)
        if failed is not session:
            logger.error(f"❌ STORE: Session {session_id} failed [{category}]: {message}")
            dbg.provider_error(session_id, category, message)
            self._commit(failed, self._tasks.get(session_id, []))
        return failed

    # Watching ----------------------------------------------------------------
    async def watch(self, session_id: str) -> AsyncIterator[Session]:
        """Yield the current snapshot, then each committed change until terminal or abandoned."""
        session = self.get(session_id)
        if session.is_terminal or session_id in self._abandoned:
            yield session
            return
        # Subscribe before the first yield so no commit falls in between
        queue: asyncio.Queue = asyncio.Queue()
        self._watchers.setdefault(session_id, []).append(queue)
        try:
            yield session
            while True:
                item = await queue.get()
                if item is None:
                    return
                yield item
                if item.is_terminal:
                    return
        finally:
            watchers = self._watchers.get(session_id, [])
            if queue in watchers:
                watchers.remove(queue)
            if not watchers:
                self._watchers.pop(session_id, None)

    def release_watchers(self, session_id: str) -> None:
        """End all watches on a session whose stream was abandoned."""
        self._abandoned.add(session_id)
        for queue in self._watchers.get(session_id, []):
            queue.put_nowait(None)

    # Internals ---------------------------------------------------------------
    def _commit(self, session: Session, tasks: List[Task]) -> None:
        self._sessions[session.id] = session
        self._tasks[session.id] = tasks
        for queue in self._watchers.get(session.id, []):
            queue.put_nowait(session)

    def _prune(self) -> None:
        if not self.max_sessions or len(self._order) <= self.max_sessions:
            return
        # Only finished sessions are evicted, oldest first
        for sid in reversed(list(self._order)):
            if len(self._order) <= self.max_sessions:
                break
            if self._sessions[sid].is_terminal:
                self._order.remove(sid)
                del self._sessions[sid]
                self._tasks.pop(sid, None)
                self._abandoned.discard(sid)
                logger.debug("Evicted session %s", sid)


__all__ = ["SessionStore"]
