from __future__ import annotations

from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
from collections import deque
import threading
import json
import os

_SECRET_HINTS = ("api_key", "apikey", "authorization", "secret", "token")
_TRUTHY = {"1", "true", "yes", "on"}


class DebugLog:
    """In-memory structured record of what happened to each session stream.

    Disabled by default; ``DEBUG_LOG`` or ``OMNISEARCH_DEBUG`` turn it on.
    Only the newest ``max_events`` events are kept. They can be filtered per
    session and dumped as JSON after a run.
    """

    def __init__(self, max_events: int = 5000) -> None:
        self.max_events = max_events
        self.enabled: bool = False
        self._events: deque = deque(maxlen=max_events)
        self._lock = threading.Lock()

    def enable(self, value: bool = True) -> None:
        self.enabled = value

    def maybe_enable_from_env(self) -> None:
        flag = os.getenv("DEBUG_LOG") or os.getenv("OMNISEARCH_DEBUG") or ""
        if flag.strip().lower() in _TRUTHY:
            self.enabled = True

    def is_enabled(self) -> bool:
        return self.enabled

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    # Session events ------------------------------------------------------------
    def event(self, name: str, session_id: Optional[str] = None, **fields: Any) -> None:
        if not self.enabled:
            return
        record: Dict[str, Any] = {"ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds"), "name": name}
        if session_id:
            record["session_id"] = session_id
        for key, value in fields.items():
            record[key] = self._clean(key, value)
        with self._lock:
            self._events.append(record)

    def stream_update(self, session_id: str, *, chars: int, mutations: int, references: int, is_final: bool) -> None:
        self.event(
            "stream_update",
            session_id,
            chars=chars,
            mutations=mutations,
            references=references,
            is_final=is_final,
        )

    def mutation_ignored(self, session_id: str, reason: str, mutation: Any) -> None:
        self.event("mutation_ignored", session_id, reason=reason, mutation=mutation)

    def provider_error(self, session_id: str, category: str, message: str) -> None:
        self.event("provider_error", session_id, category=category, message=message)

    # Output --------------------------------------------------------------------
    def get_events(self, session_id: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._lock:
            events = list(self._events)
        if session_id is not None:
            events = [e for e in events if e.get("session_id") == session_id]
        return events

    def dump_json(self, session_id: Optional[str] = None) -> str:
        return json.dumps(self.get_events(session_id), ensure_ascii=False, indent=2, default=str)

    def flush_to_file(self, path: str) -> None:
        if not self.enabled:
            return
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(self.dump_json())

    @staticmethod
    def _clean(key: str, value: Any, limit: int = 2000) -> Any:
        """Redact secrets and shorten large values before they are stored."""
        if any(hint in key.lower() for hint in _SECRET_HINTS):
            return "[redacted]"
        if hasattr(value, "model_dump"):
            value = value.model_dump(mode="json")
        if isinstance(value, str) and len(value) > limit:
            return value[:limit] + f"... [{len(value) - limit} more chars]"
        return value


# Process-wide instance
dbg = DebugLog()


__all__ = ["dbg", "DebugLog"]
