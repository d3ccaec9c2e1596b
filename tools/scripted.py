from __future__ import annotations

"""Scripted provider that replays prepared fragments.

Runs offline, which keeps the service usable without API keys and makes
stream behaviour reproducible in tests.
"""

from typing import AsyncIterator, Dict, List, Optional, Sequence
import asyncio

from core.errors import ProviderError
from core.state import ChatMessage, Reference, SearchOptions, StreamUpdate, TaskMutation


class ScriptedAdapter:
    """Replay text fragments as cumulative updates.

    Args:
        fragments: Text pieces appended one per update.
        mutations: Task mutations to attach, keyed by fragment index.
        references: Reference set sent with every update.
        fail_after: Raise ``error`` once this many fragments were sent.
        error: Exception raised at ``fail_after``; a ``ProviderError`` by default.
        delay: Seconds to sleep between updates.
    """

    def __init__(
        self,
        fragments: Sequence[str] = (),
        *,
        name: str = "scripted",
        mutations: Optional[Dict[int, List[TaskMutation]]] = None,
        references: Sequence[Reference] = (),
        fail_after: Optional[int] = None,
        error: Optional[BaseException] = None,
        delay: float = 0.0,
    ) -> None:
        self.name = name
        self.fragments = list(fragments)
        self.mutations = dict(mutations or {})
        self.references = list(references)
        self.fail_after = fail_after
        self.error = error
        self.delay = delay
        self.calls: List[str] = []

    @classmethod
    def from_text(cls, text: str, chunk_size: int = 16, **kwargs) -> "ScriptedAdapter":
        """Cut ``text`` into fixed-size fragments, splitting markers mid-way."""
        size = max(1, chunk_size)
        return cls([text[i:i + size] for i in range(0, len(text), size)], **kwargs)

    def _raise(self) -> None:
        raise self.error or ProviderError("503 UNAVAILABLE: scripted provider failure", status_code=503)

    async def stream(
        self,
        query: str,
        options: SearchOptions,
        history: Sequence[ChatMessage] = (),
    ) -> AsyncIterator[StreamUpdate]:
        self.calls.append(query)
        text = ""
        for i, fragment in enumerate(self.fragments):
            if self.fail_after is not None and i >= self.fail_after:
                self._raise()
            # Yield control so several sessions interleave
            await asyncio.sleep(self.delay)
            text += fragment
            yield StreamUpdate(
                raw_text=text,
                task_mutations=list(self.mutations.get(i, [])),
                references=list(self.references),
            )
        if self.fail_after is not None and self.fail_after >= len(self.fragments):
            self._raise()
        yield StreamUpdate(raw_text=text, references=list(self.references), is_final=True)


__all__ = ["ScriptedAdapter"]
