from __future__ import annotations

"""Common types for stream providers."""

from typing import AsyncIterator, Protocol, Sequence

from core.state import ChatMessage, SearchOptions, StreamUpdate


class StreamProvider(Protocol):
    """Protocol for a generative backend that streams cumulative updates."""

    name: str

    def stream(
        self,
        query: str,
        options: SearchOptions,
        history: Sequence[ChatMessage] = (),
    ) -> AsyncIterator[StreamUpdate]:
        """Yield updates in order; the last one has ``is_final`` set, or raise."""
        ...
