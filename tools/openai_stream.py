from __future__ import annotations

"""Streaming adapter for OpenAI-compatible chat completion endpoints.

Defaults to Gemini's OpenAI-compatible endpoint. Text deltas are accumulated
into cumulative ``raw_text``; streamed tool-call arguments are assembled and
each finished call is emitted once as a task mutation.
"""

from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence
import json
import logging
import os

from core.config import get_provider_config
from core.state import (
    ChatMessage,
    Reference,
    ReferenceKind,
    SearchOptions,
    StreamUpdate,
    TaskMutation,
)
from core.tasks import parse_task_call
from core.tracing import get_langfuse_client, observe
from .request import ProviderRequest, build_request

logger = logging.getLogger(__name__)


def _field(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    value = getattr(obj, name, None)
    if value is None:
        extra = getattr(obj, "model_extra", None)
        if isinstance(extra, dict):
            value = extra.get(name)
    return value


@dataclass
class _PendingCall:
    name: str = ""
    arguments: str = ""
    emitted: bool = False


def extract_references(chunk: Any) -> Optional[List[Reference]]:
    """Collect citations from a chunk; ``None`` when the chunk carries none.

    Understands Perplexity-style ``search_results``/``citations`` and
    Gemini-style grounding chunks (``{"web": {...}}`` / ``{"maps": {...}}``).
    """
    found: List[Reference] = []
    seen = False

    metadata = _field(chunk, "grounding_metadata") or _field(chunk, "groundingMetadata")
    grounding = _field(metadata, "grounding_chunks") or _field(metadata, "groundingChunks")
    if grounding:
        seen = True
        for item in grounding:
            for key, kind in (("web", ReferenceKind.WEB), ("maps", ReferenceKind.MAP)):
                source = _field(item, key)
                uri = _field(source, "uri")
                if uri:
                    found.append(Reference(uri=uri, title=_field(source, "title") or "", kind=kind))

    results = _field(chunk, "search_results")
    if results:
        seen = True
        for result in results:
            url = _field(result, "url")
            if url:
                found.append(Reference(uri=url, title=_field(result, "title") or ""))
    elif _field(chunk, "citations"):
        seen = True
        for i, citation in enumerate(_field(chunk, "citations")):
            if isinstance(citation, str):
                found.append(Reference(uri=citation, title=f"Source {i + 1}"))
            else:
                url = _field(citation, "url")
                if url:
                    found.append(Reference(uri=url, title=_field(citation, "title") or f"Source {i + 1}"))

    return found if seen else None


class OpenAIStreamAdapter:
    """Stream a chat completion and project it onto ``StreamUpdate`` values."""

    name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        client: Any = None,
    ) -> None:
        cfg = get_provider_config()
        env_names = cfg.get("api_key_env") or []
        if isinstance(env_names, str):
            env_names = [env_names]
        env_key = next((os.getenv(n) for n in [*env_names, "OPENAI_API_KEY"] if os.getenv(n)), None)
        self.api_key = api_key or env_key
        if not self.api_key and client is None:
            raise ValueError("API key required (set GEMINI_API_KEY, API_KEY or OPENAI_API_KEY)")
        self.base_url = base_url or cfg.get("base_url")
        self.timeout = float(cfg.get("timeout", 120.0))
        self.connect_timeout = float(cfg.get("connect_timeout", 10.0))
        self.max_retries = int(cfg.get("max_retries", 1))
        self._client_instance = client

    def _client(self):
        if self._client_instance is None:
            from openai import AsyncOpenAI  # Imported lazily to keep optional dependency
            import httpx

            self._client_instance = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout, connect=self.connect_timeout),
                max_retries=self.max_retries,
            )
        return self._client_instance

    # Separate network call for easier testing
    @observe(as_type="generation", name="search-stream-open")
    async def _open_stream(self, request: ProviderRequest) -> Any:
        lf_client = get_langfuse_client()
        if lf_client:
            lf_client.update_current_generation(
                model=request.model,
                input={"messages": request.messages[-1:]},
                metadata={"adapter": self.name, "spatial": request.spatial},
            )
        return await self._client().chat.completions.create(
            model=request.model,
            messages=request.messages,
            tools=request.tools,
            stream=True,
            **request.params,
        )

    def _collect_calls(self, calls: Dict[int, _PendingCall], delta: Any) -> None:
        for tc in _field(delta, "tool_calls") or []:
            index = _field(tc, "index") or 0
            pending = calls.setdefault(index, _PendingCall())
            function = _field(tc, "function")
            if _field(function, "name"):
                pending.name = _field(function, "name")
            pending.arguments += _field(function, "arguments") or ""

    def _finished_mutations(self, calls: Dict[int, _PendingCall]) -> List[TaskMutation]:
        mutations: List[TaskMutation] = []
        for index in sorted(calls):
            pending = calls[index]
            if pending.emitted or not pending.arguments:
                continue
            try:
                args = json.loads(pending.arguments)
            except ValueError:
                continue  # arguments still streaming
            pending.emitted = True
            mutation = parse_task_call(pending.name, args)
            if mutation is not None:
                mutations.append(mutation)
        return mutations

    async def stream(
        self,
        query: str,
        options: SearchOptions,
        history: Sequence[ChatMessage] = (),
    ) -> AsyncIterator[StreamUpdate]:
        request = build_request(query, options, history)
        logger.info(f"🛰️ STREAM: Opening {request.model} stream (spatial={request.spatial}) for: {query[:80]}")

        response = await self._open_stream(request)
        text = ""
        references: List[Reference] = []
        calls: Dict[int, _PendingCall] = {}
        chunks = 0

        async for chunk in response:
            chunks += 1
            choices = _field(chunk, "choices") or []
            delta = _field(choices[0], "delta") if choices else None
            piece = _field(delta, "content") or ""
            text += piece
            self._collect_calls(calls, delta)

            refs = extract_references(chunk)
            if refs is not None:
                references = refs

            mutations = self._finished_mutations(calls)
            if not piece and not mutations and refs is None:
                continue
            yield StreamUpdate(raw_text=text, task_mutations=mutations, references=list(references))

        for pending in calls.values():
            if not pending.emitted:
                logger.warning(f"⚠️ STREAM: Dropping unfinished call '{pending.name}' ({len(pending.arguments)} chars)")

        logger.info(f"✅ STREAM: Finished after {chunks} chunks, {len(text)} chars")
        yield StreamUpdate(raw_text=text, references=list(references), is_final=True)


# The adapter conforms to ``StreamProvider`` protocol
__all__ = ["OpenAIStreamAdapter", "extract_references"]
