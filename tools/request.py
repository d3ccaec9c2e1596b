from __future__ import annotations

"""Build chat-completion requests from a query and its search options."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
import re

from core.config import (
    get_model_config,
    get_persona_prompt,
    get_prompt,
    get_spatial_keywords,
    resolve_model,
)
from core.state import ChatMessage, FileContext, SearchOptions
from core.tasks import TASK_TOOL_DECLARATIONS


@dataclass
class ProviderRequest:
    model: str
    messages: List[Dict[str, Any]]
    tools: List[Dict[str, Any]]
    params: Dict[str, Any] = field(default_factory=dict)
    spatial: bool = False


def is_spatial_query(query: str, keywords: Optional[Sequence[str]] = None) -> bool:
    words = list(keywords if keywords is not None else get_spatial_keywords())
    if not words:
        return False
    pattern = r"\b(" + "|".join(re.escape(w) for w in words) + r")\b"
    return re.search(pattern, query.lower()) is not None


def select_model(query: str, options: SearchOptions) -> tuple[str, bool]:
    """Pick the model for a query; spatial queries need the maps-capable model."""
    spatial = options.use_maps or is_spatial_query(query)
    if spatial:
        return resolve_model("spatial"), True
    if options.model in ("pro", "flash"):
        return resolve_model("pro" if options.autonomous else options.model), False
    return resolve_model(options.model), False


def thinking_budget(options: SearchOptions, spatial: bool) -> int:
    if spatial or not options.autonomous:
        return 0
    return int(get_model_config().get("thinking_budget", 0))


def supports_thinking(model: str) -> bool:
    prefixes = get_model_config().get("thinking_prefixes", [])
    return any(model.startswith(p) for p in prefixes)


def build_system_instruction(query: str, options: SearchOptions) -> str:
    text = get_prompt("system").format(persona=get_persona_prompt(options.persona), query=query)
    if options.location is not None:
        text += "\n" + get_prompt("location").format(
            latitude=options.location.latitude,
            longitude=options.location.longitude,
        )
    return text


def _file_part(file_context: FileContext) -> Dict[str, Any]:
    data_url = f"data:{file_context.mime_type};base64,{file_context.data}"
    if file_context.mime_type.startswith("image/"):
        return {"type": "image_url", "image_url": {"url": data_url}}
    return {
        "type": "file",
        "file": {"filename": file_context.name or "attachment", "file_data": data_url},
    }


def build_messages(
    query: str,
    options: SearchOptions,
    history: Sequence[ChatMessage] = (),
) -> List[Dict[str, Any]]:
    messages: List[Dict[str, Any]] = [
        {"role": "system", "content": build_system_instruction(query, options)}
    ]
    for turn in history:
        role = "assistant" if turn.role == "model" else "user"
        messages.append({"role": role, "content": turn.content})

    if options.file_context is not None:
        content: Any = [{"type": "text", "text": query}, _file_part(options.file_context)]
    else:
        content = query
    messages.append({"role": "user", "content": content})
    return messages


def build_request(
    query: str,
    options: SearchOptions,
    history: Sequence[ChatMessage] = (),
) -> ProviderRequest:
    model, spatial = select_model(query, options)
    params: Dict[str, Any] = {}
    if supports_thinking(model):
        models_cfg = get_model_config()
        params["max_tokens"] = int(models_cfg.get("max_output_tokens", 0)) or None
        params["extra_body"] = {
            "google": {"thinking_config": {"thinking_budget": thinking_budget(options, spatial)}}
        }
    params = {k: v for k, v in params.items() if v is not None}

    tools = [{"type": "function", "function": decl} for decl in TASK_TOOL_DECLARATIONS]
    return ProviderRequest(
        model=model,
        messages=build_messages(query, options, history),
        tools=tools,
        params=params,
        spatial=spatial,
    )


__all__ = [
    "ProviderRequest",
    "build_request",
    "build_messages",
    "build_system_instruction",
    "is_spatial_query",
    "select_model",
    "thinking_budget",
]
