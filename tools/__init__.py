"""Stream provider registry and built-in providers."""

from .registry import register_provider, get_provider, is_registered, registered_names
from .openai_stream import OpenAIStreamAdapter
from .scripted import ScriptedAdapter


DEMO_SCRIPT = (
    "[LAYOUT: REPORT_ONLY]\n"
    "[SWARM_LOG] > Offline replay provider active\n"
    "[ARCHITECT] No live backend is configured, so this is a canned report.\n"
    "Set GEMINI_API_KEY to stream real results.\n"
    "[DATA_BOUNDARY]\n"
    '{"sentiment": "neutral", "source": "scripted"}'
)


def register_default_providers(silent: bool = True) -> None:
    """Attempt to register common providers. Missing API keys are ignored if silent.

    The scripted provider is always available so the service works offline.
    """
    if not is_registered("openai"):
        try:
            register_provider(OpenAIStreamAdapter())
        except Exception:
            if not silent:
                raise
    if not is_registered("scripted"):
        register_provider(ScriptedAdapter.from_text(DEMO_SCRIPT, chunk_size=24))


__all__ = [
    "register_provider",
    "get_provider",
    "is_registered",
    "registered_names",
    "OpenAIStreamAdapter",
    "ScriptedAdapter",
    "register_default_providers",
]
