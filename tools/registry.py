from __future__ import annotations

"""Simple registry for stream providers."""

from typing import Dict, List

from .types import StreamProvider


_provider_registry: Dict[str, StreamProvider] = {}


def register_provider(provider: StreamProvider) -> None:
    """Register a provider by its name.

    Args:
        provider: Instance implementing the ``StreamProvider`` protocol.
    """
    _provider_registry[provider.name] = provider


def get_provider(name: str) -> StreamProvider:
    """Retrieve a registered provider by name.

    Raises:
        KeyError: If the provider is not registered.
    """
    try:
        return _provider_registry[name]
    except KeyError as exc:
        raise KeyError(f"Provider '{name}' is not registered") from exc


def is_registered(name: str) -> bool:
    return name in _provider_registry


def registered_names() -> List[str]:
    return sorted(_provider_registry)
