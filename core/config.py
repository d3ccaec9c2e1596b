from __future__ import annotations

"""Lightweight configuration loader for models, prompts and providers.

Loads a YAML file from `config/settings.yaml` (or the path in
``OMNISEARCH_CONFIG``) when present and deep-merges it over the defaults
below. Helpers return model routing, the system instruction and provider
settings.
"""

from typing import Any, Dict, List, Optional
from pathlib import Path
import copy
import logging
import os

import yaml

logger = logging.getLogger(__name__)

_CONFIG_CACHE: Optional[Dict[str, Any]] = None

DEFAULT_CONFIG_PATH = Path("config/settings.yaml")


def _default_config() -> Dict[str, Any]:
    return {
        "provider": {
            "default": "openai",
            "base_url": "https://generativelanguage.googleapis.com/v1beta/openai/",
            "api_key_env": ["GEMINI_API_KEY", "API_KEY"],
            "timeout": 120.0,
            "connect_timeout": 10.0,
            "max_retries": 1,
        },
        "models": {
            "pro": "gemini-3-pro-preview",
            "flash": "gemini-3-flash-preview",
            "spatial": "gemini-2.5-flash",
            # Only these model families accept a thinking budget / output cap
            "thinking_prefixes": ["gemini-3"],
            "thinking_budget": 8000,
            "max_output_tokens": 25000,
        },
        "routing": {
            "spatial_keywords": [
                "where", "location", "find", "near", "restaurant", "food", "hotel",
                "address", "street", "map", "sf", "nyc", "london", "tenderloin",
            ],
        },
        "personas": {
            "general": "Balanced general-purpose reasoning engine suitable for most tasks.",
            "financial": "Specialized in financial markets, metrics, and fiscal cycles.",
            "technical": "Logic-first persona optimized for code, benchmarks, and architecture.",
            "market": "Market intelligence specialist focusing on competitors and consumer sentiment.",
        },
        "prompts": {
            "system": (
                "SYSTEM: NEXUS-ORCHESTRATOR [PERFORMANCE_OPTIMIZED]\n"
                "PERSONA: {persona}\n\n"
                "MISSION: Deliver absolute data-density with MINIMAL LATENCY.\n"
                "ADAPTIVE UI INSTRUCTIONS:\n"
                "1. IMMEDIATELY output [LAYOUT: MODE] based on the query type.\n"
                "   - Spatial/Local/Maps needed: [LAYOUT: SPATIAL_SPLIT]\n"
                "   - Heavy Data/Specs: [LAYOUT: DATA_FOCUS]\n"
                "   - Text/Insight: [LAYOUT: REPORT_ONLY]\n"
                "2. SWARM LOGGING: Prefix reasoning with [SWARM_LOG]. Log every tool use, "
                "e.g. \"[SWARM_LOG] > Accessing search indices for {query}\"\n"
                "3. DATA DENSITY: Use tables and lists. No conversational filler.\n"
                "4. TASKING: Call 'manageTasks' to show your plan and 'updateTask' as steps "
                "progress, but start the report stream concurrently.\n"
                "5. API EXIT: End with [DATA_BOUNDARY] then the high-fidelity JSON payload, "
                "including a \"sentiment\" field (positive, negative, neutral or mixed).\n\n"
                "PRIORITY: SPEED AND FACTUAL DENSITY."
            ),
            "location": "User location: latitude {latitude}, longitude {longitude}.",
        },
        "store": {
            "max_sessions": 30,
        },
    }


def load_config() -> Dict[str, Any]:
    global _CONFIG_CACHE
    if _CONFIG_CACHE is not None:
        return _CONFIG_CACHE
    base = _default_config()
    path = Path(os.getenv("OMNISEARCH_CONFIG") or DEFAULT_CONFIG_PATH)
    if path.exists():
        try:
            data = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as exc:
            logger.error(f"❌ CONFIG: Could not parse {path}: {exc}")
            data = {}
        if isinstance(data, dict):
            _deep_merge(base, data)
            logger.info(f"⚙️ CONFIG: Loaded overrides from {path}")
    _CONFIG_CACHE = base
    return base


def clear_config_cache() -> None:
    global _CONFIG_CACHE
    _CONFIG_CACHE = None


def _deep_merge(dst: Dict[str, Any], src: Dict[str, Any]) -> None:
    for k, v in src.items():
        if isinstance(v, dict) and isinstance(dst.get(k), dict):
            _deep_merge(dst[k], v)
        else:
            dst[k] = copy.deepcopy(v)


def get_provider_config() -> Dict[str, Any]:
    return dict(load_config().get("provider", {}))


def get_model_config() -> Dict[str, Any]:
    return dict(load_config().get("models", {}))


def resolve_model(name: str) -> str:
    """Map a tier name (``pro``/``flash``/``spatial``) to a model id; ids pass through."""
    models = get_model_config()
    value = models.get(name)
    return value if isinstance(value, str) else name


def get_spatial_keywords() -> List[str]:
    return list(load_config().get("routing", {}).get("spatial_keywords", []))


def get_persona_prompt(persona: Optional[str]) -> str:
    personas = load_config().get("personas", {})
    if persona and persona in personas:
        return str(personas[persona])
    return str(personas.get("general", ""))


def get_prompt(name: str) -> str:
    prompts = load_config().get("prompts", {})
    value = prompts.get(name)
    if not isinstance(value, str):
        raise KeyError(f"Prompt '{name}' is not configured")
    return value


def get_store_limit() -> Optional[int]:
    value = load_config().get("store", {}).get("max_sessions")
    return int(value) if value else None
