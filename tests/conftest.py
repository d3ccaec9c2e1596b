import pytest

import core.config
import tools.registry as reg
from core.debug_log import dbg


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def default_config(monkeypatch):
    """Run every test against the built-in defaults."""
    monkeypatch.delenv("OMNISEARCH_CONFIG", raising=False)
    monkeypatch.setattr(core.config, "DEFAULT_CONFIG_PATH", core.config.Path("does-not-exist.yaml"))
    core.config.clear_config_cache()
    yield
    core.config.clear_config_cache()


@pytest.fixture
def registry(monkeypatch):
    """Give the test an empty provider registry."""
    monkeypatch.setattr(reg, "_provider_registry", {})
    return reg


@pytest.fixture
def debug_log():
    dbg.enable()
    dbg.clear()
    yield dbg
    dbg.clear()
    dbg.enable(False)
