from types import SimpleNamespace

import pytest

from core.errors import ProviderError
from core.runner import SessionRunner
from core.state import (
    AgentRole,
    BulkTaskMutation,
    Layout,
    ReferenceKind,
    SearchOptions,
    Sentiment,
    SessionStatus,
)
from core.store import SessionStore
from tools import (
    OpenAIStreamAdapter,
    ScriptedAdapter,
    get_provider,
    is_registered,
    register_default_providers,
    register_provider,
    registered_names,
)
from tools.openai_stream import extract_references


class DummyProvider:
    name = "dummy"

    async def stream(self, query, options, history=()):
        return
        yield


def test_registry_register_and_get(registry):
    register_provider(DummyProvider())
    assert is_registered("dummy")
    assert get_provider("dummy").name == "dummy"
    assert registered_names() == ["dummy"]


def test_registry_unknown_provider(registry):
    with pytest.raises(KeyError) as exc:
        get_provider("nope")
    assert "nope" in str(exc.value)


def test_default_providers_without_keys(registry, monkeypatch):
    for var in ("GEMINI_API_KEY", "API_KEY", "OPENAI_API_KEY"):
        monkeypatch.delenv(var, raising=False)
    register_default_providers()
    assert registered_names() == ["scripted"]
    with pytest.raises(ValueError):
        register_default_providers(silent=False)


def test_default_providers_with_key(registry, monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "test")
    register_default_providers()
    assert registered_names() == ["openai", "scripted"]


@pytest.mark.anyio
async def test_demo_script_runs_offline(registry, monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    register_default_providers()
    session = await SessionRunner(SessionStore()).run("anything", SearchOptions(provider="scripted"))
    assert session.status is SessionStatus.COMPLETED
    assert session.layout is Layout.REPORT_ONLY
    assert session.sentiment is Sentiment.NEUTRAL
    assert session.active_agents == [AgentRole.ARCHITECT]
    assert session.log_lines == ["> Offline replay provider active"]
    assert "canned report" in session.report


@pytest.mark.anyio
async def test_scripted_adapter_emits_cumulative_text():
    adapter = ScriptedAdapter.from_text("abcdefg", chunk_size=3)
    assert adapter.fragments == ["abc", "def", "g"]
    updates = [u async for u in adapter.stream("q", SearchOptions())]
    assert [u.raw_text for u in updates] == ["abc", "abcdef", "abcdefg", "abcdefg"]
    assert [u.is_final for u in updates] == [False, False, False, True]
    assert adapter.calls == ["q"]


@pytest.mark.anyio
async def test_scripted_adapter_fails_after_all_fragments():
    adapter = ScriptedAdapter(["a", "b"], fail_after=2)
    seen = []
    with pytest.raises(ProviderError):
        async for update in adapter.stream("q", SearchOptions()):
            seen.append(update.raw_text)
    assert seen == ["a", "ab"]


# OpenAI-compatible adapter -------------------------------------------------

class _FakeCompletions:
    def __init__(self, chunks):
        self.chunks = chunks
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs

        async def gen():
            for chunk in self.chunks:
                yield chunk

        return gen()


def _client(chunks):
    return SimpleNamespace(chat=SimpleNamespace(completions=_FakeCompletions(chunks)))


def _tool_delta(arguments, name=None):
    function = {"arguments": arguments}
    if name:
        function["name"] = name
    return {"choices": [{"delta": {"tool_calls": [{"index": 0, "function": function}]}}]}


@pytest.mark.anyio
async def test_openai_adapter_streams_text_calls_and_references():
    chunks = [
        {"choices": [{"delta": {"content": "[LAYOUT: DATA_FOCUS]\n"}}]},
        _tool_delta('{"tasks": [{"id": "t1", ', name="manageTasks"),
        _tool_delta('"description": "Scan", "status": "pending"}]}'),
        {
            "choices": [{"delta": {"content": "Report"}}],
            "search_results": [{"url": "https://a.example", "title": "A"}],
        },
        {"choices": []},
    ]
    client = _client(chunks)
    adapter = OpenAIStreamAdapter(client=client)

    updates = [u async for u in adapter.stream("Compare GPU benchmarks", SearchOptions())]

    assert [u.raw_text for u in updates] == [
        "[LAYOUT: DATA_FOCUS]\n",
        "[LAYOUT: DATA_FOCUS]\n",
        "[LAYOUT: DATA_FOCUS]\nReport",
        "[LAYOUT: DATA_FOCUS]\nReport",
    ]
    mutations = [m for u in updates for m in u.task_mutations]
    assert len(mutations) == 1
    assert isinstance(mutations[0], BulkTaskMutation)
    assert mutations[0].tasks[0].description == "Scan"
    assert updates[-1].is_final
    assert [r.uri for r in updates[-1].references] == ["https://a.example"]

    kwargs = client.chat.completions.kwargs
    assert kwargs["model"] == "gemini-3-pro-preview"
    assert kwargs["stream"] is True
    assert [t["function"]["name"] for t in kwargs["tools"]] == ["manageTasks", "updateTask"]
    assert kwargs["extra_body"]["google"]["thinking_config"]["thinking_budget"] == 8000


@pytest.mark.anyio
async def test_openai_adapter_always_ends_with_final_update():
    adapter = OpenAIStreamAdapter(client=_client([]))
    updates = [u async for u in adapter.stream("q", SearchOptions())]
    assert len(updates) == 1
    assert updates[0].is_final
    assert updates[0].raw_text == ""


def test_openai_adapter_requires_key(monkeypatch):
    for var in ("GEMINI_API_KEY", "API_KEY", "OPENAI_API_KEY"):
        monkeypatch.delenv(var, raising=False)
    with pytest.raises(ValueError):
        OpenAIStreamAdapter()
    assert OpenAIStreamAdapter(api_key="k").api_key == "k"


def test_extract_references_from_grounding_chunks():
    chunk = {
        "grounding_metadata": {
            "grounding_chunks": [
                {"web": {"uri": "https://w.example", "title": "W"}},
                {"maps": {"uri": "https://m.example", "title": "M"}},
                {"web": {"title": "no uri"}},
            ]
        }
    }
    refs = extract_references(chunk)
    assert [(r.uri, r.kind) for r in refs] == [
        ("https://w.example", ReferenceKind.WEB),
        ("https://m.example", ReferenceKind.MAP),
    ]


def test_extract_references_from_citations_and_objects():
    refs = extract_references({"citations": ["https://x.example"]})
    assert refs[0].uri == "https://x.example"
    assert refs[0].title == "Source 1"

    chunk = SimpleNamespace(search_results=[SimpleNamespace(url="https://y.example", title="Y")])
    assert [r.title for r in extract_references(chunk)] == ["Y"]


def test_extract_references_none_when_absent():
    assert extract_references({"choices": []}) is None
