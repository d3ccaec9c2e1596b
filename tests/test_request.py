from core.state import ChatMessage, FileContext, GeoLocation, SearchOptions
from tools.request import (
    build_messages,
    build_request,
    build_system_instruction,
    is_spatial_query,
    select_model,
    thinking_budget,
)


def test_spatial_detection_uses_whole_words():
    assert is_spatial_query("Where is the best ramen?")
    assert is_spatial_query("coffee near the station")
    assert is_spatial_query("Hotels in London")
    assert not is_spatial_query("Transform this dataset")
    assert not is_spatial_query("Compare GPU benchmarks")
    assert not is_spatial_query("anything", keywords=[])


def test_spatial_query_uses_maps_model_without_thinking():
    request = build_request("Best restaurant in SF", SearchOptions())
    assert request.spatial
    assert request.model == "gemini-2.5-flash"
    assert "extra_body" not in request.params
    assert "max_tokens" not in request.params


def test_use_maps_forces_spatial_model():
    model, spatial = select_model("Quarterly revenue of ACME", SearchOptions(use_maps=True))
    assert spatial
    assert model == "gemini-2.5-flash"


def test_model_selection():
    assert select_model("q", SearchOptions(model="flash", autonomous=True)) == ("gemini-3-pro-preview", False)
    assert select_model("q", SearchOptions(model="flash", autonomous=False)) == ("gemini-3-flash-preview", False)
    assert select_model("q", SearchOptions(model="custom-model")) == ("custom-model", False)


def test_thinking_budget():
    assert thinking_budget(SearchOptions(autonomous=True), spatial=False) == 8000
    assert thinking_budget(SearchOptions(autonomous=False), spatial=False) == 0
    assert thinking_budget(SearchOptions(autonomous=True), spatial=True) == 0


def test_fast_mode_sends_zero_budget():
    request = build_request("Summarize the news", SearchOptions(autonomous=False))
    assert request.model == "gemini-3-flash-preview"
    assert request.params["extra_body"]["google"]["thinking_config"]["thinking_budget"] == 0
    assert request.params["max_tokens"] == 25000


def test_system_instruction_includes_persona_and_location():
    options = SearchOptions(persona="financial", location=GeoLocation(latitude=48.85, longitude=2.35))
    text = build_system_instruction("Rates outlook", options)
    assert "financial markets" in text
    assert "Rates outlook" in text
    assert "latitude 48.85" in text


def test_messages_map_history_roles():
    history = [
        ChatMessage(role="user", content="first question"),
        ChatMessage(role="model", content="first answer"),
    ]
    messages = build_messages("second question", SearchOptions(), history)
    assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
    assert messages[-1]["content"] == "second question"


def test_file_attachment_becomes_content_part():
    image = SearchOptions(file_context=FileContext(data="AAAA", mime_type="image/png"))
    content = build_messages("What is this?", image)[-1]["content"]
    assert content[0] == {"type": "text", "text": "What is this?"}
    assert content[1]["image_url"]["url"] == "data:image/png;base64,AAAA"

    pdf = SearchOptions(file_context=FileContext(data="BBBB", mime_type="application/pdf", name="deck.pdf"))
    part = build_messages("Summarize", pdf)[-1]["content"][1]
    assert part["type"] == "file"
    assert part["file"]["filename"] == "deck.pdf"
