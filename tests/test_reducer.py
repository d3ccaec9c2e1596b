from core import reducer
from core.state import Layout, Reference, Sentiment, Session, SessionStatus, StreamUpdate


def _session():
    return Session(query="Where to eat in Paris?")


def test_apply_projects_cumulative_text():
    session = reducer.apply(
        _session(),
        StreamUpdate(
            raw_text="[SWARM_LOG] checking index\n[LAYOUT: SPATIAL_SPLIT]\nParis is lovely.\n",
            references=[Reference(uri="https://example.com/paris", title="Paris")],
        ),
    )
    assert session.status is SessionStatus.STREAMING
    assert session.report == "Paris is lovely.\n"
    assert session.log_lines == ["checking index"]
    assert session.layout is Layout.SPATIAL_SPLIT
    assert session.references[0].uri == "https://example.com/paris"
    assert session.update_count == 1


def test_final_update_completes_session():
    session = reducer.apply(_session(), StreamUpdate(raw_text="Done", is_final=True))
    assert session.status is SessionStatus.COMPLETED
    assert session.is_terminal


def test_apply_returns_new_session():
    original = _session()
    updated = reducer.apply(original, StreamUpdate(raw_text="text"))
    assert original.report == ""
    assert original.status is SessionStatus.INITIALIZING
    assert updated.report == "text"


def test_layout_is_not_reset_by_later_updates():
    session = reducer.apply(_session(), StreamUpdate(raw_text="[LAYOUT: DATA_FOCUS]\n"))
    session = reducer.apply(session, StreamUpdate(raw_text="no marker here"))
    assert session.layout is Layout.DATA_FOCUS


def test_references_are_replaced_wholesale():
    first = [Reference(uri="https://a.example"), Reference(uri="https://b.example")]
    session = reducer.apply(_session(), StreamUpdate(raw_text="x", references=first))
    session = reducer.apply(session, StreamUpdate(raw_text="xy", references=[Reference(uri="https://c.example")]))
    assert [r.uri for r in session.references] == ["https://c.example"]
    session = reducer.apply(session, StreamUpdate(raw_text="xyz"))
    assert session.references == []


def test_payload_is_sticky_and_sets_sentiment():
    text = 'Report\n[DATA_BOUNDARY]\n{"sentiment": "Positive", "score": 3}'
    session = reducer.apply(_session(), StreamUpdate(raw_text=text))
    assert session.has_payload
    assert session.structured_payload == {"sentiment": "Positive", "score": 3}
    assert session.sentiment is Sentiment.POSITIVE

    # A later update whose payload does not parse leaves the last one in place
    session = reducer.apply(session, StreamUpdate(raw_text='Report\n[DATA_BOUNDARY]\n{"sentiment": '))
    assert session.structured_payload == {"sentiment": "Positive", "score": 3}
    assert session.sentiment is Sentiment.POSITIVE


def test_null_payload_is_still_a_payload():
    session = reducer.apply(_session(), StreamUpdate(raw_text="[DATA_BOUNDARY]null"))
    assert session.has_payload
    assert session.structured_payload is None
    assert session.sentiment is None


def test_terminal_sessions_ignore_updates():
    done = reducer.apply(_session(), StreamUpdate(raw_text="final text", is_final=True))
    after = reducer.apply(done, StreamUpdate(raw_text="final text and more [LAYOUT: DATA_FOCUS]\n"))
    assert after is done

    failed = reducer.fail(_session(), "generic", "boom")
    assert reducer.apply(failed, StreamUpdate(raw_text="late")) is failed


def test_fail_keeps_accumulated_state():
    session = reducer.apply(_session(), StreamUpdate(raw_text="[SWARM_LOG] step\nPartial report"))
    failed = reducer.fail(session, "rate_limit", "Too many requests")
    assert failed.status is SessionStatus.FAILED
    assert failed.error.category == "rate_limit"
    assert failed.error.message == "Too many requests"
    assert failed.report == "Partial report"
    assert failed.log_lines == ["step"]


def test_fail_on_completed_session_is_noop():
    done = reducer.apply(_session(), StreamUpdate(raw_text="ok", is_final=True))
    assert reducer.fail(done, "generic", "late failure") is done


def test_payload_sentiment():
    assert reducer.payload_sentiment({"sentiment": " mixed "}) is Sentiment.MIXED
    assert reducer.payload_sentiment({"sentiment": "ecstatic"}) is None
    assert reducer.payload_sentiment(["positive"]) is None


def test_truncated_payload_is_not_kept_on_failure():
    session = reducer.apply(_session(), StreamUpdate(raw_text='x\n[DATA_BOUNDARY]\n[{"a": 1}, 2'))
    assert not session.has_payload
    failed = reducer.fail(session, "unavailable", "connection reset")
    assert failed.status is SessionStatus.FAILED
    assert not failed.has_payload
    assert failed.structured_payload is None
    assert failed.report == "x\n"


def test_timestamps_are_timezone_aware():
    session = _session()
    assert session.created_at.tzinfo is not None
    updated = reducer.apply(session, StreamUpdate(raw_text="hi"))
    assert updated.updated_at.tzinfo is not None
    assert updated.updated_at >= session.created_at
