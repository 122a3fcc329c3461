"""Tests for raw stream chunk normalization."""

from types import SimpleNamespace

from core.streaming.events import TokenEvent, ToolCallEvent, ValuesEvent
from core.streaming.router import StreamNormalizer
from tests.fakes.agent import ai, human, token, tool_call_chunk, values


def _feed(normalizer, *chunks):
    events = []
    for mode, data in chunks:
        events.extend(normalizer.feed(mode, data))
    return events


def test_tokens_without_ids_share_one_message_id():
    events = _feed(StreamNormalizer(), token("Hel"), token("lo"))

    assert all(isinstance(e, TokenEvent) for e in events)
    assert len({e.message_id for e in events}) == 1
    assert "".join(e.token for e in events) == "Hello"


def test_explicit_chunk_id_wins():
    events = _feed(StreamNormalizer(), token("a", "run-1"), token("b"))
    assert [e.message_id for e in events] == ["run-1", "run-1"]


def test_values_snapshot_resets_current_id():
    normalizer = StreamNormalizer()
    first = _feed(normalizer, token("Hi"))
    _feed(normalizer, values(human("q"), ai("Hi", "m-1")))
    second = _feed(normalizer, token("Next"))

    assert first[0].message_id != second[0].message_id


def test_values_emits_each_ai_message_once():
    normalizer = StreamNormalizer()
    snapshot = values(human("q"), ai("Answer", "m-1"))

    first = _feed(normalizer, snapshot)
    again = _feed(normalizer, snapshot)

    assert isinstance(first[0], ValuesEvent)
    assert [m["id"] for m in first[0].messages] == ["m-1"]
    assert again[0].messages == []


def test_tool_only_message_is_not_surfaced():
    normalizer = StreamNormalizer()
    tool_turn = ai("", "m-2", tool_calls=[{"id": "c1", "name": "ls", "args": {"path": "/"}}])

    events = _feed(normalizer, values(human("q"), tool_turn))

    assert events[0].messages == []


def test_tool_call_chunks_tagged_with_current_message():
    normalizer = StreamNormalizer()
    events = _feed(normalizer, token("Let me look", "m-3"), tool_call_chunk("read_file", '{"file_path": "/a"}'))

    tool_event = events[-1]
    assert isinstance(tool_event, ToolCallEvent)
    assert tool_event.message_id == "m-3"
    assert tool_event.tool_calls[0]["name"] == "read_file"


def test_values_carries_state_and_interrupt():
    interrupt = SimpleNamespace(
        id="int-1",
        value={
            "action_requests": [{"name": "write_file", "args": {"file_path": "/a.txt"}, "description": "Write?"}],
            "review_configs": [{"action_name": "write_file", "allowed_decisions": ["approve", "edit", "reject"]}],
        },
    )
    state = {
        "messages": [],
        "todos": [{"content": "plan", "status": "pending"}],
        "workspace_path": "/tmp/ws",
        "__interrupt__": [interrupt],
    }

    (event,) = StreamNormalizer().feed("values", state)

    assert event.todos == state["todos"]
    assert event.workspace_path == "/tmp/ws"
    assert event.interrupt["id"] == "int-1"
    assert event.interrupt["tool_call"] == {"id": "int-1", "name": "write_file", "args": {"file_path": "/a.txt"}}
    assert event.interrupt["description"] == "Write?"


def test_non_ai_message_chunks_are_ignored():
    normalizer = StreamNormalizer()
    assert normalizer.feed("messages", (human("hi"), {})) == []
    assert normalizer.feed("updates", {"model": {}}) == []
