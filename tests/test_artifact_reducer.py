from analyst_chat.artifact import ArtifactReducer
from analyst_chat.schemas import DeltaEnvelope, SuggestionRecord


def _deltas(*pairs):
    return [DeltaEnvelope(type=t, content=c) for t, c in pairs]


def test_sequence_ends_idle_with_accumulated_text():
    reducer = ArtifactReducer()
    buffer = _deltas(("id", "d1"), ("kind", "text"), ("text-delta", "A"), ("text-delta", "B"), ("finish", ""))
    assert reducer.consume(buffer) == 5
    assert reducer.state == "idle"
    assert reducer.document.content == "AB"
    assert reducer.document.id == "d1"
    assert reducer.document.kind == "text"


def test_replaying_seen_buffer_applies_nothing():
    reducer = ArtifactReducer()
    buffer = _deltas(("id", "d1"), ("kind", "text"), ("text-delta", "A"), ("text-delta", "B"), ("finish", ""))
    reducer.consume(buffer)
    assert reducer.cursor == 4
    before = reducer.document
    assert reducer.consume(buffer) == 0
    assert reducer.document == before


def test_growing_buffer_applies_only_new_items():
    reducer = ArtifactReducer()
    buffer = _deltas(("id", "d1"), ("text-delta", "A"))
    reducer.consume(buffer)
    buffer += _deltas(("text-delta", "B"))
    assert reducer.consume(buffer) == 1
    assert reducer.document.content == "AB"
    assert reducer.state == "streaming"


def test_clear_resets_content_only():
    reducer = ArtifactReducer()
    reducer.consume(
        _deltas(("id", "d1"), ("title", "Notes"), ("kind", "text"), ("text-delta", "old"), ("clear", ""))
    )
    doc = reducer.document
    assert doc.content == ""
    assert (doc.id, doc.title, doc.kind) == ("d1", "Notes", "text")


def test_code_and_sheet_deltas_replace_content():
    reducer = ArtifactReducer()
    reducer.consume(
        _deltas(("id", "c1"), ("kind", "code"), ("code-delta", "print("), ("code-delta", "print('hi')"))
    )
    assert reducer.document.content == "print('hi')"


def test_wire_dicts_are_accepted():
    reducer = ArtifactReducer()
    reducer.consume([{"type": "id", "content": "d9"}, {"type": "text-delta", "content": "x"}])
    assert reducer.document.id == "d9"
    assert reducer.document.content == "x"


def test_new_id_after_finish_starts_a_fresh_document():
    reducer = ArtifactReducer()
    buffer = _deltas(("id", "d1"), ("title", "First"), ("text-delta", "A"), ("finish", ""))
    reducer.consume(buffer)
    buffer += _deltas(("id", "d2"), ("title", "Second"))
    assert reducer.consume(buffer) == 2
    assert reducer.document.id == "d2"
    assert reducer.document.title == "Second"
    assert reducer.document.content == ""
    assert reducer.state == "streaming"


def test_update_after_finish_reopens_same_document():
    reducer = ArtifactReducer()
    buffer = _deltas(("id", "d1"), ("text-delta", "A"), ("finish", ""))
    reducer.consume(buffer)
    assert reducer.state == "idle"
    buffer += _deltas(("clear", ""), ("text-delta", "B"))
    assert reducer.consume(buffer) == 2
    assert reducer.document.id == "d1"
    assert reducer.document.content == "B"
    assert reducer.state == "streaming"


def test_suggestion_routed_to_kind_hook():
    reducer = ArtifactReducer()
    reducer.consume(_deltas(("id", "d1"), ("kind", "text"), ("text-delta", "Hello"), ("finish", "")))
    record = SuggestionRecord(
        id="s1", documentId="d1", originalText="Hello", suggestedText="Hello there", description="Warmer"
    )
    reducer.apply(DeltaEnvelope(type="suggestion", content=record))
    assert reducer.document.suggestions == [record]
    assert reducer.state == "idle"


def test_suggestion_ignored_for_kinds_without_hook():
    reducer = ArtifactReducer()
    reducer.consume(_deltas(("id", "c1"), ("kind", "code"), ("finish", "")))
    record = SuggestionRecord(id="s1", documentId="c1", originalText="a", suggestedText="b")
    reducer.apply(DeltaEnvelope(type="suggestion", content=record))
    assert reducer.document.suggestions == []


def test_reset_returns_to_absent():
    reducer = ArtifactReducer()
    reducer.consume(_deltas(("id", "d1")))
    reducer.reset()
    assert reducer.state == "absent"
    assert reducer.cursor == -1
