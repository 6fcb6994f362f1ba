# tests/test_highlight_store.py

import pytest

from src.domain.errors import InvalidInputError
from src.domain.models import Highlight
from src.infrastructure.highlight_store import SqlHighlightStore


@pytest.fixture
def store(tmp_path):
    s = SqlHighlightStore(tmp_path / "db" / "highlights.db")
    yield s
    s.close()


def _highlight(hid: str, document_id: str = "d1", text: str = "note") -> Highlight:
    return Highlight(
        highlight_id=hid,
        document_id=document_id,
        text=text,
        page_number=2,
        comment="check this",
        position={"pageNumber": 2, "boundingRect": {"x1": 1, "y1": 2, "x2": 3, "y2": 4}},
    )


def test_unknown_document_has_no_highlights(store):
    assert store.get_by_document("nothing") == []


def test_replace_round_trips_position_payload(store):
    store.replace_for_document("d1", [_highlight("h1"), _highlight("h2")])

    loaded = store.get_by_document("d1")

    assert [h.highlight_id for h in loaded] == ["h1", "h2"]
    assert loaded[0].position["boundingRect"]["x2"] == 3
    assert loaded[0].comment == "check this"
    assert loaded[0].document_id == "d1"


def test_replace_removes_highlights_not_in_new_set(store):
    store.replace_for_document("d1", [_highlight("h1"), _highlight("h2")])
    store.replace_for_document("d2", [_highlight("h3", "d2")])

    store.replace_for_document("d1", [_highlight("h2", text="edited")])

    assert [(h.highlight_id, h.text) for h in store.get_by_document("d1")] == [("h2", "edited")]
    assert [h.highlight_id for h in store.get_by_document("d2")] == ["h3"]


def test_replace_with_empty_list_clears_document(store):
    store.replace_for_document("d1", [_highlight("h1")])
    store.replace_for_document("d1", [])
    assert store.get_by_document("d1") == []


def test_upsert_inserts_and_updates_by_id(store):
    store.upsert([_highlight("h1", text="first")])
    store.upsert([_highlight("h1", text="second"), _highlight("h2", "d2")])

    assert [h.text for h in store.get_by_document("d1")] == ["second"]
    assert [h.highlight_id for h in store.get_by_document("d2")] == ["h2"]


def test_data_survives_reopen(tmp_path):
    path = tmp_path / "highlights.db"
    first = SqlHighlightStore(path)
    first.replace_for_document("d1", [_highlight("h1")])
    first.close()

    second = SqlHighlightStore(path)
    assert [h.highlight_id for h in second.get_by_document("d1")] == ["h1"]
    second.close()


def test_invalid_payloads_are_rejected(store):
    with pytest.raises(InvalidInputError):
        store.replace_for_document("", [])
    with pytest.raises(InvalidInputError):
        store.replace_for_document("d1", [_highlight("")])
    with pytest.raises(InvalidInputError):
        store.upsert([_highlight("h1", document_id="")])
