# tests/test_models.py
"""Tests for the data models used in zettel-rank."""
import datetime
from pathlib import Path

import pytest
from pydantic import ValidationError

from zettel_rank.models.schema import (
    ArrayValue,
    BooleanValue,
    Diagnostic,
    DiagnosticKind,
    IntegerValue,
    LinkRecord,
    LinkStyle,
    LinkToken,
    Note,
    NullValue,
    RealValue,
    StringValue,
    UnsupportedValueError,
    meta_value_from_python,
    meta_value_to_text,
)


class TestMetaValues:
    """Tests for frontmatter value conversion."""

    def test_scalars(self):
        assert meta_value_from_python("x") == StringValue(value="x")
        assert meta_value_from_python(3) == IntegerValue(value=3)
        assert meta_value_from_python(2.5) == RealValue(value=2.5)
        assert meta_value_from_python(None) == NullValue()

    def test_bool_is_not_integer(self):
        assert meta_value_from_python(True) == BooleanValue(value=True)

    def test_dates_become_strings(self):
        assert meta_value_from_python(datetime.date(2024, 1, 2)) == StringValue(value="2024-01-02")

    def test_nested_arrays(self):
        value = meta_value_from_python([1, ["a", None]])
        assert value.to_tagged() == {
            "Array": [{"Integer": 1}, {"Array": [{"String": "a"}, {"Null": None}]}]
        }

    def test_nested_mapping_unsupported(self):
        with pytest.raises(UnsupportedValueError):
            meta_value_from_python({"a": 1})
        with pytest.raises(UnsupportedValueError):
            meta_value_from_python([{"a": 1}])

    def test_self_referencing_sequence_unsupported(self):
        looped = []
        looped.append(looped)
        with pytest.raises(UnsupportedValueError):
            meta_value_from_python(looped)

    def test_shared_sequence_is_not_a_cycle(self):
        """The same list reached twice through anchors is fine."""
        shared = ["x"]
        value = meta_value_from_python([shared, shared])
        assert meta_value_to_text(value) == "x, x"

    def test_non_finite_real_stays_serializable(self):
        assert RealValue(value=float("inf")).to_tagged() == {"Real": "inf"}

    def test_to_text(self):
        assert meta_value_to_text(meta_value_from_python(["a", 1, True])) == "a, 1, true"
        assert meta_value_to_text(NullValue()) == ""

    def test_discriminated_round_trip(self):
        """Values parse back from their own model_dump."""
        note = Note(
            id="n.md",
            path=Path("/v/n.md"),
            title="n",
            metadata={"tags": ArrayValue(value=(StringValue(value="a"),))},
        )
        assert Note.model_validate(note.model_dump()) == note


class TestNote:
    """Tests for the Note model."""

    def test_display_metadata_adds_title(self):
        note = Note(id="dir/stem.md", path=Path("/v/dir/stem.md"), title="stem")
        assert note.stem == "stem"
        assert note.display_metadata() == {"title": StringValue(value="stem")}
        assert note.metadata == {}

    def test_frontmatter_title_kept(self):
        note = Note(
            id="a.md",
            path=Path("/v/a.md"),
            title="Real",
            metadata={"title": StringValue(value="Real"), "b": IntegerValue(value=1)},
        )
        document = note.to_document_dict()
        assert list(document["metadata"]) == ["b", "title"]
        assert document["title"] == "Real"

    @pytest.mark.parametrize("stored", [NullValue(), StringValue(value="  ")])
    def test_blank_frontmatter_title_replaced(self, stored):
        note = Note(id="n.md", path=Path("/v/n.md"), title="n", metadata={"title": stored})
        assert note.display_metadata() == {"title": StringValue(value="n")}
        assert note.metadata == {"title": stored}

    @pytest.mark.parametrize(
        "note_id", ["", "/abs.md", "../up.md", "a/../b.md", "a\\b.md", "notes.txt"]
    )
    def test_invalid_ids(self, note_id):
        with pytest.raises(ValidationError):
            Note(id=note_id, path=Path("/v/x.md"), title="x")

    def test_frozen(self):
        note = Note(id="a.md", path=Path("/v/a.md"), title="a")
        with pytest.raises(ValidationError):
            note.title = "b"


class TestLinks:
    """Tests for link and diagnostic records."""

    def test_link_token_defaults(self):
        token = LinkToken(target="b.md")
        assert token.style == LinkStyle.MARKDOWN
        assert token.text == ""

    def test_link_record_dict(self):
        record = LinkRecord(
            source_id="a.md", target="x", target_id=None, text="", style=LinkStyle.WIKI, line=4
        )
        assert record.to_dict() == {
            "source_id": "a.md",
            "target": "x",
            "target_id": None,
            "text": "",
            "style": "wiki",
            "line": 4,
            "resolved": False,
        }

    def test_diagnostic_dict(self):
        diagnostic = Diagnostic(kind=DiagnosticKind.PARSE_ERROR, message="bad", path="x.md")
        assert diagnostic.to_dict() == {
            "kind": "parse_error",
            "message": "bad",
            "note_id": None,
            "path": "x.md",
        }
