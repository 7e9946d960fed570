"""Data models for zettel-rank."""

import datetime
import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Annotated, Any, Dict, List, Literal, Optional, Set, Tuple, Union

from pydantic import BaseModel, Field, field_validator

# ---------------------------------------------------------------------------
# Frontmatter values
# ---------------------------------------------------------------------------


class StringValue(BaseModel):
    """A string frontmatter value (also used for YAML dates)."""

    kind: Literal["String"] = "String"
    value: str

    model_config = {"frozen": True}

    def to_tagged(self) -> Dict[str, Any]:
        return {self.kind: self.value}


class IntegerValue(BaseModel):
    """An integer frontmatter value."""

    kind: Literal["Integer"] = "Integer"
    value: int

    model_config = {"frozen": True}

    def to_tagged(self) -> Dict[str, Any]:
        return {self.kind: self.value}


class RealValue(BaseModel):
    """A floating point frontmatter value."""

    kind: Literal["Real"] = "Real"
    value: float

    model_config = {"frozen": True}

    def to_tagged(self) -> Dict[str, Any]:
        # JSON has no NaN/inf; keep the shape stable for consumers
        if math.isnan(self.value) or math.isinf(self.value):
            return {self.kind: str(self.value)}
        return {self.kind: self.value}


class BooleanValue(BaseModel):
    """A boolean frontmatter value."""

    kind: Literal["Boolean"] = "Boolean"
    value: bool

    model_config = {"frozen": True}

    def to_tagged(self) -> Dict[str, Any]:
        return {self.kind: self.value}


class NullValue(BaseModel):
    """An explicitly empty frontmatter value (``key:`` or ``key: null``)."""

    kind: Literal["Null"] = "Null"

    model_config = {"frozen": True}

    def to_tagged(self) -> Dict[str, Any]:
        return {self.kind: None}


class ArrayValue(BaseModel):
    """A sequence of frontmatter values."""

    kind: Literal["Array"] = "Array"
    value: Tuple["MetaValue", ...] = ()

    model_config = {"frozen": True}

    def to_tagged(self) -> Dict[str, Any]:
        return {self.kind: [item.to_tagged() for item in self.value]}


MetaValue = Annotated[
    Union[StringValue, IntegerValue, RealValue, BooleanValue, NullValue, ArrayValue],
    Field(discriminator="kind"),
]

ArrayValue.model_rebuild()


class UnsupportedValueError(ValueError):
    """Raised for frontmatter values outside the supported variants."""


def meta_value_from_python(obj: Any, _active: Optional[Set[int]] = None) -> "MetaValue":
    """Convert a value produced by the YAML loader into a MetaValue.

    Raises:
        UnsupportedValueError: For nested mappings, self-referencing
            sequences (``a: &x [*x]``) and unknown types.
    """
    if obj is None:
        return NullValue()
    # bool must be tested before int
    if isinstance(obj, bool):
        return BooleanValue(value=obj)
    if isinstance(obj, int):
        return IntegerValue(value=obj)
    if isinstance(obj, float):
        return RealValue(value=obj)
    if isinstance(obj, str):
        return StringValue(value=obj)
    if isinstance(obj, (datetime.date, datetime.datetime)):
        return StringValue(value=obj.isoformat())
    if isinstance(obj, (list, tuple)):
        active = set() if _active is None else _active
        if id(obj) in active:
            raise UnsupportedValueError("recursive sequences are not supported")
        active.add(id(obj))
        try:
            return ArrayValue(
                value=tuple(meta_value_from_python(item, active) for item in obj)
            )
        finally:
            active.discard(id(obj))
    if isinstance(obj, dict):
        raise UnsupportedValueError("nested mappings are not supported")
    raise UnsupportedValueError(f"unsupported value type {type(obj).__name__}")


def meta_value_to_text(value: "MetaValue") -> str:
    """Render a value as plain text (used for titles and aliases)."""
    if isinstance(value, ArrayValue):
        return ", ".join(meta_value_to_text(item) for item in value.value)
    if isinstance(value, NullValue):
        return ""
    if isinstance(value, BooleanValue):
        return "true" if value.value else "false"
    return str(value.value)


# ---------------------------------------------------------------------------
# Notes and links
# ---------------------------------------------------------------------------


class LinkStyle(str, Enum):
    """Syntax a link was written in."""

    MARKDOWN = "markdown"  # [text](target)
    WIKI = "wiki"  # [[target|alias]]


class LinkToken(BaseModel):
    """A link as written in a note body, before resolution."""

    target: str = Field(..., description="Link target as written (decoded, no fragment)")
    text: str = Field(default="", description="Link label or wikilink alias")
    style: LinkStyle = Field(default=LinkStyle.MARKDOWN)
    line: int = Field(default=0, description="1-based line number in the file")

    model_config = {"frozen": True, "extra": "forbid"}


def validate_note_id(value: str) -> str:
    """Validate that a note id is a relative POSIX path to a Markdown file.

    Raises:
        ValueError: If the id is absolute, escapes the root or is not ``.md``.
    """
    if not value:
        raise ValueError("Note ID cannot be empty")
    if "\\" in value:
        raise ValueError("Note ID must use '/' separators")
    pure = PurePosixPath(value)
    if pure.is_absolute():
        raise ValueError("Note ID must be relative to the corpus root")
    if any(part in ("..", ".") for part in pure.parts):
        raise ValueError("Note ID cannot contain '.' or '..' segments")
    if pure.suffix.lower() != ".md":
        raise ValueError("Note ID must name a Markdown (.md) file")
    return value


class Note(BaseModel):
    """One Markdown file of the corpus."""

    id: str = Field(..., description="Path relative to the corpus root, POSIX style")
    path: Path = Field(..., description="Absolute filesystem location")
    title: str = Field(..., description="Frontmatter title or filename stem")
    metadata: Dict[str, MetaValue] = Field(default_factory=dict)
    body: str = Field(default="", description="Content with frontmatter stripped")
    outbound_links: Tuple[LinkToken, ...] = Field(default=())
    aliases: Tuple[str, ...] = Field(default=())

    model_config = {"frozen": True, "extra": "forbid"}

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Validate that the ID is a safe relative note path."""
        return validate_note_id(v)

    @property
    def stem(self) -> str:
        """Filename without the ``.md`` suffix."""
        return PurePosixPath(self.id).stem

    def display_metadata(self) -> Dict[str, "MetaValue"]:
        """Metadata with a non-empty ``title`` entry always present.

        A missing, null or blank frontmatter title is replaced by the
        derived one.
        """
        stored = self.metadata.get("title")
        if stored is not None and meta_value_to_text(stored).strip():
            return dict(self.metadata)
        return {**self.metadata, "title": StringValue(value=self.title)}

    def to_document_dict(self) -> Dict[str, Any]:
        """Serialize the note for result records."""
        return {
            "id": self.id,
            "path": str(self.path),
            "title": self.title,
            "metadata": {
                key: value.to_tagged()
                for key, value in sorted(self.display_metadata().items())
            },
        }


@dataclass(frozen=True)
class LinkEdge:
    """A resolved link occurrence from one note to another."""

    source_id: str
    target_id: str
    token: LinkToken

    @property
    def is_self_link(self) -> bool:
        return self.source_id == self.target_id


@dataclass(frozen=True)
class UnresolvedLink:
    """A link occurrence whose target matches no note in the corpus."""

    source_id: str
    token: LinkToken


@dataclass(frozen=True)
class LinkRecord:
    """One link occurrence as reported by link lookups."""

    source_id: str
    target: str
    target_id: Optional[str]
    text: str
    style: LinkStyle
    line: int

    @property
    def resolved(self) -> bool:
        return self.target_id is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "target": self.target,
            "target_id": self.target_id,
            "text": self.text,
            "style": self.style.value,
            "line": self.line,
            "resolved": self.resolved,
        }


@dataclass
class LinkSummary:
    """Outbound and inbound links of one note."""

    note_id: Optional[str]
    outbound: List[LinkRecord] = field(default_factory=list)
    inbound: List[LinkRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "note_id": self.note_id,
            "outbound": [record.to_dict() for record in self.outbound],
            "inbound": [record.to_dict() for record in self.inbound],
        }


# ---------------------------------------------------------------------------
# Diagnostics and results
# ---------------------------------------------------------------------------


class DiagnosticKind(str, Enum):
    """Non-fatal conditions observed while building a corpus snapshot."""

    PARSE_ERROR = "parse_error"
    UNRESOLVED_LINK = "unresolved_link"
    SCORER_NON_CONVERGENCE = "scorer_non_convergence"
    UNSUPPORTED_VALUE = "unsupported_value"


@dataclass(frozen=True)
class Diagnostic:
    """A recorded, non-fatal problem."""

    kind: DiagnosticKind
    message: str
    note_id: Optional[str] = None
    path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "note_id": self.note_id,
            "path": self.path,
        }


@dataclass(frozen=True)
class QueryResult:
    """A ranked search hit.

    Attributes:
        note: The matched note.
        text_score: Raw BM25 score (0 for attribute-only queries).
        importance_score: Raw PageRank score of the note.
        combined_score: Ranking value; results are ordered by it, descending.
    """

    note: Note
    text_score: float
    importance_score: float
    combined_score: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "combined_score": self.combined_score,
            "text_score": self.text_score,
            "importance_score": self.importance_score,
            "document": self.note.to_document_dict(),
        }
