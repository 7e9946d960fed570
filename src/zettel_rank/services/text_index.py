"""Full-text index over note titles and bodies, scored with BM25."""
import logging
import math
import re
import unicodedata
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from zettel_rank.models.schema import Note
from zettel_rank.storage.markdown_parser import FENCED_CODE_RE, WIKILINK_RE

logger = logging.getLogger(__name__)

# Word characters minus underscore, so snake_case splits into words
_TOKEN_RE = re.compile(r"[^\W_]+")
_HTML_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
_IMAGE_OR_LINK_RE = re.compile(r"!?\[((?:[^\[\]\\]|\\.)*)\]\([^)\n]*\)")
_EMBED_PREFIX_RE = re.compile(r"!(?=\[\[)")
_QUOTED_RE = re.compile(r'"([^"]*)"')


def tokenize(text: str) -> List[str]:
    """Split text into normalized terms.

    Text is NFKC-normalized and case-folded; terms are maximal runs of
    letters and digits.
    """
    return _TOKEN_RE.findall(unicodedata.normalize("NFKC", text).casefold())


def _wikilink_label(match: "re.Match[str]") -> str:
    target, _, alias = match.group("inner").partition("|")
    return alias.strip() or target.split("#", 1)[0].strip()


def plain_text(note: Note) -> str:
    """Searchable text of a note: its title followed by the reduced body.

    Fenced code and HTML comments are removed; images and links are
    replaced by their label, wikilinks by their alias or target.
    """
    body = FENCED_CODE_RE.sub("\n", note.body)
    body = _HTML_COMMENT_RE.sub(" ", body)
    body = _EMBED_PREFIX_RE.sub("", body)
    body = WIKILINK_RE.sub(_wikilink_label, body)
    body = _IMAGE_OR_LINK_RE.sub(lambda m: m.group(1), body)
    return f"{note.title}\n{body}"


@dataclass(frozen=True)
class Posting:
    """Occurrences of one term in one note."""

    note_id: str
    term_frequency: int
    positions: Tuple[int, ...]


@dataclass
class TextQuery:
    """A parsed search string.

    Attributes:
        terms: Term to weight, the weight being how often the term occurs
            in the query (phrase terms included).
        phrases: Token sequences that must occur adjacently.
    """

    terms: Dict[str, int] = field(default_factory=dict)
    phrases: List[Tuple[str, ...]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.terms


def parse_text_query(text: Optional[str]) -> TextQuery:
    """Parse a search string into weighted terms and quoted phrases.

    An unbalanced quote is ignored.
    """
    if not text:
        return TextQuery()
    phrases: List[Tuple[str, ...]] = []
    for match in _QUOTED_RE.finditer(text):
        tokens = tuple(tokenize(match.group(1)))
        if len(tokens) > 1:
            phrases.append(tokens)
    counts = Counter(tokenize(text))
    return TextQuery(terms=dict(sorted(counts.items())), phrases=phrases)


class InvertedIndex:
    """Term to postings map with the document statistics BM25 needs.

    Postings of each term are ordered by note id.
    """

    def __init__(self, k1: float = 1.6, b: float = 0.75):
        self.k1 = k1
        self.b = b
        self.postings: Dict[str, List[Posting]] = {}
        self.doc_lengths: Dict[str, int] = {}
        self.avg_doc_length: float = 0.0
        self._positions: Dict[str, Dict[str, Tuple[int, ...]]] = {}

    @classmethod
    def build(cls, notes: Iterable[Note], k1: float = 1.6, b: float = 0.75) -> "InvertedIndex":
        """Index every note's plain text."""
        index = cls(k1=k1, b=b)
        positions: Dict[str, Dict[str, List[int]]] = {}
        for note in sorted(notes, key=lambda n: n.id):
            tokens = tokenize(plain_text(note))
            index.doc_lengths[note.id] = len(tokens)
            for offset, term in enumerate(tokens):
                positions.setdefault(term, {}).setdefault(note.id, []).append(offset)

        for term in sorted(positions):
            by_note = positions[term]
            index.postings[term] = [
                Posting(note_id=note_id, term_frequency=len(pos), positions=tuple(pos))
                for note_id, pos in sorted(by_note.items())
            ]
            index._positions[term] = {
                p.note_id: p.positions for p in index.postings[term]
            }

        if index.doc_lengths:
            index.avg_doc_length = sum(index.doc_lengths.values()) / len(index.doc_lengths)
        logger.debug(
            f"Indexed {index.document_count} notes, {len(index.postings)} terms, "
            f"avg length {index.avg_doc_length:.1f}"
        )
        return index

    @property
    def document_count(self) -> int:
        return len(self.doc_lengths)

    def document_frequency(self, term: str) -> int:
        return len(self.postings.get(term, ()))

    def idf(self, term: str) -> float:
        """BM25 idf, ``ln((N - n + 0.5) / (n + 0.5) + 1)``; always positive."""
        n = self.document_frequency(term)
        return math.log((self.document_count - n + 0.5) / (n + 0.5) + 1.0)

    def contains_phrase(self, note_id: str, phrase: Sequence[str]) -> bool:
        """True when the terms of ``phrase`` occur at consecutive positions."""
        if not phrase:
            return True
        per_term = []
        for term in phrase:
            pos = self._positions.get(term, {}).get(note_id)
            if not pos:
                return False
            per_term.append(set(pos))
        return any(
            all(start + i in per_term[i] for i in range(1, len(phrase)))
            for start in per_term[0]
        )

    def score(self, query: TextQuery) -> Dict[str, float]:
        """BM25 score of every note matching at least one query term.

        Notes that miss any quoted phrase are left out. Returned scores are
        all positive.
        """
        if query.is_empty or not self.document_count:
            return {}
        avg = self.avg_doc_length or 1.0
        scores: Dict[str, float] = {}
        for term, weight in query.terms.items():
            postings = self.postings.get(term)
            if not postings:
                continue
            idf = self.idf(term)
            for posting in postings:
                tf = posting.term_frequency
                norm = self.k1 * (1.0 - self.b + self.b * self.doc_lengths[posting.note_id] / avg)
                contribution = weight * idf * tf * (self.k1 + 1.0) / (tf + norm)
                scores[posting.note_id] = scores.get(posting.note_id, 0.0) + contribution

        if query.phrases:
            scores = {
                note_id: value
                for note_id, value in scores.items()
                if all(self.contains_phrase(note_id, phrase) for phrase in query.phrases)
            }
        return {note_id: value for note_id, value in scores.items() if value > 0.0}
