"""Query engine: ranked search, attribute queries and link lookups."""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from zettel_rank.config import ZettelkastenConfig
from zettel_rank.config import config as default_config
from zettel_rank.exceptions import ValidationError
from zettel_rank.models.schema import (
    Diagnostic,
    LinkRecord,
    LinkSummary,
    LinkToken,
    Note,
    QueryResult,
)
from zettel_rank.services.filters import Filter, parse_filters
from zettel_rank.services.importance import ImportanceResult
from zettel_rank.services.link_resolver import LinkGraph, LinkResolver
from zettel_rank.services.text_index import InvertedIndex, parse_text_query
from zettel_rank.storage.corpus_loader import Corpus

logger = logging.getLogger(__name__)

# Combined scores are rounded so float noise cannot reorder ties
SCORE_DECIMALS = 12

FilterSpec = Union[None, str, Sequence[str], Filter]
NoteRef = Union[str, Path]


@dataclass
class CorpusSnapshot:
    """Everything derived from one Corpus: graph, importance and index."""

    corpus: Corpus
    resolver: LinkResolver
    graph: LinkGraph
    importance: ImportanceResult
    index: InvertedIndex

    @property
    def diagnostics(self) -> List[Diagnostic]:
        """Parse, link and scoring diagnostics, in pipeline order."""
        return (
            list(self.corpus.diagnostics)
            + list(self.graph.diagnostics)
            + list(self.importance.diagnostics)
        )


class SearchService:
    """Answers queries against a single corpus snapshot."""

    def __init__(
        self,
        snapshot: CorpusSnapshot,
        config: Optional[ZettelkastenConfig] = None,
    ):
        self.snapshot = snapshot
        self.config = config or default_config

    @property
    def corpus(self) -> Corpus:
        return self.snapshot.corpus

    def resolve_reference(self, ref: NoteRef) -> Optional[str]:
        """Note id for a user-supplied reference, or None."""
        return self.snapshot.resolver.resolve_reference(ref)

    def get_note(self, ref: NoteRef) -> Optional[Note]:
        note_id = self.resolve_reference(ref)
        return self.corpus.get(note_id) if note_id else None

    # ------------------------------------------------------------------
    # Ranked retrieval
    # ------------------------------------------------------------------

    def search(
        self,
        query_text: Optional[str] = None,
        filters: FilterSpec = None,
        limit: Optional[int] = None,
    ) -> List[QueryResult]:
        """Rank notes by text relevance blended with importance.

        Filters pre-select the candidates. With search terms, candidates
        that match no term (or miss a quoted phrase) are dropped, and each
        remaining note scores::

            text_weight * text / max_text + (1 - text_weight) * importance / max_importance

        where both maxima are taken over the candidates. Without terms the
        score is the normalized importance alone.

        Args:
            query_text: Free text; quoted parts must match as phrases.
            filters: Filter expression(s), AND-ed, or a parsed Filter.
            limit: Maximum number of results, all when None.

        Raises:
            QueryError: If a filter expression is invalid.
            ValidationError: If ``limit`` is negative.
        """
        if limit is not None and limit < 0:
            raise ValidationError("limit must be >= 0", field="limit", value=limit)

        predicate = filters if isinstance(filters, Filter) else parse_filters(filters)
        candidates = [note for note in self.corpus if predicate.matches(note)]

        text_query = parse_text_query(query_text)
        text_scores: Dict[str, float] = {}
        if not text_query.is_empty:
            text_scores = self.snapshot.index.score(text_query)
            candidates = [note for note in candidates if text_scores.get(note.id, 0.0) > 0.0]

        importance = self.snapshot.importance
        max_text = max((text_scores.get(n.id, 0.0) for n in candidates), default=0.0)
        max_importance = max((importance.get(n.id) for n in candidates), default=0.0)
        weight = self.config.text_weight

        results = []
        for note in candidates:
            text_score = text_scores.get(note.id, 0.0)
            importance_score = importance.get(note.id)
            importance_norm = importance_score / max_importance if max_importance > 0 else 0.0
            if text_query.is_empty:
                combined = importance_norm
            else:
                text_norm = text_score / max_text if max_text > 0 else 0.0
                combined = weight * text_norm + (1.0 - weight) * importance_norm
            results.append(
                QueryResult(
                    note=note,
                    text_score=text_score,
                    importance_score=importance_score,
                    combined_score=round(combined, SCORE_DECIMALS),
                )
            )

        results.sort(key=lambda r: (-r.combined_score, r.note.id))
        if limit is not None:
            results = results[:limit]
        logger.debug(
            f"search terms={sorted(text_query.terms)} phrases={len(text_query.phrases)} "
            f"candidates={len(candidates)} returned={len(results)}"
        )
        return results

    def query(self, filters: FilterSpec, limit: Optional[int] = None) -> List[QueryResult]:
        """Notes matching ``filters``, ordered by importance."""
        return self.search(None, filters, limit)

    def list_notes(self, limit: Optional[int] = None) -> List[QueryResult]:
        """Every note, ordered by importance."""
        return self.search(None, None, limit)

    # ------------------------------------------------------------------
    # Links
    # ------------------------------------------------------------------

    def backlinks(self, ref: NoteRef) -> List[str]:
        """Distinct ids of notes linking to ``ref``, sorted.

        A note appears in its own backlinks only if it links to itself.
        Unknown references give an empty list.
        """
        note_id = self.resolve_reference(ref)
        if note_id is None:
            return []
        return sorted({edge.source_id for edge in self.snapshot.graph.inbound(note_id)})

    def outbound(self, ref: NoteRef) -> List[LinkRecord]:
        """Links written in ``ref``, in document order, unresolved ones included."""
        note = self.get_note(ref)
        if note is None:
            return []
        resolver = self.snapshot.resolver
        return [
            self._record(note.id, token, resolver.resolve(token, note.id))
            for token in note.outbound_links
        ]

    def inbound(self, ref: NoteRef) -> List[LinkRecord]:
        """Link occurrences pointing at ``ref``, in source id order."""
        note_id = self.resolve_reference(ref)
        if note_id is None:
            return []
        return [
            self._record(edge.source_id, edge.token, edge.target_id)
            for edge in self.snapshot.graph.inbound(note_id)
        ]

    def lookup_links(self, ref: NoteRef) -> LinkSummary:
        """Every link occurrence leaving and entering ``ref``."""
        note_id = self.resolve_reference(ref)
        if note_id is None:
            return LinkSummary(note_id=None)
        return LinkSummary(
            note_id=note_id, outbound=self.outbound(note_id), inbound=self.inbound(note_id)
        )

    @staticmethod
    def _record(source_id: str, token: LinkToken, target_id: Optional[str]) -> LinkRecord:
        return LinkRecord(
            source_id=source_id,
            target=token.target,
            target_id=target_id,
            text=token.text,
            style=token.style,
            line=token.line,
        )

    def inspect_note(self, ref: NoteRef) -> Optional[Dict[str, Any]]:
        """Document, scores and link counts of one note, or None if unknown."""
        note = self.get_note(ref)
        if note is None:
            return None
        summary = self.lookup_links(note.id)
        importance = self.snapshot.importance
        ranked = [r.note.id for r in self.list_notes()]
        return {
            "document": note.to_document_dict(),
            "aliases": list(note.aliases),
            "importance_score": importance.get(note.id),
            "importance_rank": ranked.index(note.id) + 1,
            "outbound_count": len(summary.outbound),
            "unresolved_count": sum(1 for r in summary.outbound if not r.resolved),
            "inbound_count": len(summary.inbound),
            "backlinks": self.backlinks(note.id),
        }

    def status(self) -> Dict[str, Any]:
        """Counts describing the snapshot."""
        importance = self.snapshot.importance
        return {
            "root": str(self.corpus.root),
            "note_count": len(self.corpus),
            "edge_count": len(self.snapshot.graph.edges),
            "unresolved_count": len(self.snapshot.graph.unresolved),
            "term_count": len(self.snapshot.index.postings),
            "pagerank_iterations": importance.iterations,
            "pagerank_converged": importance.converged,
            "diagnostics": [d.to_dict() for d in self.snapshot.diagnostics],
        }
