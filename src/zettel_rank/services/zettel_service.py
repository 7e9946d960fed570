"""Orchestration of the load, link, score and index pipeline.

Every operation takes the notes directory explicitly and rebuilds its
state from the files on disk; nothing is cached between calls.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from zettel_rank.config import ZettelkastenConfig
from zettel_rank.config import config as default_config
from zettel_rank.models.schema import LinkSummary, QueryResult
from zettel_rank.observability import timed_operation
from zettel_rank.services import note_creator
from zettel_rank.services.importance import ImportanceResult, ImportanceScorer
from zettel_rank.services.link_resolver import LinkGraph, LinkResolver
from zettel_rank.services.search_service import (
    CorpusSnapshot,
    FilterSpec,
    NoteRef,
    SearchService,
)
from zettel_rank.services.text_index import InvertedIndex
from zettel_rank.storage.corpus_loader import Corpus, load_corpus
from zettel_rank.storage.markdown_parser import MarkdownParser

logger = logging.getLogger(__name__)

Directory = Union[str, Path]


class ZettelService:
    """Entry point for every operation on a notes directory."""

    def __init__(self, config: Optional[ZettelkastenConfig] = None):
        self.config = config or default_config
        self.parser = MarkdownParser()

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _score(self, graph: LinkGraph) -> ImportanceResult:
        with timed_operation("score_importance", nodes=len(graph.nodes)) as op:
            scorer = ImportanceScorer(
                damping=self.config.damping,
                tolerance=self.config.tolerance,
                max_iterations=self.config.max_iterations,
            )
            result = scorer.score(graph)
            op["iterations"] = result.iterations
            op["converged"] = result.converged
        return result

    def _index(self, corpus: Corpus) -> InvertedIndex:
        with timed_operation("build_index", notes=len(corpus)) as op:
            index = InvertedIndex.build(corpus, k1=self.config.bm25_k1, b=self.config.bm25_b)
            op["terms"] = len(index.postings)
        return index

    def build_snapshot(self, directory: Directory) -> CorpusSnapshot:
        """Load ``directory`` and derive graph, importance and index.

        Importance scoring and indexing run concurrently; both finish
        before the snapshot is returned.

        Raises:
            CorpusError: If the directory cannot be used.
        """
        corpus = load_corpus(directory, self.config, self.parser)

        with timed_operation("resolve_links", notes=len(corpus)) as op:
            resolver = LinkResolver(corpus)
            graph = resolver.build_graph()
            op["edges"] = len(graph.edges)
            op["unresolved"] = len(graph.unresolved)

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="zettel-rank") as executor:
            importance_future = executor.submit(self._score, graph)
            index_future = executor.submit(self._index, corpus)
            importance = importance_future.result()
            index = index_future.result()

        snapshot = CorpusSnapshot(
            corpus=corpus,
            resolver=resolver,
            graph=graph,
            importance=importance,
            index=index,
        )
        for diagnostic in snapshot.diagnostics:
            logger.debug(f"diagnostic {diagnostic.kind.value}: {diagnostic.message}")
        return snapshot

    def open(self, directory: Directory) -> SearchService:
        """A query engine over a fresh snapshot of ``directory``."""
        return SearchService(self.build_snapshot(directory), self.config)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def search(
        self,
        directory: Directory,
        query_text: Optional[str] = None,
        filters: FilterSpec = None,
        limit: Optional[int] = None,
    ) -> List[QueryResult]:
        """Ranked full-text search; see SearchService.search."""
        engine = self.open(directory)
        with timed_operation("search", query=query_text) as op:
            results = engine.search(query_text, filters, limit)
            op["result_count"] = len(results)
        return results

    def lookup_links(self, directory: Directory, note_ref: NoteRef) -> LinkSummary:
        """Outbound and inbound link occurrences of one note."""
        return self.open(directory).lookup_links(note_ref)

    def backlinks(self, directory: Directory, note_ref: NoteRef) -> List[str]:
        """Ids of the notes linking to ``note_ref``."""
        return self.open(directory).backlinks(note_ref)

    def query(
        self, directory: Directory, filters: FilterSpec, limit: Optional[int] = None
    ) -> List[QueryResult]:
        """Notes matching ``filters``, ordered by importance."""
        engine = self.open(directory)
        with timed_operation("query", filters=filters) as op:
            results = engine.query(filters, limit)
            op["result_count"] = len(results)
        return results

    def list_notes(self, directory: Directory, limit: Optional[int] = None) -> List[QueryResult]:
        """All notes, ordered by importance."""
        return self.open(directory).list_notes(limit)

    def inspect_note(self, directory: Directory, note_ref: NoteRef) -> Optional[Dict[str, Any]]:
        """Details of one note, or None if it is not in the corpus."""
        return self.open(directory).inspect_note(note_ref)

    def status(self, directory: Directory) -> Dict[str, Any]:
        """Snapshot counts and diagnostics for ``directory``."""
        return self.open(directory).status()

    def create_note(
        self,
        directory: Directory,
        name: Optional[str] = None,
        template: Optional[str] = None,
        variables: Optional[Mapping[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> Path:
        """Create a note file from a template; see note_creator.create_note."""
        with timed_operation("create_note", name=name):
            return note_creator.create_note(
                directory,
                name=name,
                template=template if template is not None else self.config.default_note_template,
                variables=variables,
                now=now,
            )
