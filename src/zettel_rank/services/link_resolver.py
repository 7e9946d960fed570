"""Resolution of raw link tokens to note ids, and the resulting link graph."""
import logging
import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from zettel_rank.models.schema import (
    Diagnostic,
    DiagnosticKind,
    LinkEdge,
    LinkToken,
    UnresolvedLink,
)
from zettel_rank.storage.corpus_loader import NOTE_SUFFIX, Corpus

logger = logging.getLogger(__name__)


@dataclass
class LinkGraph:
    """Resolved links of one corpus snapshot.

    Attributes:
        nodes: Every note id, sorted.
        edges: One LinkEdge per resolved occurrence; sources in id order,
            occurrences in document order within a source.
        unresolved: Occurrences that matched no note.
        arcs: Distinct (source, target) pairs used for centrality, self
            links excluded, sorted.
        reverse: Target id to the edges pointing at it, in ``edges`` order.
    """

    nodes: List[str] = field(default_factory=list)
    edges: List[LinkEdge] = field(default_factory=list)
    unresolved: List[UnresolvedLink] = field(default_factory=list)
    arcs: List[Tuple[str, str]] = field(default_factory=list)
    reverse: Dict[str, List[LinkEdge]] = field(default_factory=dict)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def inbound(self, note_id: str) -> List[LinkEdge]:
        return list(self.reverse.get(note_id, ()))

    def unresolved_from(self, note_id: str) -> List[UnresolvedLink]:
        return [link for link in self.unresolved if link.source_id == note_id]


def _normalize(path: str) -> Optional[str]:
    """Collapse ``.``/``..`` segments; None if the path leaves the root."""
    if not path:
        return None
    normalized = posixpath.normpath(path)
    if normalized in (".", "..") or normalized.startswith("../"):
        return None
    return normalized


def _casefold_key(value: str) -> str:
    return value.strip().casefold()


class LinkResolver:
    """Maps link tokens onto the notes of a corpus.

    First tier with a match wins; within a name-based tier the smallest
    note id wins:

    1. path relative to the linking note's directory
    2. path relative to the corpus root
    3. the same two paths with ``.md`` appended
    4. filename stem, case-insensitive
    5. title, case-insensitive
    6. alias, case-insensitive
    """

    def __init__(self, corpus: Corpus):
        self.corpus = corpus
        self._ids = set(corpus.notes)
        self._by_stem = self._index(corpus, lambda note: [note.stem])
        self._by_title = self._index(corpus, lambda note: [note.title])
        self._by_alias = self._index(corpus, lambda note: list(note.aliases))

    @staticmethod
    def _index(corpus: Corpus, keys) -> Dict[str, str]:
        # Notes iterate in id order, so the first id stored is the smallest
        index: Dict[str, str] = {}
        for note in corpus:
            for key in keys(note):
                folded = _casefold_key(key)
                if folded and folded not in index:
                    index[folded] = note.id
        return index

    def resolve_target(self, target: str, source_id: Optional[str] = None) -> Optional[str]:
        """Resolve a raw target string as written in ``source_id``.

        With no source the corpus root is the base directory.
        """
        target = target.strip()
        if not target:
            return None

        base = posixpath.dirname(source_id) if source_id else ""
        paths = [target.lstrip("/")]
        if not target.startswith("/"):
            paths.insert(0, posixpath.join(base, target))
        if not posixpath.splitext(target)[1]:
            paths += [path + NOTE_SUFFIX for path in paths]
        for candidate in paths:
            normalized = _normalize(candidate)
            if normalized is not None and normalized in self._ids:
                return normalized

        name = posixpath.basename(target.rstrip("/"))
        if name.lower().endswith(NOTE_SUFFIX):
            name = name[: -len(NOTE_SUFFIX)]
        note_id = self._by_stem.get(_casefold_key(name))
        if note_id is not None:
            return note_id

        folded = _casefold_key(target)
        return self._by_title.get(folded) or self._by_alias.get(folded)

    def resolve(self, token: LinkToken, source_id: Optional[str] = None) -> Optional[str]:
        """Resolve one link token; None when no note matches."""
        return self.resolve_target(token.target, source_id)

    def resolve_reference(self, ref: Union[str, Path]) -> Optional[str]:
        """Resolve a user-supplied note reference.

        Accepts a note id, an absolute path inside the corpus, a path
        relative to the root, or anything a link could say.
        """
        text = str(ref).strip()
        if not text:
            return None
        if text in self._ids:
            return text
        path = Path(text).expanduser()
        if path.is_absolute():
            try:
                rel = path.resolve().relative_to(self.corpus.root).as_posix()
            except ValueError:
                return None
            return rel if rel in self._ids else None
        return self.resolve_target(text.replace("\\", "/"))

    def build_graph(self) -> LinkGraph:
        """Resolve every outbound link of every note into a LinkGraph."""
        graph = LinkGraph(nodes=sorted(self._ids))
        arcs = set()

        for note in self.corpus:
            for token in note.outbound_links:
                target_id = self.resolve(token, note.id)
                if target_id is None:
                    graph.unresolved.append(UnresolvedLink(source_id=note.id, token=token))
                    graph.diagnostics.append(
                        Diagnostic(
                            kind=DiagnosticKind.UNRESOLVED_LINK,
                            message=f"Unresolved link '{token.target}' on line {token.line}",
                            note_id=note.id,
                        )
                    )
                    continue
                edge = LinkEdge(source_id=note.id, target_id=target_id, token=token)
                graph.edges.append(edge)
                graph.reverse.setdefault(target_id, []).append(edge)
                if not edge.is_self_link:
                    arcs.add((note.id, target_id))

        graph.arcs = sorted(arcs)
        if graph.unresolved:
            logger.info(
                f"{len(graph.unresolved)} unresolved link(s) across "
                f"{len({u.source_id for u in graph.unresolved})} note(s)"
            )
        logger.debug(
            f"Link graph: {len(graph.nodes)} nodes, {len(graph.edges)} edges, "
            f"{len(graph.arcs)} arcs"
        )
        return graph
