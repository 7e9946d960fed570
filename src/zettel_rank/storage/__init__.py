"""Storage layer: reading notes from the filesystem."""

from zettel_rank.storage.corpus_loader import Corpus, iter_note_paths, load_corpus
from zettel_rank.storage.markdown_parser import MarkdownParser

__all__ = [
    "Corpus",
    "MarkdownParser",
    "iter_note_paths",
    "load_corpus",
]
