"""
zettel-rank - search and link analysis for a Markdown Zettelkasten.

Scans a directory of Markdown notes with YAML frontmatter, resolves the links
between them, ranks notes by their importance in the link graph (PageRank)
and answers full-text queries whose ranking blends BM25 relevance with that
importance. Every invocation rebuilds its state from the files on disk.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("zettel-rank")
except PackageNotFoundError:
    __version__ = "0.3.0"
