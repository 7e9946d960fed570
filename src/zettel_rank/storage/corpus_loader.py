"""Corpus loading: directory walk and parallel note parsing."""
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

from zettel_rank.config import ZettelkastenConfig
from zettel_rank.config import config as default_config
from zettel_rank.exceptions import CorpusError, ErrorCode, NoteParseError
from zettel_rank.models.schema import Diagnostic, DiagnosticKind, Note
from zettel_rank.observability import timed_operation
from zettel_rank.storage.markdown_parser import MarkdownParser

logger = logging.getLogger(__name__)

NOTE_SUFFIX = ".md"

# (note or None, parse error or None, dropped-key messages)
_ParseOutcome = Tuple[Optional[Note], Optional[NoteParseError], List[str]]


@dataclass
class Corpus:
    """An immutable snapshot of every parseable note under one root.

    ``notes`` is keyed by note id and iterates in id order; the link graph
    and the text index are always built from the same instance.
    """

    root: Path
    notes: Dict[str, Note] = field(default_factory=dict)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.notes)

    def __contains__(self, note_id: object) -> bool:
        return note_id in self.notes

    def __iter__(self) -> Iterator[Note]:
        return iter(self.notes.values())

    @property
    def note_ids(self) -> List[str]:
        return list(self.notes)

    def get(self, note_id: str) -> Optional[Note]:
        return self.notes.get(note_id)


def iter_note_paths(root: Path, follow_symlinks: bool = False) -> List[Path]:
    """List the Markdown files under ``root``, sorted by relative path.

    Hidden files and directories (``.git``, ``.obsidian``...) are skipped.
    Symlinked files and directories are skipped unless ``follow_symlinks``.
    """
    found: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(
        root, followlinks=follow_symlinks, onerror=_log_walk_error
    ):
        current = Path(dirpath)
        dirnames[:] = sorted(
            name
            for name in dirnames
            if not name.startswith(".")
            and (follow_symlinks or not (current / name).is_symlink())
        )
        for name in filenames:
            if name.startswith(".") or not name.lower().endswith(NOTE_SUFFIX):
                continue
            path = current / name
            if not follow_symlinks and path.is_symlink():
                continue
            found.append(path)
    found.sort(key=lambda p: p.relative_to(root).as_posix())
    return found


def _log_walk_error(error: OSError) -> None:
    logger.warning(f"Skipping unreadable directory {error.filename}: {error.strerror}")


def _check_root(directory: Union[str, Path]) -> Path:
    root = Path(directory).expanduser()
    if not root.exists():
        raise CorpusError(
            f"Notes directory does not exist: {root}",
            directory=root,
            code=ErrorCode.CORPUS_MISSING,
        )
    if not root.is_dir():
        raise CorpusError(
            f"Notes path is not a directory: {root}",
            directory=root,
            code=ErrorCode.CORPUS_NOT_A_DIRECTORY,
        )
    if not os.access(root, os.R_OK | os.X_OK):
        raise CorpusError(
            f"Notes directory is not readable: {root}",
            directory=root,
            code=ErrorCode.CORPUS_UNREADABLE,
        )
    return root.resolve()


def load_corpus(
    directory: Union[str, Path],
    config: Optional[ZettelkastenConfig] = None,
    parser: Optional[MarkdownParser] = None,
) -> Corpus:
    """Walk ``directory`` and parse every note into a Corpus.

    Files are parsed on a thread pool; results are merged in path order
    once all parses finish, so the snapshot does not depend on scheduling.
    A file that fails to parse is left out and recorded as a diagnostic.

    Raises:
        CorpusError: If the directory is missing, not a directory or
            unreadable.
    """
    cfg = config or default_config
    parser = parser or MarkdownParser()
    root = _check_root(directory)

    with timed_operation("load_corpus", directory=str(root)) as op:
        paths = iter_note_paths(root, follow_symlinks=cfg.follow_symlinks)

        def parse_one(path: Path) -> _ParseOutcome:
            issues: List[str] = []
            try:
                return parser.parse_file(path, root, issues), None, issues
            except NoteParseError as e:
                return None, e, issues

        workers = max(1, min(cfg.parse_workers, len(paths)))
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="zettel-parse"
        ) as executor:
            outcomes = list(executor.map(parse_one, paths))

        corpus = Corpus(root=root)
        for path, (note, error, issues) in zip(paths, outcomes):
            rel = path.relative_to(root).as_posix()
            if error is not None:
                logger.warning(f"Skipping {rel}: {error.message}")
                corpus.diagnostics.append(
                    Diagnostic(
                        kind=DiagnosticKind.PARSE_ERROR,
                        message=error.message,
                        path=rel,
                    )
                )
                continue
            for message in issues:
                corpus.diagnostics.append(
                    Diagnostic(
                        kind=DiagnosticKind.UNSUPPORTED_VALUE,
                        message=message,
                        note_id=note.id,
                        path=rel,
                    )
                )
            corpus.notes[note.id] = note

        op["file_count"] = len(paths)
        op["note_count"] = len(corpus.notes)

    logger.info(
        f"Loaded {len(corpus.notes)} notes from {root} "
        f"({len(paths) - len(corpus.notes)} skipped)"
    )
    return corpus
