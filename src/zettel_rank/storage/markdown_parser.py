"""Markdown parsing for Zettelkasten notes.

Turns the bytes of one file into a Note: the YAML frontmatter block is
decoded into tagged metadata values, the remaining text becomes the body,
and every inline link is extracted in the order it occurs.
"""
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import unquote, urlsplit

import pydantic
import yaml
from frontmatter.default_handlers import YAMLHandler

from zettel_rank.exceptions import ErrorCode, NoteParseError
from zettel_rank.models.schema import (
    ArrayValue,
    LinkStyle,
    LinkToken,
    MetaValue,
    Note,
    StringValue,
    UnsupportedValueError,
    meta_value_from_python,
    meta_value_to_text,
)

logger = logging.getLogger(__name__)

# Fenced code blocks (``` or ~~~), matched lazily up to the same fence
FENCED_CODE_RE = re.compile(
    r"^[ \t]{0,3}(?P<fence>`{3,}|~{3,})[^\n]*\n.*?(?:^[ \t]{0,3}(?P=fence)[ \t]*$|\Z)",
    re.MULTILINE | re.DOTALL,
)
# Inline code spans, `code` or ``code``
INLINE_CODE_RE = re.compile(r"(?P<ticks>`+)(?!`).+?(?<!`)(?P=ticks)(?!`)", re.DOTALL)

# [[target]], [[target|alias]], [[target#heading|alias]]
WIKILINK_RE = re.compile(r"\[\[(?P<inner>[^\[\]\n]+?)\]\]")
# [text](target) or [text](<target with spaces> "title"), not preceded by '!'
_MARKDOWN_LINK = re.compile(
    r"(?<![!\\])\[(?P<text>(?:[^\[\]\\]|\\.)*)\]"
    r"\(\s*(?:<(?P<angle>[^>\n]*)>|(?P<bare>[^\s()]*(?:\([^\s()]*\)[^\s()]*)*))"
    r"(?:\s+(?:\"[^\"]*\"|'[^']*'))?\s*\)"
)
# Anything with a URL scheme (http:, mailto:, file:) is external
_URL_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*:")


def _blank_out(text: str, pattern: "re.Pattern[str]") -> str:
    """Replace every match with spaces, preserving offsets and newlines."""
    return pattern.sub(lambda m: re.sub(r"[^\n]", " ", m.group(0)), text)


class MarkdownParser:
    """Parses Markdown notes with YAML frontmatter."""

    def __init__(self) -> None:
        self._handler = YAMLHandler()

    def parse_file(
        self, path: Path, root: Path, issues: Optional[List[str]] = None
    ) -> Note:
        """Read and parse a note file.

        Args:
            path: Absolute path of the file.
            root: Corpus root the note id is made relative to.
            issues: When given, receives one message per dropped
                frontmatter key.

        Raises:
            NoteParseError: If the file cannot be read or decoded, or its
                frontmatter is malformed.
        """
        try:
            raw = path.read_bytes()
        except OSError as e:
            raise NoteParseError(
                f"Cannot read note file: {e.strerror or e}",
                path=path,
                code=ErrorCode.NOTE_UNREADABLE,
                original_error=e,
            ) from e
        return self.parse_bytes(raw, path, root, issues)

    def parse_bytes(
        self,
        raw: bytes,
        path: Path,
        root: Path,
        issues: Optional[List[str]] = None,
    ) -> Note:
        """Parse raw file bytes into a Note.

        Raises:
            NoteParseError: If the bytes are not UTF-8 or the frontmatter
                is malformed.
        """
        try:
            content = raw.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise NoteParseError(
                "Note is not valid UTF-8", path=path, original_error=e
            ) from e

        note_id = path.relative_to(root).as_posix()
        metadata, body = self.split_frontmatter(content, path, issues)
        # body is a suffix of content; links report file line numbers
        line_offset = content.count("\n", 0, len(content) - len(body))

        title_value = metadata.get("title")
        title = meta_value_to_text(title_value).strip() if title_value else ""
        if not title:
            title = path.stem

        try:
            return Note(
                id=note_id,
                path=path,
                title=title,
                metadata=metadata,
                body=body,
                outbound_links=tuple(self.extract_links(body, line_offset)),
                aliases=self._aliases(metadata),
            )
        except pydantic.ValidationError as e:
            # e.g. a backslash in the file name, which note ids cannot hold
            raise NoteParseError(
                f"Invalid note: {e.errors()[0]['msg']}", path=path, original_error=e
            ) from e

    def split_frontmatter(
        self,
        content: str,
        path: Optional[Path] = None,
        issues: Optional[List[str]] = None,
    ) -> Tuple[Dict[str, MetaValue], str]:
        """Separate the leading YAML block from the body.

        A note without a frontmatter block has empty metadata and the whole
        text as body.

        Raises:
            NoteParseError: For an unterminated block, invalid YAML, a
                top level that is not a mapping, or non-string keys.
        """
        if not self._handler.detect(content):
            return {}, content

        try:
            fm, body = self._handler.split(content)
        except ValueError as e:
            raise NoteParseError(
                "Frontmatter block is not terminated", path=path, original_error=e
            ) from e

        try:
            data = self._handler.load(fm)
        except (yaml.YAMLError, ValueError, TypeError) as e:
            # Invalid timestamps and unhashable keys fail in the constructor
            raise NoteParseError(
                "Frontmatter is not valid YAML", path=path, original_error=e
            ) from e

        if data is None:
            return {}, body.lstrip("\n")
        if not isinstance(data, dict):
            raise NoteParseError(
                f"Frontmatter top level must be a mapping, got {type(data).__name__}",
                path=path,
            )

        metadata: Dict[str, MetaValue] = {}
        for key, value in data.items():
            if not isinstance(key, str):
                raise NoteParseError(
                    f"Frontmatter keys must be strings, got {key!r}", path=path
                )
            try:
                metadata[key] = meta_value_from_python(value)
            except UnsupportedValueError as e:
                message = f"Dropping frontmatter key '{key}': {e}"
                logger.warning(f"{message} ({path.name if path else '<note>'})")
                if issues is not None:
                    issues.append(message)
        return metadata, body.lstrip("\n")

    @staticmethod
    def extract_links(body: str, line_offset: int = 0) -> List[LinkToken]:
        """Extract inline links in document order, duplicates preserved.

        Line numbers are 1-based and shifted by ``line_offset`` (the number
        of frontmatter lines above the body).

        Links inside fenced code blocks and inline code spans are ignored;
        external URLs and bare fragment links are skipped.
        """
        searchable = _blank_out(_blank_out(body, FENCED_CODE_RE), INLINE_CODE_RE)
        found: List[Tuple[int, LinkToken]] = []

        for match in WIKILINK_RE.finditer(searchable):
            inner = match.group("inner")
            target, _, alias = inner.partition("|")
            target = target.split("#", 1)[0].strip()
            if not target:
                continue
            found.append(
                (
                    match.start(),
                    LinkToken(
                        target=target,
                        text=alias.strip(),
                        style=LinkStyle.WIKI,
                        line=line_offset + searchable.count("\n", 0, match.start()) + 1,
                    ),
                )
            )

        # Blank wikilinks so "[[a]](b)" is not read twice
        without_wiki = _blank_out(searchable, WIKILINK_RE)
        for match in _MARKDOWN_LINK.finditer(without_wiki):
            raw_target = match.group("angle")
            if raw_target is None:
                raw_target = match.group("bare") or ""
            target = MarkdownParser._normalize_markdown_target(raw_target)
            if target is None:
                continue
            found.append(
                (
                    match.start(),
                    LinkToken(
                        target=target,
                        text=match.group("text").strip(),
                        style=LinkStyle.MARKDOWN,
                        line=line_offset + without_wiki.count("\n", 0, match.start()) + 1,
                    ),
                )
            )

        found.sort(key=lambda item: item[0])
        return [token for _, token in found]

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _normalize_markdown_target(raw: str) -> Optional[str]:
        """Decode a markdown link destination; None for non-note targets."""
        raw = raw.strip()
        if not raw or raw.startswith("#"):
            return None
        if _URL_SCHEME.match(raw) or raw.startswith("//"):
            return None
        path_part = urlsplit(raw).path if "?" in raw else raw.split("#", 1)[0]
        target = unquote(path_part).strip()
        return target or None

    @staticmethod
    def _aliases(metadata: Dict[str, MetaValue]) -> Tuple[str, ...]:
        """Collect alternative names from the ``aliases``/``alias`` keys."""
        aliases: List[str] = []
        for key in ("aliases", "alias"):
            value = metadata.get(key)
            if value is None:
                continue
            items = value.value if isinstance(value, ArrayValue) else (value,)
            for item in items:
                if isinstance(item, StringValue) and item.value.strip():
                    aliases.append(item.value.strip())
        return tuple(dict.fromkeys(aliases))
