"""Utility functions for zettel-rank."""
from pathlib import PurePosixPath
from typing import List

from zettel_rank.exceptions import ErrorCode, ValidationError


def sanitize_for_terminal(text: str) -> str:
    """Turn a note title into a terminal-friendly filename stem.

    Words are joined with hyphens; only alphanumerics, hyphens and
    underscores survive.

    Examples:
        "Architecture Plan: Graph Ranking" -> "Architecture-Plan-Graph-Ranking"
        "Hub: My Notes" -> "Hub-My-Notes"
        "test_note" -> "test_note"
    """
    if not text:
        return ""

    # Separators become word breaks
    result = (
        text.replace(":", " ").replace(";", " ").replace("/", " ").replace("\\", " ")
    )

    sanitized_words = []
    for word in result.split():
        sanitized_word = "".join(c if c.isalnum() or c in "-_" else "" for c in word)
        if sanitized_word:
            sanitized_words.append(sanitized_word)

    return "-".join(sanitized_words)


def validate_relative_note_path(value: str, field_name: str = "name") -> List[str]:
    """Split a note name into path segments that stay inside the corpus.

    Names may contain ``/`` to place the note in a subdirectory.

    Returns:
        The path segments.

    Raises:
        ValidationError: For empty names, absolute paths, backslashes,
            ``.``/``..`` segments, hidden segments or control characters.
    """
    if not value or not value.strip():
        raise ValidationError(f"{field_name} cannot be empty", field=field_name)

    if "\\" in value:
        raise ValidationError(
            f"{field_name} cannot contain backslashes", field=field_name, value=value
        )
    if any(ord(c) < 32 for c in value):
        raise ValidationError(
            f"{field_name} cannot contain control characters", field=field_name
        )

    path = PurePosixPath(value)
    if path.is_absolute():
        raise ValidationError(
            f"{field_name} must be relative to the notes directory",
            field=field_name,
            value=value,
            code=ErrorCode.PATH_TRAVERSAL_DETECTED,
        )

    segments = value.split("/")
    for segment in segments:
        if segment in ("", ".", ".."):
            raise ValidationError(
                f"{field_name} cannot contain empty, '.' or '..' segments (path traversal)",
                field=field_name,
                value=value,
                code=ErrorCode.PATH_TRAVERSAL_DETECTED,
            )
        if segment.startswith("."):
            raise ValidationError(
                f"{field_name} segments cannot start with '.'",
                field=field_name,
                value=value,
            )
    return segments
