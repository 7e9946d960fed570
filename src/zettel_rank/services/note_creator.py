"""Creation of new note files from templates.

Works on the filesystem only; nothing here reads the link graph or the
text index.
"""
import logging
import string
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from zettel_rank.config import config as default_config
from zettel_rank.exceptions import (
    CorpusError,
    ErrorCode,
    NoteExistsError,
    TemplateError,
    ValidationError,
    ZettelkastenError,
)
from zettel_rank.storage.corpus_loader import NOTE_SUFFIX
from zettel_rank.utils import sanitize_for_terminal, validate_relative_note_path

logger = logging.getLogger(__name__)


def template_fields(template: str) -> set:
    """Names of the placeholders used by a ``str.format`` template.

    Raises:
        TemplateError: If the template is malformed.
    """
    try:
        parsed = list(string.Formatter().parse(template))
    except ValueError as e:
        raise TemplateError(f"Invalid template: {e}") from e
    fields = set()
    for _, name, _, _ in parsed:
        if name is None:
            continue
        if name == "" or name.isdigit():
            raise TemplateError("Positional placeholders are not supported; use names")
        fields.add(name.split(".", 1)[0].split("[", 1)[0])
    return fields


def render_template(template: str, variables: Mapping[str, Any]) -> str:
    """Render ``template`` with ``str.format`` semantics.

    Raises:
        TemplateError: For unknown placeholders or a malformed template.
    """
    missing = sorted(template_fields(template) - set(variables))
    if missing:
        raise TemplateError(
            f"Template uses undefined variable '{missing[0]}'",
            variable=missing[0],
            code=ErrorCode.TEMPLATE_MISSING_VARIABLE,
        )
    try:
        return template.format(**variables)
    except (AttributeError, IndexError, KeyError, ValueError) as e:
        raise TemplateError(f"Template could not be rendered: {e}") from e


def allocate_note_path(directory: Path, name: str) -> Path:
    """Path of the new note ``name`` under ``directory``.

    ``.md`` is appended when missing. The result must not already exist.

    Raises:
        ValidationError: If the name is unsafe or escapes the directory.
        NoteExistsError: If the file already exists.
    """
    if name.lower().endswith(NOTE_SUFFIX):
        name = name[: -len(NOTE_SUFFIX)]
    segments = validate_relative_note_path(name)
    path = directory.joinpath(*segments[:-1], segments[-1] + NOTE_SUFFIX)

    # Symlinked subdirectories could still point outside
    root = directory.resolve()
    try:
        path.parent.resolve().relative_to(root)
    except ValueError:
        raise ValidationError(
            "Note path escapes the notes directory",
            field="name",
            value=name,
            code=ErrorCode.PATH_TRAVERSAL_DETECTED,
        )
    if path.exists():
        raise NoteExistsError(path)
    return path


def create_note(
    directory: Union[str, Path],
    name: Optional[str] = None,
    template: Optional[str] = None,
    variables: Optional[Mapping[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Path:
    """Create ``<directory>/<name>.md`` from a template.

    The template is rendered with ``title``, ``date``, ``datetime`` and
    ``id`` (the new note's id), overridden by ``variables``. When ``name``
    is omitted it is derived from the ``title`` variable.

    Args:
        directory: The notes directory; must exist.
        name: Note name relative to the directory, ``/`` allowed.
        template: ``str.format`` template; defaults to the configured one.
        variables: Extra template values.
        now: Timestamp for ``date``/``datetime``, defaults to the local time.

    Returns:
        Path of the created file.

    Raises:
        CorpusError: If the directory does not exist.
        ValidationError: If no usable name is given or it is unsafe.
        NoteExistsError: If the file already exists.
        TemplateError: If the template cannot be rendered.
    """
    root = Path(directory).expanduser()
    if not root.is_dir():
        raise CorpusError(
            f"Notes directory does not exist: {root}",
            directory=root,
            code=ErrorCode.CORPUS_NOT_A_DIRECTORY if root.exists() else ErrorCode.CORPUS_MISSING,
        )

    variables = dict(variables or {})
    if name is None:
        name = sanitize_for_terminal(str(variables.get("title", "")))
        if not name:
            raise ValidationError("Either a name or a title is required", field="name")

    path = allocate_note_path(root, name)
    note_id = path.relative_to(root).as_posix()
    now = now or datetime.now()

    values: Dict[str, Any] = {
        "title": Path(note_id).stem,
        "date": now.strftime("%Y-%m-%d"),
        "datetime": now.isoformat(timespec="seconds"),
        "id": note_id,
    }
    values.update(variables)
    content = render_template(
        template if template is not None else default_config.default_note_template, values
    )

    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        # Exclusive create: never overwrite a note written concurrently
        with open(path, "x", encoding="utf-8") as f:
            f.write(content)
    except FileExistsError as e:
        raise NoteExistsError(path) from e
    except OSError as e:
        raise ZettelkastenError(
            f"Failed to write note: {e.strerror or e}",
            code=ErrorCode.STORAGE_WRITE_FAILED,
            details={"path_hint": path.name},
        ) from e

    logger.info(f"Created note {note_id}")
    return path
