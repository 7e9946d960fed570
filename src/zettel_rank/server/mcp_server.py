"""MCP server exposing zettel-rank operations as tools."""

import json
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from zettel_rank.config import config
from zettel_rank.exceptions import ErrorCode, ZettelkastenError
from zettel_rank.observability import metrics, timed_operation
from zettel_rank.services.zettel_service import ZettelService

logger = logging.getLogger(__name__)

MAX_QUERY_LENGTH = 1_000
MAX_TEMPLATE_LENGTH = 100_000


def _validate_input_lengths(
    query: Optional[str] = None, template: Optional[str] = None
) -> None:
    """Validate input string lengths at the MCP boundary."""
    if query and len(query) > MAX_QUERY_LENGTH:
        raise ValueError(f"Query exceeds maximum length of {MAX_QUERY_LENGTH} characters")
    if template and len(template) > MAX_TEMPLATE_LENGTH:
        raise ValueError(
            f"Template exceeds maximum length of {MAX_TEMPLATE_LENGTH} characters"
        )


def _dumps(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2)


class ZettelRankMcpServer:
    """MCP server for ranked search over a Markdown Zettelkasten."""

    def __init__(self, notes_dir: Optional[Path] = None):
        """Initialize the MCP server.

        Args:
            notes_dir: Directory used when a tool call names none. Defaults
                to the configured notes directory.
        """
        self.mcp = FastMCP(config.server_name)
        self.notes_dir = Path(notes_dir) if notes_dir else config.get_notes_dir()
        self.zettel_service = ZettelService(config)
        self._register_tools()
        logger.info(f"zettel-rank MCP server initialized (notes: {self.notes_dir})")

    def _directory(self, directory: Optional[str]) -> Path:
        if directory:
            return config.get_absolute_path(Path(directory))
        return self.notes_dir

    def format_error_response(self, error: Exception) -> str:
        """Format an error as a JSON object.

        Domain errors carry their message and code; anything else is
        logged with a reference id and reported generically.
        """
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, ZettelkastenError):
            logger.error(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            payload: Dict[str, Any] = {
                "error": error.message,
                "code": error.code.name,
                "details": error.details,
            }
        elif isinstance(error, ValueError):
            logger.error(f"Validation error [{error_id}]: {str(error)}")
            payload = {
                "error": f"Invalid input: {error}",
                "code": ErrorCode.VALIDATION_FAILED.name,
                "ref": error_id,
            }
        elif isinstance(error, OSError):
            logger.error(f"File system error [{error_id}]: {str(error)}", exc_info=True)
            payload = {"error": "A file system error occurred", "ref": error_id}
        else:
            logger.error(f"Unexpected error [{error_id}]: {str(error)}", exc_info=True)
            payload = {"error": "An unexpected error occurred", "ref": error_id}
        return _dumps(payload)

    def _register_tools(self) -> None:
        """Register MCP tools."""

        @self.mcp.tool(name="zk_search")
        def zk_search(
            query: str,
            filters: Optional[List[str]] = None,
            limit: Optional[int] = None,
            directory: Optional[str] = None,
        ) -> str:
            """Full-text search ranked by relevance and link importance.
            Args:
                query: Search words; wrap words in double quotes to match a phrase
                filters: Attribute filter expressions, all of which must hold
                    (e.g. ["status = draft", "tags contains python"])
                limit: Maximum number of results (default: configured max_results)
                directory: Notes directory (default: the server's notes directory)
            """
            with timed_operation("zk_search", query=query[:30]) as op:
                try:
                    _validate_input_lengths(query=query)
                    results = self.zettel_service.search(
                        self._directory(directory),
                        query,
                        filters,
                        limit if limit is not None else config.max_results,
                    )
                    op["result_count"] = len(results)
                    return _dumps([r.to_dict() for r in results])
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="zk_query")
        def zk_query(
            filters: List[str],
            limit: Optional[int] = None,
            directory: Optional[str] = None,
        ) -> str:
            """Find notes by frontmatter attributes, most important first.
            Args:
                filters: Filter expressions, all of which must hold. Supports
                    =, !=, <, <=, >, >=, in [..], contains, has, and/or/xor/not
                limit: Maximum number of results (default: all)
                directory: Notes directory (default: the server's notes directory)
            """
            with timed_operation("zk_query") as op:
                try:
                    results = self.zettel_service.query(
                        self._directory(directory), filters, limit
                    )
                    op["result_count"] = len(results)
                    return _dumps([r.to_dict() for r in results])
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="zk_list")
        def zk_list(limit: Optional[int] = None, directory: Optional[str] = None) -> str:
            """List notes ordered by importance in the link graph.
            Args:
                limit: Maximum number of notes (default: all)
                directory: Notes directory (default: the server's notes directory)
            """
            with timed_operation("zk_list") as op:
                try:
                    results = self.zettel_service.list_notes(self._directory(directory), limit)
                    op["result_count"] = len(results)
                    return _dumps([r.to_dict() for r in results])
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="zk_links")
        def zk_links(note: str, directory: Optional[str] = None) -> str:
            """Show every link leaving and entering a note.
            Args:
                note: Note id, path, file name, title or alias
                directory: Notes directory (default: the server's notes directory)
            """
            with timed_operation("zk_links", note=note[:30]):
                try:
                    summary = self.zettel_service.lookup_links(self._directory(directory), note)
                    return _dumps(summary.to_dict())
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="zk_backlinks")
        def zk_backlinks(note: str, directory: Optional[str] = None) -> str:
            """List the notes that link to a note.
            Args:
                note: Note id, path, file name, title or alias
                directory: Notes directory (default: the server's notes directory)
            """
            with timed_operation("zk_backlinks", note=note[:30]) as op:
                try:
                    sources = self.zettel_service.backlinks(self._directory(directory), note)
                    op["result_count"] = len(sources)
                    return _dumps(sources)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="zk_inspect")
        def zk_inspect(note: str, directory: Optional[str] = None) -> str:
            """Show a note's metadata, importance and link counts.
            Args:
                note: Note id, path, file name, title or alias
                directory: Notes directory (default: the server's notes directory)
            """
            with timed_operation("zk_inspect", note=note[:30]):
                try:
                    details = self.zettel_service.inspect_note(self._directory(directory), note)
                    if details is None:
                        return _dumps({"error": f"Note not found: {note}",
                                       "code": ErrorCode.NOTE_NOT_FOUND.name})
                    return _dumps(details)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="zk_create_note")
        def zk_create_note(
            name: Optional[str] = None,
            title: Optional[str] = None,
            template: Optional[str] = None,
            variables: Optional[Dict[str, str]] = None,
            directory: Optional[str] = None,
        ) -> str:
            """Create a new note file from a template.
            Args:
                name: File name relative to the notes directory, without .md
                    (default: derived from the title)
                title: Note title, available to the template as {title}
                template: str.format template; {title}, {date}, {datetime}
                    and {id} are always available (default: configured template)
                variables: Extra template variables
                directory: Notes directory (default: the server's notes directory)
            """
            with timed_operation("zk_create_note", name=name) as op:
                try:
                    _validate_input_lengths(template=template)
                    values = dict(variables or {})
                    if title:
                        values["title"] = title
                    root = self._directory(directory)
                    path = self.zettel_service.create_note(
                        root, name=name, template=template, variables=values
                    )
                    note_id = path.relative_to(root).as_posix()
                    op["note_id"] = note_id
                    return _dumps({"id": note_id, "path": str(path)})
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="zk_status")
        def zk_status(directory: Optional[str] = None) -> str:
            """Summarize the corpus: note and link counts, diagnostics, server metrics.
            Args:
                directory: Notes directory (default: the server's notes directory)
            """
            with timed_operation("zk_status"):
                try:
                    status = self.zettel_service.status(self._directory(directory))
                    status["server"] = {
                        "name": config.server_name,
                        "version": config.server_version,
                        "metrics": metrics.get_summary(),
                    }
                    return _dumps(status)
                except Exception as e:
                    return self.format_error_response(e)

    def run(self) -> None:
        """Run the MCP server."""
        self.mcp.run()
