#!/usr/bin/env python
"""Main entry point for the zettel-rank MCP server."""
import argparse
import logging
import os
import sys
from pathlib import Path

from zettel_rank.config import config
from zettel_rank.exceptions import CorpusError, ErrorCode
from zettel_rank.observability import configure_logging
from zettel_rank.server.mcp_server import ZettelRankMcpServer


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="zettel-rank MCP Server")
    parser.add_argument(
        "--notes-dir",
        help="Directory containing the Markdown notes",
        type=str,
        default=os.environ.get("ZETTELKASTEN_NOTES_DIR")
    )
    parser.add_argument(
        "--log-dir",
        help="Directory for rotating log files",
        type=str,
        default=os.environ.get("ZETTELKASTEN_LOG_DIR")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("ZETTELKASTEN_LOG_LEVEL", "INFO")
    )
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.notes_dir:
        config.notes_dir = Path(args.notes_dir).expanduser()


def main(argv=None):
    """Run the zettel-rank MCP server."""
    args = parse_args(argv)
    update_config(args)

    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(log_dir=args.log_dir, level=log_level, console=True)
    except OSError as e:
        # Fall back to console logging if the log directory is unusable
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")

    notes_dir = config.get_notes_dir()
    if not notes_dir.is_dir():
        error = CorpusError(
            f"Notes directory does not exist: {notes_dir}",
            directory=notes_dir,
            code=ErrorCode.CORPUS_NOT_A_DIRECTORY if notes_dir.exists() else ErrorCode.CORPUS_MISSING,
        )
        logger.error(str(error))
        sys.exit(1)

    try:
        logger.info("Starting zettel-rank MCP server")
        server = ZettelRankMcpServer(notes_dir=notes_dir)
        server.run()
    except Exception as e:
        logger.error(f"Error running server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
