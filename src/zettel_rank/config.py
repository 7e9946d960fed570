"""Configuration module for zettel-rank."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from zettel_rank import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config lives alongside the notes
_USER_ENV = Path.home() / ".zettelkasten" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)


def _default_parse_workers() -> int:
    """Thread count for parsing, bounded like ThreadPoolExecutor's default."""
    return min(32, (os.cpu_count() or 1) + 4)


class ZettelkastenConfig(BaseModel):
    """Configuration for corpus loading, ranking and search."""

    # Base directory for resolving a relative notes_dir
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("ZETTELKASTEN_BASE_DIR", "."))
    )
    # Default corpus, used only by entry points that are not given a directory
    notes_dir: Path = Field(
        default_factory=lambda: Path(
            os.getenv("ZETTELKASTEN_NOTES_DIR", "~/Documents/Notes")
        ).expanduser()
    )
    # Importance scoring (PageRank)
    damping: float = Field(
        default_factory=lambda: float(os.getenv("ZETTELKASTEN_DAMPING", "0.85"))
    )
    tolerance: float = Field(
        default_factory=lambda: float(os.getenv("ZETTELKASTEN_TOLERANCE", "1e-10"))
    )
    max_iterations: int = Field(
        default_factory=lambda: int(os.getenv("ZETTELKASTEN_MAX_ITERATIONS", "1000"))
    )
    # Share of the combined score taken by text relevance; the rest is importance
    text_weight: float = Field(
        default_factory=lambda: float(os.getenv("ZETTELKASTEN_TEXT_WEIGHT", "0.7"))
    )
    # BM25 parameters
    bm25_k1: float = Field(
        default_factory=lambda: float(os.getenv("ZETTELKASTEN_BM25_K1", "1.6"))
    )
    bm25_b: float = Field(
        default_factory=lambda: float(os.getenv("ZETTELKASTEN_BM25_B", "0.75"))
    )
    # Result cap used by the server tools
    max_results: int = Field(
        default_factory=lambda: int(os.getenv("ZETTELKASTEN_MAX_RESULTS", "10"))
    )
    parse_workers: int = Field(
        default_factory=lambda: int(
            os.getenv("ZETTELKASTEN_PARSE_WORKERS", str(_default_parse_workers()))
        )
    )
    follow_symlinks: bool = Field(
        default_factory=lambda: os.getenv(
            "ZETTELKASTEN_FOLLOW_SYMLINKS", "false"
        ).lower()
        in ("true", "1", "yes")
    )
    # Server configuration
    server_name: str = Field(
        default=os.getenv("ZETTELKASTEN_SERVER_NAME", "zettel-rank")
    )
    server_version: str = Field(default=__version__)

    # Default note template, rendered with str.format
    default_note_template: str = Field(
        default=(
            "---\n"
            "title: {title}\n"
            "created: {datetime}\n"
            "---\n\n"
            "# {title}\n\n"
        )
    )

    @model_validator(mode="after")
    def _validate_ranking_config(self) -> "ZettelkastenConfig":
        """Validate scoring parameters."""
        if not 0.0 < self.damping < 1.0:
            raise ValueError("damping must be strictly between 0 and 1")
        if self.tolerance <= 0.0:
            raise ValueError("tolerance must be > 0")
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        if not 0.0 <= self.text_weight <= 1.0:
            raise ValueError("text_weight must be between 0 and 1")
        if self.bm25_k1 < 0.0:
            raise ValueError("bm25_k1 must be >= 0")
        if not 0.0 <= self.bm25_b <= 1.0:
            raise ValueError("bm25_b must be between 0 and 1")
        if self.parse_workers < 1:
            raise ValueError("parse_workers must be >= 1")
        if self.max_results < 1:
            raise ValueError("max_results must be >= 1")

        if self.max_iterations < 20:
            logger.warning(
                "max_iterations=%d is low; PageRank will rarely converge and the "
                "last iterate will be used.",
                self.max_iterations,
            )
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        path = Path(path).expanduser()
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_notes_dir(self) -> Path:
        """Get the absolute path to the default notes directory."""
        return self.get_absolute_path(self.notes_dir)


# Create a global config instance
config = ZettelkastenConfig()
