"""Common test fixtures for zettel-rank."""

from pathlib import Path
from typing import Callable, Dict

import pytest

from zettel_rank.config import ZettelkastenConfig, config
from zettel_rank.observability import metrics
from zettel_rank.services.zettel_service import ZettelService

CorpusFactory = Callable[[Dict[str, str]], Path]


def write_notes(root: Path, files: Dict[str, str]) -> Path:
    """Write ``{relative path: text}`` under ``root``; returns ``root``."""
    root.mkdir(parents=True, exist_ok=True)
    for rel, text in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return root


@pytest.fixture
def make_corpus(tmp_path) -> CorpusFactory:
    """Build a notes directory from a dict of files."""
    counter = {"n": 0}

    def factory(files: Dict[str, str]) -> Path:
        counter["n"] += 1
        return write_notes(tmp_path / f"notes{counter['n']}", files)

    return factory


@pytest.fixture
def test_config(tmp_path, monkeypatch):
    """Global config pointed at a temporary notes directory (auto-restored)."""
    notes_dir = tmp_path / "default-notes"
    notes_dir.mkdir()
    monkeypatch.setattr(config, "notes_dir", notes_dir)
    yield config


@pytest.fixture
def ranking_config() -> ZettelkastenConfig:
    """A config with the documented ranking defaults and two parse threads."""
    return ZettelkastenConfig(
        damping=0.85,
        tolerance=1e-10,
        max_iterations=1000,
        text_weight=0.7,
        bm25_k1=1.6,
        bm25_b=0.75,
        parse_workers=2,
    )


@pytest.fixture
def zettel_service(ranking_config) -> ZettelService:
    return ZettelService(ranking_config)


@pytest.fixture
def scenario_dir(make_corpus) -> Path:
    """A and B link to each other; C has the same words but no links;
    D shares no words with the others."""
    return make_corpus(
        {
            "A.md": "---\nstatus: draft\n---\nhello world, see [B](B.md)\n",
            "B.md": "---\nstatus: draft\n---\nhello, back to [[A]]\n",
            "C.md": "---\nstatus: final\n---\nhello world\n",
            "D.md": "unrelated text entirely\n",
        }
    )


@pytest.fixture(autouse=True)
def _reset_metrics():
    """Keep the global metrics collector isolated between tests."""
    metrics.reset()
    yield
    metrics.reset()
