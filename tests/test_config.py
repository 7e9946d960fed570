"""Tests for configuration loading and validation."""
from pathlib import Path

import pytest
from pydantic import ValidationError

from zettel_rank.config import ZettelkastenConfig


class TestDefaults:
    """Tests for default values."""

    @pytest.fixture(autouse=True)
    def _clean_env(self, monkeypatch):
        for name in (
            "ZETTELKASTEN_DAMPING",
            "ZETTELKASTEN_TOLERANCE",
            "ZETTELKASTEN_MAX_ITERATIONS",
            "ZETTELKASTEN_TEXT_WEIGHT",
            "ZETTELKASTEN_BM25_K1",
            "ZETTELKASTEN_BM25_B",
            "ZETTELKASTEN_FOLLOW_SYMLINKS",
        ):
            monkeypatch.delenv(name, raising=False)

    def test_ranking_defaults(self):
        cfg = ZettelkastenConfig()
        assert cfg.damping == 0.85
        assert cfg.tolerance == 1e-10
        assert cfg.max_iterations == 1000
        assert cfg.text_weight == 0.7
        assert cfg.bm25_k1 == 1.6
        assert cfg.bm25_b == 0.75
        assert cfg.follow_symlinks is False
        assert cfg.parse_workers >= 1

    def test_template_has_title(self):
        assert "{title}" in ZettelkastenConfig().default_note_template


class TestEnvironment:
    """Tests for environment overrides."""

    def test_env_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("ZETTELKASTEN_DAMPING", "0.5")
        monkeypatch.setenv("ZETTELKASTEN_TEXT_WEIGHT", "1")
        monkeypatch.setenv("ZETTELKASTEN_FOLLOW_SYMLINKS", "yes")
        monkeypatch.setenv("ZETTELKASTEN_NOTES_DIR", str(tmp_path))
        cfg = ZettelkastenConfig()
        assert cfg.damping == 0.5
        assert cfg.text_weight == 1.0
        assert cfg.follow_symlinks is True
        assert cfg.get_notes_dir() == tmp_path

    def test_relative_paths_use_base_dir(self, tmp_path):
        cfg = ZettelkastenConfig(base_dir=tmp_path)
        assert cfg.get_absolute_path(Path("notes")) == tmp_path / "notes"
        assert cfg.get_absolute_path(tmp_path / "abs") == tmp_path / "abs"


class TestValidation:
    """Tests for rejected settings."""

    @pytest.mark.parametrize(
        "overrides",
        [
            {"damping": 0.0},
            {"damping": 1.0},
            {"tolerance": 0.0},
            {"max_iterations": 0},
            {"text_weight": 1.5},
            {"bm25_k1": -1.0},
            {"bm25_b": 2.0},
            {"parse_workers": 0},
            {"max_results": 0},
        ],
    )
    def test_invalid(self, overrides):
        with pytest.raises(ValidationError):
            ZettelkastenConfig(**overrides)

    def test_low_iteration_cap_warns(self, caplog):
        with caplog.at_level("WARNING", logger="zettel_rank.config"):
            ZettelkastenConfig(max_iterations=5)
        assert "max_iterations=5" in caplog.text
