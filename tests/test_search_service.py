"""Tests for the query engine and the pipeline orchestrator."""
import json

import pytest

from zettel_rank.config import ZettelkastenConfig
from zettel_rank.exceptions import CorpusError, QueryError, ValidationError
from zettel_rank.models.schema import DiagnosticKind, LinkStyle
from zettel_rank.observability import metrics
from zettel_rank.services.zettel_service import ZettelService


class TestScenario:
    """The two-note mutual-link scenario plus an isolated twin."""

    def test_search_drops_notes_without_terms(self, zettel_service, scenario_dir):
        results = zettel_service.search(scenario_dir, "hello")
        ids = [r.note.id for r in results]
        assert set(ids) == {"A.md", "B.md", "C.md"}
        assert "D.md" not in ids

    def test_mutual_links_raise_importance(self, zettel_service, scenario_dir):
        results = {r.note.id: r for r in zettel_service.search(scenario_dir, "hello")}
        assert results["A.md"].importance_score == pytest.approx(results["B.md"].importance_score)
        assert results["A.md"].importance_score > results["C.md"].importance_score

    def test_backlinks(self, zettel_service, scenario_dir):
        assert zettel_service.backlinks(scenario_dir, "B.md") == ["A.md"]
        assert zettel_service.backlinks(scenario_dir, "A") == ["B.md"]
        assert zettel_service.backlinks(scenario_dir, "C.md") == []
        assert zettel_service.backlinks(scenario_dir, "missing.md") == []

    def test_filter_only_query_ranked_by_importance(self, zettel_service, scenario_dir):
        results = zettel_service.search(scenario_dir, "", ['status = "draft"'])
        assert [r.note.id for r in results] == ["A.md", "B.md"]
        assert all(r.text_score == 0.0 for r in results)
        assert [r.combined_score for r in results] == [1.0, 1.0]

    def test_query_operation(self, zettel_service, scenario_dir):
        results = zettel_service.query(scenario_dir, "status = final or not has status")
        assert [r.note.id for r in results] == ["C.md", "D.md"]


class TestRanking:
    """Tests for the combined score."""

    def test_combined_formula(self, zettel_service, scenario_dir):
        results = zettel_service.search(scenario_dir, "hello")
        max_text = max(r.text_score for r in results)
        max_importance = max(r.importance_score for r in results)
        for r in results:
            expected = 0.7 * r.text_score / max_text + 0.3 * r.importance_score / max_importance
            assert r.combined_score == pytest.approx(expected, abs=1e-11)

    def test_total_order_with_id_tie_break(self, zettel_service, make_corpus):
        """Identical notes tie on score and come out in id order."""
        root = make_corpus({name: "same words here" for name in ("c.md", "a.md", "b.md")})
        results = zettel_service.search(root, "same")
        assert [r.note.id for r in results] == ["a.md", "b.md", "c.md"]
        assert len({r.combined_score for r in results}) == 1

    def test_sorted_descending(self, zettel_service, make_corpus):
        root = make_corpus(
            {
                "hub.md": "graph",
                "x.md": "graph graph graph [[hub]]",
                "y.md": "graph [[hub]]",
                "z.md": "[[hub]] [[x]]",
            }
        )
        scores = [r.combined_score for r in zettel_service.search(root, "graph")]
        assert scores == sorted(scores, reverse=True)

    def test_phrase_filters_results(self, zettel_service, scenario_dir):
        results = zettel_service.search(scenario_dir, '"hello world"')
        assert [r.note.id for r in results] == ["A.md", "C.md"]

    def test_limit(self, zettel_service, scenario_dir):
        assert len(zettel_service.search(scenario_dir, "hello", limit=2)) == 2
        assert zettel_service.search(scenario_dir, "hello", limit=0) == []
        with pytest.raises(ValidationError):
            zettel_service.search(scenario_dir, "hello", limit=-1)

    def test_text_weight_configurable(self, scenario_dir):
        """With all weight on importance, linked notes outrank the twin."""
        service = ZettelService(ZettelkastenConfig(text_weight=0.0, parse_workers=1))
        results = service.search(scenario_dir, "hello")
        assert results[-1].note.id == "C.md"

    def test_idempotent(self, zettel_service, scenario_dir):
        first = [r.to_dict() for r in zettel_service.search(scenario_dir, "hello world")]
        second = [r.to_dict() for r in zettel_service.search(scenario_dir, "hello world")]
        assert first == second

    def test_invalid_filter_raises(self, zettel_service, scenario_dir):
        with pytest.raises(QueryError):
            zettel_service.search(scenario_dir, "hello", ["status = "])

    def test_empty_corpus(self, zettel_service, make_corpus):
        root = make_corpus({})
        assert zettel_service.search(root, "anything") == []
        assert zettel_service.list_notes(root) == []

    def test_missing_directory(self, zettel_service, tmp_path):
        with pytest.raises(CorpusError):
            zettel_service.search(tmp_path / "absent", "x")


class TestResultSerialization:
    """Tests for the result record shape."""

    def test_record_shape_and_title(self, zettel_service, make_corpus):
        root = make_corpus({"untitled.md": "words", "titled.md": "---\ntitle: Named\n---\nwords"})
        records = [r.to_dict() for r in zettel_service.search(root, "words")]
        by_id = {rec["document"]["id"]: rec for rec in records}
        for rec in records:
            assert set(rec) == {"combined_score", "text_score", "importance_score", "document"}
            assert rec["document"]["path"].endswith(rec["document"]["id"])
        assert by_id["untitled.md"]["document"]["metadata"]["title"] == {"String": "untitled"}
        assert by_id["titled.md"]["document"]["metadata"]["title"] == {"String": "Named"}
        json.dumps(records)

    def test_blank_frontmatter_title_uses_file_name(self, zettel_service, make_corpus):
        """A null or empty title key reports the derived title instead."""
        root = make_corpus(
            {
                "n.md": "---\ntitle:\n---\nhello",
                "empty.md": "---\ntitle: ''\n---\nhello",
            }
        )
        by_id = {r.note.id: r.to_dict()["document"] for r in zettel_service.search(root, "hello")}
        assert by_id["n.md"]["metadata"]["title"] == {"String": "n"}
        assert by_id["empty.md"]["metadata"]["title"] == {"String": "empty"}
        assert by_id["n.md"]["title"] == "n"

    def test_metadata_round_trip(self, zettel_service, make_corpus):
        """Every key keeps its value type through to the result record."""
        root = make_corpus(
            {
                "m.md": (
                    "---\n"
                    "title: Meta\n"
                    "n: 1\n"
                    "r: 1.5\n"
                    "b: true\n"
                    "z:\n"
                    "tags: [x, 2]\n"
                    "when: 2024-05-06\n"
                    "---\n"
                )
            }
        )
        [result] = zettel_service.list_notes(root)
        assert result.to_dict()["document"]["metadata"] == {
            "b": {"Boolean": True},
            "n": {"Integer": 1},
            "r": {"Real": 1.5},
            "tags": {"Array": [{"String": "x"}, {"Integer": 2}]},
            "title": {"String": "Meta"},
            "when": {"String": "2024-05-06"},
            "z": {"Null": None},
        }


class TestLinkLookups:
    """Tests for lookup_links and inspect_note."""

    def test_lookup_links(self, zettel_service, make_corpus):
        root = make_corpus(
            {
                "a.md": "[[b]]\n[to b](b.md)\n[[ghost]]\n",
                "b.md": "[[a|Alpha]]",
            }
        )
        summary = zettel_service.lookup_links(root, "a.md")
        assert summary.note_id == "a.md"
        assert [(r.target, r.target_id, r.line) for r in summary.outbound] == [
            ("b", "b.md", 1),
            ("b.md", "b.md", 2),
            ("ghost", None, 3),
        ]
        assert [(r.source_id, r.text, r.style) for r in summary.inbound] == [
            ("b.md", "Alpha", LinkStyle.WIKI)
        ]
        payload = summary.to_dict()
        assert payload["outbound"][2]["resolved"] is False

    def test_lookup_unknown_note(self, zettel_service, scenario_dir):
        summary = zettel_service.lookup_links(scenario_dir, "nope")
        assert summary.to_dict() == {"note_id": None, "outbound": [], "inbound": []}

    def test_outbound_and_inbound(self, zettel_service, scenario_dir):
        engine = zettel_service.open(scenario_dir)
        assert [(r.source_id, r.target_id) for r in engine.outbound("A")] == [("A.md", "B.md")]
        assert [(r.source_id, r.target_id) for r in engine.inbound("A")] == [("B.md", "A.md")]
        assert engine.outbound("C.md") == []
        assert engine.inbound("nope") == []

    def test_self_link_counts_as_backlink(self, zettel_service, make_corpus):
        root = make_corpus({"loop.md": "[[loop]]", "other.md": "[[loop]]"})
        assert zettel_service.backlinks(root, "loop") == ["loop.md", "other.md"]

    def test_backlinks_through_alias(self, zettel_service, make_corpus):
        """A wikilink naming an alias counts as a backlink of the aliased note."""
        root = make_corpus(
            {
                "index.md": "---\naliases: [start]\n---\nhome",
                "other.md": "see [[start]]",
            }
        )
        assert zettel_service.backlinks(root, "index.md") == ["other.md"]
        assert zettel_service.backlinks(root, "start") == ["other.md"]

    def test_inspect_note(self, zettel_service, scenario_dir):
        details = zettel_service.inspect_note(scenario_dir, "A.md")
        assert details["document"]["id"] == "A.md"
        assert details["backlinks"] == ["B.md"]
        assert details["outbound_count"] == 1
        assert details["inbound_count"] == 1
        assert details["importance_rank"] in (1, 2)
        assert zettel_service.inspect_note(scenario_dir, "nope") is None


class TestSnapshot:
    """Tests for snapshot construction."""

    def test_status_reports_diagnostics(self, zettel_service, make_corpus):
        root = make_corpus({"a.md": "[[nowhere]]", "bad.md": "---\n: [\n---\n"})
        status = zettel_service.status(root)
        assert status["note_count"] == 1
        assert status["unresolved_count"] == 1
        kinds = [d["kind"] for d in status["diagnostics"]]
        assert kinds == [DiagnosticKind.PARSE_ERROR.value, DiagnosticKind.UNRESOLVED_LINK.value]

    def test_stages_are_timed(self, zettel_service, scenario_dir):
        zettel_service.search(scenario_dir, "hello")
        recorded = metrics.get_metrics()
        for stage in ("load_corpus", "resolve_links", "score_importance", "build_index", "search"):
            assert recorded[stage]["count"] == 1

    def test_graph_and_index_share_notes(self, zettel_service, scenario_dir):
        snapshot = zettel_service.build_snapshot(scenario_dir)
        assert snapshot.graph.nodes == sorted(snapshot.index.doc_lengths)
        assert set(snapshot.importance.scores) == set(snapshot.corpus.notes)

    def test_reads_files_fresh_each_call(self, zettel_service, make_corpus):
        root = make_corpus({"a.md": "first"})
        assert [r.note.id for r in zettel_service.search(root, "second")] == []
        (root / "b.md").write_text("second", encoding="utf-8")
        assert [r.note.id for r in zettel_service.search(root, "second")] == ["b.md"]
