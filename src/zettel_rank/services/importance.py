"""Structural importance of notes: PageRank over the link graph."""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from zettel_rank.models.schema import Diagnostic, DiagnosticKind
from zettel_rank.services.link_resolver import LinkGraph

logger = logging.getLogger(__name__)


@dataclass
class ImportanceResult:
    """Outcome of one scoring run.

    Attributes:
        scores: Note id to PageRank score; values are positive and sum to 1.
        iterations: Number of power iterations performed.
        converged: Whether the tolerance was reached within the cap.
        delta: Largest per-note change in the final iteration.
    """

    scores: Dict[str, float] = field(default_factory=dict)
    iterations: int = 0
    converged: bool = True
    delta: float = 0.0
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def get(self, note_id: str) -> float:
        return self.scores.get(note_id, 0.0)


class ImportanceScorer:
    """PageRank with uniform teleport and dangling-mass redistribution.

    Each iteration computes, for every node v::

        r'[v] = (1 - d) / N + d * dangling / N + d * sum(r[u] / out[u] for u -> v)

    where ``dangling`` is the total score of nodes without outgoing arcs.
    Nodes are ordered by id, so the result does not depend on the order
    notes were discovered.
    """

    def __init__(
        self,
        damping: float = 0.85,
        tolerance: float = 1e-10,
        max_iterations: int = 1000,
    ):
        if not 0.0 < damping < 1.0:
            raise ValueError("damping must be strictly between 0 and 1")
        if max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        self.damping = damping
        self.tolerance = tolerance
        self.max_iterations = max_iterations

    def score(self, graph: LinkGraph, nodes: Optional[List[str]] = None) -> ImportanceResult:
        """Score every node of ``graph``.

        Args:
            graph: Resolved link graph; only its collapsed arcs are used.
            nodes: Node ids to score, defaults to ``graph.nodes``. Arcs
                touching other ids are ignored.
        """
        node_ids = sorted(graph.nodes if nodes is None else nodes)
        n = len(node_ids)
        if n == 0:
            return ImportanceResult()
        if n == 1:
            return ImportanceResult(scores={node_ids[0]: 1.0})

        position = {node_id: i for i, node_id in enumerate(node_ids)}
        # Sorted so floating point accumulation order is fixed
        pairs = sorted(
            {
                (position[src], position[dst])
                for src, dst in graph.arcs
                if src != dst and src in position and dst in position
            }
        )
        sources = np.array([p[0] for p in pairs], dtype=np.int64)
        targets = np.array([p[1] for p in pairs], dtype=np.int64)
        out_degree = np.bincount(sources, minlength=n).astype(np.float64)
        dangling = out_degree == 0

        d = self.damping
        rank = np.full(n, 1.0 / n)
        delta = float("inf")
        iterations = 0

        for iterations in range(1, self.max_iterations + 1):
            share = np.zeros(n)
            if pairs:
                np.add.at(share, targets, rank[sources] / out_degree[sources])
            dangling_mass = rank[dangling].sum()
            new_rank = (1.0 - d) / n + d * dangling_mass / n + d * share
            delta = float(np.abs(new_rank - rank).max())
            rank = new_rank
            if delta < self.tolerance:
                break

        converged = delta < self.tolerance
        result = ImportanceResult(
            scores={node_id: float(rank[i]) for i, node_id in enumerate(node_ids)},
            iterations=iterations,
            converged=converged,
            delta=delta,
        )
        if converged:
            logger.debug(f"PageRank converged after {iterations} iterations")
        else:
            message = (
                f"PageRank did not converge within {self.max_iterations} iterations "
                f"(last delta {delta:.3e}); using last iterate"
            )
            logger.warning(message)
            result.diagnostics.append(
                Diagnostic(kind=DiagnosticKind.SCORER_NON_CONVERGENCE, message=message)
            )
        return result
