"""
Knowledge-graph construction service and CLI.

Usage::

    python -m knowledge_paths.graph_builder \\
        --input ./data/algebra.json --subject Algebra \\
        --band intermediate --max-hours 40 --out ./data/algebra

Reads raw candidate concepts + relationships, normalizes them into a
prerequisite DAG, attaches metadata, caches the graph by subject, and
writes the graph, three learning paths and a summary as JSON.
"""

import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from knowledge_paths.config import Settings, load_settings, save_settings
from knowledge_paths.dag_validator import normalize_graph, validate_dag
from knowledge_paths.errors import InvalidArgumentError
from knowledge_paths.graph_metadata import analyze_graph, compute_metadata
from knowledge_paths.graph_store import GraphStore
from knowledge_paths.models import (
    ConceptNode,
    KnowledgeGraph,
    LearningPath,
    RawConcept,
    RawRelationship,
    parse_concepts,
    parse_relationships,
)
from knowledge_paths.path_synthesizer import DIFFICULTY_BANDS, synthesize_paths
from knowledge_paths.providers import (
    ConceptSourcingProvider,
    FallbackSourcingProvider,
    GapAnalysisProvider,
    JsonFileSourcingProvider,
    check_scope,
    infer_domain,
)
from knowledge_paths.utils import save_json, setup_logging, timed

logger = logging.getLogger(__name__)

_UNSET: Any = object()


# =========================================================================
# Service
# =========================================================================


class KnowledgeGraphService:
    """Build, cache and query validated knowledge graphs.

    Args:
        sourcing: provider used by ``generate_knowledge_graph``.
        gap_analysis: provider whose gap strings are attached verbatim.
        store: graph cache; a bounded ``GraphStore`` by default.
        settings: defaults for bands, budgets and the cache bound.
    """

    def __init__(
        self,
        sourcing: Optional[ConceptSourcingProvider] = None,
        gap_analysis: Optional[GapAnalysisProvider] = None,
        store: Optional[GraphStore] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or Settings()
        self.sourcing = sourcing
        self.gap_analysis = gap_analysis
        self.store = store or GraphStore(max_graphs=self.settings.max_cached_graphs)

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def _assemble(
        self,
        subject: str,
        raw_concepts: Iterable[RawConcept],
        raw_relationships: Iterable[RawRelationship],
        gaps: Iterable[str],
    ) -> KnowledgeGraph:
        if not isinstance(subject, str) or not subject.strip():
            raise InvalidArgumentError("subject must be a non-empty string")
        if raw_concepts is None:
            raise InvalidArgumentError("raw_concepts must not be None")

        concepts = parse_concepts(raw_concepts, subject=subject)
        relationships = parse_relationships(raw_relationships or [])

        with timed(f"Normalize {subject!r}"):
            nodes, edges = normalize_graph(concepts, relationships)

        return KnowledgeGraph(
            subject=subject,
            domain=infer_domain(subject),
            nodes=nodes,
            relationships=edges,
            metadata=compute_metadata(nodes, edges, gaps=gaps or []),
        )

    def build_knowledge_graph(
        self,
        subject: str,
        raw_concepts: Iterable[RawConcept],
        raw_relationships: Iterable[RawRelationship] = (),
        gaps: Iterable[str] = (),
    ) -> KnowledgeGraph:
        """Validate raw candidates into a graph and cache it by subject.

        A rebuild replaces any cached graph for *subject*.

        Raises:
            InvalidArgumentError: empty subject or ``None`` concept list.
        """
        graph = self._assemble(subject, raw_concepts, raw_relationships, gaps)
        self.store.put(graph)
        logger.info(
            "Built knowledge graph %r: %d concepts, %d relationships, "
            "avg difficulty=%s, ~%dh.",
            subject, graph.metadata.total_concepts,
            graph.metadata.total_relationships,
            graph.metadata.average_difficulty,
            graph.metadata.estimated_course_length,
        )
        return graph

    def generate_knowledge_graph(
        self,
        subject: str,
        scope: Optional[str] = None,
    ) -> KnowledgeGraph:
        """Source candidates and gaps from the injected providers and build.

        Empty provider output yields an empty (still valid) graph unless
        ``settings.fallback_on_empty`` substitutes the generic curriculum.
        """
        scope = check_scope(scope or self.settings.scope)
        if self.sourcing is None:
            raise InvalidArgumentError("no ConceptSourcingProvider configured")

        raw_concepts, raw_relationships = self.sourcing.fetch_candidates(subject, scope)
        if not raw_concepts and self.settings.fallback_on_empty:
            logger.warning(
                "Provider returned no concepts for %r; using fallback curriculum.",
                subject,
            )
            raw_concepts, raw_relationships = (
                FallbackSourcingProvider().fetch_candidates(subject, scope)
            )

        graph = self._assemble(subject, raw_concepts, raw_relationships, gaps=())
        gaps = self._analyze_gaps(graph)
        if gaps:
            graph = graph.model_copy(update={
                "metadata": graph.metadata.model_copy(update={"gaps": gaps}),
            })
        self.store.put(graph)
        logger.info(
            "Generated knowledge graph %r (%s): %d concepts, %d gap(s).",
            subject, scope, len(graph.nodes), len(gaps),
        )
        return graph

    def _analyze_gaps(self, graph: KnowledgeGraph) -> List[str]:
        if self.gap_analysis is None:
            return []
        try:
            return [str(g) for g in self.gap_analysis.analyze(graph)]
        except Exception as exc:
            logger.warning("Gap analysis failed for %r: %s", graph.subject, exc)
            return []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_knowledge_graph(self, subject: str) -> Optional[KnowledgeGraph]:
        return self.store.get(subject)

    def get_all_knowledge_graphs(self) -> List[KnowledgeGraph]:
        return self.store.all_graphs()

    def search_concepts(self, query: str) -> List[ConceptNode]:
        return self.store.search_concepts(query)

    def get_concept_dependencies(self, concept_id: str) -> Optional[List[ConceptNode]]:
        return self.store.get_concept_dependencies(concept_id)

    def analyze_knowledge_graph(self, subject: str) -> Optional[Dict[str, Any]]:
        """Gap, chain and balance analysis of a cached subject; ``None`` if unknown."""
        graph = self.store.get(subject)
        if graph is None:
            return None
        return analyze_graph(graph)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def synthesize_paths(
        self,
        graph: KnowledgeGraph,
        target_difficulty: Optional[str] = _UNSET,
        max_duration_hours: Optional[float] = _UNSET,
    ) -> List[LearningPath]:
        """Three learning paths for *graph*; settings fill omitted arguments.

        An explicit ``None`` band means the full 1-10 range.
        """
        if target_difficulty is _UNSET:
            target_difficulty = self.settings.default_band
        if max_duration_hours is _UNSET or max_duration_hours is None:
            max_duration_hours = self.settings.default_max_hours
        return synthesize_paths(
            graph,
            target_difficulty=target_difficulty,
            max_duration_hours=max_duration_hours,
            required_mastery=self.settings.required_mastery,
            checkpoint_interval=self.settings.checkpoint_interval,
        )

    def synthesize_paths_for(
        self,
        subject: str,
        target_difficulty: Optional[str] = _UNSET,
        max_duration_hours: Optional[float] = _UNSET,
    ) -> Optional[List[LearningPath]]:
        """Like ``synthesize_paths`` for a cached subject; ``None`` if unknown."""
        graph = self.store.get(subject)
        if graph is None:
            return None
        return self.synthesize_paths(graph, target_difficulty, max_duration_hours)


# =========================================================================
# Pipeline
# =========================================================================


def run_pipeline(
    input_path: str,
    subject: str,
    out_dir: str,
    settings: Optional[Settings] = None,
    band: Optional[str] = _UNSET,
    max_hours: Optional[float] = None,
) -> dict:
    """Build a graph from *input_path*, synthesize paths, write JSON outputs.

    *band* and *max_hours* default to the values in *settings*.

    Returns:
        Summary dict (same schema as ``summary.json``).
    """
    settings = settings or Settings()
    provider = JsonFileSourcingProvider(input_path)
    service = KnowledgeGraphService(sourcing=provider, settings=settings)

    with timed("Graph build"):
        graph = service.generate_knowledge_graph(subject)

    with timed("Path synthesis"):
        paths = service.synthesize_paths(graph, band, max_hours)

    save_json(graph.model_dump(mode="json", by_alias=True), os.path.join(out_dir, "graph.json"))
    save_json(
        [p.model_dump(mode="json", by_alias=True) for p in paths],
        os.path.join(out_dir, "learning_paths.json"),
    )

    is_dag = validate_dag(graph.relationships)
    if not is_dag:
        logger.error("Graph is NOT acyclic after normalization!")

    summary = graph.metadata.model_dump(mode="json")
    summary.update({
        "subject": graph.subject,
        "domain": graph.domain,
        "is_dag": is_dag,
        "paths": {
            p.id: {
                "concepts": len(p.concepts),
                "estimated_duration": p.estimated_duration,
                "difficulty": p.difficulty,
            }
            for p in paths
        },
    })
    save_json(summary, os.path.join(out_dir, "summary.json"))
    return summary


# =========================================================================
# CLI
# =========================================================================


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m knowledge_paths.graph_builder",
        description="Build a validated concept graph and synthesize learning paths.",
    )
    parser.add_argument("--input", help="JSON file of candidate concepts/relationships.")
    parser.add_argument("--subject", help="Subject key for the graph.")
    parser.add_argument(
        "--band", choices=sorted(DIFFICULTY_BANDS) + ["all"], default=None,
        help="Target difficulty band (default: from settings).",
    )
    parser.add_argument("--max-hours", type=float, default=None)
    parser.add_argument(
        "--scope", choices=["basic", "intermediate", "advanced", "comprehensive"],
        default=None,
    )
    parser.add_argument("--out", default="./data/knowledge_paths")
    parser.add_argument("--fallback-on-empty", action="store_true")
    parser.add_argument("--config", default=None, help="Load settings from JSON.")
    parser.add_argument(
        "--save-config", default=None,
        help="Save the effective settings to JSON and exit.",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def _effective_settings(args: argparse.Namespace) -> Settings:
    settings = load_settings(args.config)
    overrides = {}
    if args.max_hours is not None:
        overrides["default_max_hours"] = args.max_hours
    if args.band is not None:
        overrides["default_band"] = None if args.band == "all" else args.band
    if args.scope is not None:
        overrides["scope"] = args.scope
    if args.fallback_on_empty:
        overrides["fallback_on_empty"] = True
    return Settings.model_validate({**settings.model_dump(), **overrides})


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry-point."""
    args = _parse_args(argv)
    setup_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        settings = _effective_settings(args)
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        logger.error("Could not load settings: %s", exc)
        sys.exit(1)

    if args.save_config:
        save_settings(settings, args.save_config)
        logger.info("Config saved → %s", args.save_config)
        return

    if not args.input or not args.subject:
        logger.error("--input and --subject are required.")
        sys.exit(2)

    logger.info(
        "Graph build starting: input=%s, subject=%s, band=%s, max_hours=%.1f",
        args.input, args.subject, settings.default_band or "all",
        settings.default_max_hours,
    )
    try:
        summary = run_pipeline(
            input_path=args.input,
            subject=args.subject,
            out_dir=args.out,
            settings=settings,
        )
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("Could not read candidates from %s: %s", args.input, exc)
        sys.exit(1)
    except (InvalidArgumentError, ValidationError) as exc:
        logger.error("Invalid candidate data: %s", exc)
        sys.exit(1)

    logger.info(
        "✅ Done: concepts=%d, relationships=%d, max_depth=%d, paths=%s",
        summary["total_concepts"],
        summary["total_relationships"],
        summary["max_depth"],
        {k: v["concepts"] for k, v in summary["paths"].items()},
    )
    sys.exit(0)


if __name__ == "__main__":
    main()
