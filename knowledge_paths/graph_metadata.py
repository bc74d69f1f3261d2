"""
Graph metadata: concept statistics and structural metrics.

All functions are pure aggregations over an already-validated graph.
``analyze_graph`` adds chain, balance and density analysis with
improvement suggestions.
"""

import logging
from typing import Any, Dict, Iterable, List, Sequence

import networkx as nx
import numpy as np

from knowledge_paths.models import (
    ConceptNode,
    ConceptRelationship,
    GraphMetadata,
    KnowledgeGraph,
)
from knowledge_paths.utils import round_half_up

logger = logging.getLogger(__name__)


def compute_metrics(
    nodes: Sequence[ConceptNode],
    relationships: Sequence[ConceptRelationship],
) -> Dict[str, Any]:
    """Compute structural metrics.

    Returns dict with: total_relationships, prerequisite_edges, max_depth
    (edges on the longest prerequisite chain).
    """
    G = nx.DiGraph()
    G.add_nodes_from(n.id for n in nodes)
    for rel in relationships:
        if rel.is_prerequisite:
            G.add_edge(rel.to_concept_id, rel.from_concept_id)

    n_prereq = G.number_of_edges()
    if n_prereq > 0 and nx.is_directed_acyclic_graph(G):
        max_depth = nx.dag_longest_path_length(G)
    else:
        max_depth = 0

    return {
        "total_relationships": len(relationships),
        "prerequisite_edges": n_prereq,
        "max_depth": max_depth,
    }


def compute_metadata(
    nodes: Sequence[ConceptNode],
    relationships: Sequence[ConceptRelationship] = (),
    gaps: Iterable[str] = (),
) -> GraphMetadata:
    """Summarise a validated graph.

    ``average_difficulty`` is the mean to one decimal place (``None`` for
    an empty graph); ``estimated_course_length`` is the summed learning
    time in whole hours; ``coverage`` lists categories in first-seen
    order. Gap strings are copied verbatim.
    """
    if nodes:
        difficulties = np.array([n.difficulty for n in nodes], dtype=np.float64)
        minutes = np.array([n.estimated_learning_time for n in nodes], dtype=np.float64)
        average_difficulty = round_half_up(float(difficulties.mean()), 1)
        course_hours = int(round_half_up(float(minutes.sum()) / 60))
    else:
        average_difficulty = None
        course_hours = 0

    coverage = list(dict.fromkeys(n.category for n in nodes))

    return GraphMetadata(
        total_concepts=len(nodes),
        average_difficulty=average_difficulty,
        estimated_course_length=course_hours,
        coverage=coverage,
        gaps=list(gaps),
        **compute_metrics(nodes, relationships),
    )


# =========================================================================
# Analysis
# =========================================================================

MAX_LISTED_GAPS = 3


def prerequisite_chains(graph: KnowledgeGraph) -> Dict[str, Any]:
    """Length of the longest prerequisite chain below each concept.

    Returns dict with: max_chain_length, avg_chain_length and
    isolated_concepts (concepts with no prerequisites at all).
    """
    G = nx.DiGraph()
    G.add_nodes_from(n.id for n in graph.nodes)
    for rel in graph.prerequisite_edges():
        if rel.from_concept_id in G and rel.to_concept_id in G:
            G.add_edge(rel.from_concept_id, rel.to_concept_id)

    chain: Dict[str, int] = {}
    for cid in reversed(list(nx.topological_sort(G))):
        below = [chain[p] for p in G.successors(cid)]
        chain[cid] = 1 + max(below) if below else 0

    lengths = np.array([chain[n.id] for n in graph.nodes], dtype=np.float64)
    if lengths.size == 0:
        return {"max_chain_length": 0, "avg_chain_length": 0.0, "isolated_concepts": 0}
    return {
        "max_chain_length": int(lengths.max()),
        "avg_chain_length": round_half_up(float(lengths.mean()), 2),
        "isolated_concepts": int((lengths == 0).sum()),
    }


def topical_balance(graph: KnowledgeGraph) -> Dict[str, Any]:
    """Category distribution and a 0-1 balance score (1 = perfectly even).

    The score is ``1 - std / mean`` of the per-category counts, floored
    at 0. Ties for most/least common resolve to the first-seen category.
    """
    distribution: Dict[str, int] = {}
    for node in graph.nodes:
        distribution[node.category] = distribution.get(node.category, 0) + 1

    if not distribution:
        return {
            "category_distribution": {},
            "most_common_category": None,
            "least_common_category": None,
            "balance_score": 0.0,
        }

    categories = list(distribution)
    counts = np.array([distribution[c] for c in categories], dtype=np.float64)
    score = max(0.0, 1.0 - float(counts.std()) / float(counts.mean()))
    return {
        "category_distribution": distribution,
        "most_common_category": categories[int(np.argmax(counts))],
        "least_common_category": categories[int(np.argmin(counts))],
        "balance_score": round_half_up(score, 3),
    }


def concept_density(graph: KnowledgeGraph) -> float:
    """Concepts per estimated course hour; 0.0 for a zero-length course."""
    hours = graph.metadata.estimated_course_length
    if hours <= 0:
        return 0.0
    return round_half_up(len(graph.nodes) / hours, 2)


def improvement_suggestions(graph: KnowledgeGraph) -> List[str]:
    meta = graph.metadata
    suggestions: List[str] = []

    if meta.average_difficulty is not None:
        if meta.average_difficulty < 3:
            suggestions.append(
                "Consider adding more advanced concepts to challenge learners"
            )
        elif meta.average_difficulty > 7:
            suggestions.append(
                "Consider adding more foundational concepts for better accessibility"
            )

    if meta.estimated_course_length < 10:
        suggestions.append(
            "Course might be too short; consider expanding with practical applications"
        )
    elif meta.estimated_course_length > 100:
        suggestions.append(
            "Course might be too long; consider breaking it into modules "
            "or removing less critical concepts"
        )

    if meta.estimated_course_length > 0:
        density = len(graph.nodes) / meta.estimated_course_length
        if density < 0.5:
            suggestions.append(
                "Low concept density; consider adding more concepts "
                "or reducing course length"
            )
        elif density > 2:
            suggestions.append(
                "High concept density; learners might feel overwhelmed, "
                "consider spacing out concepts"
            )

    if meta.gaps:
        suggestions.append(
            "Address identified knowledge gaps: "
            + ", ".join(meta.gaps[:MAX_LISTED_GAPS])
        )
    return suggestions


def analyze_graph(graph: KnowledgeGraph) -> Dict[str, Any]:
    """Gap and structure analysis of a validated graph.

    Returns dict with: subject, gaps, coverage, suggestions and metrics
    (concept_density, avg_difficulty, prerequisite_chains,
    topical_balance).
    """
    analysis = {
        "subject": graph.subject,
        "gaps": list(graph.metadata.gaps),
        "coverage": list(graph.metadata.coverage),
        "suggestions": improvement_suggestions(graph),
        "metrics": {
            "concept_density": concept_density(graph),
            "avg_difficulty": graph.metadata.average_difficulty,
            "prerequisite_chains": prerequisite_chains(graph),
            "topical_balance": topical_balance(graph),
        },
    }
    logger.debug(
        "Analyzed %r: %d suggestion(s).", graph.subject, len(analysis["suggestions"]),
    )
    return analysis
