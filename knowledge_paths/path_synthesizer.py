"""
Learning-path synthesis over a validated knowledge graph.

Every strategy shares one pipeline:

1. Filter concepts to the requested difficulty band (inclusive).
2. Order them with the strategy's ranking.
3. Greedily select in order while the running total of learning time
   stays within ``max_duration_hours * 60`` minutes.
4. Derive the path label, duration, checkpoints and adaptation points.

``foundation_first`` orders by Kahn's algorithm with ties broken by
input order. ``application_driven`` and ``balanced`` rank by a score but
still emit a concept only after all of its in-band prerequisites, so
every sequence is prerequisite-safe. Selection likewise skips a concept
whose in-band prerequisites were left out by the budget.
"""

import logging
from collections import deque
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import networkx as nx
import numpy as np

from knowledge_paths.dag_validator import prerequisite_map
from knowledge_paths.errors import InvalidArgumentError
from knowledge_paths.models import (
    Checkpoint,
    ConceptNode,
    ConceptRelationship,
    KnowledgeGraph,
    LearningPath,
)
from knowledge_paths.utils import round_half_up

logger = logging.getLogger(__name__)

DIFFICULTY_BANDS: Dict[str, Tuple[int, int]] = {
    "beginner": (1, 4),
    "intermediate": (3, 7),
    "advanced": (6, 10),
}
FULL_RANGE = (1, 10)

DEFAULT_REQUIRED_MASTERY = 0.7
DEFAULT_CHECKPOINT_INTERVAL = 3


class PathStrategy(str, Enum):
    FOUNDATION_FIRST = "foundation_first"
    APPLICATION_DRIVEN = "application_driven"
    BALANCED = "balanced"


_STRATEGY_TEXT = {
    PathStrategy.FOUNDATION_FIRST: (
        "Foundation-First Learning Path",
        "Master fundamental concepts before moving to advanced topics",
    ),
    PathStrategy.APPLICATION_DRIVEN: (
        "Application-Driven Learning Path",
        "Learn through practical applications and real-world examples",
    ),
    PathStrategy.BALANCED: (
        "Balanced Learning Path",
        "Optimal balance of theory, practice, and difficulty progression",
    ),
}


# =========================================================================
# 1. Filter
# =========================================================================


def band_range(target_difficulty: Optional[str]) -> Tuple[int, int]:
    """Inclusive difficulty range for a band; unknown or ``None`` → 1-10."""
    if target_difficulty is None:
        return FULL_RANGE
    return DIFFICULTY_BANDS.get(target_difficulty, FULL_RANGE)


def filter_by_band(
    nodes: Sequence[ConceptNode],
    target_difficulty: Optional[str],
) -> List[ConceptNode]:
    low, high = band_range(target_difficulty)
    return [n for n in nodes if low <= n.difficulty <= high]


# =========================================================================
# 2. Order
# =========================================================================


def _in_band_prerequisites(
    nodes: Sequence[ConceptNode],
    relationships: Sequence[ConceptRelationship],
) -> Dict[str, List[str]]:
    ids = {n.id for n in nodes}
    return {
        cid: [p for p in prereqs if p in ids]
        for cid, prereqs in prerequisite_map(relationships).items()
        if cid in ids
    }


def topological_order(
    nodes: Sequence[ConceptNode],
    relationships: Sequence[ConceptRelationship],
) -> List[ConceptNode]:
    """Kahn's algorithm with a FIFO queue seeded in input order.

    Edges leaving the node set are ignored, so filtering a band never
    strands a concept behind a prerequisite outside it.
    """
    node_map = {n.id: n for n in nodes}
    in_degree = {n.id: 0 for n in nodes}
    dependents: Dict[str, List[str]] = {n.id: [] for n in nodes}

    for cid, prereqs in _in_band_prerequisites(nodes, relationships).items():
        for prereq in prereqs:
            dependents[prereq].append(cid)
            in_degree[cid] += 1

    queue = deque(cid for cid, degree in in_degree.items() if degree == 0)
    result: List[ConceptNode] = []
    while queue:
        current = queue.popleft()
        result.append(node_map[current])
        for dependent in dependents[current]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)

    if len(result) < len(nodes):
        logger.warning(
            "Topological order skipped %d concept(s) on a prerequisite cycle.",
            len(nodes) - len(result),
        )
    return result


def application_score(node: ConceptNode) -> float:
    return float(len(node.metadata.real_world_applications) * node.importance)


def balanced_score(node: ConceptNode) -> float:
    return (
        0.4 * node.importance
        + 0.3 * len(node.metadata.real_world_applications)
        + 0.3 * (10 - node.difficulty)
    )


def ranked_order(
    nodes: Sequence[ConceptNode],
    relationships: Sequence[ConceptRelationship],
    score: Callable[[ConceptNode], float],
) -> List[ConceptNode]:
    """Order by descending *score*, never placing a dependent first.

    Among the concepts whose prerequisites have all been emitted, the
    highest-scoring one goes next; equal scores keep input order.
    """
    if not nodes:
        return []
    scores = np.array([score(n) for n in nodes], dtype=np.float64)
    ranking = np.argsort(-scores, kind="stable")
    rank = {nodes[int(i)].id: position for position, i in enumerate(ranking)}

    G = nx.DiGraph()
    G.add_nodes_from(rank)
    for cid, prereqs in _in_band_prerequisites(nodes, relationships).items():
        for prereq in prereqs:
            G.add_edge(prereq, cid)

    node_map = {n.id: n for n in nodes}
    return [
        node_map[cid]
        for cid in nx.lexicographical_topological_sort(G, key=rank.__getitem__)
    ]


def _application_driven_order(
    nodes: Sequence[ConceptNode],
    relationships: Sequence[ConceptRelationship],
) -> List[ConceptNode]:
    return ranked_order(nodes, relationships, application_score)


def _balanced_order(
    nodes: Sequence[ConceptNode],
    relationships: Sequence[ConceptRelationship],
) -> List[ConceptNode]:
    return ranked_order(nodes, relationships, balanced_score)


_ORDERINGS = {
    PathStrategy.FOUNDATION_FIRST: topological_order,
    PathStrategy.APPLICATION_DRIVEN: _application_driven_order,
    PathStrategy.BALANCED: _balanced_order,
}


# =========================================================================
# 3. Select
# =========================================================================


def select_within_duration(
    ordered: Sequence[ConceptNode],
    max_duration_hours: float,
    relationships: Sequence[ConceptRelationship] = (),
) -> List[ConceptNode]:
    """Greedy selection over a pre-ranked list under a minute budget.

    A concept is taken when it fits in the remaining budget and every
    prerequisite of it that appears in *ordered* has already been taken.
    """
    budget = max_duration_hours * 60
    prereqs = _in_band_prerequisites(ordered, relationships)

    selected: List[ConceptNode] = []
    taken = set()
    total = 0
    for node in ordered:
        if any(p not in taken for p in prereqs.get(node.id, [])):
            logger.debug("Skipping %s: prerequisite not selected.", node.id)
            continue
        if total + node.estimated_learning_time <= budget:
            selected.append(node)
            taken.add(node.id)
            total += node.estimated_learning_time
    return selected


# =========================================================================
# 4. Derive
# =========================================================================


def infer_path_difficulty(concepts: Sequence[ConceptNode]) -> str:
    if not concepts:
        return "beginner"
    average = float(np.mean([c.difficulty for c in concepts]))
    if average <= 3:
        return "beginner"
    if average <= 7:
        return "intermediate"
    return "advanced"


def path_duration_hours(concepts: Sequence[ConceptNode]) -> float:
    minutes = sum(c.estimated_learning_time for c in concepts)
    return round_half_up(minutes / 60, 1)


def generate_checkpoints(
    concepts: Sequence[ConceptNode],
    interval: int = DEFAULT_CHECKPOINT_INTERVAL,
    required_mastery: float = DEFAULT_REQUIRED_MASTERY,
) -> List[Checkpoint]:
    """One checkpoint on every *interval*-th concept (indices 2, 5, 8, ...)."""
    return [
        Checkpoint(
            concept_id=c.id,
            assessment_type=(c.metadata.assessment_methods or ["quiz"])[0],
            required_mastery=required_mastery,
        )
        for index, c in enumerate(concepts)
        if index % interval == interval - 1
    ]


def identify_adaptation_points(
    concepts: Sequence[ConceptNode],
    relationships: Sequence[ConceptRelationship],
) -> List[str]:
    """Concepts that are the source of more than one prerequisite edge."""
    prereqs = prerequisite_map(relationships)
    return [c.id for c in concepts if len(prereqs.get(c.id, [])) > 1]


# =========================================================================
# Pipeline
# =========================================================================


def build_path(
    strategy: PathStrategy,
    graph: KnowledgeGraph,
    candidates: Sequence[ConceptNode],
    max_duration_hours: float,
    required_mastery: float = DEFAULT_REQUIRED_MASTERY,
    checkpoint_interval: int = DEFAULT_CHECKPOINT_INTERVAL,
) -> LearningPath:
    """Run order → select → derive for one strategy."""
    ordered = _ORDERINGS[strategy](candidates, graph.relationships)
    selected = select_within_duration(ordered, max_duration_hours, graph.relationships)
    name, description = _STRATEGY_TEXT[strategy]

    return LearningPath(
        id=strategy.value,
        name=name,
        description=description,
        subject=graph.subject,
        difficulty=infer_path_difficulty(selected),
        estimated_duration=path_duration_hours(selected),
        concepts=selected,
        sequence=[c.id for c in selected],
        checkpoints=generate_checkpoints(
            selected, interval=checkpoint_interval,
            required_mastery=required_mastery,
        ),
        adaptation_points=identify_adaptation_points(selected, graph.relationships),
    )


def synthesize_paths(
    graph: KnowledgeGraph,
    target_difficulty: Optional[str] = "intermediate",
    max_duration_hours: float = 40.0,
    required_mastery: float = DEFAULT_REQUIRED_MASTERY,
    checkpoint_interval: int = DEFAULT_CHECKPOINT_INTERVAL,
) -> List[LearningPath]:
    """Build the three strategy paths for *graph*.

    Always returns exactly three paths in ``PathStrategy`` order; a path
    whose budget fits no concept has an empty ``concepts`` list.

    Raises:
        InvalidArgumentError: negative or missing duration, or a
            checkpoint interval below 1.
    """
    if max_duration_hours is None or max_duration_hours < 0:
        raise InvalidArgumentError(
            f"max_duration_hours must be >= 0, got {max_duration_hours!r}"
        )
    if checkpoint_interval < 1:
        raise InvalidArgumentError(
            f"checkpoint_interval must be >= 1, got {checkpoint_interval!r}"
        )

    candidates = filter_by_band(graph.nodes, target_difficulty)
    logger.debug(
        "Synthesizing paths for %s: band=%s, %d/%d concepts in band, budget=%.1fh.",
        graph.subject, target_difficulty, len(candidates), len(graph.nodes),
        max_duration_hours,
    )
    return [
        build_path(
            strategy, graph, candidates, max_duration_hours,
            required_mastery=required_mastery,
            checkpoint_interval=checkpoint_interval,
        )
        for strategy in PathStrategy
    ]
