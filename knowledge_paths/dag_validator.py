"""
DAG validation: dangling-edge removal, greedy cycle-breaking,
prerequisite propagation, and difficulty rebalancing.

Uses ``networkx.DiGraph`` for reachability and topological-sort
validation. Prerequisite edges point from the dependent concept to the
concept it requires (``from_concept_id`` depends on ``to_concept_id``);
only those edges are constrained. All functions return new lists and
leave their inputs untouched.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import networkx as nx

from knowledge_paths.models import (
    MAX_DIFFICULTY,
    MIN_DIFFICULTY,
    ConceptNode,
    ConceptRelationship,
)

logger = logging.getLogger(__name__)


@dataclass
class RemovedEdge:
    """A relationship discarded during normalization, with the reason."""

    relationship: ConceptRelationship
    reason: str


# =========================================================================
# Reference validation
# =========================================================================


def dedupe_nodes(nodes: Iterable[ConceptNode]) -> List[ConceptNode]:
    """Keep the first node seen for each id."""
    seen: Dict[str, ConceptNode] = {}
    for node in nodes:
        if node.id in seen:
            logger.debug("Duplicate concept id %s dropped.", node.id)
            continue
        seen[node.id] = node
    return list(seen.values())


def drop_dangling_relationships(
    nodes: Sequence[ConceptNode],
    relationships: Iterable[ConceptRelationship],
) -> Tuple[List[ConceptRelationship], List[RemovedEdge]]:
    """Drop relationships whose endpoints are not both known concepts."""
    node_ids = {n.id for n in nodes}
    kept: List[ConceptRelationship] = []
    removed: List[RemovedEdge] = []
    for rel in relationships:
        if rel.from_concept_id in node_ids and rel.to_concept_id in node_ids:
            kept.append(rel)
            continue
        removed.append(RemovedEdge(rel, "dangling_reference"))
        logger.debug(
            "Dangling relationship %s (%s → %s) dropped.",
            rel.id, rel.from_concept_id, rel.to_concept_id,
        )
    return kept, removed


# =========================================================================
# Cycle-breaking
# =========================================================================


def break_cycles(
    relationships: Iterable[ConceptRelationship],
) -> Tuple[List[ConceptRelationship], List[RemovedEdge]]:
    """Greedily discard prerequisite edges that would close a cycle.

    Edges are committed in input order. Before committing ``A → B`` the
    partial graph is searched for a path ``B ⇝ A``; if one exists the
    edge would close a cycle and is discarded. Which edges survive
    therefore depends on input order; this is not a minimum
    feedback-arc-set. Self-loops and repeated ``(from, to)`` pairs are
    discarded too. Non-prerequisite relationships pass through.

    Returns:
        Tuple of ``(kept_relationships, removed_edges)``.
    """
    G = nx.DiGraph()
    kept: List[ConceptRelationship] = []
    removed: List[RemovedEdge] = []

    for rel in relationships:
        if not rel.is_prerequisite:
            kept.append(rel)
            continue

        src, tgt = rel.from_concept_id, rel.to_concept_id
        if G.has_edge(src, tgt):
            removed.append(RemovedEdge(rel, "duplicate"))
            continue

        closes_cycle = src == tgt or (
            G.has_node(src) and G.has_node(tgt) and nx.has_path(G, tgt, src)
        )
        if closes_cycle:
            removed.append(RemovedEdge(rel, "cycle_break"))
            logger.debug("Cycle-break: removed edge %s → %s (%s).", src, tgt, rel.id)
            continue

        G.add_edge(src, tgt)
        kept.append(rel)

    n_cycle = sum(1 for r in removed if r.reason == "cycle_break")
    if n_cycle:
        logger.info("Cycle-breaking complete: removed %d edge(s).", n_cycle)
    return kept, removed


# =========================================================================
# Prerequisite propagation
# =========================================================================


def prerequisite_map(
    relationships: Iterable[ConceptRelationship],
) -> Dict[str, List[str]]:
    """``{concept_id: [prerequisite ids]}`` built from prerequisite edges."""
    result: Dict[str, List[str]] = {}
    for rel in relationships:
        if rel.is_prerequisite:
            prereqs = result.setdefault(rel.from_concept_id, [])
            if rel.to_concept_id not in prereqs:
                prereqs.append(rel.to_concept_id)
    return result


def rebuild_prerequisites(
    nodes: Sequence[ConceptNode],
    relationships: Iterable[ConceptRelationship],
) -> List[ConceptNode]:
    """Replace every node's ``prerequisites`` with the surviving edges."""
    prereqs = prerequisite_map(relationships)
    return [
        n.model_copy(update={"prerequisites": list(prereqs.get(n.id, []))})
        for n in nodes
    ]


# =========================================================================
# Difficulty rebalancing
# =========================================================================


def find_violations(
    nodes: Sequence[ConceptNode],
    relationships: Iterable[ConceptRelationship],
    difficulty: Optional[Dict[str, int]] = None,
) -> List[ConceptRelationship]:
    """Prerequisite edges whose prerequisite is not strictly easier."""
    if difficulty is None:
        difficulty = {n.id: n.difficulty for n in nodes}
    return [
        rel for rel in relationships
        if rel.is_prerequisite
        and difficulty[rel.to_concept_id] >= difficulty[rel.from_concept_id]
    ]


def _lower_prerequisites(
    difficulty: Dict[str, int],
    edges: List[ConceptRelationship],
) -> int:
    """Apply the local repair rule until nothing changes.

    Values only ever decrease and are floored at 1, so this terminates.
    Returns the number of adjustments made.
    """
    adjustments = 0
    changed = True
    while changed:
        changed = False
        for rel in edges:
            dependent, prereq = rel.from_concept_id, rel.to_concept_id
            if difficulty[prereq] >= difficulty[dependent]:
                lowered = max(MIN_DIFFICULTY, difficulty[dependent] - 1)
                if lowered != difficulty[prereq]:
                    difficulty[prereq] = lowered
                    adjustments += 1
                    changed = True
    return adjustments


def _raise_dependents(
    difficulty: Dict[str, int],
    edges: List[ConceptRelationship],
) -> int:
    """Raise dependents above their prerequisites in topological order."""
    G = nx.DiGraph()
    for rel in edges:
        G.add_edge(rel.to_concept_id, rel.from_concept_id)

    adjustments = 0
    for concept_id in nx.topological_sort(G):
        prereqs = list(G.predecessors(concept_id))
        if not prereqs:
            continue
        needed = min(MAX_DIFFICULTY, max(difficulty[p] for p in prereqs) + 1)
        if difficulty[concept_id] < needed:
            difficulty[concept_id] = needed
            adjustments += 1
    return adjustments


def rebalance_difficulty(
    nodes: Sequence[ConceptNode],
    relationships: Sequence[ConceptRelationship],
) -> Tuple[List[ConceptNode], List[ConceptRelationship], List[RemovedEdge]]:
    """Make every prerequisite strictly easier than its dependent.

    1. Iterate ``difficulty(B) = max(1, difficulty(A) - 1)`` for each
       edge *A depends on B* with ``difficulty(B) >= difficulty(A)``
       until a fixpoint.
    2. Edges still violating (prerequisite pinned at 1) are repaired by
       raising dependents in topological order, capped at 10.
    3. Edges that cannot fit on the 1-10 scale are dropped.

    The prerequisite subgraph must already be acyclic.

    Returns:
        Tuple of ``(nodes, relationships, removed_edges)``.
    """
    difficulty = {n.id: n.difficulty for n in nodes}
    edges = [r for r in relationships if r.is_prerequisite]

    adjustments = _lower_prerequisites(difficulty, edges)
    if find_violations(nodes, edges, difficulty):
        adjustments += _raise_dependents(difficulty, edges)

    removed: List[RemovedEdge] = []
    # (from, to) pairs are unique among edges that survived break_cycles
    violating = {
        (r.from_concept_id, r.to_concept_id)
        for r in find_violations(nodes, edges, difficulty)
    }
    if violating:
        logger.warning(
            "Dropping %d prerequisite edge(s) that exceed the %d-%d "
            "difficulty scale.",
            len(violating), MIN_DIFFICULTY, MAX_DIFFICULTY,
        )
        removed = [
            RemovedEdge(r, "difficulty_conflict")
            for r in edges if (r.from_concept_id, r.to_concept_id) in violating
        ]
        relationships = [
            r for r in relationships
            if not (
                r.is_prerequisite
                and (r.from_concept_id, r.to_concept_id) in violating
            )
        ]

    if adjustments:
        logger.info("Difficulty rebalancing: %d adjustment(s).", adjustments)

    balanced = [
        n if n.difficulty == difficulty[n.id]
        else n.model_copy(update={"difficulty": difficulty[n.id]})
        for n in nodes
    ]
    return balanced, list(relationships), removed


# =========================================================================
# Normalization pipeline
# =========================================================================


def normalize_graph(
    nodes: Iterable[ConceptNode],
    relationships: Iterable[ConceptRelationship],
) -> Tuple[List[ConceptNode], List[ConceptRelationship]]:
    """Repair raw candidate data into a structurally valid graph.

    Never fails on data: the worst case is a graph with no edges.
    """
    unique_nodes = dedupe_nodes(nodes)
    valid_rels, dangling = drop_dangling_relationships(unique_nodes, relationships)
    acyclic_rels, cyclic = break_cycles(valid_rels)
    balanced_nodes, final_rels, conflicts = rebalance_difficulty(
        unique_nodes, acyclic_rels,
    )
    final_nodes = rebuild_prerequisites(balanced_nodes, final_rels)

    logger.info(
        "Normalized graph: %d concepts, %d relationships "
        "(dropped dangling=%d, cycle/duplicate=%d, difficulty=%d).",
        len(final_nodes), len(final_rels),
        len(dangling), len(cyclic), len(conflicts),
    )
    return final_nodes, final_rels


# =========================================================================
# Validation
# =========================================================================


def validate_dag(relationships: Iterable[ConceptRelationship]) -> bool:
    """Verify that prerequisite edges form a DAG (topological sort succeeds)."""
    G = nx.DiGraph()
    for rel in relationships:
        if rel.is_prerequisite:
            G.add_edge(rel.from_concept_id, rel.to_concept_id)
    try:
        list(nx.topological_sort(G))
        return True
    except nx.NetworkXUnfeasible:
        return False
