"""
pytest suite for graph normalization: dangling references, cycle
breaking, prerequisite propagation and difficulty rebalancing.

All tests are deterministic and in-memory.
"""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from knowledge_paths.dag_validator import (
    break_cycles,
    dedupe_nodes,
    drop_dangling_relationships,
    find_violations,
    normalize_graph,
    rebalance_difficulty,
    rebuild_prerequisites,
    validate_dag,
)
from knowledge_paths.models import ConceptNode, ConceptRelationship


# =========================================================================
# Helpers
# =========================================================================


def _concept(cid, difficulty=5, **kwargs):
    return ConceptNode(id=cid, name=cid.upper(), difficulty=difficulty, **kwargs)


def _prereq(dependent, prerequisite, rid=None):
    """*dependent* requires *prerequisite*."""
    return ConceptRelationship(
        id=rid or f"{dependent}->{prerequisite}",
        from_concept_id=dependent,
        to_concept_id=prerequisite,
        type="prerequisite",
    )


def _related(a, b):
    return ConceptRelationship(
        id=f"{a}~{b}", from_concept_id=a, to_concept_id=b, type="related",
    )


# =========================================================================
# Test: Reference validation
# =========================================================================


class TestReferenceValidation:
    """Relationships must point at known concepts."""

    def test_dangling_relationships_dropped(self):
        nodes = [_concept("a"), _concept("b")]
        rels = [_prereq("b", "a"), _prereq("b", "ghost"), _related("ghost", "a")]
        kept, removed = drop_dangling_relationships(nodes, rels)
        assert [r.id for r in kept] == ["b->a"]
        assert len(removed) == 2
        assert {r.reason for r in removed} == {"dangling_reference"}

    def test_duplicate_node_ids_keep_first(self):
        nodes = [_concept("a", difficulty=2), _concept("a", difficulty=9)]
        unique = dedupe_nodes(nodes)
        assert len(unique) == 1
        assert unique[0].difficulty == 2


# =========================================================================
# Test: Cycle Detection & Breaking
# =========================================================================


class TestCycleBreaking:
    """Tests for the greedy, input-order cycle breaker."""

    def test_acyclic_input_unchanged(self):
        rels = [_prereq("b", "a"), _prereq("c", "b")]
        kept, removed = break_cycles(rels)
        assert removed == []
        assert kept == rels

    def test_three_cycle_keeps_at_most_two_edges(self):
        """A→B→C→A keeps a subset of two edges and no cycle."""
        rels = [_prereq("a", "b"), _prereq("b", "c"), _prereq("c", "a")]
        kept, removed = break_cycles(rels)
        assert len(kept) <= 2
        assert all(r in rels for r in kept)
        assert validate_dag(kept)
        assert [r.reason for r in removed] == ["cycle_break"]

    def test_edge_that_closes_the_cycle_is_dropped(self):
        """The last edge seen in a cycle is the one discarded."""
        rels = [_prereq("c", "a"), _prereq("b", "c"), _prereq("a", "b")]
        kept, removed = break_cycles(rels)
        assert [r.id for r in kept] == ["c->a", "b->c"]
        assert removed[0].relationship.id == "a->b"

    def test_self_loop_removed(self):
        kept, removed = break_cycles([_prereq("a", "a")])
        assert kept == []
        assert removed[0].reason == "cycle_break"

    def test_duplicate_edge_removed(self):
        rels = [_prereq("b", "a", rid="r1"), _prereq("b", "a", rid="r2")]
        kept, removed = break_cycles(rels)
        assert [r.id for r in kept] == ["r1"]
        assert removed[0].reason == "duplicate"

    def test_non_prerequisite_cycles_kept(self):
        rels = [_related("a", "b"), _related("b", "a"), _prereq("a", "b")]
        kept, removed = break_cycles(rels)
        assert len(kept) == 3
        assert removed == []

    def test_multiple_cycles(self):
        rels = [
            _prereq("a", "b"), _prereq("b", "c"), _prereq("c", "a"),
            _prereq("b", "d"), _prereq("d", "b"),
        ]
        kept, removed = break_cycles(rels)
        assert validate_dag(kept)
        assert len(removed) == 2

    def test_validate_dag_false(self):
        assert validate_dag([_prereq("a", "b"), _prereq("b", "a")]) is False

    def test_validate_dag_ignores_related(self):
        assert validate_dag([_related("a", "b"), _related("b", "a")]) is True


# =========================================================================
# Test: Prerequisite propagation
# =========================================================================


class TestRebuildPrerequisites:

    def test_raw_prerequisites_discarded(self):
        nodes = [_concept("a", prerequisites=["ghost", "b"]), _concept("b")]
        rebuilt = rebuild_prerequisites(nodes, [])
        assert rebuilt[0].prerequisites == []

    def test_prerequisites_follow_edges(self):
        nodes = [_concept("a"), _concept("b"), _concept("c")]
        rels = [_prereq("c", "a"), _prereq("c", "b"), _related("a", "b")]
        rebuilt = {n.id: n for n in rebuild_prerequisites(nodes, rels)}
        assert rebuilt["c"].prerequisites == ["a", "b"]
        assert rebuilt["a"].prerequisites == []

    def test_inputs_not_mutated(self):
        nodes = [_concept("a", prerequisites=["x"])]
        rebuild_prerequisites(nodes, [])
        assert nodes[0].prerequisites == ["x"]


# =========================================================================
# Test: Difficulty rebalancing
# =========================================================================


class TestDifficultyRebalancing:

    def test_prerequisite_lowered(self):
        nodes = [_concept("a", difficulty=3), _concept("b", difficulty=5)]
        balanced, rels, removed = rebalance_difficulty(nodes, [_prereq("a", "b")])
        by_id = {n.id: n.difficulty for n in balanced}
        assert by_id == {"a": 3, "b": 2}
        assert removed == []

    def test_chain_converges(self):
        """Repairs propagate down a chain until nothing violates."""
        nodes = [_concept(c, difficulty=5) for c in "abc"]
        rels = [_prereq("b", "c"), _prereq("a", "b")]
        balanced, rels, _ = rebalance_difficulty(nodes, rels)
        by_id = {n.id: n.difficulty for n in balanced}
        assert by_id == {"a": 5, "b": 4, "c": 3}
        assert find_violations(balanced, rels) == []

    def test_floor_repaired_by_raising_dependent(self):
        nodes = [_concept("a", difficulty=1), _concept("b", difficulty=1)]
        balanced, rels, removed = rebalance_difficulty(nodes, [_prereq("a", "b")])
        by_id = {n.id: n.difficulty for n in balanced}
        assert by_id == {"a": 2, "b": 1}
        assert len(rels) == 1
        assert removed == []

    def test_chain_longer_than_scale_drops_edge(self):
        """Eleven chained concepts cannot all be strictly ordered in 1-10."""
        ids = [f"c{i}" for i in range(11)]
        nodes = [_concept(cid, difficulty=10) for cid in ids]
        rels = [_prereq(ids[i + 1], ids[i]) for i in range(10)]
        balanced, kept, removed = rebalance_difficulty(nodes, rels)
        assert len(removed) == 1
        assert removed[0].reason == "difficulty_conflict"
        assert len(kept) == 9
        assert find_violations(balanced, kept) == []

    def test_inputs_not_mutated(self):
        nodes = [_concept("a", difficulty=3), _concept("b", difficulty=5)]
        rebalance_difficulty(nodes, [_prereq("a", "b")])
        assert nodes[1].difficulty == 5


# =========================================================================
# Test: Full normalization
# =========================================================================


class TestNormalizeGraph:

    def test_messy_input_satisfies_invariants(self):
        nodes = [
            _concept("a", difficulty=8, prerequisites=["z"]),
            _concept("b", difficulty=8),
            _concept("c", difficulty=2),
            _concept("d", difficulty=5),
        ]
        rels = [
            _prereq("a", "b"),
            _prereq("b", "c"),
            _prereq("c", "a"),      # closes a cycle
            _prereq("d", "ghost"),  # dangling
            _prereq("d", "c"),
            _related("a", "d"),
        ]
        out_nodes, out_rels = normalize_graph(nodes, rels)
        node_ids = {n.id for n in out_nodes}

        assert validate_dag(out_rels)
        assert find_violations(out_nodes, out_rels) == []
        assert all(
            r.from_concept_id in node_ids and r.to_concept_id in node_ids
            for r in out_rels
        )
        for node in out_nodes:
            expected = {
                r.to_concept_id for r in out_rels
                if r.is_prerequisite and r.from_concept_id == node.id
            }
            assert set(node.prerequisites) == expected
        assert "c->a" not in {r.id for r in out_rels}
        assert "a~d" in {r.id for r in out_rels}

    def test_empty_input(self):
        assert normalize_graph([], []) == ([], [])
