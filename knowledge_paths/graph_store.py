"""
In-memory graph store: bounded LRU cache of subject → KnowledgeGraph
plus a concept-id index spanning every cached graph.

Provides:
- ``put`` / ``get`` / ``remove`` keyed by subject (wholesale replace).
- ``search_concepts``: case-insensitive substring search.
- ``get_concept_dependencies``: prerequisites of a concept.
"""

import logging
import threading
from collections import OrderedDict
from typing import Dict, List, Optional

from knowledge_paths.errors import InvalidArgumentError
from knowledge_paths.models import ConceptNode, KnowledgeGraph

logger = logging.getLogger(__name__)

DEFAULT_MAX_GRAPHS = 64


class GraphStore:
    """Thread-safe LRU store of validated knowledge graphs.

    When more than ``max_graphs`` subjects are cached the least recently
    used graph is evicted together with its concepts in the index. A
    concept id shared by several subjects resolves to the most recently
    stored graph.
    """

    def __init__(self, max_graphs: int = DEFAULT_MAX_GRAPHS):
        if max_graphs < 1:
            raise InvalidArgumentError(f"max_graphs must be >= 1, got {max_graphs}")
        self.max_graphs = max_graphs
        self._graphs: "OrderedDict[str, KnowledgeGraph]" = OrderedDict()
        self._concepts: Dict[str, ConceptNode] = {}
        self._owner: Dict[str, str] = {}  # concept_id → subject
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Subject cache
    # ------------------------------------------------------------------

    def put(self, graph: KnowledgeGraph) -> None:
        """Cache *graph* under its subject, replacing any previous graph."""
        with self._lock:
            if graph.subject in self._graphs:
                self._unindex(graph.subject)
                del self._graphs[graph.subject]
            self._graphs[graph.subject] = graph
            for node in graph.nodes:
                self._concepts[node.id] = node
                self._owner[node.id] = graph.subject

            while len(self._graphs) > self.max_graphs:
                evicted, _ = self._graphs.popitem(last=False)
                self._unindex(evicted)
                logger.info("Evicted knowledge graph for %r (LRU).", evicted)

    def get(self, subject: str) -> Optional[KnowledgeGraph]:
        """Return the cached graph for *subject*, or ``None``."""
        with self._lock:
            graph = self._graphs.get(subject)
            if graph is not None:
                self._graphs.move_to_end(subject)
            return graph

    def remove(self, subject: str) -> bool:
        with self._lock:
            if subject not in self._graphs:
                return False
            self._unindex(subject)
            del self._graphs[subject]
            return True

    def all_graphs(self) -> List[KnowledgeGraph]:
        with self._lock:
            return list(self._graphs.values())

    def subjects(self) -> List[str]:
        with self._lock:
            return list(self._graphs.keys())

    def clear(self) -> None:
        with self._lock:
            self._graphs.clear()
            self._concepts.clear()
            self._owner.clear()

    def __len__(self) -> int:
        return len(self._graphs)

    def __contains__(self, subject: object) -> bool:
        return subject in self._graphs

    def _unindex(self, subject: str) -> None:
        """Drop index entries owned by *subject*. Caller holds the lock."""
        for concept_id in [c for c, s in self._owner.items() if s == subject]:
            del self._owner[concept_id]
            del self._concepts[concept_id]
        # Restore ids still present in another cached graph, newest first.
        for other_subject, graph in reversed(self._graphs.items()):
            if other_subject == subject:
                continue
            for node in graph.nodes:
                if node.id not in self._owner:
                    self._concepts[node.id] = node
                    self._owner[node.id] = other_subject

    # ------------------------------------------------------------------
    # Concept queries
    # ------------------------------------------------------------------

    def get_concept(self, concept_id: str) -> Optional[ConceptNode]:
        with self._lock:
            return self._concepts.get(concept_id)

    def search_concepts(self, query: str) -> List[ConceptNode]:
        """Concepts whose name, description or any keyword contains *query*."""
        needle = query.lower()
        with self._lock:
            return [
                concept for concept in self._concepts.values()
                if needle in concept.name.lower()
                or needle in concept.description.lower()
                or any(needle in kw.lower() for kw in concept.metadata.keywords)
            ]

    def get_concept_dependencies(self, concept_id: str) -> Optional[List[ConceptNode]]:
        """Concepts that *concept_id* directly requires.

        Returns ``None`` if the concept is not cached, ``[]`` if it has no
        prerequisites.
        """
        with self._lock:
            subject = self._owner.get(concept_id)
            if subject is None:
                return None
            graph = self._graphs[subject]
            node_map = graph.node_map()
            return [
                node_map[rel.to_concept_id]
                for rel in graph.relationships
                if rel.is_prerequisite
                and rel.from_concept_id == concept_id
                and rel.to_concept_id in node_map
            ]
