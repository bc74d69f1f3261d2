"""
Concept-sourcing and gap-analysis providers.

The core never generates concept text itself. Candidate concepts and
relationships come from a ``ConceptSourcingProvider`` and knowledge-gap
strings from a ``GapAnalysisProvider``; both are injected into
``KnowledgeGraphService``. Their output is untrusted and goes through
normalization before use.
"""

import json
import logging
from typing import (
    Dict, List, Optional, Protocol, Sequence, Tuple, Union, runtime_checkable,
)

from knowledge_paths.errors import InvalidArgumentError
from knowledge_paths.models import SCOPES, KnowledgeGraph
from knowledge_paths.utils import slugify

logger = logging.getLogger(__name__)

RawCandidates = Tuple[List[dict], List[dict]]


@runtime_checkable
class ConceptSourcingProvider(Protocol):
    def fetch_candidates(self, subject: str, scope: str) -> RawCandidates:
        """Return ``(raw_concepts, raw_relationships)`` for *subject*."""
        ...


@runtime_checkable
class GapAnalysisProvider(Protocol):
    def analyze(self, graph: KnowledgeGraph) -> List[str]:
        """Return human-readable knowledge-gap descriptions for *graph*."""
        ...


def check_scope(scope: str) -> str:
    if scope not in SCOPES:
        raise InvalidArgumentError(f"scope must be one of {SCOPES}, got {scope!r}")
    return scope


# =========================================================================
# Sourcing providers
# =========================================================================


class JsonFileSourcingProvider:
    """Read candidates from a JSON file.

    Accepted layouts::

        {"concepts": [...], "relationships": [...]}
        {"<subject>": {"concepts": [...], "relationships": [...]}, ...}

    A bare list is read as concepts without relationships. Scope is
    accepted for interface compatibility but not used to filter.
    """

    def __init__(self, path: str):
        self.path = path
        self._data: Optional[Union[dict, list]] = None

    def _load(self) -> Union[dict, list]:
        if self._data is None:
            with open(self.path, "r", encoding="utf-8") as fh:
                self._data = json.load(fh)
            logger.info("Loaded candidate data from %s", self.path)
        return self._data

    def fetch_candidates(self, subject: str, scope: str = "comprehensive") -> RawCandidates:
        check_scope(scope)
        data = self._load()
        if isinstance(data, list):
            return list(data), []
        if "concepts" not in data:
            data = data.get(subject) or {}
            if isinstance(data, list):
                return list(data), []
        concepts = data.get("concepts") or []
        relationships = data.get("relationships") or []
        logger.info(
            "Sourced %d concept(s) and %d relationship(s) for %r.",
            len(concepts), len(relationships), subject,
        )
        return list(concepts), list(relationships)


_FALLBACK_CONCEPTS = (
    "Introduction and Overview",
    "Basic Terminology",
    "Fundamental Principles",
    "Core Concepts",
    "Practical Applications",
    "Advanced Topics",
    "Integration and Synthesis",
    "Assessment and Review",
)


class FallbackSourcingProvider:
    """A generic eight-step curriculum chained by prerequisite edges.

    Used when a real provider returns nothing usable.
    """

    def fetch_candidates(self, subject: str, scope: str = "comprehensive") -> RawCandidates:
        check_scope(scope)
        slug = slugify(subject)
        concepts = []
        for index, name in enumerate(_FALLBACK_CONCEPTS):
            lowered = name.lower()
            concepts.append({
                "id": f"{slug}_concept_{index + 1}",
                "name": name,
                "description": f"{name} for {subject}",
                "category": "general",
                "difficulty": min(index + 1, 8),
                "skills": [f"{lowered} skills"],
                "estimatedLearningTime": 60,
                "importance": max(8 - index, 1),
                "metadata": {
                    "subject": subject,
                    "keywords": [lowered],
                    "learningObjectives": [f"Understand {lowered}"],
                    "assessmentMethods": ["quiz"],
                    "realWorldApplications": [f"Applied {lowered}"],
                },
            })

        relationships = [
            {
                "id": f"relationship_{i + 1}",
                "fromConceptId": concepts[i + 1]["id"],
                "toConceptId": concepts[i]["id"],
                "type": "prerequisite",
                "strength": 0.8,
                "description": (
                    f"{concepts[i + 1]['name']} builds upon {concepts[i]['name']}"
                ),
                "direction": "unidirectional",
            }
            for i in range(len(concepts) - 1)
        ]
        return concepts, relationships


# =========================================================================
# Gap providers
# =========================================================================


class StaticGapProvider:
    """Return fixed gap strings, optionally per subject."""

    def __init__(self, gaps: Union[Sequence[str], Dict[str, Sequence[str]], None] = None):
        self.gaps = gaps or []

    def analyze(self, graph: KnowledgeGraph) -> List[str]:
        if isinstance(self.gaps, dict):
            return list(self.gaps.get(graph.subject, []))
        return list(self.gaps)


# =========================================================================
# Domain inference
# =========================================================================

_DOMAIN_KEYWORDS = (
    ("mathematics", "STEM"),
    ("physics", "STEM"),
    ("chemistry", "STEM"),
    ("biology", "STEM"),
    ("computer science", "STEM"),
    ("programming", "STEM"),
    ("history", "Social Studies"),
    ("geography", "Social Studies"),
    ("literature", "Humanities"),
    ("language", "Humanities"),
    ("art", "Arts"),
    ("music", "Arts"),
    ("business", "Business"),
    ("economics", "Business"),
)


def infer_domain(subject: str) -> str:
    """Map a subject to a broad domain by keyword; ``"General"`` otherwise."""
    lowered = subject.lower()
    for keyword, domain in _DOMAIN_KEYWORDS:
        if keyword in lowered:
            return domain
    return "General"
