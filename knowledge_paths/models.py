"""
Pydantic models for the knowledge-graph validator and path synthesizer.

Concepts: concept nodes, typed relationships between them.
Graphs: validated knowledge graphs and their aggregate metadata.
Paths: learning paths with checkpoints and adaptation points.

Every model accepts the camelCase field names used on the wire
(``estimatedLearningTime``, ``fromConceptId``, ...) as well as the
snake_case attribute names, and serialises back to camelCase with
``model_dump(by_alias=True)``.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


# =========================================================================
# Literals
# =========================================================================

RelationshipType = Literal[
    "prerequisite",
    "builds_on",
    "related",
    "alternative",
    "complementary",
    "contradictory",
    "example_of",
    "generalizes",
]
Direction = Literal["bidirectional", "unidirectional"]
DifficultyLabel = Literal["beginner", "intermediate", "advanced"]
Scope = Literal["basic", "intermediate", "advanced", "comprehensive"]

PREREQUISITE = "prerequisite"
RELATIONSHIP_TYPES = (
    "prerequisite",
    "builds_on",
    "related",
    "alternative",
    "complementary",
    "contradictory",
    "example_of",
    "generalizes",
)
SCOPES = ("basic", "intermediate", "advanced", "comprehensive")

MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 10
MIN_LEARNING_TIME = 15
DEFAULT_LEARNING_TIME = 60


def _clamp(value: Any, low: float, high: float, default: float) -> float:
    if value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return max(low, min(high, number))


def _list_or_empty(value: Any) -> Any:
    return [] if value is None else value


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =========================================================================
# Concepts & relationships
# =========================================================================


class ConceptMetadata(_CamelModel):
    """Descriptive metadata attached to a concept."""

    subject: str = ""
    subfield: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    learning_objectives: List[str] = Field(default_factory=list)
    assessment_methods: List[str] = Field(
        default_factory=lambda: ["quiz", "assignment"]
    )
    real_world_applications: List[str] = Field(default_factory=list)

    @field_validator(
        "keywords", "learning_objectives", "real_world_applications",
        mode="before",
    )
    @classmethod
    def _none_to_list(cls, v):
        return _list_or_empty(v)

    @field_validator("assessment_methods", mode="before")
    @classmethod
    def _default_assessments(cls, v):
        return ["quiz", "assignment"] if v is None else v


class ConceptNode(_CamelModel):
    """A single concept in a knowledge graph.

    Numeric fields are clamped rather than rejected: difficulty and
    importance into 1-10 (missing or non-finite → 5), learning time
    floored at 15 minutes (missing or non-finite → 60). A missing name
    falls back to the id.
    """

    id: str
    name: str
    description: str = ""
    category: str = "general"
    difficulty: int = 5
    prerequisites: List[str] = Field(default_factory=list)
    skills: List[str] = Field(default_factory=list)
    estimated_learning_time: int = DEFAULT_LEARNING_TIME
    importance: int = 5
    metadata: ConceptMetadata = Field(default_factory=ConceptMetadata)

    @model_validator(mode="before")
    @classmethod
    def _default_name(cls, data):
        if isinstance(data, dict) and not data.get("name") and data.get("id"):
            data = {**data, "name": data["id"]}
        return data

    @field_validator("difficulty", "importance", mode="before")
    @classmethod
    def _clamp_scale(cls, v):
        return int(round(_clamp(v, MIN_DIFFICULTY, MAX_DIFFICULTY, 5)))

    @field_validator("estimated_learning_time", mode="before")
    @classmethod
    def _clamp_learning_time(cls, v):
        minutes = _clamp(v, MIN_LEARNING_TIME, float("inf"), DEFAULT_LEARNING_TIME)
        return int(round(minutes))

    @field_validator("category", mode="before")
    @classmethod
    def _default_category(cls, v):
        return v or "general"

    @field_validator("description", mode="before")
    @classmethod
    def _default_description(cls, v):
        return v or ""

    @field_validator("prerequisites", "skills", mode="before")
    @classmethod
    def _none_to_list(cls, v):
        return _list_or_empty(v)

    @field_validator("metadata", mode="before")
    @classmethod
    def _default_metadata(cls, v):
        return {} if v is None else v


class ConceptRelationship(_CamelModel):
    """A typed, directed relationship between two concepts.

    For ``prerequisite`` edges, ``from_concept_id`` depends on
    ``to_concept_id``. Unknown relationship types are coerced to
    ``related`` so that they never take part in DAG constraints.
    """

    id: str
    from_concept_id: str
    to_concept_id: str
    type: RelationshipType = "related"
    strength: float = 0.5
    description: str = ""
    direction: Direction = "unidirectional"

    @property
    def is_prerequisite(self) -> bool:
        return self.type == PREREQUISITE

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, v):
        normalised = str(v or "").strip().lower()
        if normalised not in RELATIONSHIP_TYPES:
            logger.debug("Unknown relationship type %r coerced to 'related'.", v)
            return "related"
        return normalised

    @field_validator("strength", mode="before")
    @classmethod
    def _clamp_strength(cls, v):
        return _clamp(v, 0.0, 1.0, 0.5)

    @field_validator("direction", mode="before")
    @classmethod
    def _default_direction(cls, v):
        return v if v in ("bidirectional", "unidirectional") else "unidirectional"

    @field_validator("description", mode="before")
    @classmethod
    def _default_description(cls, v):
        return v or ""


# =========================================================================
# Graphs
# =========================================================================


class GraphMetadata(_CamelModel):
    """Aggregate statistics attached to a validated graph."""

    total_concepts: int = 0
    average_difficulty: Optional[float] = None
    estimated_course_length: int = 0
    last_updated: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    coverage: List[str] = Field(default_factory=list)
    gaps: List[str] = Field(default_factory=list)
    total_relationships: int = 0
    prerequisite_edges: int = 0
    max_depth: int = 0


class KnowledgeGraph(_CamelModel):
    """A validated concept graph for one subject."""

    subject: str
    domain: str = "General"
    nodes: List[ConceptNode] = Field(default_factory=list)
    relationships: List[ConceptRelationship] = Field(default_factory=list)
    metadata: GraphMetadata = Field(default_factory=GraphMetadata)

    def node_map(self) -> Dict[str, ConceptNode]:
        return {n.id: n for n in self.nodes}

    def prerequisite_edges(self) -> List[ConceptRelationship]:
        return [r for r in self.relationships if r.is_prerequisite]


# =========================================================================
# Learning paths
# =========================================================================


class Checkpoint(_CamelModel):
    concept_id: str
    assessment_type: str = "quiz"
    required_mastery: float = 0.7


class LearningPath(_CamelModel):
    """An ordered, duration-bounded selection of concepts."""

    id: str
    name: str
    description: str
    subject: str
    difficulty: DifficultyLabel = "beginner"
    estimated_duration: float = 0.0
    concepts: List[ConceptNode] = Field(default_factory=list)
    sequence: List[str] = Field(default_factory=list)
    checkpoints: List[Checkpoint] = Field(default_factory=list)
    adaptation_points: List[str] = Field(default_factory=list)

    @property
    def total_minutes(self) -> int:
        return sum(c.estimated_learning_time for c in self.concepts)


# =========================================================================
# Raw-record parsing
# =========================================================================

RawConcept = Union[ConceptNode, dict]
RawRelationship = Union[ConceptRelationship, dict]


def parse_concepts(raw: Iterable[RawConcept], subject: str = "") -> List[ConceptNode]:
    """Validate raw concept records into ``ConceptNode``s.

    Records without a ``metadata.subject`` inherit *subject*. Records that
    cannot be coerced at all (no id, not a mapping) are dropped.
    """
    concepts: List[ConceptNode] = []
    for index, record in enumerate(raw):
        if isinstance(record, ConceptNode):
            node = record
        else:
            try:
                node = ConceptNode.model_validate(record)
            except ValidationError as exc:
                logger.debug(
                    "Malformed concept record #%d dropped: %d error(s).",
                    index, exc.error_count(),
                )
                continue
        if subject and not node.metadata.subject:
            node = node.model_copy(update={
                "metadata": node.metadata.model_copy(update={"subject": subject}),
            })
        concepts.append(node)
    return concepts


def parse_relationships(raw: Iterable[RawRelationship]) -> List[ConceptRelationship]:
    """Validate raw relationship records; missing ids become ``relationship_N``.

    Records with a missing or null endpoint are dropped, like dangling
    edges during normalization.
    """
    relationships: List[ConceptRelationship] = []
    for index, record in enumerate(raw):
        if isinstance(record, ConceptRelationship):
            relationships.append(record)
            continue
        if not isinstance(record, dict):
            logger.debug("Malformed relationship record #%d dropped.", index)
            continue
        record = dict(record)
        if not record.get("id"):
            record["id"] = f"relationship_{index + 1}"
        try:
            relationships.append(ConceptRelationship.model_validate(record))
        except ValidationError as exc:
            logger.debug(
                "Malformed relationship %s dropped: %d error(s).",
                record["id"], exc.error_count(),
            )
    return relationships
