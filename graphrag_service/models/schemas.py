"""
Response schemas for structured reasoning-oracle calls.

Oracle output is never trusted as-is: every structured completion is decoded
into one of these models and rejected if it does not validate.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _as_list(value: Any) -> List[str]:
    """Accept a single tag or a list of tags."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(item) for item in value]


class AnalysisResponse(BaseModel):
    """Query analysis returned by the oracle."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    intent: List[str]
    complexity: str
    domain: str = "general"
    entities: List[str] = Field(default_factory=list)
    relationships: List[str] = Field(default_factory=list)
    required_reasoning: List[str] = Field(default_factory=list, alias="requiredReasoning")
    expected_answer_type: str = Field(default="explanation", alias="expectedAnswerType")
    ambiguity_level: str = Field(default="medium", alias="ambiguityLevel")
    context_requirements: List[str] = Field(default_factory=list, alias="contextRequirements")

    @field_validator("intent", "entities", "relationships", "required_reasoning", "context_requirements", mode="before")
    @classmethod
    def _normalize_tags(cls, value: Any) -> List[str]:
        return _as_list(value)

    @field_validator("intent")
    @classmethod
    def _intent_not_empty(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("intent must contain at least one tag")
        return [tag.lower() for tag in value]

    @field_validator("complexity")
    @classmethod
    def _known_complexity(cls, value: str) -> str:
        value = value.lower()
        if value not in ("low", "medium", "high"):
            raise ValueError(f"unknown complexity: {value}")
        return value

    @field_validator("required_reasoning")
    @classmethod
    def _lower_reasoning(cls, value: List[str]) -> List[str]:
        return [tag.lower() for tag in value]


class TemporalConstraints(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    start_date: Optional[str] = Field(default=None, alias="startDate")
    end_date: Optional[str] = Field(default=None, alias="endDate")
    dates: List[str] = Field(default_factory=list)


class NumericRange(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None


class ConstraintResponse(BaseModel):
    """Logical constraints extracted from a factual query."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    attributes: Dict[str, Any] = Field(default_factory=dict)
    temporal_constraints: TemporalConstraints = Field(default_factory=TemporalConstraints, alias="temporalConstraints")
    categorical_filters: List[str] = Field(default_factory=list, alias="categoricalFilters")
    numerical_ranges: Dict[str, Union[NumericRange, List[float]]] = Field(default_factory=dict, alias="numericalRanges")
    required_fields: List[str] = Field(default_factory=list, alias="requiredFields")

    def constraint_count(self) -> int:
        temporal = self.temporal_constraints.model_dump(exclude_defaults=True)
        return len(self.attributes) + len(temporal) + len(self.categorical_filters)


class CanonicalEntityResponse(BaseModel):
    """Canonical name and type chosen for a cluster of near-duplicate entities."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    canonical_name: str = Field(alias="canonicalName")
    canonical_type: str = Field(alias="canonicalType")
    reasoning: str = ""


class OntologyEntity(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    description: str = ""
    attributes: List[str] = Field(default_factory=list)
    relationships: List[str] = Field(default_factory=list)
    examples: List[str] = Field(default_factory=list)


class OntologyRelationship(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    description: str = ""
    source: str = ""
    target: str = ""
    properties: List[str] = Field(default_factory=list)


class OntologyHierarchy(BaseModel):
    parent: str
    children: List[str] = Field(default_factory=list)


class OntologyResponse(BaseModel):
    """Domain ontology generated from sample documents."""

    model_config = ConfigDict(extra="allow")

    version: str = "1.0"
    domain: str = "general"
    entities: List[OntologyEntity]
    relationships: List[OntologyRelationship]
    hierarchies: List[OntologyHierarchy] = Field(default_factory=list)


class ExtractedEntity(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str
    name: str
    attributes: Dict[str, Any] = Field(default_factory=dict)


class ExtractedEntityList(BaseModel):
    entities: List[ExtractedEntity]


class ExtractedRelationship(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    source: str
    target: str
    type: str
    properties: Dict[str, Any] = Field(default_factory=dict)


class ExtractedRelationshipList(BaseModel):
    relationships: List[ExtractedRelationship]
