"""
Data models for the cross-group equivalence pipeline.

These dataclasses define the structured records exchanged between the
analogy resolver, the similarity scorer and the explanation composer.
Every record created here lives for a single request.

Absent vs empty:
Optional fields use None to mean "unknown". An unknown field is never
equal or unequal to anything and is skipped by every comparison. An
empty tuple means "known to have no values", which is a different
statement and is compared normally.

Serialization:
to_dict() emits the camelCase wire shape and omits unknown fields, so
from_dict(to_dict(x)) == x holds for every record in this module.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np
from numpy.typing import NDArray


# Type alias for embedding vectors
Vector = NDArray[np.float32]

# Scalar categorical attributes compared one-to-one
SCALAR_ATTRIBUTES = ("tempo", "key", "mood", "energy")


def normalize_term(value: str) -> str:
    """Lowercase and trim a theme/topic/instrument term for comparison."""
    return value.strip().lower()


def _clean_text(value: Any) -> Optional[str]:
    """Return a trimmed non-empty string, or None for anything else."""
    if isinstance(value, str):
        value = value.strip()
        if value:
            return value
    return None


def _clean_terms(value: Any) -> Optional[Tuple[str, ...]]:
    """
    Coerce a loosely-typed collection of strings into a term tuple.

    Non-string items and blanks are dropped. Duplicates (compared after
    normalization) keep their first spelling. Anything that is not a
    collection yields None (unknown).
    """
    if not isinstance(value, (list, tuple, set, frozenset)):
        return None
    seen = set()
    terms: List[str] = []
    for item in value:
        text = _clean_text(item)
        if text is None:
            continue
        norm = normalize_term(text)
        if norm not in seen:
            seen.add(norm)
            terms.append(text)
    return tuple(terms)


class Complexity(Enum):
    """Stylistic complexity class of an entity's work."""
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"

    @classmethod
    def parse(cls, value: Any) -> Optional["Complexity"]:
        """Parse a complexity label case-insensitively; unknown labels yield None."""
        if isinstance(value, cls):
            return value
        text = _clean_text(value)
        if text is None:
            return None
        try:
            return cls(text.lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class Attributes:
    """
    Categorical attributes of an entity.

    Attributes:
        tempo: Tempo class (e.g. "fast", "medium", "slow")
        key: Key or mode (e.g. "minor", "C major")
        mood: Overall mood description
        energy: Energy class (e.g. "high", "medium", "low")
        instrumentation: Instruments associated with the entity
    """
    tempo: Optional[str] = None
    key: Optional[str] = None
    mood: Optional[str] = None
    energy: Optional[str] = None
    instrumentation: Optional[Tuple[str, ...]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for name in SCALAR_ATTRIBUTES:
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        if self.instrumentation is not None:
            data["instrumentation"] = list(self.instrumentation)
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "Attributes":
        if not isinstance(data, Mapping):
            return cls()
        return cls(
            tempo=_clean_text(data.get("tempo")),
            key=_clean_text(data.get("key")),
            mood=_clean_text(data.get("mood")),
            energy=_clean_text(data.get("energy")),
            instrumentation=_clean_terms(data.get("instrumentation")),
        )


@dataclass(frozen=True)
class Style:
    """
    Stylistic description of an entity's work.

    Attributes:
        complexity: Simple / moderate / complex
        emotional_tone: Free-text description of emotional tone
        narrative_style: Free-text description of storytelling approach
        common_topics: Recurring topics or subjects
    """
    complexity: Optional[Complexity] = None
    emotional_tone: Optional[str] = None
    narrative_style: Optional[str] = None
    common_topics: Optional[Tuple[str, ...]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.complexity is not None:
            data["complexity"] = self.complexity.value
        if self.emotional_tone is not None:
            data["emotionalTone"] = self.emotional_tone
        if self.narrative_style is not None:
            data["narrativeStyle"] = self.narrative_style
        if self.common_topics is not None:
            data["commonTopics"] = list(self.common_topics)
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "Style":
        if not isinstance(data, Mapping):
            return cls()
        return cls(
            complexity=Complexity.parse(data.get("complexity")),
            emotional_tone=_clean_text(data.get("emotionalTone")),
            narrative_style=_clean_text(data.get("narrativeStyle")),
            common_topics=_clean_terms(data.get("commonTopics")),
        )


@dataclass(frozen=True)
class FeatureRecord:
    """
    Structured features extracted from an entity's document.

    Top-level fields are always present. Themes are stored in their
    original spelling and compared as a normalized set.

    Attributes:
        themes: Main themes of the entity's work
        attributes: Categorical attributes
        style: Stylistic description
    """
    themes: Tuple[str, ...] = ()
    attributes: Attributes = field(default_factory=Attributes)
    style: Style = field(default_factory=Style)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "themes": list(self.themes),
            "attributes": self.attributes.to_dict(),
            "style": self.style.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "FeatureRecord":
        if not isinstance(data, Mapping):
            return cls()
        return cls(
            themes=_clean_terms(data.get("themes")) or (),
            attributes=Attributes.from_dict(data.get("attributes")),
            style=Style.from_dict(data.get("style")),
        )

    @classmethod
    def coerce(cls, value: Any) -> "FeatureRecord":
        """Accept a FeatureRecord, a mapping, or anything else (treated as empty)."""
        if isinstance(value, cls):
            return value
        return cls.from_dict(value)


def default_feature_record() -> FeatureRecord:
    """
    The record a feature extractor returns when extraction fails.

    Collections are empty rather than unknown, and style carries neutral
    placeholder values, so downstream scoring always has a complete record.
    """
    return FeatureRecord(
        themes=(),
        attributes=Attributes(),
        style=Style(
            complexity=Complexity.MODERATE,
            emotional_tone="neutral",
            narrative_style="descriptive",
            common_topics=(),
        ),
    )


@dataclass(frozen=True)
class EntityRef:
    """An entity identified by name within its group."""
    entity_id: str
    group: str

    def __str__(self) -> str:
        return f"{self.entity_id} ({self.group})"

    def to_dict(self) -> Dict[str, Any]:
        return {"entityId": self.entity_id, "group": self.group}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EntityRef":
        return cls(entity_id=data["entityId"], group=data["group"])


@dataclass(frozen=True)
class VectorMatch:
    """
    One nearest-neighbour hit returned by a vector index.

    Attributes:
        id: Index identifier of the matched vector
        score: Retrieval score (cosine similarity)
        metadata: Metadata stored alongside the vector
    """
    id: str
    score: float
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: Any) -> "VectorMatch":
        """
        Normalize a loosely-shaped index response item.

        Accepts a VectorMatch, a mapping with id/score/metadata keys, or an
        object exposing those attributes. Missing scores become 0.0 and
        missing metadata becomes an empty mapping.
        """
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, Mapping):
            get = raw.get
        else:
            def get(name, default=None):
                return getattr(raw, name, default)
        score = get("score")
        metadata = get("metadata")
        return cls(
            id=str(get("id") or ""),
            score=float(score) if score is not None else 0.0,
            metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
        )


@dataclass(frozen=True)
class AnalogyCandidate:
    """
    An entity in the target group proposed as an equivalent.

    Attributes:
        entity_id: Entity name as stored in the index metadata
        group: Group label as stored in the index metadata
        retrieval_score: Nearest-neighbour score, clamped to [0, 1]
    """
    entity_id: str
    group: str
    retrieval_score: float

    @property
    def rounded_score(self) -> float:
        """Retrieval score rounded to three decimals for display."""
        return round(self.retrieval_score, 3)

    @property
    def ref(self) -> EntityRef:
        return EntityRef(self.entity_id, self.group)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entityId": self.entity_id,
            "group": self.group,
            "retrievalScore": self.retrieval_score,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AnalogyCandidate":
        return cls(
            entity_id=data["entityId"],
            group=data["group"],
            retrieval_score=float(data["retrievalScore"]),
        )


@dataclass(frozen=True)
class ComparisonScores:
    """Sub-scores and the weighted overall score, each in [0, 1]."""
    theme: float
    attribute: float
    style: float
    overall: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "theme": self.theme,
            "attribute": self.attribute,
            "style": self.style,
            "overall": self.overall,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ComparisonScores":
        return cls(
            theme=float(data["theme"]),
            attribute=float(data["attribute"]),
            style=float(data["style"]),
            overall=float(data["overall"]),
        )


@dataclass(frozen=True)
class Characteristics:
    """Human-readable characteristic strings grouped by facet."""
    themes: Tuple[str, ...] = ()
    attributes: Tuple[str, ...] = ()
    style: Tuple[str, ...] = ()

    def is_empty(self) -> bool:
        return not (self.themes or self.attributes or self.style)

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            "themes": list(self.themes),
            "attributes": list(self.attributes),
            "style": list(self.style),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Characteristics":
        return cls(
            themes=tuple(data.get("themes", ())),
            attributes=tuple(data.get("attributes", ())),
            style=tuple(data.get("style", ())),
        )


@dataclass(frozen=True)
class ComparisonResult:
    """
    Complete explanation of why two entities are equivalent.

    This is the primary return type of SimilarityScorer.score().

    Attributes:
        explanation_text: Natural-language rationale (never empty)
        scores: Sub-scores and overall score
        shared: Characteristics both entities have
        differences: Source characteristics the target lacks or contradicts
    """
    explanation_text: str
    scores: ComparisonScores
    shared: Characteristics
    differences: Characteristics

    def to_dict(self) -> Dict[str, Any]:
        return {
            "explanationText": self.explanation_text,
            "scores": self.scores.to_dict(),
            "shared": self.shared.to_dict(),
            "differences": self.differences.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ComparisonResult":
        return cls(
            explanation_text=data["explanationText"],
            scores=ComparisonScores.from_dict(data["scores"]),
            shared=Characteristics.from_dict(data["shared"]),
            differences=Characteristics.from_dict(data["differences"]),
        )


@dataclass
class CandidateComparison:
    """
    One resolved candidate, optionally with its comparison.

    comparison is None when explanations were not requested or when the
    candidate's extraction/explanation pipeline failed.
    """
    candidate: AnalogyCandidate
    comparison: Optional[ComparisonResult] = None
    source_features: Optional[FeatureRecord] = None
    target_features: Optional[FeatureRecord] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = self.candidate.to_dict()
        data["explanation"] = self.comparison.to_dict() if self.comparison else None
        if self.source_features is not None:
            data["sourceFeatures"] = self.source_features.to_dict()
        if self.target_features is not None:
            data["targetFeatures"] = self.target_features.to_dict()
        return data


@dataclass
class EquivalenceReport:
    """
    Aggregate answer to "who is the equivalent of X in group Y?".

    Attributes:
        source: The entity the analogy started from
        target_group: The group equivalents were searched in
        results: Candidates in descending retrieval-score order
    """
    source: EntityRef
    target_group: str
    results: List[CandidateComparison]

    @property
    def found(self) -> bool:
        return bool(self.results)

    def candidates(self) -> List[AnalogyCandidate]:
        return [r.candidate for r in self.results]

    def explained(self) -> List[CandidateComparison]:
        """Return results that carry a comparison."""
        return [r for r in self.results if r.comparison is not None]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source.to_dict(),
            "targetGroup": self.target_group,
            "results": [r.to_dict() for r in self.results],
        }


def as_vector(values: Iterable[float]) -> Vector:
    """Convert a port-supplied float sequence into a float32 vector."""
    return np.asarray(values, dtype=np.float32)
