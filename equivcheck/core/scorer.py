"""
Structured comparison of two entities' feature records.

SimilarityScorer turns two FeatureRecords plus an externally supplied
embedding similarity into a ComparisonResult:
1. Theme, attribute and style sub-scores (see equivcheck.core.similarity)
2. A weighted overall score
3. Shared and differing characteristics as human-readable strings
4. Explanation text from the ExplanationComposer

Shared/difference extraction is a side output and does not feed the
scores. Differences are reported in the source -> target direction only.

Malformed records (dicts, None) are coerced into FeatureRecords with
unknown fields; nothing in this module raises on bad input.
"""

from typing import Any, List, Optional, Sequence, Tuple

from equivcheck.core.explanation import ExplanationComposer
from equivcheck.core.models import (
    Attributes,
    Characteristics,
    ComparisonResult,
    ComparisonScores,
    EntityRef,
    FeatureRecord,
    Style,
    normalize_term,
)
from equivcheck.core.similarity import (
    attribute_similarity,
    clamp_unit,
    overall_similarity,
    style_similarity,
    theme_similarity,
)


# =============================================================================
# Term-list helpers
# =============================================================================

def find_intersection(terms_a: Sequence[str], terms_b: Sequence[str]) -> List[str]:
    """Terms of terms_a also present in terms_b, in terms_a's spelling and order."""
    set_b = {normalize_term(t) for t in terms_b}
    return [t for t in terms_a if normalize_term(t) in set_b]


def find_differences(terms_a: Sequence[str], terms_b: Sequence[str]) -> List[str]:
    """Terms of terms_a absent from terms_b, in terms_a's spelling and order."""
    set_b = {normalize_term(t) for t in terms_b}
    return [t for t in terms_a if normalize_term(t) not in set_b]


def _same(value_a: Optional[str], value_b: Optional[str]) -> Optional[bool]:
    """Case-insensitive equality, or None when either side is unknown."""
    if value_a is None or value_b is None:
        return None
    return normalize_term(value_a) == normalize_term(value_b)


# =============================================================================
# Shared / different characteristics
# =============================================================================

# (attribute, label) pairs reported as shared, in display order
SHARED_ATTRIBUTE_LABELS = (("tempo", "Tempo"), ("energy", "Energy"), ("mood", "Mood"))

# Attributes whose mismatches are reported as differences
CONTRASTED_ATTRIBUTES = ("tempo", "energy")


def shared_attributes(attrs_a: Attributes, attrs_b: Attributes) -> List[str]:
    shared = []
    for name, label in SHARED_ATTRIBUTE_LABELS:
        if _same(getattr(attrs_a, name), getattr(attrs_b, name)):
            shared.append(f"{label}: {getattr(attrs_a, name)}")

    if attrs_a.instrumentation is not None and attrs_b.instrumentation is not None:
        instruments = find_intersection(attrs_a.instrumentation, attrs_b.instrumentation)
        if instruments:
            shared.append(f"Instruments: {', '.join(instruments)}")
    return shared


def different_attributes(attrs_a: Attributes, attrs_b: Attributes) -> List[str]:
    differences = []
    for name in CONTRASTED_ATTRIBUTES:
        value_a = getattr(attrs_a, name)
        value_b = getattr(attrs_b, name)
        if _same(value_a, value_b) is False:
            differences.append(f"{value_a} vs {value_b} {name}")
    return differences


def shared_style(style_a: Style, style_b: Style) -> List[str]:
    shared = []
    if style_a.complexity is not None and style_a.complexity == style_b.complexity:
        shared.append(f"{style_a.complexity.value} complexity")

    if style_a.common_topics is not None and style_b.common_topics is not None:
        topics = find_intersection(style_a.common_topics, style_b.common_topics)
        if topics:
            shared.append(f"Topics: {', '.join(topics)}")
    return shared


def different_style(style_a: Style, style_b: Style) -> List[str]:
    if style_a.complexity is None or style_b.complexity is None:
        return []
    if style_a.complexity == style_b.complexity:
        return []
    return [f"{style_a.complexity.value} vs {style_b.complexity.value} complexity"]


def extract_characteristics(
    source: FeatureRecord,
    target: FeatureRecord,
) -> Tuple[Characteristics, Characteristics]:
    """
    Compute (shared, differences) between two feature records.

    Returns:
        Tuple of shared characteristics and source-side differences
    """
    shared = Characteristics(
        themes=tuple(find_intersection(source.themes, target.themes)),
        attributes=tuple(shared_attributes(source.attributes, target.attributes)),
        style=tuple(shared_style(source.style, target.style)),
    )
    differences = Characteristics(
        themes=tuple(find_differences(source.themes, target.themes)),
        attributes=tuple(different_attributes(source.attributes, target.attributes)),
        style=tuple(different_style(source.style, target.style)),
    )
    return shared, differences


# =============================================================================
# Scores
# =============================================================================

def compute_scores(
    source: Any,
    target: Any,
    embedding_similarity: float,
) -> ComparisonScores:
    """
    Compute all sub-scores and the overall score for two records.

    Args:
        source: Source FeatureRecord (or anything FeatureRecord.coerce accepts)
        target: Target FeatureRecord (or anything FeatureRecord.coerce accepts)
        embedding_similarity: Retrieval score of the pair, clamped to [0, 1]

    Returns:
        ComparisonScores with every value in [0, 1]
    """
    source = FeatureRecord.coerce(source)
    target = FeatureRecord.coerce(target)

    theme = theme_similarity(source.themes, target.themes)
    attribute = attribute_similarity(source.attributes, target.attributes)
    style = style_similarity(source.style, target.style)
    overall = overall_similarity(clamp_unit(embedding_similarity), theme, attribute, style)

    return ComparisonScores(theme=theme, attribute=attribute, style=style, overall=overall)


# Placeholder identities for explanations of anonymous pairs
UNNAMED_SOURCE = EntityRef("The source entity", "source")
UNNAMED_TARGET = EntityRef("the target entity", "target")


class SimilarityScorer:
    """
    Scores and explains a pair of entities.

    Args:
        composer: Explanation composer; defaults to an offline composer that
                  always uses the templated fallback
    """

    def __init__(self, composer: Optional[ExplanationComposer] = None):
        self._composer = composer or ExplanationComposer()

    async def score(
        self,
        source_features: Any,
        target_features: Any,
        embedding_similarity: float,
        *,
        source: Optional[EntityRef] = None,
        target: Optional[EntityRef] = None,
    ) -> ComparisonResult:
        """
        Build the full ComparisonResult for a pair.

        Args:
            source_features: Features of the source entity
            target_features: Features of the candidate entity
            embedding_similarity: Retrieval score of the candidate
            source: Identity of the source entity, named in the explanation
                    (default: UNNAMED_SOURCE)
            target: Identity of the candidate entity, named in the explanation
                    (default: UNNAMED_TARGET)

        Returns:
            Immutable ComparisonResult
        """
        source = source or UNNAMED_SOURCE
        target = target or UNNAMED_TARGET
        source_features = FeatureRecord.coerce(source_features)
        target_features = FeatureRecord.coerce(target_features)

        scores = compute_scores(source_features, target_features, embedding_similarity)
        shared, differences = extract_characteristics(source_features, target_features)

        explanation = await self._composer.compose(
            source,
            target,
            shared,
            source_features=source_features,
            target_features=target_features,
        )

        return ComparisonResult(
            explanation_text=explanation,
            scores=scores,
            shared=shared,
            differences=differences,
        )
