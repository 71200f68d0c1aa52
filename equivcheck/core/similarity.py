"""
Similarity calculations.

This module holds the pure scoring primitives used by the rest of the
pipeline: cosine similarity between embedding vectors (for the vector
index) and the set/word-overlap measures used to compare two feature
records.

Mathematical Background:
Cosine similarity measures the angle between two vectors:
    cos(theta) = (A . B) / (||A|| * ||B||)

Jaccard similarity measures overlap between two sets:
    J(A, B) = |A n B| / |A u B|

Neutral defaults:
When two records share no comparable field at all, the attribute and
style scores are NEUTRAL_SCORE (0.5) rather than 0.0 or 1.0. Missing
data says nothing about similarity, so it should not pull the overall
score toward either end.
"""

import math
from typing import Iterable, List, Optional

import numpy as np

from equivcheck.core.errors import DimensionMismatchError
from equivcheck.core.models import (
    Attributes,
    SCALAR_ATTRIBUTES,
    Style,
    Vector,
    normalize_term,
)


# Weights for the overall score. The embedding signal already captures
# broad similarity; the structured scores make it explainable.
OVERALL_WEIGHTS = {
    "embedding": 0.5,
    "theme": 0.2,
    "attribute": 0.15,
    "style": 0.15,
}

NEUTRAL_SCORE = 0.5

# Tone words must be longer than this to count as shared
MIN_TONE_WORD_LENGTH = 3


# =============================================================================
# Vector similarity
# =============================================================================

def cosine_similarity(vec_a: Vector, vec_b: Vector) -> float:
    """
    Compute cosine similarity between two vectors.

    Args:
        vec_a: First embedding vector
        vec_b: Second embedding vector

    Returns:
        Cosine similarity score (-1.0 to 1.0)

    Raises:
        DimensionMismatchError: If vectors have different dimensions
        ValueError: If vectors are zero-length or zero-magnitude
    """
    if vec_a.shape != vec_b.shape:
        raise DimensionMismatchError(vec_a.shape, vec_b.shape)

    if vec_a.size == 0:
        raise ValueError("Cannot compute similarity of zero-length vectors")

    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)

    if norm_a == 0 or norm_b == 0:
        raise ValueError("Cannot compute similarity with zero-magnitude vector")

    similarity = np.dot(vec_a, vec_b) / (norm_a * norm_b)

    # Clamp to [-1, 1] to handle floating point errors
    return float(np.clip(similarity, -1.0, 1.0))


def compute_similarities(query_vec: Vector, vectors: np.ndarray) -> List[float]:
    """
    Compute cosine similarity between a query and every row of a matrix.

    Rows with zero magnitude score 0.0.

    Args:
        query_vec: Query vector of shape (dim,)
        vectors: Matrix of shape (n, dim)

    Returns:
        List of n similarity scores, in row order

    Raises:
        DimensionMismatchError: If the query and rows differ in dimension
        ValueError: If the query has zero magnitude
    """
    if len(vectors) == 0:
        return []

    if vectors.shape[1:] != query_vec.shape:
        raise DimensionMismatchError(query_vec.shape, vectors.shape[1:])

    query_norm = np.linalg.norm(query_vec)
    if query_norm == 0:
        raise ValueError("Cannot compute similarity with zero-magnitude vector")

    row_norms = np.linalg.norm(vectors, axis=1)
    dots = vectors @ query_vec
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(row_norms > 0, dots / (row_norms * query_norm), 0.0)
    return [float(s) for s in np.clip(sims, -1.0, 1.0)]


# =============================================================================
# Set and text overlap
# =============================================================================

def jaccard_similarity(terms_a: Iterable[str], terms_b: Iterable[str]) -> float:
    """
    Jaccard similarity of two term collections after normalization.

    Both empty is vacuously identical (1.0). Exactly one empty is
    maximally different (0.0): "nothing recorded" is not "no overlap".
    """
    set_a = {normalize_term(t) for t in terms_a}
    set_b = {normalize_term(t) for t in terms_b}

    if not set_a and not set_b:
        return 1.0
    if not set_a or not set_b:
        return 0.0

    return len(set_a & set_b) / len(set_a | set_b)


def theme_similarity(themes_a: Iterable[str], themes_b: Iterable[str]) -> float:
    """Theme score: Jaccard similarity of the normalized theme sets."""
    return jaccard_similarity(themes_a, themes_b)


def tone_overlap(tone_a: str, tone_b: str) -> float:
    """
    Word-overlap ratio of two free-text tone descriptions.

    Shared words longer than MIN_TONE_WORD_LENGTH characters, divided by
    the size of the larger word set.
    """
    words_a = set(tone_a.lower().split())
    words_b = set(tone_b.lower().split())
    if not words_a or not words_b:
        return 0.0
    shared = {w for w in words_a & words_b if len(w) > MIN_TONE_WORD_LENGTH}
    return len(shared) / max(len(words_a), len(words_b))


def attribute_similarity(attrs_a: Attributes, attrs_b: Attributes) -> float:
    """
    Attribute score.

    Each scalar attribute known on both sides is one comparison unit,
    matched case-insensitively. Instrumentation known on both sides adds
    one more unit weighted by its Jaccard similarity. Returns
    NEUTRAL_SCORE when no unit was comparable.
    """
    matches = 0.0
    total = 0

    for name in SCALAR_ATTRIBUTES:
        value_a = getattr(attrs_a, name)
        value_b = getattr(attrs_b, name)
        if value_a is None or value_b is None:
            continue
        total += 1
        if normalize_term(value_a) == normalize_term(value_b):
            matches += 1

    if attrs_a.instrumentation is not None and attrs_b.instrumentation is not None:
        # Two known-empty lists carry nothing to compare
        if attrs_a.instrumentation or attrs_b.instrumentation:
            total += 1
            matches += jaccard_similarity(attrs_a.instrumentation, attrs_b.instrumentation)

    return matches / total if total > 0 else NEUTRAL_SCORE


def style_similarity(style_a: Style, style_b: Style) -> float:
    """
    Style score: mean of the comparable style units.

    Units (each only when both sides know the field):
    - complexity equality (binary)
    - emotional tone word overlap
    - common topics Jaccard (same edge cases as themes)
    """
    units: List[float] = []

    if style_a.complexity is not None and style_b.complexity is not None:
        units.append(1.0 if style_a.complexity == style_b.complexity else 0.0)

    if style_a.emotional_tone is not None and style_b.emotional_tone is not None:
        units.append(tone_overlap(style_a.emotional_tone, style_b.emotional_tone))

    if style_a.common_topics is not None and style_b.common_topics is not None:
        units.append(jaccard_similarity(style_a.common_topics, style_b.common_topics))

    return sum(units) / len(units) if units else NEUTRAL_SCORE


def overall_similarity(
    embedding: float,
    theme: float,
    attribute: float,
    style: float,
    weights: Optional[dict] = None,
) -> float:
    """
    Weighted overall score.

    Uses math.fsum so that all-ones inputs give exactly 1.0.
    """
    weights = weights or OVERALL_WEIGHTS
    return math.fsum([
        weights["embedding"] * embedding,
        weights["theme"] * theme,
        weights["attribute"] * attribute,
        weights["style"] * style,
    ])


def clamp_unit(value: float) -> float:
    """Clamp a score into [0, 1]; NaN becomes 0.0."""
    if value is None or math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, float(value)))
