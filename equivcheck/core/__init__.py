"""
Core equivalence engine.

This package provides the foundational logic for:
- Analogy vector arithmetic and candidate resolution
- Structured feature comparison and scoring
- Explanation composition with an offline fallback
- Ports to the vector index, document store and language model
"""

from equivcheck.core.analogy import AnalogyResolver, analogy_vector
from equivcheck.core.scorer import SimilarityScorer, compute_scores, extract_characteristics
from equivcheck.core.similarity import (
    cosine_similarity,
    jaccard_similarity,
    theme_similarity,
    attribute_similarity,
    style_similarity,
    overall_similarity,
    OVERALL_WEIGHTS,
)
from equivcheck.core.explanation import ExplanationComposer, fallback_explanation
from equivcheck.core.engine import EquivalenceEngine

__all__ = [
    "AnalogyResolver",
    "analogy_vector",
    "SimilarityScorer",
    "compute_scores",
    "extract_characteristics",
    "cosine_similarity",
    "jaccard_similarity",
    "theme_similarity",
    "attribute_similarity",
    "style_similarity",
    "overall_similarity",
    "OVERALL_WEIGHTS",
    "ExplanationComposer",
    "fallback_explanation",
    "EquivalenceEngine",
]
