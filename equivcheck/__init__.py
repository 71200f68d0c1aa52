"""
EquivCheck - Cross-Group Equivalence Resolver

Finds the entities that play the same role in another group using
embedding-space analogy, then explains each match with a structured
theme/attribute/style comparison.
"""

from equivcheck.core.engine import EquivalenceEngine
from equivcheck.core.analogy import AnalogyResolver, ResolverConfig
from equivcheck.core.scorer import SimilarityScorer, compute_scores
from equivcheck.core.explanation import ExplanationComposer
from equivcheck.core.features import LLMFeatureExtractor
from equivcheck.core.generation import HttpTextGenerator, GenerationConfig
from equivcheck.core.documents import InMemoryDocumentStore, EntityDocument
from equivcheck.core.index import InMemoryVectorIndex, build_index
from equivcheck.core.models import (
    AnalogyCandidate,
    Attributes,
    CandidateComparison,
    Characteristics,
    ComparisonResult,
    ComparisonScores,
    Complexity,
    EntityRef,
    EquivalenceReport,
    FeatureRecord,
    Style,
    default_feature_record,
)
from equivcheck.core.errors import (
    EquivCheckError,
    NotFoundError,
    DimensionMismatchError,
    IndexQueryError,
    GenerationError,
)

__version__ = "0.1.0"
__all__ = [
    # Orchestration
    "EquivalenceEngine",
    # Analogy resolution
    "AnalogyResolver",
    "ResolverConfig",
    "AnalogyCandidate",
    # Scoring and explanation
    "SimilarityScorer",
    "compute_scores",
    "ExplanationComposer",
    "ComparisonResult",
    "ComparisonScores",
    "Characteristics",
    # Features
    "FeatureRecord",
    "Attributes",
    "Style",
    "Complexity",
    "default_feature_record",
    "LLMFeatureExtractor",
    # Reference adapters
    "HttpTextGenerator",
    "GenerationConfig",
    "InMemoryDocumentStore",
    "EntityDocument",
    "InMemoryVectorIndex",
    "build_index",
    # Results
    "EntityRef",
    "CandidateComparison",
    "EquivalenceReport",
    # Errors
    "EquivCheckError",
    "NotFoundError",
    "DimensionMismatchError",
    "IndexQueryError",
    "GenerationError",
]
