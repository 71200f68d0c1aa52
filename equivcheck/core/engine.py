"""
Main equivalence engine orchestrating the full pipeline.

This module provides the high-level API for answering "who is the
equivalent of X in group Y, and why?". It coordinates:
1. Analogy resolution against the vector index
2. Document lookup and feature extraction for both entities
3. Structured scoring and explanation of each candidate

The primary entry point is EquivalenceEngine.find_equivalents().

Failure model:
- Resolution errors (missing vectors, dimension mismatch, failed index
  queries) propagate: without an analogy vector there is no answer.
- Everything after resolution is best-effort. If the source document or
  features cannot be obtained, all candidates are returned without
  comparisons. If one candidate's pipeline fails, only that candidate
  loses its comparison. Candidates are processed concurrently.
"""

import asyncio
import logging
from typing import Awaitable, List, Optional, TypeVar

import numpy as np

from equivcheck.core.analogy import AnalogyResolver, ResolverConfig
from equivcheck.core.errors import EquivCheckError, NotFoundError
from equivcheck.core.explanation import ExplanationComposer
from equivcheck.core.features import LLMFeatureExtractor
from equivcheck.core.models import (
    AnalogyCandidate,
    CandidateComparison,
    EntityRef,
    EquivalenceReport,
    FeatureRecord,
)
from equivcheck.core.ports import (
    DocumentStorePort,
    FeatureExtractionPort,
    TextGenerationPort,
    VectorLookupPort,
)
from equivcheck.core.scorer import SimilarityScorer
from equivcheck.core.similarity import clamp_unit

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TOP_K = 3


class EquivalenceEngine:
    """
    Resolves and explains cross-group equivalents.

    Args:
        index: Vector index holding entity vectors and group centroids
        documents: Document store; required for explanations
        extractor: Feature extractor; required for explanations
        scorer: Similarity scorer (default: offline fallback explanations)
        resolver_config: Analogy resolution parameters
        rng: Random generator for query perturbation
        port_timeout: Optional seconds to wait on each document lookup and
                      feature extraction call
    """

    def __init__(
        self,
        index: VectorLookupPort,
        documents: Optional[DocumentStorePort] = None,
        extractor: Optional[FeatureExtractionPort] = None,
        scorer: Optional[SimilarityScorer] = None,
        resolver_config: Optional[ResolverConfig] = None,
        rng: Optional[np.random.Generator] = None,
        port_timeout: Optional[float] = None,
    ):
        self._resolver = AnalogyResolver(index, config=resolver_config, rng=rng)
        self._documents = documents
        self._extractor = extractor
        self._scorer = scorer or SimilarityScorer()
        self._port_timeout = port_timeout

    @classmethod
    def from_generator(
        cls,
        index: VectorLookupPort,
        documents: DocumentStorePort,
        generator: TextGenerationPort,
        **kwargs,
    ) -> "EquivalenceEngine":
        """
        Wire one text-generation port into both extraction and explanation.

        port_timeout bounds each model call inside the extractor and the
        composer, so a slow model degrades to the default feature record or
        the fallback explanation. It is not applied again by the engine.
        """
        timeout = kwargs.pop("port_timeout", None)
        return cls(
            index,
            documents=documents,
            extractor=LLMFeatureExtractor(generator, timeout=timeout),
            scorer=SimilarityScorer(ExplanationComposer(generator, timeout=timeout)),
            **kwargs,
        )

    @property
    def resolver(self) -> AnalogyResolver:
        return self._resolver

    @property
    def can_explain(self) -> bool:
        return self._documents is not None and self._extractor is not None

    async def _bounded(self, call: Awaitable[T]) -> T:
        if self._port_timeout is None:
            return await call
        return await asyncio.wait_for(call, timeout=self._port_timeout)

    async def _features_for(self, entity: EntityRef) -> FeatureRecord:
        """
        Fetch an entity's document and extract its features.

        Raises:
            NotFoundError: If the entity has no (or a blank) document
        """
        document = await self._bounded(self._documents.get_document(entity.entity_id, entity.group))
        if not document or not document.strip():
            raise NotFoundError(str(entity), "document")
        return await self._bounded(self._extractor.extract(document, entity.entity_id, entity.group))

    def _require_explainer(self) -> None:
        if not self.can_explain:
            raise EquivCheckError("A document store and feature extractor are required")

    async def analyze_entity(self, entity: EntityRef) -> FeatureRecord:
        """
        Extract features for a single entity.

        Raises:
            NotFoundError: If the entity has no document
            EquivCheckError: If documents or extractor are not configured
        """
        self._require_explainer()
        return await self._features_for(entity)

    async def compare_entities(
        self,
        source: EntityRef,
        target: EntityRef,
        embedding_similarity: float,
    ) -> CandidateComparison:
        """
        Score and explain one explicit pair.

        Raises:
            NotFoundError: If either entity has no document
            EquivCheckError: If documents or extractor are not configured
        """
        self._require_explainer()
        source_features = await self._features_for(source)
        target_features = await self._features_for(target)
        comparison = await self._scorer.score(
            source_features, target_features, embedding_similarity,
            source=source, target=target,
        )
        candidate = AnalogyCandidate(target.entity_id, target.group, clamp_unit(embedding_similarity))
        return CandidateComparison(candidate, comparison, source_features, target_features)

    async def _explain_candidate(
        self,
        source: EntityRef,
        source_features: FeatureRecord,
        candidate: AnalogyCandidate,
    ) -> CandidateComparison:
        try:
            target_features = await self._features_for(candidate.ref)
            comparison = await self._scorer.score(
                source_features, target_features, candidate.retrieval_score,
                source=source, target=candidate.ref,
            )
        except NotFoundError as e:
            logger.warning("No comparison for %s: %s", candidate.ref, e)
            return CandidateComparison(candidate)
        except Exception:
            logger.exception("Comparison failed for %s", candidate.ref)
            return CandidateComparison(candidate)

        logger.debug("Comparison complete for %s", candidate.ref)
        return CandidateComparison(candidate, comparison, source_features, target_features)

    async def explain_candidates(
        self,
        source: EntityRef,
        candidates: List[AnalogyCandidate],
    ) -> List[CandidateComparison]:
        """
        Compare the source with every candidate, isolating failures.

        Returns one CandidateComparison per candidate, in input order.
        """
        try:
            source_features = await self._features_for(source)
        except Exception as e:
            logger.warning("Returning candidates without comparisons; source %s unavailable: %s", source, e)
            return [CandidateComparison(c) for c in candidates]

        return list(await asyncio.gather(*[
            self._explain_candidate(source, source_features, c) for c in candidates
        ]))

    async def find_equivalents(
        self,
        source_entity_id: str,
        source_group: str,
        target_group: str,
        top_k: int = DEFAULT_TOP_K,
        include_explanations: bool = False,
    ) -> EquivalenceReport:
        """
        Find equivalents of an entity in another group.

        Args:
            source_entity_id: Entity name within its source group
            source_group: Group the entity belongs to
            target_group: Group to search for equivalents
            top_k: Maximum number of equivalents
            include_explanations: Also score and explain each candidate

        Returns:
            EquivalenceReport; results is empty when nothing was found

        Raises:
            NotFoundError: If the entity vector or a centroid is missing
            DimensionMismatchError: If their dimensions disagree
            IndexQueryError: If an index query fails
        """
        source = EntityRef(source_entity_id, source_group)
        candidates = await self._resolver.resolve(source_entity_id, source_group, target_group, top_k)

        if not include_explanations or not candidates:
            return EquivalenceReport(source, target_group, [CandidateComparison(c) for c in candidates])

        if not self.can_explain:
            logger.warning("Explanations requested but no document store or extractor configured")
            return EquivalenceReport(source, target_group, [CandidateComparison(c) for c in candidates])

        results = await self.explain_candidates(source, candidates)
        logger.info(
            "Explained %d of %d equivalents for %s",
            sum(1 for r in results if r.comparison is not None), len(results), source,
        )
        return EquivalenceReport(source, target_group, results)
