"""
Cross-group analogy resolution.

Given an entity in a source group, find the entities that play the same
role in a target group using embedding arithmetic:

    v_eq = v_entity - centroid(source_group) + centroid(target_group)

A centroid is the mean embedding of a group's members, stored in the
index as an ordinary vector (see equivcheck.core.index).

Resolution steps:
1. Fetch the entity vector and both centroids (missing -> NotFoundError)
2. Compute v_eq (shape disagreement -> DimensionMismatchError)
3. Query the index num_queries times: once with v_eq, then with small
   random perturbations of it, to widen coverage of the neighbourhood
   when the index quantizes or clusters vectors
4. Merge hits, keeping the FIRST occurrence of each id
5. Sort by descending retrieval score
6. Keep first-class entities whose group matches the target group
   (case-insensitive, whitespace-trimmed)
7. Return the first top_k

First-seen deduplication:
A later (perturbed) query can return the same id with a higher score;
that score is discarded. This keeps the unperturbed query's score when
it sees an id first. A best-score merge would arguably be more natural,
but changing it changes ranking, so it stays as is.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from equivcheck.core.errors import DimensionMismatchError, IndexQueryError, NotFoundError
from equivcheck.core.models import AnalogyCandidate, Vector, VectorMatch, as_vector
from equivcheck.core.ports import VectorLookupPort
from equivcheck.core.similarity import clamp_unit

logger = logging.getLogger(__name__)


# Metadata "type" values stored alongside indexed vectors
ENTITY_TYPE = "entity"
CENTROID_TYPE = "centroid"

CENTROID_ID_PREFIX = "avg_group_"


@dataclass
class ResolverConfig:
    """
    Configuration for analogy resolution.

    Attributes:
        num_queries: Total index queries, the first unperturbed (default: 3)
        pool_size: Hits requested per query (default: 50)
        perturbation_amplitude: Peak-to-peak amplitude of the uniform noise
            added per dimension on perturbed queries (default: 0.001)
        query_timeout: Seconds to wait for each index query; None waits
            indefinitely (default: None)
    """
    num_queries: int = 3
    pool_size: int = 50
    perturbation_amplitude: float = 0.001
    query_timeout: Optional[float] = None


# Default configuration
DEFAULT_RESOLVER_CONFIG = ResolverConfig()


def entity_vector_id(entity_id: str, group: str) -> str:
    """Index id of an entity's vector: "{group}_{entity}" with spaces and '/' as '_'."""
    return re.sub(r"\s+", "_", f"{group}_{entity_id}").replace("/", "_")


def centroid_vector_id(group: str) -> str:
    """Index id of a group's centroid vector."""
    return f"{CENTROID_ID_PREFIX}{group}"


def _normalize_group(group: str) -> str:
    return group.strip().lower()


def analogy_vector(entity: Vector, source_centroid: Vector, target_centroid: Vector) -> Vector:
    """
    Compute entity - source_centroid + target_centroid.

    Raises:
        DimensionMismatchError: If the three vectors differ in shape
    """
    if entity.shape != source_centroid.shape or entity.shape != target_centroid.shape:
        raise DimensionMismatchError(entity.shape, source_centroid.shape, target_centroid.shape)
    return (entity - source_centroid + target_centroid).astype(np.float32)


def perturb(vector: Vector, rng: np.random.Generator, amplitude: float) -> Vector:
    """Add uniform noise in [-amplitude/2, amplitude/2) to every component."""
    noise = (rng.random(vector.shape) - 0.5) * amplitude
    return (vector + noise).astype(np.float32)


def merge_first_seen(batches: List[List[VectorMatch]]) -> List[VectorMatch]:
    """Flatten query results, keeping the first hit for each id; hits without an id are dropped."""
    seen = set()
    merged = []
    for batch in batches:
        for match in batch:
            if match.id and match.id not in seen:
                seen.add(match.id)
                merged.append(match)
    return merged


def select_candidates(
    pool: List[VectorMatch],
    target_group: str,
    top_k: int,
) -> List[AnalogyCandidate]:
    """
    Sort a merged pool and keep the top_k first-class entities in target_group.

    Sorting is stable, so equal scores keep their merge order.
    """
    wanted = _normalize_group(target_group)
    ranked = sorted(pool, key=lambda m: m.score, reverse=True)

    candidates: List[AnalogyCandidate] = []
    for match in ranked:
        meta = match.metadata
        group = meta.get("group")
        entity = meta.get("entity")
        if meta.get("type") != ENTITY_TYPE:
            continue
        if not isinstance(group, str) or _normalize_group(group) != wanted:
            continue
        if not entity:
            continue
        candidates.append(AnalogyCandidate(
            entity_id=str(entity),
            group=group,
            retrieval_score=clamp_unit(match.score),
        ))
        if len(candidates) >= top_k:
            break
    return candidates


class AnalogyResolver:
    """
    Finds equivalents of an entity in another group.

    Args:
        index: Vector index to read from
        config: Resolution parameters (default: DEFAULT_RESOLVER_CONFIG)
        rng: Random generator for query perturbation. Pass a seeded
             generator (or a seed) for reproducible results.
        seed: Seed used when rng is not given
    """

    def __init__(
        self,
        index: VectorLookupPort,
        config: Optional[ResolverConfig] = None,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None,
    ):
        self._index = index
        self._config = config or DEFAULT_RESOLVER_CONFIG
        self._rng = rng if rng is not None else np.random.default_rng(seed)

    @property
    def config(self) -> ResolverConfig:
        return self._config

    async def _fetch(self, vector_id: str, kind: str) -> Vector:
        values = await self._index.get_by_id(vector_id)
        if values is None:
            raise NotFoundError(vector_id, kind)
        return as_vector(values)

    async def compute_analogy_vector(
        self,
        source_entity_id: str,
        source_group: str,
        target_group: str,
    ) -> Vector:
        """
        Fetch the three input vectors and combine them.

        Raises:
            NotFoundError: If the entity vector or either centroid is missing
            DimensionMismatchError: If their dimensions disagree
        """
        entity_vec = await self._fetch(entity_vector_id(source_entity_id, source_group), "entity")
        source_centroid = await self._fetch(centroid_vector_id(source_group), "centroid")
        target_centroid = await self._fetch(centroid_vector_id(target_group), "centroid")
        return analogy_vector(entity_vec, source_centroid, target_centroid)

    async def _query(self, vector: Vector, attempt: int) -> List[VectorMatch]:
        try:
            call = self._index.query(vector.tolist(), top_k=self._config.pool_size)
            if self._config.query_timeout is not None:
                raw = await asyncio.wait_for(call, timeout=self._config.query_timeout)
            else:
                raw = await call
            matches = [VectorMatch.from_raw(item) for item in (raw or [])]
        except asyncio.TimeoutError as e:
            raise IndexQueryError(
                f"Index query {attempt + 1} timed out after {self._config.query_timeout}s"
            ) from e
        except Exception as e:
            raise IndexQueryError(f"Index query {attempt + 1} failed: {e}") from e

        logger.debug("Index query %d returned %d matches", attempt + 1, len(matches))
        return matches

    async def resolve(
        self,
        source_entity_id: str,
        source_group: str,
        target_group: str,
        top_k: int = 3,
    ) -> List[AnalogyCandidate]:
        """
        Rank equivalents of source_entity_id within target_group.

        Args:
            source_entity_id: Entity name within its source group
            source_group: Group the entity belongs to
            target_group: Group to search for equivalents
            top_k: Maximum number of candidates to return

        Returns:
            Up to top_k candidates, highest retrieval score first. Empty
            when nothing in the pool belongs to target_group.

        Raises:
            NotFoundError: If the entity vector or either centroid is missing
            DimensionMismatchError: If their dimensions disagree
            IndexQueryError: If any index query fails or times out
            ValueError: If top_k is not positive
        """
        if top_k < 1:
            raise ValueError(f"top_k must be positive, got {top_k}")

        equivalent = await self.compute_analogy_vector(source_entity_id, source_group, target_group)

        batches = []
        for attempt in range(self._config.num_queries):
            if attempt == 0:
                query_vec = equivalent
            else:
                query_vec = perturb(equivalent, self._rng, self._config.perturbation_amplitude)
            batches.append(await self._query(query_vec, attempt))

        pool = merge_first_seen(batches)
        candidates = select_candidates(pool, target_group, top_k)

        logger.info(
            "Resolved %s (%s) -> %s: %d unique matches, %d candidates",
            source_entity_id, source_group, target_group, len(pool), len(candidates),
        )
        if not candidates:
            seen_groups = sorted({
                _normalize_group(m.metadata["group"])
                for m in pool
                if isinstance(m.metadata.get("group"), str)
            })
            logger.warning(
                "No entities found in target group %r; groups present in results: %s",
                target_group, seen_groups,
            )
        return candidates
