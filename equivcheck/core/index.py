"""
In-memory vector index.

InMemoryVectorIndex is a reference VectorLookupPort: exact cosine
nearest-neighbour search over a numpy matrix, with equality filters on
metadata. It is meant for tests, notebooks and small catalogues; any
production vector database can stand in through the same port.

build_index() populates an index from entity documents:
- one vector per entity, id entity_vector_id(entity, group),
  metadata {"type": "entity", "group": ..., "entity": ...}
- one centroid per group (mean of its members), id
  centroid_vector_id(group), metadata {"type": "centroid", "group": ...}
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from equivcheck.core.analogy import (
    CENTROID_TYPE,
    ENTITY_TYPE,
    centroid_vector_id,
    entity_vector_id,
)
from equivcheck.core.documents import EntityDocument
from equivcheck.core.embeddings import embed_documents
from equivcheck.core.errors import DimensionMismatchError
from equivcheck.core.models import Vector, VectorMatch, as_vector
from equivcheck.core.similarity import compute_similarities

logger = logging.getLogger(__name__)


Embedder = Callable[[List[str]], List[Vector]]


class InMemoryVectorIndex:
    """
    Exact nearest-neighbour index.

    Args:
        dim: Fixed dimensionality; inferred from the first vector when None
    """

    def __init__(self, dim: Optional[int] = None):
        self._dim = dim
        self._ids: List[str] = []
        self._positions: Dict[str, int] = {}
        self._vectors: List[Vector] = []
        self._metadata: List[Dict[str, Any]] = []

    @property
    def dim(self) -> Optional[int]:
        return self._dim

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, vector_id: str) -> bool:
        return vector_id in self._positions

    def upsert(self, vector_id: str, values: Sequence[float], metadata: Optional[Mapping[str, Any]] = None) -> None:
        """
        Insert or replace a vector.

        Raises:
            DimensionMismatchError: If values do not match the index dimension
        """
        vector = as_vector(values)
        if self._dim is None:
            self._dim = vector.shape[0]
        if vector.shape != (self._dim,):
            raise DimensionMismatchError((self._dim,), vector.shape)

        meta = dict(metadata or {})
        if vector_id in self._positions:
            pos = self._positions[vector_id]
            self._vectors[pos] = vector
            self._metadata[pos] = meta
        else:
            self._positions[vector_id] = len(self._ids)
            self._ids.append(vector_id)
            self._vectors.append(vector)
            self._metadata.append(meta)

    async def get_by_id(self, vector_id: str) -> Optional[List[float]]:
        pos = self._positions.get(vector_id)
        if pos is None:
            return None
        return self._vectors[pos].tolist()

    async def query(
        self,
        vector: Sequence[float],
        top_k: int,
        metadata_filter: Optional[Mapping[str, Any]] = None,
    ) -> List[VectorMatch]:
        if not self._ids:
            return []

        query_vec = as_vector(vector)
        scores = compute_similarities(query_vec, np.stack(self._vectors))

        hits = []
        for pos, score in enumerate(scores):
            meta = self._metadata[pos]
            if metadata_filter and any(meta.get(k) != v for k, v in metadata_filter.items()):
                continue
            hits.append(VectorMatch(id=self._ids[pos], score=score, metadata=dict(meta)))

        hits.sort(key=lambda m: m.score, reverse=True)
        return hits[:top_k]

    def members(self, group: str) -> List[Vector]:
        """Vectors of every first-class entity stored under group."""
        return [
            vector
            for vector, meta in zip(self._vectors, self._metadata)
            if meta.get("type") == ENTITY_TYPE and meta.get("group") == group
        ]

    def list_entities(self) -> Tuple[List[Tuple[str, str]], List[str]]:
        """
        Catalogue of first-class entities.

        Returns:
            ((group, entity) pairs sorted by group then entity, sorted groups)
        """
        pairs = set()
        for meta in self._metadata:
            if meta.get("type") == ENTITY_TYPE and meta.get("entity") and meta.get("group"):
                pairs.add((meta["group"], meta["entity"]))
        entities = sorted(pairs)
        groups = sorted({group for group, _ in entities})
        return entities, groups


def compute_centroids(members: Mapping[str, Iterable[Vector]]) -> Dict[str, Vector]:
    """Mean vector of each group's members; groups without members are skipped."""
    centroids = {}
    for group, vectors in members.items():
        vectors = list(vectors)
        if vectors:
            centroids[group] = np.mean(np.stack(vectors), axis=0).astype(np.float32)
    return centroids


def build_index(
    documents: Iterable[EntityDocument],
    embed: Embedder = embed_documents,
    index: Optional[InMemoryVectorIndex] = None,
) -> InMemoryVectorIndex:
    """
    Embed entity documents and store them with their group centroids.

    Documents with blank text are skipped.

    Args:
        documents: Entity documents to index
        embed: Function mapping a list of texts to a list of vectors
        index: Existing index to add to (default: a new one). Centroids of
               the groups in this batch are recomputed over all their members.

    Returns:
        The populated index
    """
    index = index if index is not None else InMemoryVectorIndex()

    usable = []
    for doc in documents:
        if doc.document and doc.document.strip():
            usable.append(doc)
        else:
            logger.warning("Skipping %s (%s): no document text", doc.entity_id, doc.group)

    if not usable:
        return index

    vectors = embed([doc.document for doc in usable])
    touched = []

    for doc, vector in zip(usable, vectors):
        index.upsert(
            entity_vector_id(doc.entity_id, doc.group),
            vector,
            {"type": ENTITY_TYPE, "group": doc.group, "entity": doc.entity_id},
        )
        if doc.group not in touched:
            touched.append(doc.group)

    # Centroids cover every member already in the index, not just this batch
    members = {group: index.members(group) for group in touched}
    for group, centroid in compute_centroids(members).items():
        index.upsert(centroid_vector_id(group), centroid, {"type": CENTROID_TYPE, "group": group})

    logger.info("Indexed %d entities across %d groups", len(usable), len(touched))
    return index
