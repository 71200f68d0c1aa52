"""
Interfaces to the external services the core consumes.

The core never talks to a concrete vector database, document bucket or
language model directly. It talks to these protocols, and adapters
normalize whatever the real service returns into the shapes defined in
equivcheck.core.models before anything reaches the resolver or scorer.

Reference adapters live in:
- equivcheck.core.index       (VectorLookupPort)
- equivcheck.core.documents   (DocumentStorePort)
- equivcheck.core.features    (FeatureExtractionPort)
- equivcheck.core.generation  (TextGenerationPort)
"""

from typing import Any, Mapping, Optional, Protocol, Sequence, runtime_checkable

from equivcheck.core.models import FeatureRecord


@runtime_checkable
class VectorLookupPort(Protocol):
    """Read-only access to a vector index."""

    async def get_by_id(self, vector_id: str) -> Optional[Sequence[float]]:
        """
        Fetch a stored vector.

        Returns None when the id is not indexed. A stored zero vector is
        returned as-is and is not the same as a missing one.
        """
        ...

    async def query(
        self,
        vector: Sequence[float],
        top_k: int,
        metadata_filter: Optional[Mapping[str, Any]] = None,
    ) -> Sequence[Any]:
        """
        Nearest-neighbour search.

        Returns hits ordered by descending score. Each hit is a VectorMatch
        or anything VectorMatch.from_raw() accepts (a mapping or object with
        id, score and metadata).
        """
        ...


@runtime_checkable
class FeatureExtractionPort(Protocol):
    """Turns an entity's free-text document into a FeatureRecord."""

    async def extract(self, document_text: str, entity_id: str, group: str) -> FeatureRecord:
        """
        Extract features. Must not raise: on internal failure implementations
        return equivcheck.core.models.default_feature_record().
        """
        ...


@runtime_checkable
class TextGenerationPort(Protocol):
    """Single-prompt text generation."""

    async def generate(self, prompt: str) -> str:
        ...


@runtime_checkable
class DocumentStorePort(Protocol):
    """Lookup of the free-text document describing an entity."""

    async def get_document(self, entity_id: str, group: str) -> Optional[str]:
        """Return the document text, or None when the entity has no document."""
        ...
