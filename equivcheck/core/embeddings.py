"""
Document embeddings using sentence-transformers.

Entity documents are embedded locally to populate the in-memory vector
index (equivcheck.core.index). The analogy arithmetic only needs every
vector in one index to share a dimension, so vectors are padded or
truncated to EMBEDDING_DIM after encoding.

Model Selection:
The default model (BAAI/bge-large-en-v1.5) produces 1024-dimensional
L2-normalized embeddings, matching the reference index dimensionality.
For faster but lower quality, consider BAAI/bge-base-en-v1.5 (768 dims)
together with a matching `dim` argument.
"""

import logging
from typing import List, Optional

import numpy as np
from sentence_transformers import SentenceTransformer

from equivcheck.core.errors import EquivCheckError
from equivcheck.core.models import Vector

logger = logging.getLogger(__name__)


DEFAULT_MODEL = "BAAI/bge-large-en-v1.5"

EMBEDDING_DIM = 1024

# Module-level model cache to avoid reloading
_model_cache: dict[str, SentenceTransformer] = {}


class EmbeddingError(EquivCheckError):
    """Raised when documents cannot be embedded."""
    pass


def _get_model(model_name: str) -> SentenceTransformer:
    """
    Get or load a sentence-transformer model.

    Raises:
        EmbeddingError: If model cannot be loaded
    """
    if model_name not in _model_cache:
        logger.info("Loading embedding model %s", model_name)
        try:
            _model_cache[model_name] = SentenceTransformer(model_name)
        except Exception as e:
            raise EmbeddingError(f"Could not load embedding model '{model_name}': {e}") from e
    return _model_cache[model_name]


def fit_dimension(vector: np.ndarray, dim: int = EMBEDDING_DIM) -> Vector:
    """Zero-pad or truncate a vector to exactly dim components."""
    vector = np.asarray(vector, dtype=np.float32).ravel()
    if vector.size > dim:
        return vector[:dim]
    if vector.size < dim:
        return np.pad(vector, (0, dim - vector.size))
    return vector


def embed_documents(
    texts: List[str],
    model_name: str = DEFAULT_MODEL,
    batch_size: int = 32,
    dim: Optional[int] = EMBEDDING_DIM,
) -> List[Vector]:
    """
    Generate one embedding per document.

    Args:
        texts: Documents to embed
        model_name: Name of the sentence-transformer model to use
        batch_size: Number of texts to encode at once
        dim: Target dimensionality; None keeps the model's native size

    Returns:
        List of float32 vectors, same order as input texts

    Raises:
        EmbeddingError: If the list or any text is empty, or encoding fails
    """
    if not texts:
        raise EmbeddingError("Cannot embed empty list of texts")

    for i, text in enumerate(texts):
        if not text or not text.strip():
            raise EmbeddingError(f"Text at index {i} is empty")

    model = _get_model(model_name)

    try:
        embeddings = model.encode(
            texts,
            convert_to_numpy=True,
            normalize_embeddings=True,
            batch_size=batch_size,
            show_progress_bar=False,
        )
    except Exception as e:
        raise EmbeddingError(f"Encoding {len(texts)} documents failed: {e}") from e

    if dim is None:
        return [emb.astype(np.float32) for emb in embeddings]
    return [fit_dimension(emb, dim) for emb in embeddings]


def clear_model_cache() -> None:
    """Clear the model cache to free memory."""
    _model_cache.clear()
