"""
Exception types raised by the equivalence pipeline.

Only the analogy step can fail a request outright. Scoring degrades to
neutral defaults and explanation degrades to a templated sentence, so
neither of those raises to the caller.
"""

from typing import Optional, Tuple


class EquivCheckError(Exception):
    """Base class for all equivcheck errors."""
    pass


class NotFoundError(EquivCheckError):
    """
    Raised when a required vector or document is missing.

    Attributes:
        identifier: The id that could not be found
        kind: What was being looked up ("entity", "centroid" or "document")
    """

    def __init__(self, identifier: str, kind: str = "entity", message: Optional[str] = None):
        self.identifier = identifier
        self.kind = kind
        super().__init__(message or f"{kind.capitalize()} not found: {identifier}")


class DimensionMismatchError(EquivCheckError, ValueError):
    """Raised when vectors that must be combined have different shapes."""

    def __init__(self, *shapes: Tuple[int, ...]):
        self.shapes = shapes
        rendered = " vs ".join(str(s) for s in shapes)
        super().__init__(f"Vector dimension mismatch: {rendered}")


class IndexQueryError(EquivCheckError):
    """Raised when a nearest-neighbour query fails or times out."""
    pass


class GenerationError(EquivCheckError):
    """Raised by text-generation adapters on transport or response-shape failures."""
    pass
