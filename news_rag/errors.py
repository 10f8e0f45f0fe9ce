"""
Error taxonomy and boundary results.

Degradable paths (retrieval, history load, history persist) return a
``Result`` carrying a safe default value and the error that occurred, so the
caller decides whether to degrade or propagate. Only client input errors and
generation failures are raised to the HTTP layer.
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar('T')


class NewsRAGError(Exception):
    """Base class for all service errors."""
    pass


class ClientInputError(NewsRAGError):
    """Raised when a request is missing required fields (HTTP 400)."""
    pass


class RetrievalDegraded(NewsRAGError):
    """Embedding or search failed; the request proceeds without context."""
    pass


class GenerationFailure(NewsRAGError):
    """The chat model call failed; the request cannot be answered (HTTP 500)."""
    pass


class PersistenceFailure(NewsRAGError):
    """Writing or reading session history failed."""
    pass


class IndexUnavailable(NewsRAGError):
    """The vector index could not be opened, read or written."""
    pass


class IndexDimensionError(IndexUnavailable):
    """A vector does not match the dimensionality fixed by the first insert."""
    pass


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a degradable operation.

    ``value`` always holds something usable: the real value on success, the
    benign default (empty list, ``False``, ``0``) on failure.
    """
    value: T
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> 'Result[T]':
        return cls(value=value)

    @classmethod
    def failure(cls, error: Exception, default: T) -> 'Result[T]':
        return cls(value=default, error=error)
