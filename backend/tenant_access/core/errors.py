"""
Access-layer exceptions.

Backend failures (connection refused, timeouts, malformed payloads) never
surface as exceptions: TenantCache and TenantVectorStore log them and return
their empty value. Only caller misuse is raised, and always before any I/O.
"""

from __future__ import annotations


class TenantAccessError(Exception):
    """Base class for every error raised by the access layer."""


class TenantValidationError(TenantAccessError, ValueError):
    """Caller misuse detected before any network call."""


class VectorArityError(TenantValidationError):
    """Chunk and vector lists passed to add_document_vectors differ in length."""

    def __init__(self, chunks: int, vectors: int) -> None:
        super().__init__(
            f"Number of chunks must match number of vectors: "
            f"got {chunks} chunks and {vectors} vectors"
        )
        self.chunks  = chunks
        self.vectors = vectors


class MissingQueryVectorError(TenantValidationError):
    """A vector search was requested without a query vector."""


class InvalidKeyComponentError(TenantValidationError):
    """A tenant/user id would make cache keys or patterns overlap another namespace."""


class DeadlineExceeded(TenantAccessError, TimeoutError):
    """The caller's per-call deadline ran out before the backend answered."""
