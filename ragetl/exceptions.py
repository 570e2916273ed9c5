"""
Exception types raised by the ingestion and retrieval core.

Collaborator failures (embedding calls, vector store writes, readers) are
never wrapped; these types only cover errors detected by the core itself.
"""


class RagError(Exception):
    """Base class for errors raised by ragetl."""


class FingerprintError(RagError):
    """Computing a content fingerprint failed. Always fatal for the run."""


class EmbeddingCountMismatchError(RagError, ValueError):
    """The embedding model returned a different number of vectors than texts."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Embedding model returned {actual} vectors for {expected} texts")
        self.expected = expected
        self.actual = actual


class EmbeddingDimensionError(RagError, ValueError):
    """A vector does not match the dimension the store was created with."""


class ConfigurationError(RagError):
    """Invalid or unknown configuration value."""
