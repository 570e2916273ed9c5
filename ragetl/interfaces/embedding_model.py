from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Sequence


class EmbeddingModel(ABC):
    """Batch text embedding capability."""

    @abstractmethod
    def embed_all(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed every text, one vector per input, preserving order.

        Implementations fail the whole call if any element fails.
        """
        raise NotImplementedError

    def embed(self, text: str) -> List[float]:
        """Embed a single text through a one-element batch."""
        vectors = self.embed_all([text])
        return vectors[0] if vectors else []

    def dimensions(self) -> int:
        """Size of the vectors produced by this model."""
        return len(self.embed("dimension probe"))
