from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, List, Sequence

from ..document import RagDocument
from ..search_request import SearchRequest


class VectorStore(ABC):
    """Persistence and similarity search over embedded documents."""

    @abstractmethod
    def add(self, documents: Sequence[RagDocument], vectors: Sequence[Sequence[float]]) -> None:
        """Persist ``documents[i]`` with ``vectors[i]``; all pairs or none."""
        raise NotImplementedError

    @abstractmethod
    def similarity_search(self, request: SearchRequest, query_vector: Sequence[float]) -> List[RagDocument]:
        """Return scored documents sorted by descending similarity.

        Must apply the metadata filters, drop candidates scoring below
        ``request.similarity_threshold`` and truncate to ``request.top_k``.
        """
        raise NotImplementedError

    @abstractmethod
    def delete_by_metadata(self, key: str, value: Any) -> int:
        """Remove every entry whose ``metadata[key] == value``; return the count."""
        raise NotImplementedError
