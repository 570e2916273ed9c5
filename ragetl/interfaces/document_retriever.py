from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..document import RagDocument


class DocumentRetriever(ABC):
    """Abstract interface for query-to-documents retrieval."""

    @abstractmethod
    def retrieve(self, query: Optional[str] = None,
                 runtime_filters: Optional[Dict[str, Any]] = None) -> List[RagDocument]:
        raise NotImplementedError
