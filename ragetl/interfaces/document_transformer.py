from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from ..document import RagDocument


class DocumentTransformer(ABC):
    """Batch transformation step; may add, remove or merge documents."""

    @abstractmethod
    def transform(self, documents: List[RagDocument]) -> List[RagDocument]:
        raise NotImplementedError
