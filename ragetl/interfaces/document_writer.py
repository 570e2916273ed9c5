from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from ..document import RagDocument


class DocumentWriter(ABC):
    """Sink for a document batch, for pipelines that bypass the ingestion service."""

    @abstractmethod
    def write(self, documents: List[RagDocument]) -> None:
        raise NotImplementedError
