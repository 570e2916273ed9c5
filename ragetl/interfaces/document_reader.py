from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from ..document import RagDocument


class DocumentReader(ABC):
    """Source of a document batch; each call returns the reader's current full view."""

    @abstractmethod
    def read(self) -> List[RagDocument]:
        raise NotImplementedError
