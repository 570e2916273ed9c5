from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional


class FingerprintStore(ABC):
    """Key-value store mapping chunk keys to content fingerprints."""

    @abstractmethod
    def get(self, chunk_key: str) -> Optional[str]:
        raise NotImplementedError

    @abstractmethod
    def put_all(self, fingerprints: Mapping[str, str]) -> None:
        """Record a batch of fingerprints in one step."""
        raise NotImplementedError

    @abstractmethod
    def snapshot(self) -> Dict[str, str]:
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> None:
        raise NotImplementedError

    def __len__(self) -> int:
        return len(self.snapshot())
