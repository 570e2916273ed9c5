"""
Search request value object passed from retrievers to vector stores.
"""

from dataclasses import dataclass, field
from typing import Any, Dict

SIMILARITY_THRESHOLD_ACCEPT_ALL = 0.0
DEFAULT_TOP_K = 4


@dataclass
class SearchRequest:
    """Parameters of one similarity search.

    ``metadata_filters`` are combined with logical AND and matched exactly
    against document metadata. A filter value of ``None`` matches documents
    where the key is absent or null.
    """
    query: str = ""
    top_k: int = DEFAULT_TOP_K
    similarity_threshold: float = SIMILARITY_THRESHOLD_ACCEPT_ALL
    metadata_filters: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.query is None:
            self.query = ""
        if self.metadata_filters is None:
            self.metadata_filters = {}
        if isinstance(self.top_k, bool) or not isinstance(self.top_k, int) or self.top_k <= 0:
            raise ValueError(f"top_k must be a positive integer, got {self.top_k!r}")
        if not (0.0 <= float(self.similarity_threshold) <= 1.0):
            raise ValueError(
                f"similarity_threshold must be between 0.0 and 1.0, got {self.similarity_threshold!r}"
            )
        self.similarity_threshold = float(self.similarity_threshold)

    def matches(self, metadata: Dict[str, Any]) -> bool:
        """Check document metadata against the AND-exact-match filters."""
        if not self.metadata_filters:
            return True
        metadata = metadata or {}
        for key, expected in self.metadata_filters.items():
            actual = metadata.get(key)
            if expected is None:
                if actual is not None:
                    return False
            elif actual != expected:
                return False
        return True
