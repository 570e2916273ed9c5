"""
Document model shared by the ETL pipeline and the retrieval path.
"""

import copy
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class RagDocument:
    """Unit of content flowing through ingestion and returned by retrieval."""
    text: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None
    # Only set by similarity search; None means "not scored yet"
    score: Optional[float] = None

    def __post_init__(self):
        if self.id is None:
            self.id = str(uuid.uuid4())
        if self.metadata is None:
            self.metadata = {}

    def __setattr__(self, name, value):
        if name == 'id' and self.__dict__.get('id') is not None:
            raise AttributeError("RagDocument.id is immutable once assigned")
        super().__setattr__(name, value)

    @classmethod
    def of(cls, text: str) -> "RagDocument":
        return cls(text=text)

    def with_score(self, score: float) -> "RagDocument":
        """Return a scored copy; the original document is left untouched."""
        return RagDocument(
            text=self.text,
            metadata=copy.deepcopy(self.metadata),
            id=self.id,
            score=score
        )

    def with_metadata(self, **extra: Any) -> "RagDocument":
        """Return a copy with extra metadata keys merged in after the existing ones."""
        metadata = dict(self.metadata)
        metadata.update(extra)
        return RagDocument(text=self.text, metadata=metadata, id=self.id, score=self.score)


def stable_document_id(*parts: Any) -> str:
    """Deterministic id for content addressed by e.g. (source, index)."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, "::".join(str(part) for part in parts)))
