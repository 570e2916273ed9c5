"""
Document Writers for RAG System
"""

import logging
from typing import List

from .document import RagDocument
from .exceptions import EmbeddingCountMismatchError
from .interfaces.document_writer import DocumentWriter
from .interfaces.embedding_model import EmbeddingModel
from .interfaces.vector_store import VectorStore


class VectorStoreDocumentWriter(DocumentWriter):
    """Embeds a batch of documents and adds it to a vector store.

    No fingerprint bookkeeping happens here; every document written is
    re-embedded.
    """

    def __init__(self, embedding_model: EmbeddingModel, vector_store: VectorStore):
        if embedding_model is None:
            raise ValueError("embedding_model is required")
        if vector_store is None:
            raise ValueError("vector_store is required")
        self.embedding_model = embedding_model
        self.vector_store = vector_store
        self.logger = logging.getLogger(__name__)

    def write(self, documents: List[RagDocument]) -> None:
        documents = list(documents or [])
        if not documents:
            return

        vectors = self.embedding_model.embed_all([doc.text for doc in documents])
        if len(vectors) != len(documents):
            raise EmbeddingCountMismatchError(len(documents), len(vectors))

        self.vector_store.add(documents, vectors)
        self.logger.info(f"Wrote {len(documents)} documents to {type(self.vector_store).__name__}")
