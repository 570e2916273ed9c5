"""
Interfaces for the pluggable collaborators of the RAG core.
"""

from .document_reader import DocumentReader
from .document_transformer import DocumentTransformer
from .document_writer import DocumentWriter
from .embedding_model import EmbeddingModel
from .vector_store import VectorStore
from .fingerprint_store import FingerprintStore
from .document_retriever import DocumentRetriever

__all__ = [
    "DocumentReader",
    "DocumentTransformer",
    "DocumentWriter",
    "EmbeddingModel",
    "VectorStore",
    "FingerprintStore",
    "DocumentRetriever",
]
