"""
Retrieval Module for RAG System
Turns a natural-language query into a ranked, filtered document list.
"""

import logging
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from .document import RagDocument
from .interfaces.document_retriever import DocumentRetriever
from .interfaces.embedding_model import EmbeddingModel
from .interfaces.vector_store import VectorStore
from .search_request import DEFAULT_TOP_K, SIMILARITY_THRESHOLD_ACCEPT_ALL, SearchRequest

if TYPE_CHECKING:
    from .config_manager import RagOptions


class VectorStoreDocumentRetriever(DocumentRetriever):
    """Retriever backed by a vector store.

    Ranking, threshold filtering and top-k truncation are the store's job;
    results are returned exactly as the store produced them.
    """

    def __init__(self, vector_store: VectorStore, embedding_model: EmbeddingModel,
                 similarity_threshold: Optional[float] = None,
                 top_k: Optional[int] = None,
                 default_filters: Optional[Dict[str, Any]] = None):
        """
        Initialize the retriever.

        Args:
            vector_store: Store performing the similarity search
            embedding_model: Model used to embed the query
            similarity_threshold: Minimum score; accept-all when omitted
            top_k: Maximum number of results; 4 when omitted
            default_filters: Metadata filters applied to every query
        """
        if vector_store is None:
            raise ValueError("vector_store is required")
        if embedding_model is None:
            raise ValueError("embedding_model is required")

        self.vector_store = vector_store
        self.embedding_model = embedding_model
        self.similarity_threshold = (
            SIMILARITY_THRESHOLD_ACCEPT_ALL if similarity_threshold is None else similarity_threshold
        )
        self.top_k = DEFAULT_TOP_K if top_k is None else top_k
        self.default_filters: Dict[str, Any] = dict(default_filters or {})
        self.logger = logging.getLogger(__name__)

        # Fail at construction rather than on the first query
        SearchRequest(top_k=self.top_k, similarity_threshold=self.similarity_threshold)

    @classmethod
    def from_options(cls, options: "RagOptions", vector_store: VectorStore,
                     embedding_model: EmbeddingModel) -> "VectorStoreDocumentRetriever":
        return cls(
            vector_store=vector_store,
            embedding_model=embedding_model,
            similarity_threshold=options.similarity_threshold,
            top_k=options.top_k,
            default_filters=options.default_filters
        )

    def merge_filters(self, runtime_filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Defaults first, runtime filters override same-key defaults."""
        filters = dict(self.default_filters)
        if runtime_filters:
            filters.update(runtime_filters)
        return filters

    def build_request(self, query: Optional[str] = None,
                      runtime_filters: Optional[Dict[str, Any]] = None) -> SearchRequest:
        return SearchRequest(
            query=query or "",
            top_k=self.top_k,
            similarity_threshold=self.similarity_threshold,
            metadata_filters=self.merge_filters(runtime_filters)
        )

    def retrieve(self, query: Optional[str] = None,
                 runtime_filters: Optional[Dict[str, Any]] = None) -> List[RagDocument]:
        """
        Retrieve documents relevant to a query.

        Args:
            query: Search query (None is treated as an empty string)
            runtime_filters: Per-call metadata filters

        Returns:
            Documents ordered by descending similarity, as returned by the store
        """
        request = self.build_request(query, runtime_filters)
        try:
            query_vector = self.embedding_model.embed(request.query)
            results = self.vector_store.similarity_search(request, query_vector)
        except Exception as e:
            self.logger.error(f"Operation retrieve failed: {type(e).__name__}: {e}")
            raise

        self.logger.debug(
            f"Retrieved {len(results)} documents (top_k={request.top_k}, "
            f"threshold={request.similarity_threshold}, filters={request.metadata_filters})"
        )
        return results

    def get_stats(self) -> Dict[str, Any]:
        return {
            'top_k': self.top_k,
            'similarity_threshold': self.similarity_threshold,
            'default_filters': dict(self.default_filters),
            'vector_store': type(self.vector_store).__name__,
            'embedding_model': type(self.embedding_model).__name__
        }


def create_retriever(vector_store: VectorStore, embedding_model: EmbeddingModel, **kwargs) -> VectorStoreDocumentRetriever:
    """
    Factory function to create a VectorStoreDocumentRetriever instance.

    Args:
        vector_store: Store performing the similarity search
        embedding_model: Model used to embed queries
        **kwargs: Additional arguments for VectorStoreDocumentRetriever

    Returns:
        Configured VectorStoreDocumentRetriever instance
    """
    return VectorStoreDocumentRetriever(vector_store, embedding_model, **kwargs)
