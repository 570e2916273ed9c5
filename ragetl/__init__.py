"""
ragetl Package
Document ETL into a vector store, incremental re-ingestion and
similarity retrieval with metadata filters.

Embedding model implementations live in ``ragetl.embedding_service`` and are
not imported here, since loading them pulls in torch.
"""

from .document import RagDocument

from .search_request import (
    SearchRequest,
    DEFAULT_TOP_K,
    SIMILARITY_THRESHOLD_ACCEPT_ALL
)

from .exceptions import (
    RagError,
    FingerprintError,
    EmbeddingCountMismatchError,
    EmbeddingDimensionError,
    ConfigurationError
)

from .fingerprint import (
    chunk_key,
    compute_fingerprint,
    InMemoryFingerprintStore,
    SqliteFingerprintStore
)

from .ingestion import RagIngestionService

from .retriever import (
    VectorStoreDocumentRetriever,
    create_retriever
)

from .vector_database import (
    InMemoryVectorStore,
    SqliteVectorStore,
    create_vector_store
)

from .config_manager import (
    RagOptions,
    ConfigManager,
    create_config_manager
)

from .rag_module import (
    RagModule,
    create_markdown_module
)

__version__ = "1.0.0"
__all__ = [
    # Documents and requests
    "RagDocument",
    "SearchRequest",
    "DEFAULT_TOP_K",
    "SIMILARITY_THRESHOLD_ACCEPT_ALL",

    # Errors
    "RagError",
    "FingerprintError",
    "EmbeddingCountMismatchError",
    "EmbeddingDimensionError",
    "ConfigurationError",

    # Ingestion
    "chunk_key",
    "compute_fingerprint",
    "InMemoryFingerprintStore",
    "SqliteFingerprintStore",
    "RagIngestionService",

    # Retrieval
    "VectorStoreDocumentRetriever",
    "create_retriever",

    # Vector stores
    "InMemoryVectorStore",
    "SqliteVectorStore",
    "create_vector_store",

    # Configuration
    "RagOptions",
    "ConfigManager",
    "create_config_manager",

    # Assembly
    "RagModule",
    "create_markdown_module"
]
