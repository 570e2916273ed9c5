"""
RAG Module Assembly
Wires reader, transformers, embedding model, store, ingestion and retrieval
together from RagOptions.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence, Union

from .config_manager import RagOptions
from .document_readers import MarkdownDocumentReader, MarkdownDocumentReaderConfig
from .document_transformers import SummaryMetadataEnricher, TokenTextSplitter
from .fingerprint import InMemoryFingerprintStore, SqliteFingerprintStore
from .ingestion import RagIngestionService
from .interfaces.embedding_model import EmbeddingModel
from .interfaces.fingerprint_store import FingerprintStore
from .interfaces.vector_store import VectorStore
from .retriever import VectorStoreDocumentRetriever
from .vector_database import create_vector_store

logger = logging.getLogger(__name__)


@dataclass
class RagModule:
    """Assembled ingestion and retrieval components sharing one store."""
    ingestion_service: RagIngestionService
    retriever: VectorStoreDocumentRetriever
    vector_store: VectorStore
    embedding_model: EmbeddingModel
    fingerprint_store: FingerprintStore
    options: RagOptions


def create_fingerprint_store(options: RagOptions) -> FingerprintStore:
    """Persistent fingerprints only make sense next to a persistent store."""
    if options.vector_store_backend == "sqlite" and options.fingerprint_db_path:
        return SqliteFingerprintStore(options.fingerprint_db_path)
    return InMemoryFingerprintStore()


def create_markdown_module(markdown_files: Sequence[Union[str, Path]],
                           options: Optional[RagOptions] = None,
                           embedding_model: Optional[EmbeddingModel] = None,
                           summarizer: Optional[Callable[[str], str]] = None,
                           reader_config: Optional[MarkdownDocumentReaderConfig] = None,
                           vector_store: Optional[VectorStore] = None) -> RagModule:
    """
    Build a markdown RAG pipeline.

    Args:
        markdown_files: Markdown files or directories to ingest
        options: RAG options; defaults when None
        embedding_model: Model to use; built from options when None
        summarizer: Callable producing a section summary for the enricher
        reader_config: Markdown reader config; defaults when None
        vector_store: Store to use; built from options when None

    Returns:
        RagModule with all components wired to the same store
    """
    options = options or RagOptions()

    if embedding_model is None:
        # Pulls in torch and sentence-transformers
        from .embedding_service import create_embedding_model
        embedding_model = create_embedding_model(options)

    if vector_store is None:
        dimension = options.embedding_dimension
        if options.vector_store_backend == "sqlite":
            dimension = embedding_model.dimensions()
        vector_store = create_vector_store(options.vector_store_backend, options.db_path, dimension)

    reader = MarkdownDocumentReader(markdown_files, reader_config)
    transformers = [
        TokenTextSplitter(chunk_size=options.chunk_size),
        SummaryMetadataEnricher(summarizer, enabled=options.summary_metadata_enabled)
    ]
    fingerprint_store = create_fingerprint_store(options)

    ingestion_service = RagIngestionService(
        reader, transformers, embedding_model, vector_store, fingerprint_store
    )
    retriever = VectorStoreDocumentRetriever.from_options(options, vector_store, embedding_model)

    logger.info(
        f"Assembled markdown module: {len(markdown_files)} source(s), "
        f"store={type(vector_store).__name__}, model={type(embedding_model).__name__}"
    )
    return RagModule(
        ingestion_service=ingestion_service,
        retriever=retriever,
        vector_store=vector_store,
        embedding_model=embedding_model,
        fingerprint_store=fingerprint_store,
        options=options
    )
