"""
ETL Ingestion Service for RAG System
Runs reader -> transformers -> embedding -> vector store, in full or
incremental mode.

Incremental runs compare a fingerprint of every chunk against the
fingerprint store and only embed and write chunks that changed. Fingerprints
are committed only after the vector store accepted the batch: a failed run
leaves the fingerprint store exactly as it was, at the cost of re-embedding
the batch when the run is retried.
"""

import logging
import threading
import time
from typing import Dict, List, Optional, Sequence

from .document import RagDocument
from .exceptions import EmbeddingCountMismatchError
from .fingerprint import ID_KEY_PREFIX, InMemoryFingerprintStore, chunk_key, compute_fingerprint
from .interfaces.document_reader import DocumentReader
from .interfaces.document_transformer import DocumentTransformer
from .interfaces.embedding_model import EmbeddingModel
from .interfaces.fingerprint_store import FingerprintStore
from .interfaces.vector_store import VectorStore


class RagIngestionService:
    """Idempotent, incremental-safe ingestion of documents into a vector store."""

    def __init__(self, document_reader: DocumentReader,
                 transformers: Optional[Sequence[DocumentTransformer]] = None,
                 embedding_model: Optional[EmbeddingModel] = None,
                 vector_store: Optional[VectorStore] = None,
                 fingerprint_store: Optional[FingerprintStore] = None):
        """
        Initialize the ingestion service.

        Args:
            document_reader: Source of raw documents
            transformers: Transformers applied in declaration order
            embedding_model: Batch embedding collaborator
            vector_store: Destination store for documents and vectors
            fingerprint_store: Change-detection cache (in-memory if omitted)
        """
        if document_reader is None:
            raise ValueError("document_reader is required")
        if embedding_model is None:
            raise ValueError("embedding_model is required")
        if vector_store is None:
            raise ValueError("vector_store is required")

        self.document_reader = document_reader
        self.transformers: List[DocumentTransformer] = list(transformers or [])
        self.embedding_model = embedding_model
        self.vector_store = vector_store
        self.fingerprint_store = fingerprint_store if fingerprint_store is not None else InMemoryFingerprintStore()
        self.logger = logging.getLogger(__name__)

        # One ingestion run at a time; also guards the fingerprint store
        self._run_lock = threading.Lock()

    def ingest_all(self) -> int:
        """
        Run the full pipeline unconditionally.

        Returns:
            Number of documents embedded and written (0 when the pipeline is empty)
        """
        with self._run_lock:
            start_time = time.time()
            try:
                documents = self._pipeline()
                if not documents:
                    self.logger.info("Full ingestion: pipeline produced no documents, nothing to do")
                    return 0

                fingerprints = {chunk_key(doc): compute_fingerprint(doc) for doc in documents}
                self._warn_untagged(fingerprints)
                self._embed_and_store(documents)
                self.fingerprint_store.put_all(fingerprints)

            except Exception as e:
                self.logger.error(f"Operation ingest_all failed: {type(e).__name__}: {e}")
                raise

            self.logger.info(
                f"Full ingestion complete: {len(documents)} documents in {time.time() - start_time:.2f}s"
            )
            return len(documents)

    def ingest_incremental(self) -> int:
        """
        Run the pipeline and only process chunks whose fingerprint changed.

        Returns:
            Number of changed documents embedded and written
        """
        with self._run_lock:
            start_time = time.time()
            try:
                documents = self._pipeline()
                changed: List[RagDocument] = []
                pending: Dict[str, str] = {}

                for doc in documents:
                    key = chunk_key(doc)
                    fingerprint = compute_fingerprint(doc)
                    if self.fingerprint_store.get(key) == fingerprint:
                        self.logger.debug(f"Unchanged chunk skipped: {key}")
                        continue
                    changed.append(doc)
                    pending[key] = fingerprint

                self._warn_untagged(pending)

                if not changed:
                    self.logger.info(f"Incremental ingestion: {len(documents)} documents, none changed")
                    return 0

                self._embed_and_store(changed)
                self.fingerprint_store.put_all(pending)

            except Exception as e:
                self.logger.error(f"Operation ingest_incremental failed: {type(e).__name__}: {e}")
                raise

            self.logger.info(
                f"Incremental ingestion complete: {len(changed)}/{len(documents)} documents changed "
                f"({time.time() - start_time:.2f}s)"
            )
            return len(changed)

    def fingerprint_count(self) -> int:
        """Number of chunk keys with a recorded fingerprint."""
        with self._run_lock:
            return len(self.fingerprint_store)

    def reset_fingerprints(self):
        """Forget change history so the next incremental run treats every chunk as new."""
        with self._run_lock:
            self.fingerprint_store.clear()
            self.logger.info("Fingerprint store cleared")

    def _pipeline(self) -> List[RagDocument]:
        """Read and transform documents; transformer i+1 only sees the output of transformer i."""
        documents = list(self.document_reader.read() or [])
        self.logger.info(f"Read {len(documents)} documents from {type(self.document_reader).__name__}")

        for transformer in self.transformers:
            documents = list(transformer.transform(documents) or [])
            self.logger.debug(f"{type(transformer).__name__} produced {len(documents)} documents")

        return documents

    def _warn_untagged(self, keyed: Dict[str, str]):
        untagged = sum(1 for key in keyed if key.startswith(ID_KEY_PREFIX))
        if untagged:
            self.logger.warning(
                f"{untagged} chunks lack source/chunk_index metadata and are keyed by document id; "
                f"they are re-embedded every run unless the reader assigns stable ids"
            )

    def _embed_and_store(self, documents: List[RagDocument]):
        """One embedding call and one store write for the whole batch."""
        texts = [doc.text or "" for doc in documents]
        vectors = self.embedding_model.embed_all(texts)

        if vectors is None or len(vectors) != len(documents):
            raise EmbeddingCountMismatchError(len(documents), 0 if vectors is None else len(vectors))

        self.vector_store.add(documents, vectors)
