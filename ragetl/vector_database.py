"""
Vector Stores for RAG System
In-memory and SQLite (sqlite-vec) implementations of the VectorStore interface.
"""

import copy
import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import sqlite_vec

from .document import RagDocument
from .exceptions import EmbeddingDimensionError
from .interfaces.vector_store import VectorStore
from .search_request import SearchRequest


def _to_matrix(vectors: Sequence[Sequence[float]]) -> np.ndarray:
    """Stack vectors into a float32 matrix, rejecting ragged or empty input."""
    rows = [np.asarray(vector, dtype=np.float32).ravel() for vector in vectors]
    if any(row.size == 0 for row in rows):
        raise ValueError("Empty embedding vector")
    if len({row.size for row in rows}) > 1:
        raise EmbeddingDimensionError("All vectors in one batch must have the same dimension")
    return np.vstack(rows)


def _normalize(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=-1, keepdims=True)
    norms[norms == 0] = 1.0
    return matrix / norms


def _rank(candidates: List[Tuple[float, RagDocument]], request: SearchRequest) -> List[RagDocument]:
    """Apply threshold, sort by descending score and truncate to top_k."""
    hits = [(score, doc) for score, doc in candidates if score >= request.similarity_threshold]
    hits.sort(key=lambda item: item[0], reverse=True)
    return [doc.with_score(score) for score, doc in hits[:request.top_k]]


def _check_batch(documents: Sequence[RagDocument], vectors: Sequence[Sequence[float]]):
    if documents is None or vectors is None or len(documents) != len(vectors):
        raise ValueError("documents and vectors size must match")
    if any(doc is None for doc in documents):
        raise ValueError("documents must not contain None")


class InMemoryVectorStore(VectorStore):
    """Process-local vector store using brute-force cosine similarity."""

    def __init__(self):
        self._documents: List[RagDocument] = []
        self._matrix: Optional[np.ndarray] = None
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    @property
    def embedding_dimension(self) -> Optional[int]:
        return None if self._matrix is None else int(self._matrix.shape[1])

    def add(self, documents: Sequence[RagDocument], vectors: Sequence[Sequence[float]]) -> None:
        _check_batch(documents, vectors)
        if not documents:
            return

        matrix = _normalize(_to_matrix(vectors))
        stored = [RagDocument(text=doc.text or "", metadata=copy.deepcopy(doc.metadata), id=doc.id)
                  for doc in documents]

        with self._lock:
            if self._matrix is not None and matrix.shape[1] != self._matrix.shape[1]:
                raise EmbeddingDimensionError(
                    f"Embedding dimension {matrix.shape[1]} does not match expected {self._matrix.shape[1]}"
                )
            # Adding an id again replaces the previous entry
            new_ids = {doc.id for doc in stored}
            keep = [i for i, doc in enumerate(self._documents) if doc.id not in new_ids]
            kept_docs = [self._documents[i] for i in keep]
            kept_matrix = self._matrix[keep] if self._matrix is not None else matrix[:0]

            self._documents = kept_docs + stored
            self._matrix = np.vstack([kept_matrix, matrix])

        self.logger.debug(f"Added {len(stored)} documents to in-memory store")

    def similarity_search(self, request: SearchRequest, query_vector: Sequence[float]) -> List[RagDocument]:
        if request is None or query_vector is None or len(query_vector) == 0:
            return []

        with self._lock:
            if self._matrix is None or not self._documents:
                return []
            query = _normalize(np.asarray(query_vector, dtype=np.float32).ravel())
            if query.size != self._matrix.shape[1]:
                raise EmbeddingDimensionError(
                    f"Query embedding dimension {query.size} does not match expected {self._matrix.shape[1]}"
                )
            scores = self._matrix @ query
            candidates = [
                (float(score), doc)
                for score, doc in zip(scores, self._documents)
                if request.matches(doc.metadata)
            ]

        return _rank(candidates, request)

    def delete_by_metadata(self, key: str, value: Any) -> int:
        if not key or not key.strip():
            return 0
        probe = SearchRequest(metadata_filters={key: value})
        with self._lock:
            keep = [i for i, doc in enumerate(self._documents) if not probe.matches(doc.metadata)]
            removed = len(self._documents) - len(keep)
            self._documents = [self._documents[i] for i in keep]
            self._matrix = self._matrix[keep] if self._matrix is not None else None
        return removed

    def __len__(self) -> int:
        return len(self._documents)


class SqliteVectorStore(VectorStore):
    """SQLite-based vector store with the sqlite-vec extension for KNN search."""

    def __init__(self, db_path: str, embedding_dimension: int = 384):
        """
        Initialize the vector store.

        Args:
            db_path: Path to the SQLite database file
            embedding_dimension: Dimension of embedding vectors
        """
        self.db_path = Path(db_path)
        self.embedding_dimension = int(embedding_dimension)
        self.logger = logging.getLogger(__name__)
        self.vec_enabled = True

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.init_database()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with sqlite-vec loaded when possible."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")

        if self.vec_enabled:
            try:
                conn.enable_load_extension(True)
                sqlite_vec.load(conn)
                conn.enable_load_extension(False)
            except (AttributeError, sqlite3.OperationalError) as e:
                # Python builds without extension loading lack enable_load_extension
                self.vec_enabled = False
                self.logger.warning(f"Failed to load sqlite-vec: {e}. Vector search will use numpy fallback.")

        return conn

    def init_database(self):
        """Initialize database schema."""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS db_metadata (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
            cursor.execute("SELECT value FROM db_metadata WHERE key = 'embedding_dimension'")
            row = cursor.fetchone()
            if row is None:
                cursor.execute(
                    "INSERT INTO db_metadata (key, value) VALUES ('embedding_dimension', ?)",
                    (str(self.embedding_dimension),)
                )
            elif int(row['value']) != self.embedding_dimension:
                raise EmbeddingDimensionError(
                    f"Database embedding dimension mismatch: stored={row['value']}, "
                    f"requested={self.embedding_dimension}. Use a database initialized with the "
                    f"same embedding dimension, or re-ingest your data."
                )

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    doc_id TEXT PRIMARY KEY,
                    text TEXT NOT NULL,
                    metadata_json TEXT NOT NULL,
                    ingested_at TEXT NOT NULL
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS embeddings (
                    doc_id TEXT PRIMARY KEY,
                    embedding_vector BLOB NOT NULL,
                    FOREIGN KEY (doc_id) REFERENCES documents (doc_id) ON DELETE CASCADE
                )
            """)

            if self.vec_enabled:
                try:
                    cursor.execute(f"""
                        CREATE VIRTUAL TABLE IF NOT EXISTS embeddings_vec USING vec0(
                            doc_id TEXT PRIMARY KEY,
                            embedding float[{self.embedding_dimension}] distance_metric=cosine
                        )
                    """)
                except sqlite3.OperationalError as e:
                    self.vec_enabled = False
                    self.logger.warning(f"Could not create vector search table: {e}")

    def add(self, documents: Sequence[RagDocument], vectors: Sequence[Sequence[float]]) -> None:
        """
        Insert documents with their embeddings in a single transaction.

        Args:
            documents: Documents to store
            vectors: Embedding for each document, positionally paired
        """
        _check_batch(documents, vectors)
        if not documents:
            return

        matrix = _normalize(_to_matrix(vectors))
        if matrix.shape[1] != self.embedding_dimension:
            raise EmbeddingDimensionError(
                f"Embedding dimension {matrix.shape[1]} does not match expected {self.embedding_dimension}"
            )

        now = datetime.now().isoformat()
        with self._get_connection() as conn:
            cursor = conn.cursor()
            for doc, vector in zip(documents, matrix):
                cursor.execute("""
                    INSERT OR REPLACE INTO documents (doc_id, text, metadata_json, ingested_at)
                    VALUES (?, ?, ?, ?)
                """, (doc.id, doc.text or "", json.dumps(doc.metadata or {}, default=str), now))
                cursor.execute("""
                    INSERT OR REPLACE INTO embeddings (doc_id, embedding_vector)
                    VALUES (?, ?)
                """, (doc.id, vector.astype(np.float32).tobytes()))

                if self.vec_enabled:
                    # vec0 tables do not support INSERT OR REPLACE
                    cursor.execute("DELETE FROM embeddings_vec WHERE doc_id = ?", (doc.id,))
                    cursor.execute(
                        "INSERT INTO embeddings_vec (doc_id, embedding) VALUES (?, ?)",
                        (doc.id, sqlite_vec.serialize_float32(vector.tolist()))
                    )

        self.logger.info(f"Stored {len(documents)} documents in {self.db_path}")

    def similarity_search(self, request: SearchRequest, query_vector: Sequence[float]) -> List[RagDocument]:
        """
        Search for documents similar to the query vector.

        Args:
            request: Top-k, threshold and metadata filters
            query_vector: Query embedding

        Returns:
            Scored documents sorted by descending cosine similarity
        """
        if request is None or query_vector is None or len(query_vector) == 0:
            return []

        query = _normalize(np.asarray(query_vector, dtype=np.float32).ravel())
        if query.size != self.embedding_dimension:
            raise EmbeddingDimensionError(
                f"Query embedding dimension {query.size} does not match expected {self.embedding_dimension}"
            )

        # KNN only sees the nearest k, so filtered searches need the full scan
        if self.vec_enabled and not request.metadata_filters:
            return self._vec_similarity_search(request, query)
        return self._manual_similarity_search(request, query)

    def _vec_similarity_search(self, request: SearchRequest, query: np.ndarray) -> List[RagDocument]:
        with self._get_connection() as conn:
            rows = conn.execute("""
                SELECT v.doc_id, v.distance, d.text, d.metadata_json
                FROM embeddings_vec v
                JOIN documents d ON v.doc_id = d.doc_id
                WHERE v.embedding MATCH ? AND k = ?
                ORDER BY v.distance
            """, (sqlite_vec.serialize_float32(query.tolist()), request.top_k)).fetchall()

        # Cosine distance -> similarity
        candidates = [
            (1.0 - float(row['distance']), self._row_to_document(row))
            for row in rows
        ]
        return _rank(candidates, request)

    def _manual_similarity_search(self, request: SearchRequest, query: np.ndarray) -> List[RagDocument]:
        """Brute-force cosine similarity over every stored embedding."""
        with self._get_connection() as conn:
            rows = conn.execute("""
                SELECT d.doc_id, d.text, d.metadata_json, e.embedding_vector
                FROM documents d
                JOIN embeddings e ON d.doc_id = e.doc_id
            """).fetchall()

        candidates = []
        for row in rows:
            doc = self._row_to_document(row)
            if not request.matches(doc.metadata):
                continue
            vector = np.frombuffer(row['embedding_vector'], dtype=np.float32)
            candidates.append((float(np.dot(query, vector)), doc))

        return _rank(candidates, request)

    def delete_by_metadata(self, key: str, value: Any) -> int:
        """Delete every document whose metadata[key] equals value."""
        if not key or not key.strip():
            return 0
        probe = SearchRequest(metadata_filters={key: value})

        with self._get_connection() as conn:
            rows = conn.execute("SELECT doc_id, metadata_json FROM documents").fetchall()
            doomed = [(row['doc_id'],) for row in rows if probe.matches(json.loads(row['metadata_json']))]
            if doomed:
                conn.executemany("DELETE FROM embeddings WHERE doc_id = ?", doomed)
                conn.executemany("DELETE FROM documents WHERE doc_id = ?", doomed)
                if self.vec_enabled:
                    conn.executemany("DELETE FROM embeddings_vec WHERE doc_id = ?", doomed)

        self.logger.info(f"Deleted {len(doomed)} documents where {key}={value!r}")
        return len(doomed)

    def get_document(self, doc_id: str) -> Optional[RagDocument]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT doc_id, text, metadata_json FROM documents WHERE doc_id = ?", (doc_id,)
            ).fetchone()
        return self._row_to_document(row) if row else None

    def get_stats(self) -> Dict[str, Any]:
        """Get database statistics."""
        with self._get_connection() as conn:
            doc_count = conn.execute("SELECT COUNT(*) AS count FROM documents").fetchone()['count']
            embedding_count = conn.execute("SELECT COUNT(*) AS count FROM embeddings").fetchone()['count']

        db_size = self.db_path.stat().st_size if self.db_path.exists() else 0
        return {
            'documents': doc_count,
            'embeddings': embedding_count,
            'database_size_bytes': db_size,
            'database_size_mb': round(db_size / (1024 * 1024), 2),
            'embedding_dimension': self.embedding_dimension,
            'sqlite_vec_enabled': self.vec_enabled
        }

    @staticmethod
    def _row_to_document(row: sqlite3.Row) -> RagDocument:
        return RagDocument(text=row['text'], metadata=json.loads(row['metadata_json']), id=row['doc_id'])


def read_stored_dimension(db_path: str) -> Optional[int]:
    """Embedding dimension recorded in an existing database, or None."""
    if not Path(db_path).exists():
        return None
    conn = sqlite3.connect(str(db_path))
    try:
        row = conn.execute(
            "SELECT value FROM db_metadata WHERE key = 'embedding_dimension'"
        ).fetchone()
    except sqlite3.OperationalError:
        return None
    finally:
        conn.close()
    return int(row[0]) if row else None


def create_vector_store(backend: str = "sqlite", db_path: Optional[str] = None,
                        embedding_dimension: int = 384) -> VectorStore:
    """
    Factory for vector store implementations.

    Supports backend='sqlite' (SqliteVectorStore) and backend='memory'
    (InMemoryVectorStore).
    """
    backend = (backend or "sqlite").lower()
    if backend in ("sqlite", "sqlite-vec", "sqlite_vec"):
        if not db_path:
            raise ValueError("db_path is required for the sqlite backend")
        return SqliteVectorStore(db_path, embedding_dimension)
    if backend in ("memory", "in-memory", "in_memory"):
        return InMemoryVectorStore()
    raise NotImplementedError(f"Unknown vector store backend: {backend}")
