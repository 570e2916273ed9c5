"""
Content fingerprints and chunk keys used for incremental ingestion.

A fingerprint covers both the chunk text and its metadata, so a
metadata-only edit (e.g. a refreshed source timestamp) counts as a change.
"""

import base64
import hashlib
import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .document import RagDocument
from .exceptions import FingerprintError
from .interfaces.fingerprint_store import FingerprintStore

FINGERPRINT_ALGORITHM = "sha256"
ID_KEY_PREFIX = "id::"


def chunk_key(document: RagDocument) -> str:
    """Stable key addressing a chunk across ingestion runs.

    Uses ``source::chunk_index`` from metadata. Chunks missing either field
    are keyed by their own id so they never share a slot; such chunks only
    converge across runs when the reader assigns stable ids.
    """
    metadata = document.metadata or {}
    source = metadata.get('source')
    index = metadata.get('chunk_index')
    if source is None or index is None:
        return f"{ID_KEY_PREFIX}{document.id}"
    return f"{source}::{index}"


def canonical_metadata(metadata: Optional[Mapping[str, Any]]) -> str:
    """Render metadata deterministically, preserving insertion order."""
    return json.dumps(dict(metadata or {}), ensure_ascii=False, default=str)


def compute_fingerprint(document: RagDocument, algorithm: str = FINGERPRINT_ALGORITHM) -> str:
    """Base64 digest over ``text|metadata``."""
    payload = f"{document.text or ''}|{canonical_metadata(document.metadata)}"
    try:
        digest = hashlib.new(algorithm)
        digest.update(payload.encode('utf-8'))
    except (ValueError, TypeError) as e:
        raise FingerprintError(f"Fingerprint computation failed for document {document.id}: {e}") from e
    return base64.b64encode(digest.digest()).decode('ascii')


class InMemoryFingerprintStore(FingerprintStore):
    """Process-local fingerprint cache; forgotten on restart."""

    def __init__(self):
        self._fingerprints: Dict[str, str] = {}

    def get(self, chunk_key: str) -> Optional[str]:
        return self._fingerprints.get(chunk_key)

    def put_all(self, fingerprints: Mapping[str, str]) -> None:
        self._fingerprints.update(fingerprints)

    def snapshot(self) -> Dict[str, str]:
        return dict(self._fingerprints)

    def clear(self) -> None:
        self._fingerprints.clear()

    def __len__(self) -> int:
        return len(self._fingerprints)


class SqliteFingerprintStore(FingerprintStore):
    """Fingerprint cache persisted in a SQLite file so history survives restarts."""

    def __init__(self, db_path: str):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)
        self._init_database()

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        return conn

    def _init_database(self):
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS fingerprints (
                    chunk_key TEXT PRIMARY KEY,
                    fingerprint TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

    def get(self, chunk_key: str) -> Optional[str]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT fingerprint FROM fingerprints WHERE chunk_key = ?", (chunk_key,)
            ).fetchone()
        return row['fingerprint'] if row else None

    def put_all(self, fingerprints: Mapping[str, str]) -> None:
        if not fingerprints:
            return
        now = datetime.now().isoformat()
        with self._lock, self._get_connection() as conn:
            conn.executemany(
                "INSERT OR REPLACE INTO fingerprints (chunk_key, fingerprint, updated_at) VALUES (?, ?, ?)",
                [(key, value, now) for key, value in fingerprints.items()]
            )
        self.logger.debug(f"Persisted {len(fingerprints)} fingerprints to {self.db_path}")

    def snapshot(self) -> Dict[str, str]:
        with self._get_connection() as conn:
            rows = conn.execute("SELECT chunk_key, fingerprint FROM fingerprints").fetchall()
        return {row['chunk_key']: row['fingerprint'] for row in rows}

    def clear(self) -> None:
        with self._lock, self._get_connection() as conn:
            conn.execute("DELETE FROM fingerprints")

    def __len__(self) -> int:
        with self._get_connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM fingerprints").fetchone()[0]
