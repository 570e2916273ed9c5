"""
Document Transformers for RAG System
Token-aware chunking and optional summary metadata enrichment.
"""

import logging
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Sequence

import tiktoken

from .document import RagDocument, stable_document_id
from .interfaces.document_transformer import DocumentTransformer

DEFAULT_CHUNK_SIZE = 800
MIN_CHUNK_SIZE_CHARS = 350
MIN_CHUNK_LENGTH_TO_EMBED = 5
MAX_NUM_CHUNKS = 10000

PUNCTUATION = ('.', '?', '!', '\n', '。', '？', '！')


class TokenTextSplitter(DocumentTransformer):
    """Splits documents into token-bounded chunks.

    Each window of ``chunk_size`` tokens is cut back to its last sentence
    boundary when that boundary lies past ``min_chunk_size_chars``. Chunks
    inherit the parent's metadata plus ``chunk_index`` and
    ``parent_document_id``; ``chunk_index`` counts per ``source`` across the
    batch so that ``source::chunk_index`` stays unique.
    """

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE,
                 min_chunk_size_chars: int = MIN_CHUNK_SIZE_CHARS,
                 min_chunk_length_to_embed: int = MIN_CHUNK_LENGTH_TO_EMBED,
                 max_num_chunks: int = MAX_NUM_CHUNKS,
                 keep_separator: bool = True,
                 encoding_name: str = "cl100k_base"):
        self.chunk_size = chunk_size if chunk_size > 0 else DEFAULT_CHUNK_SIZE
        self.min_chunk_size_chars = min_chunk_size_chars if min_chunk_size_chars > 0 else MIN_CHUNK_SIZE_CHARS
        self.min_chunk_length_to_embed = (
            min_chunk_length_to_embed if min_chunk_length_to_embed > 0 else MIN_CHUNK_LENGTH_TO_EMBED
        )
        self.max_num_chunks = max_num_chunks if max_num_chunks > 0 else MAX_NUM_CHUNKS
        self.keep_separator = keep_separator
        self.encoding = tiktoken.get_encoding(encoding_name)
        self.logger = logging.getLogger(__name__)

    def transform(self, documents: Sequence[RagDocument]) -> List[RagDocument]:
        if not documents:
            return []

        counters: Dict[str, int] = defaultdict(int)
        output = []
        for document in documents:
            if document is None or not document.text:
                continue

            counter_key = str(document.metadata.get('source', document.id))
            for chunk in self.split_text(document.text):
                metadata = dict(document.metadata)
                if 'chunk_index' in document.metadata:
                    metadata['section_index'] = document.metadata['chunk_index']
                metadata['chunk_index'] = counters[counter_key]
                metadata['parent_document_id'] = document.id
                counters[counter_key] += 1
                output.append(RagDocument(
                    text=chunk, metadata=metadata,
                    id=stable_document_id(counter_key, metadata['chunk_index'])
                ))

        self.logger.debug(f"Split {len(documents)} documents into {len(output)} chunks")
        return output

    def split_text(self, text: str) -> List[str]:
        """Split raw text into chunk strings."""
        if not text or not text.strip():
            return []

        tokens = self.encoding.encode(text)
        chunks = []
        generated = 0

        while tokens and generated < self.max_num_chunks:
            chunk_text = self.encoding.decode(tokens[:self.chunk_size])

            if len(tokens) > self.chunk_size:
                end = max(chunk_text.rfind(p) for p in PUNCTUATION)
                if end != -1 and end > self.min_chunk_size_chars:
                    chunk_text = chunk_text[:end + 1]

            to_append = chunk_text.strip() if self.keep_separator else chunk_text.replace('\n', ' ').strip()
            if len(to_append) > self.min_chunk_length_to_embed:
                chunks.append(to_append)

            consumed = len(self.encoding.encode(chunk_text))
            if consumed <= 0:
                break
            tokens = tokens[consumed:]
            generated += 1

        if tokens:
            rest = self.encoding.decode(tokens).replace('\n', ' ').strip()
            if len(rest) > self.min_chunk_length_to_embed:
                chunks.append(rest)

        return chunks


class SummaryMetadataEnricher(DocumentTransformer):
    """Adds a ``section_summary`` metadata entry produced by a summariser.

    Without a summariser, or when disabled, documents pass through untouched.
    """

    SUMMARY_KEY = 'section_summary'

    def __init__(self, summarizer: Optional[Callable[[str], str]] = None, enabled: bool = False):
        self.summarizer = summarizer
        self.enabled = enabled
        self.logger = logging.getLogger(__name__)

    def transform(self, documents: Sequence[RagDocument]) -> List[RagDocument]:
        if not documents:
            return []
        if not self.enabled or self.summarizer is None:
            return list(documents)
        return [self._enrich(document) for document in documents]

    def _enrich(self, document: RagDocument) -> RagDocument:
        try:
            summary = self.summarizer(document.text)
        except Exception as e:
            self.logger.warning(f"Summary generation failed for {document.id}: {e}")
            return document

        if summary is None or not str(summary).strip():
            return document
        return document.with_metadata(**{self.SUMMARY_KEY: str(summary).strip()})
