"""
Embedding Models for RAG System
Local SentenceTransformers embeddings and OpenAI-compatible embedding APIs.
"""

import gc
import logging
import os
from typing import List, Optional, Sequence

import torch
from openai import OpenAI
from sentence_transformers import SentenceTransformer
from tqdm import tqdm

from .config_manager import EmbeddingProvider, RagOptions
from .interfaces.embedding_model import EmbeddingModel

QWEN_COMPATIBLE_BASE_URL = "https://dashscope.aliyuncs.com/compatible-mode/v1"


class SentenceTransformerEmbeddingModel(EmbeddingModel):
    """Embedding model backed by a local SentenceTransformers checkpoint."""

    def __init__(self, model_path: str, batch_size: int = 32, device: Optional[str] = None,
                 show_progress: bool = False):
        """
        Initialize the embedding model.

        Args:
            model_path: Path or hub name of the SentenceTransformers model
            batch_size: Number of texts to encode per batch
            device: Device to use ('cpu', 'mps', 'cuda'). If None, auto-detect.
            show_progress: Whether to show a progress bar while encoding
        """
        self.model_path = model_path
        self.batch_size = batch_size
        self.device = device or self._get_optimal_device()
        self.show_progress = show_progress
        self.model = None
        self.logger = logging.getLogger(__name__)

        self._load_model()

    def _get_optimal_device(self) -> str:
        """Determine the best device for embedding generation."""
        if torch.backends.mps.is_available():
            return "mps"
        elif torch.cuda.is_available():
            return "cuda"
        else:
            return "cpu"

    def _load_model(self):
        """Load the SentenceTransformers model."""
        try:
            self.logger.info(f"Loading embedding model from: {self.model_path}")
            self.model = SentenceTransformer(str(self.model_path), device=self.device)
            self.logger.info(
                f"Model loaded on {self.device}, dimension {self.model.get_sentence_embedding_dimension()}"
            )
        except Exception as e:
            self.logger.error(f"Failed to load model from {self.model_path}: {e}")
            raise

    def dimensions(self) -> int:
        return self.model.get_sentence_embedding_dimension()

    def embed_all(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Generate normalized embeddings for a list of texts.

        Args:
            texts: Texts to embed

        Returns:
            One vector per text, in input order
        """
        texts = list(texts)
        if not texts:
            return []

        all_embeddings: List[List[float]] = []
        progress_bar = tqdm(
            range(0, len(texts), self.batch_size),
            desc="Generating embeddings",
            disable=not self.show_progress
        )

        try:
            for start_idx in progress_bar:
                batch_texts = texts[start_idx:start_idx + self.batch_size]
                with torch.no_grad():
                    batch_embeddings = self.model.encode(
                        batch_texts,
                        convert_to_numpy=True,
                        normalize_embeddings=True,
                        batch_size=len(batch_texts),
                        show_progress_bar=False
                    )
                all_embeddings.extend(embedding.tolist() for embedding in batch_embeddings)

        except Exception as e:
            self.logger.error(f"Error generating embeddings: {e}")
            raise

        finally:
            self.clear_cache()

        return all_embeddings

    def clear_cache(self):
        """Clear GPU memory cache."""
        if self.device != "cpu":
            if torch.cuda.is_available():
                torch.cuda.empty_cache()
            if hasattr(torch.backends, 'mps') and torch.backends.mps.is_available():
                torch.mps.empty_cache()
        gc.collect()


class OpenAICompatibleEmbeddingModel(EmbeddingModel):
    """Embedding model calling an OpenAI-compatible ``/embeddings`` endpoint.

    Covers OpenAI itself and Qwen through DashScope's compatible mode. Input is
    sliced into ``batch_size`` requests; any failed request fails the call.
    """

    def __init__(self, model: str, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 batch_size: int = 32, dimensions: Optional[int] = None, client: Optional[OpenAI] = None):
        self.model = model
        self.batch_size = batch_size
        self._dimensions = dimensions
        self.client = client or OpenAI(api_key=api_key, base_url=base_url)
        self.logger = logging.getLogger(__name__)

    def embed_all(self, texts: Sequence[str]) -> List[List[float]]:
        texts = list(texts)
        if not texts:
            return []

        vectors: List[List[float]] = []
        for start_idx in range(0, len(texts), self.batch_size):
            batch = texts[start_idx:start_idx + self.batch_size]
            kwargs = {'model': self.model, 'input': batch}
            if self._dimensions:
                kwargs['dimensions'] = self._dimensions
            response = self.client.embeddings.create(**kwargs)

            # The API reports each vector's input position
            ordered = sorted(response.data, key=lambda item: item.index)
            if len(ordered) != len(batch):
                raise RuntimeError(
                    f"Embedding API returned {len(ordered)} vectors for a batch of {len(batch)}"
                )
            vectors.extend(list(item.embedding) for item in ordered)

        self.logger.debug(f"Embedded {len(texts)} texts with {self.model}")
        return vectors

    def dimensions(self) -> int:
        if self._dimensions:
            return self._dimensions
        return super().dimensions()


def create_embedding_model(options: RagOptions) -> EmbeddingModel:
    """
    Build the embedding model selected by ``options.embedding_provider``.

    API keys come from OPENAI_API_KEY / DASHSCOPE_API_KEY.
    """
    provider = options.provider()
    if provider == EmbeddingProvider.OPENAI:
        return OpenAICompatibleEmbeddingModel(
            model=options.openai_embedding_model,
            api_key=os.getenv("OPENAI_API_KEY"),
            batch_size=options.embedding_batch_size
        )
    if provider == EmbeddingProvider.QWEN:
        return OpenAICompatibleEmbeddingModel(
            model=options.qwen_embedding_model,
            api_key=os.getenv("DASHSCOPE_API_KEY"),
            base_url=os.getenv("DASHSCOPE_BASE_URL", QWEN_COMPATIBLE_BASE_URL),
            # DashScope accepts at most 10 inputs per request
            batch_size=min(options.embedding_batch_size, 10)
        )
    return SentenceTransformerEmbeddingModel(
        options.sentence_transformer_model,
        batch_size=options.embedding_batch_size
    )
