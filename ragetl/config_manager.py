"""
Configuration Management

YAML-backed RAG options with CLI parameter overrides.
"""

import logging
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .exceptions import ConfigurationError


class EmbeddingProvider(Enum):
    """Embedding backends that can be selected from configuration"""
    SENTENCE_TRANSFORMERS = "sentence_transformers"
    OPENAI = "openai"
    QWEN = "qwen"


VECTOR_STORE_BACKENDS = ("sqlite", "memory")


@dataclass
class RagOptions:
    """RAG runtime options."""

    # Embedding
    embedding_provider: str = EmbeddingProvider.SENTENCE_TRANSFORMERS.value
    sentence_transformer_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    openai_embedding_model: str = "text-embedding-3-small"
    qwen_embedding_model: str = "text-embedding-v3"
    embedding_batch_size: int = 32
    embedding_dimension: int = 384

    # Retrieval
    top_k: int = 4
    similarity_threshold: float = 0.5
    default_filters: Dict[str, Any] = field(default_factory=dict)
    include_source_citation_by_default: bool = False

    # ETL
    chunk_size: int = 800
    summary_metadata_enabled: bool = False

    # Storage
    vector_store_backend: str = "sqlite"
    db_path: str = "data/ragetl_vectors.db"
    fingerprint_db_path: Optional[str] = "data/ragetl_fingerprints.db"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RagOptions":
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown RAG option(s): {', '.join(unknown)}")
        return cls(**data)

    def provider(self) -> EmbeddingProvider:
        try:
            return EmbeddingProvider(str(self.embedding_provider).lower())
        except ValueError:
            raise ConfigurationError(f"Unknown embedding provider: {self.embedding_provider}") from None


class ConstraintValidator:
    """Check option combinations before they reach the pipeline."""

    def validate(self, options: RagOptions) -> List[str]:
        """Return list of validation errors, empty if valid."""
        errors = []

        if options.top_k <= 0:
            errors.append(f"top_k ({options.top_k}) must be positive")
        if not (0.0 <= options.similarity_threshold <= 1.0):
            errors.append(f"similarity_threshold ({options.similarity_threshold}) must be between 0.0 and 1.0")
        if options.chunk_size <= 0:
            errors.append(f"chunk_size ({options.chunk_size}) must be positive")
        if options.embedding_batch_size <= 0:
            errors.append(f"embedding_batch_size ({options.embedding_batch_size}) must be positive")
        if options.embedding_dimension <= 0:
            errors.append(f"embedding_dimension ({options.embedding_dimension}) must be positive")
        if options.vector_store_backend not in VECTOR_STORE_BACKENDS:
            errors.append(f"vector_store_backend ({options.vector_store_backend}) must be one of {VECTOR_STORE_BACKENDS}")
        if not isinstance(options.default_filters, dict):
            errors.append("default_filters must be a mapping")

        try:
            options.provider()
        except ConfigurationError as e:
            errors.append(str(e))

        return errors


class ConfigManager:
    """
    YAML-based configuration management.

    Features:
    - Load/save configuration
    - Default file creation on first use
    - CLI parameter overrides
    """

    def __init__(self, config_path: str = "config/ragetl.yaml"):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to the YAML configuration file
        """
        self.config_path = Path(config_path)
        self.logger = logging.getLogger(__name__)
        self.validator = ConstraintValidator()

        self._config_data: Dict[str, Any] = {}
        self._overrides: Dict[str, Any] = {}

        self._ensure_config_exists()
        self.load_config()

    def _ensure_config_exists(self):
        """Create default configuration file if it doesn't exist."""
        if not self.config_path.exists():
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            self.save_config(RagOptions().to_dict())
            self.logger.info(f"Created default configuration at {self.config_path}")

    def load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        with open(self.config_path, 'r') as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {self.config_path}")

        # Fail early on unknown keys
        RagOptions.from_dict(data)
        self._config_data = data
        self.logger.debug(f"Loaded configuration from {self.config_path}")
        return self._config_data

    def save_config(self, data: Optional[Dict[str, Any]] = None):
        """Write configuration to YAML file."""
        data = self._config_data if data is None else data
        with open(self.config_path, 'w') as f:
            yaml.safe_dump(data, f, default_flow_style=False, indent=2, sort_keys=False)

    def override_param(self, key: str, value: Any):
        """Override a single option for this process only (not written to disk)."""
        if key not in {f.name for f in fields(RagOptions)}:
            raise ConfigurationError(f"Unknown RAG option: {key}")
        self._overrides[key] = value
        self.logger.debug(f"Override {key}={value!r}")

    def get_options(self) -> RagOptions:
        """Effective options: file values, then overrides."""
        merged = dict(self._config_data)
        merged.update(self._overrides)
        return RagOptions.from_dict(merged)

    def validate(self) -> List[str]:
        return self.validator.validate(self.get_options())


def create_config_manager(config_path: str = "config/ragetl.yaml") -> ConfigManager:
    """Factory function to create a ConfigManager instance."""
    return ConfigManager(config_path)
