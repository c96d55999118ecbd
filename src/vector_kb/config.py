"""Configuration management for the knowledge vector store using Hydra.

All configuration is loaded from YAML files in conf/vector_kb/. Environment
variables are interpolated with ``${oc.env:NAME,default}`` so the same file
serves local Qdrant development and hosted Pinecone deployments.
"""

import os
from pathlib import Path
from typing import Annotated, Any, cast

import yaml  # type: ignore[import-untyped]
from hydra import compose, initialize_config_dir
from omegaconf import DictConfig, OmegaConf
from pydantic import BaseModel, BeforeValidator, Field, field_validator, model_validator

from vector_kb.embedding import EmbeddingConfig
from vector_kb.retry import RetryPolicy

DEFAULT_BACKEND = "qdrant"


def _blank_to_none(v: Any) -> Any:
    if v is None or not str(v).strip():
        return None
    return v


OptionalSecret = Annotated[str | None, BeforeValidator(_blank_to_none)]


class QdrantConfig(BaseModel):
    """Qdrant connection settings.

    Attributes:
        url: Qdrant server URL
        api_key: Optional API key (not needed for a local server)
        collection_name: Collection holding the knowledge vectors
    """

    url: str = "http://localhost:6333"
    api_key: OptionalSecret = None
    collection_name: str = "knowledge_base"


class PineconeConfig(BaseModel):
    """Pinecone connection settings.

    Attributes:
        api_key: Pinecone API key
        index_name: Name of the index
        namespace: Optional namespace for multi-tenancy
        cloud: Cloud provider used when the index has to be created
        region: Region used when the index has to be created
    """

    api_key: OptionalSecret = None
    index_name: str = "knowledge-base"
    namespace: OptionalSecret = None
    cloud: str = "aws"
    region: str = "us-east-1"


class BackendConfig(BaseModel):
    """Vector backend selection.

    ``active`` is not restricted here: the selector falls back to
    ``DEFAULT_BACKEND`` for unknown names instead of refusing to start.
    """

    active: str = DEFAULT_BACKEND
    qdrant: QdrantConfig = Field(default_factory=QdrantConfig)
    pinecone: PineconeConfig = Field(default_factory=PineconeConfig)

    @field_validator("active", mode="before")
    @classmethod
    def normalize_active(cls, v: Any) -> str:
        if v is None:
            return DEFAULT_BACKEND
        return str(v).strip().lower()


class SearchConfig(BaseModel):
    """Similarity search settings.

    Attributes:
        top_k: Number of best matching records requested from the backend
        min_score: Minimum similarity score for a match to be returned
    """

    top_k: int = Field(default=3, ge=1, le=100)
    min_score: float = Field(default=0.7, ge=0.0, le=1.0)


class IngestionConfig(BaseModel):
    """Batch ingestion settings.

    Attributes:
        batch_size: Number of knowledge items embedded and upserted together
        max_tokens_per_item: Largest embeddable item, in tokens
        tokenizer: tiktoken encoding used for token estimation
        batch_delay_seconds: Pause between batches to respect rate limits
        knowledge_file: Default knowledge file for uploads
        avatar_knowledge_file: Default business avatar knowledge file
        retry: Retry policy applied to every batch upsert
    """

    batch_size: int = Field(default=50, ge=1, le=1000)
    max_tokens_per_item: int = Field(default=8000, ge=1)
    tokenizer: str = "cl100k_base"
    batch_delay_seconds: float = Field(default=1.0, ge=0.0)
    knowledge_file: str = "data/knowledge.json"
    avatar_knowledge_file: str = "data/business-avatars-knowledge.json"
    retry: RetryPolicy = Field(default_factory=RetryPolicy)


class TimeoutConfig(BaseModel):
    """Upper bound for a single backend or embedding call."""

    request_seconds: float = Field(default=30.0, gt=0.0)


class VectorKBConfig(BaseModel):
    """Top-level configuration for the knowledge vector store."""

    backend: BackendConfig = Field(default_factory=BackendConfig)
    embedding: EmbeddingConfig
    search: SearchConfig = Field(default_factory=SearchConfig)
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)

    @model_validator(mode="after")
    def check_batch_sizes(self) -> "VectorKBConfig":
        # Each ingestion batch is embedded with a single provider call
        if self.ingestion.batch_size > self.embedding.batch_size:
            raise ValueError(
                f"ingestion.batch_size ({self.ingestion.batch_size}) must not exceed "
                f"embedding.batch_size ({self.embedding.batch_size})"
            )
        return self


def default_config_path() -> Path:
    """Return conf/vector_kb/ relative to the repository root."""
    repo_root = Path(__file__).parent.parent.parent
    return repo_root / "conf" / "vector_kb"


def load_config(
    config_name: str = "default",
    config_path: str | Path | None = None,
    overrides: list[str] | None = None,
) -> VectorKBConfig:
    """Load configuration from Hydra YAML files.

    Args:
        config_name: Name of config file (without .yaml extension)
        config_path: Path to config directory (defaults to conf/vector_kb/)
        overrides: List of config overrides (e.g., ["search.top_k=5"])

    Returns:
        Validated configuration object

    Example:
        >>> config = load_config("default", overrides=["backend.active=pinecone"])
        >>> config.backend.active
        'pinecone'
    """
    config_path = Path(config_path or default_config_path()).resolve()

    if not config_path.exists():
        raise FileNotFoundError(
            f"Config directory not found: {config_path}\n" f"Create it with: mkdir -p {config_path}"
        )

    with initialize_config_dir(
        config_dir=str(config_path), version_base=None, job_name="vector_kb"
    ):
        cfg: DictConfig = compose(config_name=config_name, overrides=overrides or [])

    config_dict = OmegaConf.to_container(cfg, resolve=True)
    return VectorKBConfig(**cast(dict[str, Any], config_dict))


SECRET_KEYS = (
    "OPENAI_API_KEY",
    "PINECONE_API_KEY",
    "PINECONE_ENVIRONMENT",
    "PINECONE_INDEX_NAME",
    "QDRANT_URL",
    "QDRANT_API_KEY",
    "QDRANT_COLLECTION_NAME",
    "VECTOR_DB_TYPE",
)


def load_secrets_into_env(secrets_path: Path) -> list[str]:
    """Copy known keys from a secrets YAML file into unset environment variables.

    Variables that are already set are never overridden.

    Returns:
        Names of the variables that were set
    """
    if not secrets_path.exists():
        return []

    loaded = yaml.safe_load(secrets_path.read_text()) or {}
    if not isinstance(loaded, dict):
        raise ValueError(f"Secrets file {secrets_path} must contain a mapping")

    applied = []
    for key in SECRET_KEYS:
        if os.environ.get(key):
            continue
        value = loaded.get(key)
        if value:
            os.environ[key] = str(value)
            applied.append(key)
    return applied
