"""Unit tests for configuration loading.

Tests cover:
- Hydra config loading from YAML
- Environment variable interpolation
- Config validation
- Secrets file handling
"""

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from vector_kb.config import (
    BackendConfig,
    IngestionConfig,
    PineconeConfig,
    QdrantConfig,
    SearchConfig,
    VectorKBConfig,
    load_config,
    load_secrets_into_env,
)
from vector_kb.embedding import EmbeddingConfig

ENV_VARS = (
    "VECTOR_DB_TYPE",
    "QDRANT_URL",
    "QDRANT_API_KEY",
    "QDRANT_COLLECTION_NAME",
    "PINECONE_INDEX_NAME",
    "MIN_SCORE_THRESHOLD",
    "TOP_K",
    "BATCH_SIZE",
    "MAX_TOKENS",
    "VECTOR_SIZE",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestConfigModels:
    """Tests for config model validation."""

    def test_search_defaults(self) -> None:
        config = SearchConfig()
        assert config.top_k == 3
        assert config.min_score == 0.7

    def test_min_score_range(self) -> None:
        with pytest.raises(ValidationError):
            SearchConfig(min_score=1.5)
        with pytest.raises(ValidationError):
            SearchConfig(min_score=-0.1)

    def test_blank_secrets_become_none(self) -> None:
        assert QdrantConfig(api_key="").api_key is None
        assert PineconeConfig(api_key="   ", namespace="").api_key is None

    def test_backend_name_is_normalized(self) -> None:
        assert BackendConfig(active=" Pinecone ").active == "pinecone"
        assert BackendConfig(active=None).active == "qdrant"

    def test_ingestion_batch_must_fit_embedding_batch(self) -> None:
        """Each ingestion batch is embedded with one provider call."""
        with pytest.raises(ValidationError, match="must not exceed"):
            VectorKBConfig(
                embedding=EmbeddingConfig(batch_size=20),
                ingestion=IngestionConfig(batch_size=50),
            )


class TestConfigLoading:
    """Tests for loading config from Hydra YAML."""

    def test_load_default_config(self, clean_env: pytest.MonkeyPatch) -> None:
        config = load_config("default")

        assert isinstance(config, VectorKBConfig)
        assert config.backend.active == "qdrant"
        assert config.backend.qdrant.url == "http://localhost:6333"
        assert config.backend.qdrant.collection_name == "knowledge_base"
        assert config.backend.qdrant.api_key is None
        assert config.embedding.model == "openai/text-embedding-3-small"
        assert config.embedding.dimensions == 1536
        assert config.search.top_k == 3
        assert config.search.min_score == 0.7
        assert config.ingestion.batch_size == 50
        assert config.ingestion.max_tokens_per_item == 8000
        assert config.ingestion.retry.max_attempts == 3

    def test_env_interpolation(self, clean_env: pytest.MonkeyPatch) -> None:
        """Environment variables override YAML defaults."""
        clean_env.setenv("VECTOR_DB_TYPE", "pinecone")
        clean_env.setenv("MIN_SCORE_THRESHOLD", "0.5")
        clean_env.setenv("PINECONE_INDEX_NAME", "support-kb")
        clean_env.setenv("TOP_K", "7")

        config = load_config("default")

        assert config.backend.active == "pinecone"
        assert config.backend.pinecone.index_name == "support-kb"
        assert config.search.min_score == 0.5
        assert config.search.top_k == 7

    def test_config_overrides(self, clean_env: pytest.MonkeyPatch) -> None:
        config = load_config("default", overrides=["search.top_k=10", "ingestion.batch_size=25"])

        assert config.search.top_k == 10
        assert config.ingestion.batch_size == 25

    def test_missing_config_dir(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="Config directory not found"):
            load_config("default", config_path=tmp_path / "missing")

    def test_invalid_value_rejected(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("MIN_SCORE_THRESHOLD", "2.0")
        with pytest.raises(ValidationError):
            load_config("default")


class TestSecrets:
    """Tests for conf/secrets.yml loading."""

    def test_missing_file_is_ignored(self, tmp_path: Path) -> None:
        assert load_secrets_into_env(tmp_path / "secrets.yml") == []

    def test_sets_only_unset_variables(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        secrets = tmp_path / "secrets.yml"
        secrets.write_text("QDRANT_URL: http://qdrant:6333\nQDRANT_API_KEY: from-file\n")
        monkeypatch.setenv("QDRANT_URL", "placeholder")
        monkeypatch.delenv("QDRANT_URL")
        monkeypatch.setenv("QDRANT_API_KEY", "from-env")

        applied = load_secrets_into_env(secrets)

        assert applied == ["QDRANT_URL"]
        assert os.environ["QDRANT_URL"] == "http://qdrant:6333"
        assert os.environ["QDRANT_API_KEY"] == "from-env"

    def test_non_mapping_rejected(self, tmp_path: Path) -> None:
        secrets = tmp_path / "secrets.yml"
        secrets.write_text("- just\n- a list\n")

        with pytest.raises(ValueError, match="must contain a mapping"):
            load_secrets_into_env(secrets)
