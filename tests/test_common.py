"""Tests for common utilities."""

import pytest
from pydantic import ValidationError

from embedflow.common.config import (
    EmbedSettings,
    ImageEmbedConfig,
    SplittingStrategy,
    TextEmbedConfig,
    get_settings,
)
from embedflow.common.errors import (
    BackendCallError,
    ConfigurationError,
    EmbedError,
    EmbedRunError,
    FileNotFound,
    InvalidModelSelection,
    ModelConstructionError,
    UnsupportedFileType,
)
from embedflow.common.logging import configure_from_settings, configure_logging, get_logger
from embedflow.common.metrics import MetricsCollector
from tests.conftest import TopicEmbedder


def test_settings_defaults():
    """Test configuration loading."""
    settings = EmbedSettings()
    assert settings.log_level == "INFO"
    assert settings.device_preference == "auto"
    assert settings.remote_max_attempts == 1
    assert settings.max_concurrency is None


def test_settings_from_environment(monkeypatch):
    """Test env prefix and provider key aliases."""
    monkeypatch.setenv("EMBED_MAX_CONCURRENCY", "3")
    monkeypatch.setenv("EMBED_ITEM_TIMEOUT", "2.5")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    settings = get_settings()
    assert settings.max_concurrency == 3
    assert settings.item_timeout == 2.5
    assert settings.openai_api_key == "sk-test"
    assert get_settings() is settings


def test_text_embed_config_defaults():
    """Test per-call defaults."""
    config = TextEmbedConfig()
    assert config.chunk_size == 256
    assert config.batch_size == 32
    assert config.buffer_size == 100
    assert config.overlap_ratio == 0.0
    assert config.splitting_strategy == SplittingStrategy.SENTENCE
    assert config.semantic_encoder is None
    assert config.use_ocr is False
    assert ImageEmbedConfig().buffer_size == 100


def test_text_embed_config_builders_return_copies():
    """Test builder helpers never mutate the original."""
    config = TextEmbedConfig()
    updated = config.with_chunk_size(512, 0.25).with_batch_size(8).with_buffer_size(10)

    assert (config.chunk_size, config.overlap_ratio, config.batch_size) == (256, 0.0, 32)
    assert (updated.chunk_size, updated.overlap_ratio, updated.batch_size, updated.buffer_size) == (512, 0.25, 8, 10)

    with pytest.raises(ValidationError):
        config.chunk_size = 10


def test_text_embed_config_rejects_invalid_values():
    """Test range validation."""
    with pytest.raises(ValidationError):
        TextEmbedConfig(overlap_ratio=1.0)
    with pytest.raises(ValidationError):
        TextEmbedConfig(batch_size=0)
    with pytest.raises(ValidationError):
        TextEmbedConfig().with_chunk_size(0)


def test_semantic_strategy_requires_encoder():
    """Test semantic splitting without an encoder is a configuration error."""
    with pytest.raises(ConfigurationError):
        TextEmbedConfig(splitting_strategy=SplittingStrategy.SEMANTIC)
    with pytest.raises(ConfigurationError):
        TextEmbedConfig().with_splitting_strategy(SplittingStrategy.SEMANTIC)

    encoder = TopicEmbedder()
    config = TextEmbedConfig().with_semantic_encoder(encoder).with_splitting_strategy(SplittingStrategy.SEMANTIC)
    assert config.semantic_encoder is encoder


def test_error_hierarchy():
    """Test every error derives from EmbedError."""
    for error_cls in (
        ModelConstructionError,
        InvalidModelSelection,
        ConfigurationError,
        BackendCallError,
        EmbedRunError,
    ):
        assert issubclass(error_cls, EmbedError)

    missing = FileNotFound("/nowhere.txt")
    assert isinstance(missing, FileNotFoundError)
    assert missing.path == "/nowhere.txt"
    assert UnsupportedFileType("a.xyz").path == "a.xyz"
    assert BackendCallError("rate limited", status_code=429).status_code == 429
    assert EmbedRunError("all failed").failures == {}


def test_logging_configuration():
    """Test logging configuration."""
    # This should not raise an exception
    configure_logging("test-service", "INFO", "json")
    configure_logging("test-service", "debug", "console", run_id="abc")
    configure_from_settings(EmbedSettings(log_level="WARNING", log_format="console"))
    get_logger("tests").info("configured", check=True)


def test_metrics_collector():
    """Test metrics collector."""
    collector = MetricsCollector("test-service")
    assert collector.service_name == "test-service"

    collector.record_item("file", "completed")
    collector.record_item("file", "failed")
    collector.record_chunks("file", 12)
    collector.record_embedding_call("fake", 0.05)
    collector.record_backend_error("fake")

    metrics = collector.get_metrics()
    assert isinstance(metrics, str)
    assert "embed_items_total" in metrics
    assert 'embed_chunks_total{source="file"} 12.0' in metrics
    assert "embed_backend_call_duration_seconds" in metrics
