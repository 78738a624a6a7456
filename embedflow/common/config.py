"""Configuration management for the embedding pipeline.

Two layers of configuration live here:

- ``EmbedSettings``: process-level settings read from the environment (prefix
  ``EMBED_``), ``.env`` files, or defaults. Built on ``pydantic-settings``.
- ``TextEmbedConfig`` / ``ImageEmbedConfig``: immutable per-call option sets
  consumed by the orchestrator. They are frozen pydantic models; the
  ``with_*`` helpers return modified copies.

Usage
- ``settings = get_settings()`` anywhere a process default is needed
- ``TextEmbedConfig(chunk_size=512, overlap_ratio=0.2)`` per call
"""

from enum import Enum
from functools import lru_cache
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError


DEFAULT_CHUNK_SIZE = 256
DEFAULT_BATCH_SIZE = 32
DEFAULT_BUFFER_SIZE = 100


class EmbedSettings(BaseSettings):
    """Process-wide settings.

    Parameters are read from the process environment with the ``EMBED_``
    prefix. API keys additionally accept the provider's conventional variable
    name (``OPENAI_API_KEY``, ``COHERE_API_KEY``, ``JINA_API_KEY``).
    """

    model_config = SettingsConfigDict(
        env_prefix="EMBED_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    # Orchestration
    max_concurrency: Optional[int] = Field(default=None, ge=1)
    item_timeout: Optional[float] = Field(default=None, gt=0)

    # Local inference
    device_preference: str = Field(default="auto")
    default_model_id: str = Field(default="sentence-transformers/all-MiniLM-L12-v2")
    hf_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("EMBED_HF_TOKEN", "HF_TOKEN"),
    )

    # Remote backends
    request_timeout: float = Field(default=60.0, gt=0)
    remote_max_attempts: int = Field(default=1, ge=1)
    openai_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("EMBED_OPENAI_API_KEY", "OPENAI_API_KEY"),
    )
    cohere_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("EMBED_COHERE_API_KEY", "COHERE_API_KEY"),
    )
    jina_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("EMBED_JINA_API_KEY", "JINA_API_KEY"),
    )


@lru_cache(maxsize=1)
def get_settings() -> EmbedSettings:
    """Return the process-wide settings instance."""
    return EmbedSettings()


class SplittingStrategy(str, Enum):
    """How documents are cut into chunks."""
    SENTENCE = "sentence"
    SEMANTIC = "semantic"


class TextEmbedConfig(BaseModel):
    """Options for text embedding calls.

    ``semantic_encoder`` must be set exactly when ``splitting_strategy`` is
    ``SEMANTIC``; otherwise construction raises ``ConfigurationError``.
    ``buffer_size`` controls how many records are embedded and flushed to a
    sink at a time.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, gt=0)
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, gt=0)
    buffer_size: int = Field(default=DEFAULT_BUFFER_SIZE, gt=0)
    overlap_ratio: float = Field(default=0.0, ge=0.0, lt=1.0)
    splitting_strategy: SplittingStrategy = SplittingStrategy.SENTENCE
    semantic_encoder: Optional[Any] = None
    use_ocr: bool = False
    tesseract_path: Optional[str] = None

    @model_validator(mode="after")
    def _check_semantic_encoder(self) -> "TextEmbedConfig":
        if self.splitting_strategy == SplittingStrategy.SEMANTIC and self.semantic_encoder is None:
            raise ConfigurationError("Semantic splitting requires a semantic_encoder")
        return self

    def with_chunk_size(self, chunk_size: int, overlap_ratio: Optional[float] = None) -> "TextEmbedConfig":
        update: dict = {"chunk_size": chunk_size}
        if overlap_ratio is not None:
            update["overlap_ratio"] = overlap_ratio
        return self._replace(**update)

    def with_batch_size(self, batch_size: int) -> "TextEmbedConfig":
        return self._replace(batch_size=batch_size)

    def with_buffer_size(self, buffer_size: int) -> "TextEmbedConfig":
        return self._replace(buffer_size=buffer_size)

    def with_splitting_strategy(self, strategy: SplittingStrategy) -> "TextEmbedConfig":
        return self._replace(splitting_strategy=strategy)

    def with_semantic_encoder(self, encoder: Any) -> "TextEmbedConfig":
        return self._replace(semantic_encoder=encoder)

    def with_ocr(self, use_ocr: bool, tesseract_path: Optional[str] = None) -> "TextEmbedConfig":
        return self._replace(use_ocr=use_ocr, tesseract_path=tesseract_path)

    def _replace(self, **update: Any) -> "TextEmbedConfig":
        # Re-validate: model_copy(update=...) would skip the validators.
        return TextEmbedConfig(**{**self._fields_dict(), **update})

    def _fields_dict(self) -> dict:
        return {name: getattr(self, name) for name in type(self).model_fields}


class ImageEmbedConfig(BaseModel):
    """Options for image directory embedding."""

    model_config = ConfigDict(frozen=True)

    buffer_size: int = Field(default=DEFAULT_BUFFER_SIZE, gt=0)
