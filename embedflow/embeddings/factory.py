"""Embedder factory.

Centralizes creation of concrete ``Embedder`` backends so callers don't depend
on implementation modules. Backend modules are imported lazily: building a
remote backend never pays for importing ``onnxruntime`` and vice versa.
"""

from enum import Enum
from typing import Any, Dict, Optional

import structlog

from ..common.config import EmbedSettings, get_settings
from ..common.errors import ModelConstructionError
from .base import Embedder

logger = structlog.get_logger("embeddings.factory")


class EmbedderType(Enum):
    """Supported backend kinds."""
    LOCAL = "local"
    SPARSE = "sparse"
    ONNX = "onnx"
    CLIP = "clip"
    OPENAI = "openai"
    COHERE = "cohere"
    JINA = "jina"


class EmbedderFactory:
    """Factory for creating embedder instances."""

    @staticmethod
    def create(embedder_type: EmbedderType, **kwargs: Any) -> Embedder:
        """Create an embedder.

        Parameters
        - embedder_type: An ``EmbedderType`` enum value
        - kwargs: Backend-specific parameters (``model_id``, ``dtype``,
          ``api_key``, ...) forwarded to the implementation
        """
        logger.info("Creating embedder", embedder_type=embedder_type.value)

        if embedder_type == EmbedderType.LOCAL:
            from .local import TransformerEmbedder
            return TransformerEmbedder(**kwargs)

        elif embedder_type == EmbedderType.SPARSE:
            from .local import SparseTransformerEmbedder
            return SparseTransformerEmbedder(**kwargs)

        elif embedder_type == EmbedderType.ONNX:
            from .onnx import Dtype, OnnxEmbedder
            dtype = kwargs.pop("dtype", None)
            if isinstance(dtype, str):
                try:
                    dtype = Dtype[dtype.upper()]
                except KeyError:
                    raise ModelConstructionError(f"Unsupported ONNX dtype: {dtype}")
            return OnnxEmbedder(dtype=dtype, **kwargs)

        elif embedder_type == EmbedderType.CLIP:
            from .clip import ClipEmbedder
            return ClipEmbedder(**kwargs)

        elif embedder_type == EmbedderType.OPENAI:
            from .cloud import OpenAIEmbedder
            return OpenAIEmbedder(**kwargs)

        elif embedder_type == EmbedderType.COHERE:
            from .cloud import CohereEmbedder
            return CohereEmbedder(**kwargs)

        elif embedder_type == EmbedderType.JINA:
            from .cloud import JinaEmbedder
            return JinaEmbedder(**kwargs)

        else:
            raise ModelConstructionError(f"Unsupported embedder type: {embedder_type}")

    @staticmethod
    def create_from_config(config: Dict[str, Any]) -> Embedder:
        """Create an embedder from a configuration dictionary.

        Expects a ``type`` key; the remaining keys are forwarded.
        """
        config = dict(config)
        type_str = config.pop("type", EmbedderType.LOCAL.value)
        return create_embedder(type_str, **config)


def create_embedder(embedder_type: str, **kwargs: Any) -> Embedder:
    """Convenience function to create an embedder from a type name."""
    try:
        type_enum = EmbedderType(embedder_type)
    except ValueError:
        raise ModelConstructionError(f"Unsupported embedder type: {embedder_type}")
    return EmbedderFactory.create(type_enum, **kwargs)


def create_embedder_from_settings(settings: Optional[EmbedSettings] = None) -> Embedder:
    """Local torch backend for the configured default model."""
    settings = settings or get_settings()
    return EmbedderFactory.create(
        EmbedderType.LOCAL,
        model_id=settings.default_model_id,
        device=settings.device_preference,
    )
