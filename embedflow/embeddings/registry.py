"""Read-only registry of known models.

Maps short model names to their Hugging Face repository, default pooling and
ONNX graph location. Built once at import time and exposed through a
``MappingProxyType`` so lookups never rebuild or mutate it.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from .pooling import Pooling


@dataclass(frozen=True)
class ModelInfo:
    """Static facts about a known model."""
    name: str
    model_id: str
    architecture: str
    pooling: Pooling = Pooling.MEAN
    onnx_file: str = "model.onnx"
    sparse: bool = False


_KNOWN_MODELS = (
    ModelInfo("all-minilm-l6-v2", "sentence-transformers/all-MiniLM-L6-v2", "bert", Pooling.MEAN, "onnx/model.onnx"),
    ModelInfo("all-minilm-l12-v2", "sentence-transformers/all-MiniLM-L12-v2", "bert", Pooling.MEAN, "onnx/model.onnx"),
    ModelInfo("all-mpnet-base-v2", "sentence-transformers/all-mpnet-base-v2", "bert", Pooling.MEAN, "onnx/model.onnx"),
    ModelInfo("bge-small-en-v1.5", "BAAI/bge-small-en-v1.5", "bert", Pooling.CLS, "onnx/model.onnx"),
    ModelInfo("bge-base-en-v1.5", "BAAI/bge-base-en-v1.5", "bert", Pooling.CLS, "onnx/model.onnx"),
    ModelInfo("bge-large-en-v1.5", "BAAI/bge-large-en-v1.5", "bert", Pooling.CLS, "onnx/model.onnx"),
    ModelInfo("jina-embeddings-v2-small-en", "jinaai/jina-embeddings-v2-small-en", "jina", Pooling.MEAN, "onnx/model.onnx"),
    ModelInfo("jina-embeddings-v2-base-en", "jinaai/jina-embeddings-v2-base-en", "jina", Pooling.MEAN, "onnx/model.onnx"),
    ModelInfo("modernbert-embed-base", "nomic-ai/modernbert-embed-base", "modernbert", Pooling.MEAN, "onnx/model.onnx"),
    ModelInfo("splade-pp-en-v1", "prithivida/Splade_PP_en_v1", "bert", Pooling.SPLADE, "model.onnx", sparse=True),
    ModelInfo("clip-vit-base-patch32", "openai/clip-vit-base-patch32", "clip"),
)

MODEL_REGISTRY: Mapping[str, ModelInfo] = MappingProxyType({info.name: info for info in _KNOWN_MODELS})

_BY_MODEL_ID: Mapping[str, ModelInfo] = MappingProxyType({info.model_id: info for info in _KNOWN_MODELS})


def get_model_info(name: str) -> Optional[ModelInfo]:
    """Look up by short name (case-insensitive) or by Hugging Face id."""
    return MODEL_REGISTRY.get(name.lower()) or _BY_MODEL_ID.get(name)


def default_pooling(model_id: str) -> Pooling:
    """Pooling registered for ``model_id``, ``MEAN`` for unknown models."""
    info = get_model_info(model_id)
    return info.pooling if info else Pooling.MEAN


def registered_names() -> Dict[str, str]:
    """Short name to Hugging Face id, for diagnostics."""
    return {name: info.model_id for name, info in MODEL_REGISTRY.items()}
