"""Embedding pipelines for files, directories, web pages, images and audio.

Import pattern:
- from embedflow import embed_directory, TextEmbedConfig
- from embedflow.embeddings.factory import create_embedder
"""

from .api import (
    aembed_audio_file,
    aembed_directory,
    aembed_file,
    aembed_image_directory,
    aembed_query,
    aembed_webpage,
    embed_audio_file,
    embed_directory,
    embed_file,
    embed_image_directory,
    embed_query,
    embed_webpage,
)
from .common.config import ImageEmbedConfig, SplittingStrategy, TextEmbedConfig
from .common.errors import (
    BackendCallError,
    ConfigurationError,
    EmbedError,
    EmbedRunError,
    FileNotFound,
    InvalidModelSelection,
    ModelConstructionError,
    UnsupportedFileType,
)
from .embeddings.base import EmbedData, Embedder
from .embeddings.factory import EmbedderType, create_embedder

__version__ = "0.1.0"

__all__ = [
    "aembed_audio_file",
    "aembed_directory",
    "aembed_file",
    "aembed_image_directory",
    "aembed_query",
    "aembed_webpage",
    "embed_audio_file",
    "embed_directory",
    "embed_file",
    "embed_image_directory",
    "embed_query",
    "embed_webpage",
    "ImageEmbedConfig",
    "SplittingStrategy",
    "TextEmbedConfig",
    "BackendCallError",
    "ConfigurationError",
    "EmbedError",
    "EmbedRunError",
    "FileNotFound",
    "InvalidModelSelection",
    "ModelConstructionError",
    "UnsupportedFileType",
    "EmbedData",
    "Embedder",
    "EmbedderType",
    "create_embedder",
]
