"""Base embedder interface and result records.

Defines the abstract contract the pipeline depends on, independent of the
backing implementation (local torch inference, ONNX Runtime, remote APIs).

Backends are constructed once (expensive) and are read-only afterwards, so a
single instance can be shared by every concurrent orchestration task.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterator, List, Optional, Sequence, TypeVar, Union

from ..common.config import DEFAULT_BATCH_SIZE
from ..common.errors import ConfigurationError, InvalidModelSelection

T = TypeVar("T")


class Capability(Enum):
    """What kind of input a backend can embed."""
    QUERY_TEXT = "query_text"        # short texts embedded verbatim
    DOCUMENT_TEXT = "document_text"  # chunked documents, pages, transcripts
    IMAGE = "image"


TEXT_CAPABILITIES: FrozenSet[Capability] = frozenset({Capability.QUERY_TEXT, Capability.DOCUMENT_TEXT})


@dataclass(frozen=True)
class DenseVector:
    """Dense embedding produced by a backend."""
    values: List[float]


# Only dense vectors are produced today; the alias leaves room for sparse.
EmbeddingResult = Union[DenseVector]


@dataclass(frozen=True)
class EmbedData:
    """Immutable embedding record.

    Owns copies of its text and metadata; holds no reference back to the
    source document.
    """
    embedding: List[float]
    text: Optional[str] = None
    metadata: Optional[Dict[str, str]] = field(default=None)

    def to_dict(self) -> Dict[str, Any]:
        """Convert record to a plain dictionary."""
        return {
            "embedding": list(self.embedding),
            "text": self.text,
            "metadata": dict(self.metadata) if self.metadata is not None else None,
        }


def resolve_batch_size(batch_size: Optional[int]) -> int:
    """Validate a caller batch size or fall back to the default."""
    if batch_size is None:
        return DEFAULT_BATCH_SIZE
    if batch_size <= 0:
        raise ConfigurationError(f"batch_size must be > 0, got {batch_size}")
    return batch_size


def iter_batches(items: Sequence[T], batch_size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of ``items`` of at most ``batch_size``."""
    for start in range(0, len(items), batch_size):
        yield items[start:start + batch_size]


class Embedder(ABC):
    """Abstract base class for embedding backends.

    Implementations must return exactly one ``EmbeddingResult`` per input
    text, in input order, and raise ``BackendCallError`` on failure.
    """

    name: str = "embedder"
    capabilities: FrozenSet[Capability] = TEXT_CAPABILITIES

    @abstractmethod
    def embed(
        self,
        text_batch: Sequence[str],
        batch_size: Optional[int] = None
    ) -> List[EmbeddingResult]:
        """Embed a batch of texts.

        ``text_batch`` is split into sub-batches of ``batch_size`` (default
        32); results are concatenated in the original order.
        """
        pass

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def require(self, capability: Capability, operation: str) -> None:
        """Raise ``InvalidModelSelection`` when ``capability`` is missing."""
        if not self.supports(capability):
            raise InvalidModelSelection(
                f"{self.name} does not support {operation}"
            )


class ImageEmbedder(Embedder):
    """Backend that can also embed images."""

    capabilities: FrozenSet[Capability] = frozenset({Capability.QUERY_TEXT, Capability.IMAGE})

    @abstractmethod
    def embed_image(self, image_path: str, metadata: Optional[Dict[str, str]] = None) -> EmbedData:
        """Embed a single image file."""
        pass

    @abstractmethod
    def embed_image_batch(self, image_paths: Sequence[str]) -> List[EmbedData]:
        """Embed several image files in one forward pass, in input order."""
        pass
