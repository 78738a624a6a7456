"""Shared fixtures and deterministic fake backends."""

import os
import threading
from typing import Dict, List, Optional, Sequence

import pytest

from embedflow.common.config import get_settings
from embedflow.common.errors import BackendCallError
from embedflow.embeddings.base import (
    DenseVector,
    EmbedData,
    Embedder,
    ImageEmbedder,
    iter_batches,
    resolve_batch_size,
)


def text_vector(text: str) -> List[float]:
    """Deterministic 3-d vector derived from the text."""
    return [float(len(text)), float(sum(map(ord, text)) % 101), 1.0]


class FakeEmbedder(Embedder):
    """Text backend that records sub-batch sizes.

    Texts containing ``fail_on`` raise ``BackendCallError``.
    """

    name = "fake"

    def __init__(self, fail_on: Optional[str] = None):
        self.fail_on = fail_on
        self.batch_sizes: List[int] = []
        self._lock = threading.Lock()

    def embed(self, text_batch: Sequence[str], batch_size: Optional[int] = None) -> List[DenseVector]:
        batch_size = resolve_batch_size(batch_size)
        results = []
        for batch in iter_batches(list(text_batch), batch_size):
            with self._lock:
                self.batch_sizes.append(len(batch))
            for text in batch:
                if self.fail_on and self.fail_on in text:
                    raise BackendCallError(f"cannot embed {text!r}")
                results.append(DenseVector(text_vector(text)))
        return results


class TopicEmbedder(Embedder):
    """Maps texts about cats and cars to orthogonal directions."""

    name = "topic"

    def embed(self, text_batch: Sequence[str], batch_size: Optional[int] = None) -> List[DenseVector]:
        return [DenseVector([1.0, 0.0] if "Cat" in text else [0.0, 1.0]) for text in text_batch]


class FakeImageEmbedder(ImageEmbedder):
    """Image-only backend; never opens the files."""

    name = "fake-image"

    def __init__(self):
        self.batches: List[List[str]] = []

    def embed(self, text_batch: Sequence[str], batch_size: Optional[int] = None) -> List[DenseVector]:
        return [DenseVector(text_vector(text)) for text in text_batch]

    def embed_image(self, image_path: str, metadata: Optional[Dict[str, str]] = None) -> EmbedData:
        return self.embed_image_batch([image_path])[0]

    def embed_image_batch(self, image_paths: Sequence[str]) -> List[EmbedData]:
        self.batches.append(list(image_paths))
        return [
            EmbedData(embedding=[float(len(p)), 0.0], metadata={"file_name": os.path.realpath(p)})
            for p in image_paths
        ]


@pytest.fixture(autouse=True)
def fresh_settings():
    """Settings are cached per process; tests that patch the env need a fresh read."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def image_embedder():
    return FakeImageEmbedder()


@pytest.fixture
def text_dir(tmp_path):
    """Directory with three small documents and one ignored file."""
    docs = {
        "alpha.txt": "Alpha is first. It opens the list.",
        "beta.md": "# Beta\n\nBeta sits in the middle. It has two sentences.",
        "nested/gamma.txt": "Gamma closes the set.",
    }
    for name, content in docs.items():
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    (tmp_path / "ignored.bin").write_bytes(b"\x00\x01")
    return tmp_path

