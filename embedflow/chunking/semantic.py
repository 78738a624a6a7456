"""Similarity-driven splitting.

Sentence units are embedded with a semantic encoder and a boundary is placed
wherever two adjacent units are less similar than the cohesion threshold (a
low percentile of all adjacent similarities in the document), or where the
size bound would be exceeded. Semantic chunks do not overlap.
"""

from typing import Iterator, List, Optional

import numpy as np
import structlog

from ..common.errors import BackendCallError, ConfigurationError
from ..embeddings.base import DenseVector, Embedder
from .splitter import Span, TextChunk, sentence_units, validate_options

logger = structlog.get_logger("chunking.semantic")

DEFAULT_BREAKPOINT_PERCENTILE = 10.0


def adjacent_similarities(vectors: np.ndarray) -> np.ndarray:
    """Cosine similarity of each row with the next one."""
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    unit = vectors / np.clip(norms, 1e-12, None)
    return np.sum(unit[:-1] * unit[1:], axis=1)


class SemanticSplitter:
    """Split where meaning shifts.

    Parameters
    - encoder: any ``Embedder`` used to embed sentence units
    - max_chunk_size: upper bound on chunk length, in characters
    - breakpoint_percentile: adjacent similarities below this percentile
      start a new chunk
    """

    def __init__(
        self,
        encoder: Optional[Embedder],
        max_chunk_size: int,
        breakpoint_percentile: float = DEFAULT_BREAKPOINT_PERCENTILE,
        batch_size: Optional[int] = None,
    ):
        if encoder is None:
            raise ConfigurationError("Semantic splitting requires a semantic_encoder")
        validate_options(max_chunk_size)
        if not 0.0 <= breakpoint_percentile <= 100.0:
            raise ConfigurationError(f"breakpoint_percentile must be in [0, 100], got {breakpoint_percentile}")
        self.encoder = encoder
        self.max_chunk_size = max_chunk_size
        self.breakpoint_percentile = breakpoint_percentile
        self.batch_size = batch_size

    def split(self, text: str) -> Iterator[TextChunk]:
        """Yield chunks of ``text`` in document order."""
        units = sentence_units(text, self.max_chunk_size)
        if not units:
            return

        breaks = self._similarity_breaks(text, units)
        start = units[0]
        prev = units[0]
        for index in range(1, len(units)):
            unit = units[index]
            if (index - 1) in breaks or unit.end - start.start > self.max_chunk_size:
                yield TextChunk(text[start.start:prev.end], start.start, prev.end)
                start = unit
            prev = unit
        yield TextChunk(text[start.start:prev.end], start.start, prev.end)

    def _similarity_breaks(self, text: str, units: List[Span]) -> set:
        """Indices ``i`` where a boundary falls between unit ``i`` and ``i + 1``."""
        if len(units) < 2:
            return set()

        results = self.encoder.embed([text[u.start:u.end] for u in units], batch_size=self.batch_size)
        vectors = np.asarray([r.values for r in results if isinstance(r, DenseVector)], dtype=np.float32)
        if len(vectors) != len(units):
            raise BackendCallError("Semantic encoder must return one dense vector per sentence")

        similarities = adjacent_similarities(vectors)
        threshold = float(np.percentile(similarities, self.breakpoint_percentile))
        breaks = {int(i) for i in np.nonzero(similarities < threshold)[0]}

        logger.debug(
            "Semantic breakpoints computed",
            units=len(units),
            breakpoints=len(breaks),
            threshold=round(threshold, 4),
        )
        return breaks
