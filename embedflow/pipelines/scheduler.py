"""Batch scheduling of text chunks through an embedding backend."""

import time
from typing import Dict, List, Optional, Sequence

import structlog

from ..common.errors import BackendCallError
from ..common.metrics import get_metrics_collector
from ..embeddings.base import DenseVector, EmbedData, Embedder

logger = structlog.get_logger("scheduler")


def embed_chunks(
    embedder: Embedder,
    texts: Sequence[str],
    metadata: Optional[Dict[str, str]] = None,
    batch_size: Optional[int] = None,
) -> List[EmbedData]:
    """Embed ``texts`` and pair each vector with its text and metadata.

    Every record gets its own copy of ``metadata``. The backend must return
    one dense result per text; anything else is a ``BackendCallError``.
    """
    texts = list(texts)
    if not texts:
        return []

    metrics = get_metrics_collector()
    start = time.time()
    try:
        results = embedder.embed(texts, batch_size=batch_size)
    except BackendCallError:
        metrics.record_backend_error(embedder.name)
        raise
    metrics.record_embedding_call(embedder.name, time.time() - start)

    if len(results) != len(texts):
        metrics.record_backend_error(embedder.name)
        raise BackendCallError(
            f"{embedder.name} returned {len(results)} results for {len(texts)} inputs"
        )

    records = []
    for text, result in zip(texts, results):
        if not isinstance(result, DenseVector):
            raise BackendCallError(f"{embedder.name} returned a non-dense result: {type(result).__name__}")
        records.append(EmbedData(
            embedding=list(result.values),
            text=text,
            metadata=dict(metadata) if metadata is not None else None,
        ))

    logger.debug("Embedded chunks", backend=embedder.name, chunks=len(records))
    return records
