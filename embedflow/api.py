"""Public entry points.

Every operation exists as a coroutine (``aembed_*``) and as a synchronous
wrapper that runs it with ``asyncio.run``; the synchronous forms must not be
called from inside a running event loop.

Calls that take an ``adapter`` stream records to it in slices of
``buffer_size`` and return ``None``; without an adapter the records are
returned.
"""

import asyncio
import functools
import os
from typing import Any, Callable, Iterable, List, Optional, Sequence

import structlog

from .chunking.splitter import create_splitter
from .common.config import ImageEmbedConfig, TextEmbedConfig
from .common.errors import FileNotFound
from .common.metrics import get_metrics_collector
from .embeddings.base import Capability, EmbedData, Embedder, iter_batches
from .loaders.audio import AudioDecoder
from .loaders.file_loader import FileParser, extract_text, get_metadata
from .loaders.website import WebsiteProcessor
from .pipelines.orchestrator import EmbeddingOrchestrator, Sink, deliver
from .pipelines.scheduler import embed_chunks

logger = structlog.get_logger("api")


def _routes_to_images(embedder: Embedder) -> bool:
    return embedder.supports(Capability.IMAGE) and not embedder.supports(Capability.DOCUMENT_TEXT)


async def _in_thread(func: Callable[..., Any], *args: Any) -> Any:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args))


def chunk_text(text: str, config: TextEmbedConfig) -> List[str]:
    """Chunk ``text`` per ``config``; whitespace-only chunks are dropped."""
    splitter = create_splitter(
        config.chunk_size,
        config.overlap_ratio,
        config.splitting_strategy,
        config.semantic_encoder,
    )
    return [chunk.text for chunk in splitter.split(text) if chunk.text.strip()]


def embed_file_records(path: str, embedder: Embedder, config: TextEmbedConfig) -> List[EmbedData]:
    """Extract, chunk and embed one document (runs in a worker thread)."""
    text = extract_text(path, use_ocr=config.use_ocr, tesseract_path=config.tesseract_path)
    metadata = get_metadata(path)
    chunks = chunk_text(text, config)
    records = embed_chunks(embedder, chunks, metadata, config.batch_size)
    logger.debug("Embedded file", file=path, chunks=len(records))
    return records


# Queries

async def aembed_query(
    queries: Sequence[str],
    embedder: Embedder,
    config: Optional[TextEmbedConfig] = None,
) -> List[EmbedData]:
    """Embed short texts verbatim (no chunking)."""
    config = config or TextEmbedConfig()
    embedder.require(Capability.QUERY_TEXT, "query embedding")
    return await _in_thread(embed_chunks, embedder, list(queries), None, config.batch_size)


def embed_query(
    queries: Sequence[str],
    embedder: Embedder,
    config: Optional[TextEmbedConfig] = None,
) -> List[EmbedData]:
    return asyncio.run(aembed_query(queries, embedder, config))


# Files and directories

async def aembed_file(
    path: str,
    embedder: Embedder,
    config: Optional[TextEmbedConfig] = None,
    adapter: Optional[Sink] = None,
) -> Optional[List[EmbedData]]:
    """Embed one file. Image-only backends embed it as an image."""
    if not os.path.isfile(path):
        raise FileNotFound(path)
    config = config or TextEmbedConfig()

    if _routes_to_images(embedder):
        records = [await _in_thread(embedder.embed_image, path)]
    else:
        embedder.require(Capability.DOCUMENT_TEXT, "file embedding")
        records = await _in_thread(embed_file_records, path, embedder, config)
    get_metrics_collector().record_chunks("file", len(records))

    if adapter is not None:
        await deliver(adapter, records, config.buffer_size)
        return None
    return records


def embed_file(
    path: str,
    embedder: Embedder,
    config: Optional[TextEmbedConfig] = None,
    adapter: Optional[Sink] = None,
) -> Optional[List[EmbedData]]:
    return asyncio.run(aembed_file(path, embedder, config, adapter))


async def aembed_directory(
    path: str,
    embedder: Embedder,
    extensions: Optional[Iterable[str]] = None,
    config: Optional[TextEmbedConfig] = None,
    adapter: Optional[Sink] = None,
    orchestrator: Optional[EmbeddingOrchestrator] = None,
) -> Optional[List[EmbedData]]:
    """Embed every matching document under ``path``.

    Files are processed concurrently; a failing file is skipped unless every
    file fails. Image-only backends are routed to the image directory path.
    """
    if not os.path.isdir(path):
        raise FileNotFound(path)

    if _routes_to_images(embedder):
        image_config = ImageEmbedConfig(buffer_size=config.buffer_size) if config else None
        return await aembed_image_directory(path, embedder, image_config, adapter, orchestrator)

    config = config or TextEmbedConfig()
    embedder.require(Capability.DOCUMENT_TEXT, "directory embedding")
    files = FileParser.get_text_files(path, extensions)
    if not files:
        return None if adapter is not None else []

    orchestrator = orchestrator or EmbeddingOrchestrator(embedder)
    return await orchestrator.run_items(
        files,
        functools.partial(embed_file_records, embedder=embedder, config=config),
        sink=adapter,
        buffer_size=config.buffer_size,
        source="file",
    )


def embed_directory(
    path: str,
    embedder: Embedder,
    extensions: Optional[Iterable[str]] = None,
    config: Optional[TextEmbedConfig] = None,
    adapter: Optional[Sink] = None,
) -> Optional[List[EmbedData]]:
    return asyncio.run(aembed_directory(path, embedder, extensions, config, adapter))


async def aembed_image_directory(
    path: str,
    embedder: Embedder,
    config: Optional[ImageEmbedConfig] = None,
    adapter: Optional[Sink] = None,
    orchestrator: Optional[EmbeddingOrchestrator] = None,
) -> Optional[List[EmbedData]]:
    """One embedding per image; images are embedded ``buffer_size`` at a time."""
    if not os.path.isdir(path):
        raise FileNotFound(path)
    config = config or ImageEmbedConfig()
    embedder.require(Capability.IMAGE, "image embedding")

    images = FileParser.get_image_paths(path)
    if not images:
        return None if adapter is not None else []

    batches = [list(batch) for batch in iter_batches(images, config.buffer_size)]
    orchestrator = orchestrator or EmbeddingOrchestrator(embedder)
    return await orchestrator.run_items(
        batches,
        embedder.embed_image_batch,
        sink=adapter,
        buffer_size=config.buffer_size,
        source="image",
    )


def embed_image_directory(
    path: str,
    embedder: Embedder,
    config: Optional[ImageEmbedConfig] = None,
    adapter: Optional[Sink] = None,
) -> Optional[List[EmbedData]]:
    return asyncio.run(aembed_image_directory(path, embedder, config, adapter))


# Web pages

def embed_page_records(url: str, embedder: Embedder, config: TextEmbedConfig,
                       processor: Optional[WebsiteProcessor] = None) -> List[EmbedData]:
    """Fetch, chunk and embed a page; each record is tagged with its block type."""
    if processor is None:
        with WebsiteProcessor() as owned:
            page = owned.process_website(url)
    else:
        page = processor.process_website(url)
    records: List[EmbedData] = []
    for kind, blocks in page.blocks().items():
        chunks = [chunk for block in blocks for chunk in chunk_text(block, config)]
        metadata = {"url": url, "type": kind}
        if page.title:
            metadata["title"] = page.title
        records.extend(embed_chunks(embedder, chunks, metadata, config.batch_size))
    return records


async def aembed_webpage(
    url: str,
    embedder: Embedder,
    config: Optional[TextEmbedConfig] = None,
    adapter: Optional[Sink] = None,
    processor: Optional[WebsiteProcessor] = None,
) -> Optional[List[EmbedData]]:
    """Embed the text of a web page. Image-only backends are rejected before fetching."""
    embedder.require(Capability.DOCUMENT_TEXT, "webpage embedding")
    config = config or TextEmbedConfig()
    records = await _in_thread(embed_page_records, url, embedder, config, processor)
    get_metrics_collector().record_chunks("webpage", len(records))

    if adapter is not None:
        await deliver(adapter, records, config.buffer_size)
        return None
    return records


def embed_webpage(
    url: str,
    embedder: Embedder,
    config: Optional[TextEmbedConfig] = None,
    adapter: Optional[Sink] = None,
) -> Optional[List[EmbedData]]:
    return asyncio.run(aembed_webpage(url, embedder, config, adapter))


# Audio

def embed_audio_records(path: str, audio_decoder: AudioDecoder, embedder: Embedder,
                        config: TextEmbedConfig) -> List[EmbedData]:
    segments = [s for s in audio_decoder.process_audio(path) if s.text.strip()]
    file_name = os.path.realpath(path)
    records = embed_chunks(embedder, [s.text.strip() for s in segments], None, config.batch_size)
    return [
        EmbedData(
            embedding=record.embedding,
            text=record.text,
            metadata={"file_name": file_name, "start": str(segment.start), "end": str(segment.end)},
        )
        for segment, record in zip(segments, records)
    ]


async def aembed_audio_file(
    path: str,
    audio_decoder: AudioDecoder,
    embedder: Embedder,
    config: Optional[TextEmbedConfig] = None,
) -> List[EmbedData]:
    """Embed each non-empty transcript segment with its time span."""
    if not os.path.isfile(path):
        raise FileNotFound(path)
    embedder.require(Capability.DOCUMENT_TEXT, "audio embedding")
    config = config or TextEmbedConfig()
    records = await _in_thread(embed_audio_records, path, audio_decoder, embedder, config)
    get_metrics_collector().record_chunks("audio", len(records))
    return records


def embed_audio_file(
    path: str,
    audio_decoder: AudioDecoder,
    embedder: Embedder,
    config: Optional[TextEmbedConfig] = None,
) -> List[EmbedData]:
    return asyncio.run(aembed_audio_file(path, audio_decoder, embedder, config))
