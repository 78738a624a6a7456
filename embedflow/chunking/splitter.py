"""Sentence-based text splitting with overlap.

A document is cut into contiguous units: sentences, or for sentences longer
than the chunk size, words, and for words longer than the chunk size, hard
character slices. Units are packed greedily into chunks of at most
``max_chunk_size`` characters. With overlap, the next chunk starts at the
earliest unit boundary at or after ``previous_end - overlap``; it always
starts at least one unit later than the previous chunk, so splitting
terminates.

Every chunk records its ``[start, end)`` span in the source text. Chunks are
ordered by ``start`` and the parts not covered by the previous chunk
(``text[prev_end:end]``) concatenate back to the document.
"""

import re
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional

from ..common.config import SplittingStrategy
from ..common.errors import ConfigurationError

# Sentence terminator plus closing quotes/brackets and trailing whitespace,
# or a paragraph break.
_SENTENCE_END = re.compile(r"[.!?]+[\"')\]]*\s+|\n\s*\n\s*")
_WORD = re.compile(r"\S+\s*|\s+")


@dataclass(frozen=True)
class TextChunk:
    """A contiguous, non-empty slice ``text[start:end]`` of a document."""
    text: str
    start: int
    end: int


@dataclass(frozen=True)
class Span:
    start: int
    end: int


def validate_options(max_chunk_size: int, overlap_ratio: float = 0.0) -> None:
    if max_chunk_size <= 0:
        raise ConfigurationError(f"max_chunk_size must be > 0, got {max_chunk_size}")
    if not 0.0 <= overlap_ratio < 1.0:
        raise ConfigurationError(f"overlap_ratio must be in [0, 1), got {overlap_ratio}")


def _sentence_spans(text: str) -> List[Span]:
    spans = []
    start = 0
    for match in _SENTENCE_END.finditer(text):
        if match.end() > start:
            spans.append(Span(start, match.end()))
            start = match.end()
    if start < len(text):
        spans.append(Span(start, len(text)))
    return spans


def _split_long(text: str, span: Span, max_chunk_size: int) -> List[Span]:
    """Break an oversize span into words, and oversize words into slices."""
    pieces = []
    for match in _WORD.finditer(text, span.start, span.end):
        start, end = match.start(), match.end()
        while end - start > max_chunk_size:
            pieces.append(Span(start, start + max_chunk_size))
            start += max_chunk_size
        if end > start:
            pieces.append(Span(start, end))
    return pieces


def sentence_units(text: str, max_chunk_size: int) -> List[Span]:
    """Contiguous units covering ``text``, each at most ``max_chunk_size`` long."""
    units: List[Span] = []
    for span in _sentence_spans(text):
        if span.end - span.start <= max_chunk_size:
            units.append(span)
        else:
            units.extend(_split_long(text, span, max_chunk_size))
    return units


class TextSplitter:
    """Greedy sentence packer.

    Parameters
    - max_chunk_size: upper bound on chunk length, in characters
    - overlap_ratio: fraction of ``max_chunk_size`` repeated between
      consecutive chunks, in ``[0, 1)``
    """

    def __init__(self, max_chunk_size: int, overlap_ratio: float = 0.0):
        validate_options(max_chunk_size, overlap_ratio)
        self.max_chunk_size = max_chunk_size
        self.overlap_ratio = overlap_ratio
        self.overlap = int(overlap_ratio * max_chunk_size)

    def split(self, text: str) -> Iterator[TextChunk]:
        """Yield chunks of ``text`` in document order."""
        units = sentence_units(text, self.max_chunk_size)
        count = len(units)
        i = 0
        while i < count:
            j = i
            while j + 1 < count and units[j + 1].end - units[i].start <= self.max_chunk_size:
                j += 1

            start, end = units[i].start, units[j].end
            yield TextChunk(text[start:end], start, end)

            if j == count - 1:
                return

            target = end - self.overlap
            k = i + 1
            while k <= j and units[k].start < target:
                k += 1
            # the next chunk must still reach past this one
            while units[j + 1].end - units[k].start > self.max_chunk_size:
                k += 1
            i = k


def create_splitter(
    max_chunk_size: int,
    overlap_ratio: float = 0.0,
    strategy: SplittingStrategy = SplittingStrategy.SENTENCE,
    semantic_encoder: Optional[Any] = None,
) -> Any:
    """Build the splitter for ``strategy``.

    Semantic splitting needs an encoder and ignores ``overlap_ratio``.
    """
    if strategy == SplittingStrategy.SEMANTIC:
        from .semantic import SemanticSplitter
        return SemanticSplitter(semantic_encoder, max_chunk_size)
    return TextSplitter(max_chunk_size, overlap_ratio)


def split(
    text: str,
    max_chunk_size: int,
    overlap_ratio: float = 0.0,
    strategy: SplittingStrategy = SplittingStrategy.SENTENCE,
    semantic_encoder: Optional[Any] = None,
) -> Iterator[TextChunk]:
    """Split ``text`` with a freshly built splitter; returns a new generator."""
    return create_splitter(max_chunk_size, overlap_ratio, strategy, semantic_encoder).split(text)
