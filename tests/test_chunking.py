"""Tests for sentence and semantic splitting."""

import numpy as np
import pytest

from embedflow.chunking.semantic import SemanticSplitter, adjacent_similarities
from embedflow.chunking.splitter import TextSplitter, split
from embedflow.common.config import SplittingStrategy
from embedflow.common.errors import ConfigurationError
from tests.conftest import TopicEmbedder

DOCUMENT = (
    "Embeddings map text to vectors. Similar texts land close together! "
    "Chunking keeps inputs within the model window. Is overlap useful? "
    "It preserves context across boundaries.\n\n"
    "A second paragraph follows here. It is a little longer than the first "
    "sentence of the document and contains a deliberately long run of words "
    "that must still be packed correctly. Short one. "
    "Supercalifragilisticexpialidocious-antidisestablishmentarianism appears once."
)


def assert_reconstructs(text, chunks, max_chunk_size):
    prev_end = 0
    rebuilt = []
    prev_start = -1
    for chunk in chunks:
        assert chunk.text
        assert chunk.text == text[chunk.start:chunk.end]
        assert len(chunk.text) <= max_chunk_size
        assert chunk.start > prev_start
        assert chunk.start <= prev_end
        assert chunk.end > prev_end
        rebuilt.append(text[prev_end:chunk.end])
        prev_start, prev_end = chunk.start, chunk.end
    assert "".join(rebuilt) == text


@pytest.mark.parametrize("max_chunk_size", [20, 64, 128, 1000])
@pytest.mark.parametrize("overlap_ratio", [0.0, 0.2, 0.5, 0.9])
def test_sentence_chunks_cover_document(max_chunk_size, overlap_ratio):
    chunks = list(TextSplitter(max_chunk_size, overlap_ratio).split(DOCUMENT))
    assert_reconstructs(DOCUMENT, chunks, max_chunk_size)


def test_no_overlap_chunks_are_disjoint():
    chunks = list(TextSplitter(64).split(DOCUMENT))
    for previous, current in zip(chunks, chunks[1:]):
        assert current.start == previous.end


def test_overlap_repeats_trailing_sentences():
    text = "One two. Three four. Five six. Seven eight. "
    chunks = list(TextSplitter(25, 0.5).split(text))

    assert [c.text for c in chunks] == [
        "One two. Three four. ",
        "Three four. Five six. ",
        "Five six. Seven eight. ",
    ]
    assert chunks[1].start < chunks[0].end


def test_long_words_fall_back_to_hard_slices():
    chunks = list(TextSplitter(10).split("a" * 25))
    assert [c.text for c in chunks] == ["a" * 10, "a" * 10, "a" * 5]


def test_unicode_is_never_split_inside_a_character():
    text = "Größe zählt. Ünïcödé wörks fine. 日本語の文です。終わり."
    chunks = list(TextSplitter(12, 0.3).split(text))
    assert_reconstructs(text, chunks, 12)


def test_empty_text_yields_nothing():
    assert list(TextSplitter(100).split("")) == []
    assert list(split("", 100)) == []


def test_each_call_returns_a_fresh_generator():
    splitter = TextSplitter(40, 0.25)
    first = list(splitter.split(DOCUMENT))
    second = list(splitter.split(DOCUMENT))
    assert first == second


@pytest.mark.parametrize("max_chunk_size,overlap_ratio", [(0, 0.0), (-5, 0.0), (10, 1.0), (10, -0.1)])
def test_invalid_options_raise_configuration_error(max_chunk_size, overlap_ratio):
    with pytest.raises(ConfigurationError):
        TextSplitter(max_chunk_size, overlap_ratio)


def test_semantic_split_breaks_on_topic_shift():
    text = "Cats purr. Cats meow. Cats nap. Cars honk. Cars drive. Cars park."
    chunks = list(SemanticSplitter(TopicEmbedder(), 1000).split(text))

    assert [c.text for c in chunks] == [
        "Cats purr. Cats meow. Cats nap. ",
        "Cars honk. Cars drive. Cars park.",
    ]
    assert_reconstructs(text, chunks, 1000)


def test_semantic_split_respects_size_bound():
    text = "Cats purr. Cats meow. Cats nap. Cats sleep. Cats hunt."
    chunks = list(split(text, 25, strategy=SplittingStrategy.SEMANTIC, semantic_encoder=TopicEmbedder()))
    assert_reconstructs(text, chunks, 25)
    assert len(chunks) > 1


def test_semantic_split_requires_encoder():
    with pytest.raises(ConfigurationError):
        SemanticSplitter(None, 100)
    with pytest.raises(ConfigurationError):
        split("Some text.", 100, strategy=SplittingStrategy.SEMANTIC)


def test_adjacent_similarities():
    sims = adjacent_similarities(np.array([[1.0, 0.0], [2.0, 0.0], [0.0, 3.0]]))
    assert sims.tolist() == pytest.approx([1.0, 0.0])
