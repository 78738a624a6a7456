"""End-to-end tests of the public API with fake backends."""

import os

import httpx
import pytest

from embedflow import (
    TextEmbedConfig,
    aembed_directory,
    aembed_webpage,
    embed_audio_file,
    embed_directory,
    embed_file,
    embed_image_directory,
    embed_query,
)
from embedflow.common.errors import (
    EmbedRunError,
    FileNotFound,
    InvalidModelSelection,
    UnsupportedFileType,
)
from embedflow.common.config import ImageEmbedConfig
from embedflow.loaders.audio import Segment
from embedflow.loaders.website import WebsiteProcessor
from embedflow.pipelines.orchestrator import EmbeddingOrchestrator
from tests.conftest import FakeEmbedder, text_vector

PAGE = """
<html><head><title>Embedding notes</title><script>var x = 1;</script></head>
<body>
  <h1>Vectors</h1>
  <p>Vectors capture meaning. Nearby vectors mean similar things.</p>
  <p>Chunking splits long pages.</p>
  <pre>print("hello")</pre>
</body></html>
"""


class RecordingAdapter:
    def __init__(self):
        self.batches = []

    def upsert(self, data):
        self.batches.append(list(data))

    @property
    def records(self):
        return [r for batch in self.batches for r in batch]


class FakeDecoder:
    def process_audio(self, path):
        return [
            Segment(0.0, 2.5, " Hello there. "),
            Segment(2.5, 3.0, "   "),
            Segment(3.0, 6.0, "General Kenobi."),
        ]


def test_embed_query_keeps_texts_verbatim(fake_embedder):
    records = embed_query(["what is an embedding?", "pooling"], fake_embedder)

    assert [r.text for r in records] == ["what is an embedding?", "pooling"]
    assert records[1].embedding == text_vector("pooling")
    assert records[0].metadata is None


def test_embed_query_works_on_image_backends(image_embedder):
    records = embed_query(["a photo of a cat"], image_embedder)
    assert len(records) == 1


def test_embed_directory_collects_every_file(text_dir, fake_embedder):
    records = embed_directory(str(text_dir), fake_embedder)

    files = {r.metadata["file_name"] for r in records}
    assert files == {
        os.path.realpath(text_dir / "alpha.txt"),
        os.path.realpath(text_dir / "beta.md"),
        os.path.realpath(text_dir / "nested" / "gamma.txt"),
    }
    for record in records:
        assert set(record.metadata) == {"file_name", "created", "modified"}
        assert record.text.strip()


def test_embed_directory_stream_matches_collect(text_dir, fake_embedder):
    config = TextEmbedConfig(chunk_size=20, buffer_size=2)
    collected = embed_directory(str(text_dir), fake_embedder, config=config)

    adapter = RecordingAdapter()
    result = embed_directory(str(text_dir), fake_embedder, config=config, adapter=adapter)

    assert result is None
    assert sorted((r.metadata["file_name"], r.text) for r in collected) == sorted(
        (r.metadata["file_name"], r.text) for r in adapter.records
    )
    assert all(len(batch) <= 2 for batch in adapter.batches)


def test_embed_directory_extension_filter(text_dir, fake_embedder):
    records = embed_directory(str(text_dir), fake_embedder, extensions=["md"])
    assert {os.path.basename(r.metadata["file_name"]) for r in records} == {"beta.md"}


def test_embed_directory_skips_failing_files(text_dir, fake_embedder):
    records = embed_directory(str(text_dir), FakeEmbedder(fail_on="Gamma"))
    names = {os.path.basename(r.metadata["file_name"]) for r in records}
    assert names == {"alpha.txt", "beta.md"}


def test_embed_directory_fails_when_every_file_fails(text_dir):
    with pytest.raises(EmbedRunError):
        embed_directory(str(text_dir), FakeEmbedder(fail_on=" "))


def test_embed_directory_missing_path(tmp_path, fake_embedder):
    with pytest.raises(FileNotFound):
        embed_directory(str(tmp_path / "missing"), fake_embedder)


def test_embed_file(text_dir, fake_embedder):
    config = TextEmbedConfig().with_chunk_size(18)
    records = embed_file(str(text_dir / "alpha.txt"), fake_embedder, config)

    assert [r.text for r in records] == ["Alpha is first. ", "It opens the list."]
    assert records[0].metadata["file_name"] == os.path.realpath(text_dir / "alpha.txt")


def test_embed_file_errors(tmp_path, fake_embedder):
    with pytest.raises(FileNotFoundError):
        embed_file(str(tmp_path / "nope.txt"), fake_embedder)

    unsupported = tmp_path / "data.xyz"
    unsupported.write_text("x")
    with pytest.raises(UnsupportedFileType):
        embed_file(str(unsupported), fake_embedder)


def test_embed_file_with_image_backend_embeds_image(tmp_path, image_embedder):
    image = tmp_path / "cat.png"
    image.write_bytes(b"not really a png")

    records = embed_file(str(image), image_embedder)
    assert records[0].metadata["file_name"] == os.path.realpath(image)


def test_embed_image_directory_batches_by_buffer_size(tmp_path, image_embedder):
    for name in ("a.png", "b.jpg", "c.jpeg", "notes.txt"):
        (tmp_path / name).write_bytes(b"x")

    records = embed_image_directory(str(tmp_path), image_embedder, ImageEmbedConfig(buffer_size=2))

    assert len(records) == 3
    assert sorted(len(batch) for batch in image_embedder.batches) == [1, 2]


def test_embed_image_directory_rejects_text_backend(tmp_path, fake_embedder):
    with pytest.raises(InvalidModelSelection):
        embed_image_directory(str(tmp_path), fake_embedder)


def test_embed_directory_routes_image_backends(tmp_path, image_embedder):
    (tmp_path / "a.png").write_bytes(b"x")
    (tmp_path / "doc.txt").write_text("text is ignored")

    records = embed_directory(str(tmp_path), image_embedder)
    assert [os.path.basename(r.metadata["file_name"]) for r in records] == ["a.png"]


@pytest.mark.asyncio
async def test_directory_with_custom_orchestrator(text_dir, fake_embedder):
    orchestrator = EmbeddingOrchestrator(fake_embedder, max_concurrency=1)
    records = await aembed_directory(str(text_dir), fake_embedder, orchestrator=orchestrator)

    assert records
    assert len(orchestrator.last_summary.completed) == 3


@pytest.mark.asyncio
async def test_webpage_rejected_for_image_only_backend(image_embedder):
    class ExplodingProcessor:
        def process_website(self, url):
            raise AssertionError("page must not be fetched")

    with pytest.raises(InvalidModelSelection):
        await aembed_webpage("https://example.com", image_embedder, processor=ExplodingProcessor())


@pytest.mark.asyncio
async def test_webpage_blocks_are_tagged(fake_embedder):
    processor = WebsiteProcessor(client=httpx.Client(
        transport=httpx.MockTransport(lambda request: httpx.Response(200, text=PAGE))
    ))

    records = await aembed_webpage("https://example.com/notes", fake_embedder, processor=processor)

    by_type = {}
    for record in records:
        by_type.setdefault(record.metadata["type"], []).append(record.text)
        assert record.metadata["url"] == "https://example.com/notes"
        assert record.metadata["title"] == "Embedding notes"
    assert by_type["header"] == ["Vectors"]
    assert by_type["code"] == ['print("hello")']
    assert "Chunking splits long pages." in by_type["paragraph"]


@pytest.mark.asyncio
async def test_webpage_closes_the_client_it_creates(monkeypatch, fake_embedder):
    created = []

    class MockedProcessor(WebsiteProcessor):
        def __init__(self):
            super().__init__(client=httpx.Client(
                transport=httpx.MockTransport(lambda request: httpx.Response(200, text=PAGE))
            ))
            self._owns_client = True
            created.append(self)

    monkeypatch.setattr("embedflow.api.WebsiteProcessor", MockedProcessor)

    records = await aembed_webpage("https://example.com/notes", fake_embedder)

    assert records
    assert len(created) == 1
    assert created[0].client.is_closed


def test_embed_audio_file(tmp_path, fake_embedder):
    audio = tmp_path / "talk.wav"
    audio.write_bytes(b"RIFF")

    records = embed_audio_file(str(audio), FakeDecoder(), fake_embedder)

    assert [r.text for r in records] == ["Hello there.", "General Kenobi."]
    assert records[0].metadata == {"file_name": os.path.realpath(audio), "start": "0.0", "end": "2.5"}
    assert records[1].metadata["start"] == "3.0"


def test_embed_audio_file_missing(tmp_path, fake_embedder):
    with pytest.raises(FileNotFound):
        embed_audio_file(str(tmp_path / "missing.wav"), FakeDecoder(), fake_embedder)
