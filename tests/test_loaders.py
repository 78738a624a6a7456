"""Tests for file, web and audio loaders."""

import os

import fitz
import httpx
import pytest

from embedflow.common.errors import BackendCallError, FileNotFound, UnsupportedFileType
from embedflow.loaders.audio import _segments_from_output
from embedflow.loaders.file_loader import FileParser, extract_text, get_metadata
from embedflow.loaders.website import WebsiteProcessor, parse_html


def test_extract_plain_text(tmp_path):
    path = tmp_path / "notes.md"
    path.write_text("# Title\n\nSome words.", encoding="utf-8")
    assert extract_text(str(path)) == "# Title\n\nSome words."


def test_extract_pdf_text(tmp_path):
    path = tmp_path / "doc.pdf"
    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), "Hello from a PDF page")
    doc.save(str(path))
    doc.close()

    assert "Hello from a PDF page" in extract_text(str(path))


def test_extract_text_errors(tmp_path):
    with pytest.raises(FileNotFound):
        extract_text(str(tmp_path / "missing.txt"))

    unknown = tmp_path / "archive.zip"
    unknown.write_bytes(b"PK")
    with pytest.raises(UnsupportedFileType):
        extract_text(str(unknown))

    broken = tmp_path / "broken.pdf"
    broken.write_bytes(b"definitely not a pdf")
    with pytest.raises(UnsupportedFileType):
        extract_text(str(broken))


def test_get_metadata(tmp_path):
    path = tmp_path / "a.txt"
    path.write_text("x")

    metadata = get_metadata(str(path))

    assert metadata["file_name"] == os.path.realpath(path)
    assert set(metadata) == {"file_name", "created", "modified"}
    with pytest.raises(FileNotFound):
        get_metadata(str(tmp_path / "gone.txt"))


def test_file_parser_discovery(text_dir):
    files = FileParser.get_text_files(str(text_dir))
    assert [os.path.relpath(f, text_dir) for f in files] == [
        "alpha.txt",
        "beta.md",
        os.path.join("nested", "gamma.txt"),
    ]
    assert FileParser.get_text_files(str(text_dir), extensions=[".TXT"]) == [
        os.path.join(str(text_dir), "alpha.txt"),
        os.path.join(str(text_dir), "nested", "gamma.txt"),
    ]
    assert FileParser.get_image_paths(str(text_dir)) == []

    with pytest.raises(FileNotFound):
        FileParser.get_text_files(str(text_dir / "missing"))


def test_parse_html():
    page = parse_html(
        "https://example.com",
        "<title>T</title><style>p {}</style><h2> Heading </h2><p></p><p>Body text.</p><pre>  </pre>",
    )
    assert page.title == "T"
    assert page.headers == ["Heading"]
    assert page.paragraphs == ["Body text."]
    assert page.codes == []


def test_website_http_errors():
    processor = WebsiteProcessor(client=httpx.Client(
        transport=httpx.MockTransport(lambda request: httpx.Response(404, text="missing"))
    ))
    with pytest.raises(BackendCallError) as exc_info:
        processor.process_website("https://example.com/missing")
    assert exc_info.value.status_code == 404


def test_whisper_output_to_segments():
    output = {
        "text": " Hello world. Bye.",
        "chunks": [
            {"timestamp": (0.0, 1.5), "text": " Hello world."},
            {"timestamp": (1.5, None), "text": " Bye."},
        ],
    }
    segments = _segments_from_output(output)

    assert [(s.start, s.end, s.text) for s in segments] == [
        (0.0, 1.5, " Hello world."),
        (1.5, 1.5, " Bye."),
    ]
    assert _segments_from_output({"text": "plain"})[0].text == "plain"


def test_website_processor_closes_only_its_own_client():
    injected = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, text="")))
    with WebsiteProcessor(client=injected):
        pass
    assert not injected.is_closed

    with WebsiteProcessor() as processor:
        pass
    assert processor.client.is_closed
    injected.close()
