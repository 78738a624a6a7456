"""File discovery and text extraction.

Plain text formats are read directly; PDFs go through PyMuPDF, with an optional
Tesseract OCR pass for pages that carry no selectable text. Discovery walks a
directory tree eagerly and returns a sorted list so runs are reproducible.
"""

import os
from datetime import datetime
from typing import Dict, Iterable, List, Optional

import fitz  # PyMuPDF
import pytesseract
import structlog
from PIL import Image

from ..common.errors import FileNotFound, UnsupportedFileType

logger = structlog.get_logger("loaders.file")

TEXT_EXTENSIONS = ("txt", "md", "markdown", "rst", "csv", "json", "html", "htm")
PDF_EXTENSIONS = ("pdf",)
DEFAULT_DOCUMENT_EXTENSIONS = ("pdf", "md", "txt")
IMAGE_EXTENSIONS = ("png", "jpg", "jpeg", "bmp", "gif", "webp", "tiff")

OCR_DPI = 300


def _extension(path: str) -> str:
    return os.path.splitext(path)[1].lstrip(".").lower()


def _normalize_extensions(extensions: Optional[Iterable[str]]) -> tuple:
    if extensions is None:
        return DEFAULT_DOCUMENT_EXTENSIONS
    return tuple(ext.lstrip(".").lower() for ext in extensions)


def extract_text(path: str, use_ocr: bool = False, tesseract_path: Optional[str] = None) -> str:
    """Return the text content of ``path``.

    Raises ``FileNotFound`` for a missing file and ``UnsupportedFileType``
    for an extension with no extractor or a file that cannot be decoded.
    """
    if not os.path.isfile(path):
        raise FileNotFound(path)

    extension = _extension(path)
    if extension in TEXT_EXTENSIONS:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return f.read()
    if extension in PDF_EXTENSIONS:
        return extract_pdf_text(path, use_ocr=use_ocr, tesseract_path=tesseract_path)
    raise UnsupportedFileType(path)


def extract_pdf_text(path: str, use_ocr: bool = False, tesseract_path: Optional[str] = None) -> str:
    """Concatenate page texts; OCR pages without selectable text when asked."""
    if use_ocr and tesseract_path:
        pytesseract.pytesseract.tesseract_cmd = tesseract_path

    try:
        doc = fitz.open(path)
    except (fitz.FileDataError, RuntimeError) as e:
        logger.error("Failed to open PDF", file=path, error=str(e))
        raise UnsupportedFileType(path) from e

    pages = []
    with doc:
        for page in doc:
            text = page.get_text()
            if use_ocr and not text.strip():
                text = _ocr_page(page)
            pages.append(text)

    logger.debug("Extracted PDF text", file=path, pages=len(pages), ocr=use_ocr)
    return "\n".join(pages)


def _ocr_page(page: "fitz.Page") -> str:
    pix = page.get_pixmap(dpi=OCR_DPI)
    image = Image.frombytes("RGB", (pix.width, pix.height), pix.samples)
    return pytesseract.image_to_string(image)


def get_metadata(path: str) -> Dict[str, str]:
    """``file_name`` (canonical path), ``created`` and ``modified`` timestamps."""
    if not os.path.exists(path):
        raise FileNotFound(path)
    stat = os.stat(path)
    # st_ctime is metadata-change time on Unix; prefer birth time where known.
    created = getattr(stat, "st_birthtime", stat.st_ctime)
    return {
        "file_name": os.path.realpath(path),
        "created": datetime.fromtimestamp(created).isoformat(),
        "modified": datetime.fromtimestamp(stat.st_mtime).isoformat(),
    }


class FileParser:
    """Eager directory discovery."""

    @staticmethod
    def _walk(directory: str, extensions: tuple) -> List[str]:
        if not os.path.isdir(directory):
            raise FileNotFound(directory)
        found = []
        for root, _dirs, files in os.walk(directory):
            for name in files:
                if _extension(name) in extensions:
                    found.append(os.path.join(root, name))
        return sorted(found)

    @staticmethod
    def get_text_files(directory: str, extensions: Optional[Iterable[str]] = None) -> List[str]:
        """Documents under ``directory`` (default: pdf, md, txt)."""
        files = FileParser._walk(directory, _normalize_extensions(extensions))
        logger.info("Discovered files", directory=directory, files=len(files))
        return files

    @staticmethod
    def get_image_paths(directory: str) -> List[str]:
        """Images under ``directory``."""
        images = FileParser._walk(directory, IMAGE_EXTENSIONS)
        logger.info("Discovered images", directory=directory, images=len(images))
        return images
