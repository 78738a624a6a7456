"""Content loaders feeding the pipeline.

- ``file_loader``: file discovery, text/PDF extraction (optional OCR), metadata.
- ``website``: fetch a web page and extract its text blocks.
- ``audio``: transcript segments from an ``AudioDecoder`` (Whisper adapter).
"""
