"""Exception hierarchy for the embedding pipeline.

Every error raised on purpose by the package derives from ``EmbedError`` so
callers can catch one base class. Third-party exceptions are wrapped at the
boundary that owns them (backend construction, backend calls, loaders) and
chained with ``raise ... from exc``.

Taxonomy
- ``FileNotFound``: a referenced file or directory does not exist
- ``UnsupportedFileType``: extraction cannot handle the file
- ``ModelConstructionError``: weights/tokenizer/config missing or unresolvable
- ``InvalidModelSelection``: backend lacks a capability the caller needs
- ``ConfigurationError``: invalid option set (e.g. semantic without encoder)
- ``BackendCallError``: network or inference failure during ``embed``
- ``EmbedRunError``: a directory/stream run in which no item succeeded
"""

from typing import Any, Optional


class EmbedError(Exception):
    """Base exception for embedding operations."""
    pass


class FileNotFound(EmbedError, FileNotFoundError):
    """Input path does not exist."""

    def __init__(self, path: Any):
        self.path = str(path)
        super().__init__(f"File not found: {self.path}")


class UnsupportedFileType(EmbedError):
    """The file extension has no registered extractor."""

    def __init__(self, path: Any):
        self.path = str(path)
        super().__init__(f"Unsupported file type: {self.path}")


class ModelConstructionError(EmbedError):
    """Backend could not be constructed."""
    pass


class InvalidModelSelection(EmbedError):
    """Chosen backend does not support the requested operation."""
    pass


class ConfigurationError(EmbedError):
    """Option set is inconsistent."""
    pass


class BackendCallError(EmbedError):
    """A call to ``Embedder.embed`` failed.

    ``status_code`` is set for remote backends when the failure came from an
    HTTP response.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class EmbedRunError(EmbedError):
    """Every item of a multi-item run failed."""

    def __init__(self, message: str, failures: Optional[dict] = None):
        super().__init__(message)
        self.failures = failures or {}
