"""Common utilities shared across the package.

Includes:
- ``config``: pydantic-settings process settings and frozen per-call configs.
- ``errors``: the ``EmbedError`` exception hierarchy.
- ``logging``: structured logging setup with structlog.
- ``metrics``: Prometheus metrics helpers.

Import pattern:
- from embedflow.common.config import TextEmbedConfig
- from embedflow.common.logging import configure_logging
"""
