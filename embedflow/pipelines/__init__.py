"""Embedding pipelines.

- ``scheduler``: turn text chunks into ``EmbedData`` records through a backend.
- ``orchestrator``: bounded-concurrency runs over files, pages and images.
- ``retry_handler``: exponential backoff for remote backend calls.
"""
