"""Text chunking.

- ``splitter``: sentence-based greedy packing with overlap, plus ``TextChunk``.
- ``semantic``: similarity-driven boundaries using a semantic encoder.
"""
