"""Embedding backends and pooling.

Primary components:
- ``base``: abstract ``Embedder`` interface, ``EmbedData`` record, batching helpers.
- ``pooling``: masked pooling strategies and L2 normalization.
- ``registry``: known models with their default pooling and ONNX graph file.
- ``local`` / ``onnx`` / ``cloud`` / ``clip``: concrete backends.
- ``factory``: build a backend from a type name without importing the others.

Guidance:
- Construct backends once and share them; they are read-only after ``__init__``.
"""
