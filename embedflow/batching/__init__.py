"""Batching and compute-placement helpers.

Key pieces
- ``devices``: detects accelerators, picks a torch device, orders ONNX
  Runtime execution providers, and reports hardware parallelism used to size
  worker pools and admission gates.
"""
