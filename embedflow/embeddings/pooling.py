"""Pooling of per-token model outputs into one vector per input.

All strategies take a ``(batch, tokens, hidden)`` output and a
``(batch, tokens)`` attention mask. NumPy arrays (ONNX Runtime outputs) are
converted to tensors without copying, so local and accelerated backends share
one implementation.
"""

from enum import Enum
from typing import Union

import numpy as np
import torch

ArrayLike = Union[torch.Tensor, np.ndarray]

# Smallest denominator used for mean pooling and L2 normalization.
EPSILON = 1e-12


def _as_tensor(value: ArrayLike) -> torch.Tensor:
    if isinstance(value, np.ndarray):
        return torch.from_numpy(np.ascontiguousarray(value))
    return value


def _check_shapes(output: torch.Tensor, mask: torch.Tensor) -> None:
    if output.dim() != 3:
        raise ValueError(f"Model output must be (batch, tokens, hidden), got {tuple(output.shape)}")
    if mask.dim() != 2 or tuple(mask.shape) != tuple(output.shape[:2]):
        raise ValueError(
            f"Attention mask {tuple(mask.shape)} does not match model output {tuple(output.shape)}"
        )


class Pooling(Enum):
    """Reduction strategy over the token axis."""
    MEAN = "mean"
    CLS = "cls"
    LAST_TOKEN = "last_token"
    SPLADE = "splade"

    def pool(self, model_output: ArrayLike, attention_mask: ArrayLike) -> torch.Tensor:
        """Pool ``model_output`` to a ``(batch, hidden)`` tensor."""
        output = _as_tensor(model_output)
        mask = _as_tensor(attention_mask)
        _check_shapes(output, mask)
        mask = mask.to(device=output.device, dtype=output.dtype)

        if self is Pooling.MEAN:
            return mean_pool(output, mask)
        if self is Pooling.CLS:
            return output[:, 0]
        if self is Pooling.LAST_TOKEN:
            return last_token_pool(output, mask)
        return splade_pool(output, mask)


def mean_pool(output: torch.Tensor, mask: torch.Tensor) -> torch.Tensor:
    """Average over unmasked tokens; fully masked rows come out as zeros."""
    weights = mask.unsqueeze(-1)
    summed = (output * weights).sum(dim=1)
    counts = weights.sum(dim=1).clamp(min=EPSILON)
    return summed / counts


def last_token_pool(output: torch.Tensor, mask: torch.Tensor) -> torch.Tensor:
    """Select the last unmasked position of each row (left or right padded)."""
    positions = torch.arange(1, mask.shape[1] + 1, device=mask.device)
    last = (mask.long() * positions).argmax(dim=1)
    rows = torch.arange(output.shape[0], device=output.device)
    return output[rows, last]


def splade_pool(output: torch.Tensor, mask: torch.Tensor) -> torch.Tensor:
    """Saturating term-importance pooling: max over ``log(1 + relu(x)) * mask``."""
    weighted = torch.log1p(torch.relu(output)) * mask.unsqueeze(-1)
    return weighted.amax(dim=1)


def normalize_l2(embeddings: ArrayLike, eps: float = EPSILON) -> torch.Tensor:
    """Scale each row to unit L2 norm; all-zero rows stay zero."""
    embeddings = _as_tensor(embeddings)
    norms = embeddings.norm(p=2, dim=-1, keepdim=True).clamp(min=eps)
    return embeddings / norms
