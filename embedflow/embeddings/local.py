"""Local tensor-inference backends built on ``transformers`` and ``torch``.

``TransformerEmbedder`` covers BERT-style encoders (including Jina v2 and
ModernBERT checkpoints); ``SparseTransformerEmbedder`` runs a masked-LM head
and applies SPLADE pooling. Weights and tokenizers are fetched through
``from_pretrained`` (Hugging Face cache); any loading failure becomes a
``ModelConstructionError`` so no half-built backend escapes.
"""

import time
from typing import Any, List, Optional, Sequence

import torch
import structlog
from transformers import AutoConfig, AutoModel, AutoModelForMaskedLM, AutoTokenizer

from ..batching.devices import select_device
from ..common.config import get_settings
from ..common.errors import BackendCallError, ModelConstructionError
from .base import DenseVector, Embedder, EmbeddingResult, iter_batches, resolve_batch_size
from .pooling import Pooling, normalize_l2
from .registry import get_model_info

logger = structlog.get_logger("embeddings.local")

FALLBACK_MAX_LENGTH = 128
# Tokenizers without a configured limit report a huge sentinel value.
_UNSET_LENGTH = 1_000_000


def resolve_max_length(tokenizer_max: Optional[int], model_max: Optional[int]) -> int:
    """Smallest configured limit among tokenizer and model, else 128."""
    candidates = [v for v in (tokenizer_max, model_max) if v and 0 < v < _UNSET_LENGTH]
    return min(candidates) if candidates else FALLBACK_MAX_LENGTH


def tokenizer_max_length(tokenizer: Any) -> Optional[int]:
    """Limit declared by ``tokenizer_config.json`` (``max_length`` / ``model_max_length``)."""
    limits = [
        tokenizer.init_kwargs.get("max_length"),
        getattr(tokenizer, "model_max_length", None),
    ]
    limits = [v for v in limits if isinstance(v, int) and 0 < v < _UNSET_LENGTH]
    return min(limits) if limits else None


class TransformerEmbedder(Embedder):
    """Dense embeddings from a local ``AutoModel`` forward pass.

    Parameters
    - model_id: Hugging Face id or registry short name
    - revision / token: forwarded to ``from_pretrained``
    - pooling: overrides the registry default (``MEAN`` for unknown models)
    - device: torch device name or ``auto``
    """

    def __init__(
        self,
        model_id: Optional[str] = None,
        revision: Optional[str] = None,
        token: Optional[str] = None,
        pooling: Optional[Pooling] = None,
        device: Optional[str] = None,
        trust_remote_code: Optional[bool] = None,
    ):
        settings = get_settings()
        requested = model_id or settings.default_model_id
        info = get_model_info(requested)
        self.model_id = info.model_id if info else requested
        self.name = f"local:{self.model_id}"
        self.pooling = pooling or self._registry_pooling(info)
        if trust_remote_code is None:
            trust_remote_code = bool(info and info.architecture == "jina")
        self.device = select_device(device or settings.device_preference)

        start = time.time()
        try:
            self.tokenizer = AutoTokenizer.from_pretrained(
                self.model_id, revision=revision, token=token or settings.hf_token
            )
            config = AutoConfig.from_pretrained(
                self.model_id,
                revision=revision,
                token=token or settings.hf_token,
                trust_remote_code=trust_remote_code,
            )
            self.model = self._load_model(
                self.model_id,
                revision=revision,
                token=token or settings.hf_token,
                trust_remote_code=trust_remote_code,
            )
        except (OSError, ValueError, KeyError) as e:
            logger.error("Failed to load model", model_id=self.model_id, error=str(e))
            raise ModelConstructionError(f"Could not load model {self.model_id}: {e}") from e

        self.model.to(self.device)
        self.model.eval()
        self.max_length = resolve_max_length(
            tokenizer_max_length(self.tokenizer),
            getattr(config, "max_position_embeddings", None),
        )

        logger.info(
            "Loaded local embedding model",
            model_id=self.model_id,
            pooling=self.pooling.value,
            max_length=self.max_length,
            device=str(self.device),
            load_seconds=round(time.time() - start, 3),
        )

    def _registry_pooling(self, info: Any) -> Pooling:
        return info.pooling if info else Pooling.MEAN

    def _load_model(self, model_id: str, **kwargs: Any) -> torch.nn.Module:
        return AutoModel.from_pretrained(model_id, **kwargs)

    def _token_outputs(self, outputs: Any) -> torch.Tensor:
        return outputs.last_hidden_state

    def embed(
        self,
        text_batch: Sequence[str],
        batch_size: Optional[int] = None
    ) -> List[EmbeddingResult]:
        batch_size = resolve_batch_size(batch_size)
        texts = list(text_batch)
        results: List[EmbeddingResult] = []
        try:
            for batch in iter_batches(texts, batch_size):
                results.extend(self._embed_batch(batch))
        except RuntimeError as e:
            logger.error("Local inference failed", model_id=self.model_id, error=str(e))
            raise BackendCallError(f"Inference failed for {self.model_id}: {e}") from e
        return results

    def _embed_batch(self, batch: Sequence[str]) -> List[EmbeddingResult]:
        encoded = self.tokenizer(
            list(batch),
            padding="longest",
            truncation=True,
            max_length=self.max_length,
            return_tensors="pt",
        )
        encoded = {key: value.to(self.device) for key, value in encoded.items()}
        with torch.inference_mode():
            outputs = self.model(**encoded)
        pooled = self.pooling.pool(self._token_outputs(outputs), encoded["attention_mask"])
        vectors = normalize_l2(pooled).float().cpu().tolist()
        return [DenseVector(values) for values in vectors]


class SparseTransformerEmbedder(TransformerEmbedder):
    """SPLADE-style embeddings from a masked-LM head.

    The vocabulary-sized output is returned as a dense vector; most entries
    are zero.
    """

    def _registry_pooling(self, info: Any) -> Pooling:
        return Pooling.SPLADE

    def _load_model(self, model_id: str, **kwargs: Any) -> torch.nn.Module:
        return AutoModelForMaskedLM.from_pretrained(model_id, **kwargs)

    def _token_outputs(self, outputs: Any) -> torch.Tensor:
        return outputs.logits
