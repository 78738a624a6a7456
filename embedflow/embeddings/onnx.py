"""Accelerated graph-runtime backend on ONNX Runtime.

The graph file is chosen from the requested numeric precision; execution
providers are tried in preference order (CUDA, CoreML, CPU) among those the
installed runtime offers. Sub-batches are fanned out over a thread pool sized
to the available hardware parallelism while results keep input order.
"""

import os
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Dict, List, Optional, Sequence

import numpy as np
import onnxruntime as ort
import structlog
from huggingface_hub import hf_hub_download
from huggingface_hub.errors import HfHubHTTPError
from transformers import AutoConfig, AutoTokenizer

from ..batching.devices import order_execution_providers, worker_count
from ..common.config import get_settings
from ..common.errors import BackendCallError, ModelConstructionError
from .base import DenseVector, Embedder, EmbeddingResult, iter_batches, resolve_batch_size
from .local import resolve_max_length, tokenizer_max_length
from .pooling import Pooling, normalize_l2
from .registry import get_model_info

logger = structlog.get_logger("embeddings.onnx")


class Dtype(Enum):
    """Numeric precision of the exported graph."""
    F32 = "model.onnx"
    F16 = "model_fp16.onnx"
    INT8 = "model_int8.onnx"
    Q4 = "model_q4.onnx"
    Q4F16 = "model_q4f16.onnx"
    UINT8 = "model_uint8.onnx"
    BNB4 = "model_bnb4.onnx"
    QUANTIZED = "model_quantized.onnx"


def weights_path(registry_file: str, dtype: Optional[Dtype]) -> str:
    """Path inside the repository of the graph for ``dtype``.

    Precision variants sit next to the registered graph file.
    """
    if dtype is None:
        return registry_file
    base = os.path.dirname(registry_file)
    return f"{base}/{dtype.value}" if base else dtype.value


class OnnxEmbedder(Embedder):
    """Embeddings from an exported ONNX graph.

    Parameters
    - model_name: registry short name (selects repo, graph file and pooling)
    - model_id: explicit Hugging Face repository; overrides ``model_name``
    - dtype: precision variant; a missing file is a construction error
    - path_in_repo: explicit graph file, bypassing the registry
    - sparse: use SPLADE pooling over vocabulary logits
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        model_id: Optional[str] = None,
        revision: Optional[str] = None,
        dtype: Optional[Dtype] = None,
        path_in_repo: Optional[str] = None,
        pooling: Optional[Pooling] = None,
        sparse: Optional[bool] = None,
        token: Optional[str] = None,
        max_workers: Optional[int] = None,
    ):
        settings = get_settings()
        info = get_model_info(model_name) if model_name else None
        if model_name and info is None:
            raise ModelConstructionError(f"Unknown ONNX model name: {model_name}")
        if model_id is None and info is None:
            raise ModelConstructionError("Please provide either model_name or model_id")

        self.model_id = model_id or info.model_id
        self.name = f"onnx:{self.model_id}"
        self.sparse = sparse if sparse is not None else bool(info and info.sparse)
        if pooling is not None:
            self.pooling = pooling
        elif self.sparse:
            self.pooling = Pooling.SPLADE
        else:
            self.pooling = info.pooling if info else Pooling.MEAN

        graph_file = weights_path(path_in_repo or (info.onnx_file if info else "model.onnx"), dtype)
        token = token or settings.hf_token

        try:
            self.tokenizer = AutoTokenizer.from_pretrained(self.model_id, revision=revision, token=token)
            config = AutoConfig.from_pretrained(self.model_id, revision=revision, token=token)
        except (OSError, ValueError, KeyError) as e:
            raise ModelConstructionError(f"Tokenizer or config missing for {self.model_id}: {e}") from e

        try:
            weights = hf_hub_download(self.model_id, graph_file, revision=revision, token=token)
        except (OSError, HfHubHTTPError) as e:
            raise ModelConstructionError(
                f"ONNX weights not found for {self.model_id} ({graph_file}). "
                f"Check that the weights for the requested dtype exist: {e}"
            ) from e

        self.max_length = resolve_max_length(
            tokenizer_max_length(self.tokenizer),
            getattr(config, "max_position_embeddings", None),
        )

        self.providers = order_execution_providers(ort.get_available_providers())
        options = ort.SessionOptions()
        options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        try:
            self.session = ort.InferenceSession(weights, sess_options=options, providers=self.providers)
        except Exception as e:
            raise ModelConstructionError(f"Could not build inference session for {weights}: {e}") from e

        self.input_names = {node.name for node in self.session.get_inputs()}
        self.output_name = self.session.get_outputs()[0].name
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or worker_count(),
            thread_name_prefix="onnx-embed",
        )

        logger.info(
            "Loaded ONNX embedding model",
            model_id=self.model_id,
            graph=graph_file,
            providers=self.session.get_providers(),
            pooling=self.pooling.value,
            max_length=self.max_length,
        )

    def embed(
        self,
        text_batch: Sequence[str],
        batch_size: Optional[int] = None
    ) -> List[EmbeddingResult]:
        batch_size = resolve_batch_size(batch_size)
        batches = list(iter_batches(list(text_batch), batch_size))
        try:
            if len(batches) <= 1:
                per_batch = [self._embed_batch(batch) for batch in batches]
            else:
                # map() yields in submission order regardless of completion order
                per_batch = list(self._executor.map(self._embed_batch, batches))
        except BackendCallError:
            raise
        except Exception as e:
            logger.error("ONNX inference failed", model_id=self.model_id, error=str(e))
            raise BackendCallError(f"ONNX inference failed for {self.model_id}: {e}") from e
        return [result for batch in per_batch for result in batch]

    def _feeds(self, batch: Sequence[str]) -> Dict[str, np.ndarray]:
        encoded = self.tokenizer(
            list(batch),
            padding="longest",
            truncation=True,
            max_length=self.max_length,
            return_tensors="np",
        )
        input_ids = encoded["input_ids"].astype(np.int64)
        attention_mask = encoded["attention_mask"].astype(np.int64)
        feeds = {"input_ids": input_ids, "attention_mask": attention_mask}
        if "token_type_ids" in self.input_names:
            token_type_ids = encoded.get("token_type_ids")
            feeds["token_type_ids"] = (
                token_type_ids.astype(np.int64) if token_type_ids is not None else np.zeros_like(input_ids)
            )
        return {name: value for name, value in feeds.items() if name in self.input_names}

    def _embed_batch(self, batch: Sequence[str]) -> List[EmbeddingResult]:
        feeds = self._feeds(batch)
        attention_mask = feeds.get("attention_mask")
        (output,) = self.session.run([self.output_name], feeds)
        if attention_mask is None:
            attention_mask = np.ones(output.shape[:2], dtype=np.int64)
        pooled = self.pooling.pool(output.astype(np.float32), attention_mask)
        return [DenseVector(values) for values in normalize_l2(pooled).tolist()]

    def close(self) -> None:
        """Release the sub-batch worker pool."""
        self._executor.shutdown(wait=False)
