"""CLIP backend: text queries and images in a shared vector space.

Documents are not chunked through CLIP; for directory and file calls the
pipeline routes it to the image path instead.
"""

import os
from typing import Any, Dict, List, Optional, Sequence

import torch
import structlog
from PIL import Image, UnidentifiedImageError
from transformers import CLIPModel, CLIPProcessor

from ..batching.devices import select_device
from ..common.config import get_settings
from ..common.errors import BackendCallError, FileNotFound, ModelConstructionError, UnsupportedFileType
from .base import DenseVector, EmbedData, EmbeddingResult, ImageEmbedder, iter_batches, resolve_batch_size
from .pooling import normalize_l2
from .registry import get_model_info

logger = structlog.get_logger("embeddings.clip")

DEFAULT_CLIP_MODEL = "openai/clip-vit-base-patch32"


def _features(output: Any) -> torch.Tensor:
    # Newer transformers releases wrap projected features in a model output.
    if isinstance(output, torch.Tensor):
        return output
    return output.pooler_output


def load_image(image_path: str) -> Image.Image:
    """Open ``image_path`` as RGB, mapping failures to pipeline errors."""
    if not os.path.isfile(image_path):
        raise FileNotFound(image_path)
    try:
        with Image.open(image_path) as image:
            return image.convert("RGB")
    except (UnidentifiedImageError, OSError) as e:
        raise UnsupportedFileType(image_path) from e


class ClipEmbedder(ImageEmbedder):
    """Image and query embeddings from ``CLIPModel``."""

    def __init__(
        self,
        model_id: Optional[str] = None,
        revision: Optional[str] = None,
        token: Optional[str] = None,
        device: Optional[str] = None,
    ):
        settings = get_settings()
        requested = model_id or DEFAULT_CLIP_MODEL
        info = get_model_info(requested)
        self.model_id = info.model_id if info else requested
        self.name = f"clip:{self.model_id}"
        self.device = select_device(device or settings.device_preference)

        try:
            self.processor = CLIPProcessor.from_pretrained(
                self.model_id, revision=revision, token=token or settings.hf_token
            )
            self.model = CLIPModel.from_pretrained(
                self.model_id, revision=revision, token=token or settings.hf_token
            )
        except (OSError, ValueError, KeyError) as e:
            logger.error("Failed to load CLIP model", model_id=self.model_id, error=str(e))
            raise ModelConstructionError(f"Could not load CLIP model {self.model_id}: {e}") from e

        self.model.to(self.device)
        self.model.eval()
        logger.info("Loaded CLIP model", model_id=self.model_id, device=str(self.device))

    def embed(
        self,
        text_batch: Sequence[str],
        batch_size: Optional[int] = None
    ) -> List[EmbeddingResult]:
        batch_size = resolve_batch_size(batch_size)
        results: List[EmbeddingResult] = []
        try:
            for batch in iter_batches(list(text_batch), batch_size):
                inputs = self.processor(text=list(batch), return_tensors="pt", padding=True, truncation=True)
                inputs = {key: value.to(self.device) for key, value in inputs.items()}
                with torch.inference_mode():
                    features = _features(self.model.get_text_features(**inputs))
                results.extend(DenseVector(v) for v in normalize_l2(features).float().cpu().tolist())
        except RuntimeError as e:
            raise BackendCallError(f"CLIP text inference failed: {e}") from e
        return results

    def embed_image(self, image_path: str, metadata: Optional[Dict[str, str]] = None) -> EmbedData:
        (record,) = self._embed_images([image_path])
        if metadata is not None:
            record = EmbedData(record.embedding, record.text, dict(metadata))
        return record

    def embed_image_batch(self, image_paths: Sequence[str]) -> List[EmbedData]:
        return self._embed_images(list(image_paths))

    def _embed_images(self, image_paths: List[str]) -> List[EmbedData]:
        if not image_paths:
            return []
        images = [load_image(path) for path in image_paths]
        try:
            inputs = self.processor(images=images, return_tensors="pt")
            pixel_values = inputs["pixel_values"].to(self.device)
            with torch.inference_mode():
                features = _features(self.model.get_image_features(pixel_values=pixel_values))
        except RuntimeError as e:
            raise BackendCallError(f"CLIP image inference failed: {e}") from e

        vectors = normalize_l2(features).float().cpu().tolist()
        return [
            EmbedData(embedding=vector, text=None, metadata={"file_name": os.path.realpath(path)})
            for path, vector in zip(image_paths, vectors)
        ]
