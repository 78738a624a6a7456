"""Audio transcripts as timestamped text segments.

Any object with ``process_audio(path) -> list[Segment]`` can act as decoder;
``WhisperAudioDecoder`` wraps the ``transformers`` speech-recognition
pipeline with timestamps enabled.
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Protocol

import structlog
from transformers import pipeline

from ..batching.devices import select_device
from ..common.config import get_settings
from ..common.errors import BackendCallError, ModelConstructionError

logger = structlog.get_logger("loaders.audio")


@dataclass(frozen=True)
class Segment:
    """A transcript span; ``start`` and ``end`` are in seconds."""
    start: float
    end: float
    text: str


class AudioDecoder(Protocol):
    def process_audio(self, path: str) -> List[Segment]:
        ...


def _segments_from_output(output: Any) -> List[Segment]:
    chunks = output.get("chunks") or []
    segments = []
    last_end = 0.0
    for chunk in chunks:
        start, end = chunk.get("timestamp") or (None, None)
        start = float(start) if start is not None else last_end
        # Whisper leaves the final timestamp open when audio is cut mid-word.
        end = float(end) if end is not None else start
        segments.append(Segment(start=start, end=end, text=chunk.get("text", "")))
        last_end = end
    if not segments and output.get("text"):
        segments.append(Segment(start=0.0, end=0.0, text=output["text"]))
    return segments


class WhisperAudioDecoder:
    """Speech-to-text with a Whisper checkpoint.

    Parameters
    - model_id: Hugging Face id, e.g. ``openai/whisper-tiny.en``
    - revision: model revision
    - device: torch device name or ``auto``
    """

    def __init__(
        self,
        model_id: str = "openai/whisper-tiny.en",
        revision: Optional[str] = None,
        device: Optional[str] = None,
        chunk_length_s: float = 30.0,
    ):
        settings = get_settings()
        self.model_id = model_id
        self.chunk_length_s = chunk_length_s
        try:
            self._pipeline = pipeline(
                "automatic-speech-recognition",
                model=model_id,
                revision=revision,
                token=settings.hf_token,
                device=select_device(device or settings.device_preference),
            )
        except (OSError, ValueError, KeyError) as e:
            logger.error("Failed to load audio decoder", model_id=model_id, error=str(e))
            raise ModelConstructionError(f"Could not load audio decoder {model_id}: {e}") from e

    def process_audio(self, path: str) -> List[Segment]:
        """Transcribe ``path`` into timestamped segments."""
        try:
            output = self._pipeline(path, return_timestamps=True, chunk_length_s=self.chunk_length_s)
        except (RuntimeError, ValueError) as e:
            logger.error("Audio transcription failed", file=path, error=str(e))
            raise BackendCallError(f"Transcription of {path} failed: {e}") from e

        segments = _segments_from_output(output)
        logger.info("Transcribed audio", file=path, segments=len(segments))
        return segments
