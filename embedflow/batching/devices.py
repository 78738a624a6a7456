"""Device and execution-provider selection for local inference.

Torch backends pick a ``torch.device``; ONNX Runtime backends pick an ordered
list of execution providers (specialized accelerator, then a generalized
fallback, then CPU) filtered by what the installed runtime offers.
"""

import os
import platform
from typing import Any, Dict, List, Optional, Sequence

import torch
import structlog

logger = structlog.get_logger("devices")

# Preference order for ONNX Runtime sessions.
PROVIDER_PREFERENCE = (
    "CUDAExecutionProvider",
    "CoreMLExecutionProvider",
    "CPUExecutionProvider",
)


class DeviceDetector:
    """Detects accelerators once and answers device questions from cache."""

    def __init__(self):
        self.device_info: Dict[str, Any] = {}
        self._detection_complete = False

    def detect(self) -> Dict[str, Any]:
        """Detect available accelerators."""
        if self._detection_complete:
            return self.device_info

        info = {
            "platform": platform.system(),
            "architecture": platform.machine(),
            "cuda_available": False,
            "mps_available": False,
            "gpu_count": 0,
            "recommended_device": "cpu",
        }

        try:
            if torch.cuda.is_available():
                info["cuda_available"] = True
                info["gpu_count"] = torch.cuda.device_count()
                info["recommended_device"] = "cuda:0"
            elif hasattr(torch.backends, "mps") and torch.backends.mps.is_available():
                info["mps_available"] = True
                info["gpu_count"] = 1
                info["recommended_device"] = "mps"
        except Exception as e:
            # Broken driver installs raise from is_available(); CPU still works.
            logger.error("Accelerator detection failed", error=str(e))
            info["recommended_device"] = "cpu"

        self.device_info = info
        self._detection_complete = True

        logger.info(
            "Device detection completed",
            cuda_available=info["cuda_available"],
            mps_available=info["mps_available"],
            gpu_count=info["gpu_count"],
            recommended_device=info["recommended_device"],
        )
        return info

    def select_device(self, preference: str = "auto") -> torch.device:
        """Select a torch device for ``preference`` (``auto``, ``cpu``, ``gpu`` or an explicit name)."""
        info = self.detect()

        if preference == "cpu":
            device = "cpu"
        elif preference == "gpu":
            if info["cuda_available"]:
                device = "cuda:0"
            elif info["mps_available"]:
                device = "mps"
            else:
                logger.warning("GPU requested but not available, falling back to CPU")
                device = "cpu"
        elif preference == "auto":
            device = info["recommended_device"]
        else:
            device = preference

        logger.debug("Device selected", device=device, preference=preference)
        return torch.device(device)


def order_execution_providers(available: Sequence[str]) -> List[str]:
    """Order ``available`` providers by preference; CPU is always last."""
    ordered = [name for name in PROVIDER_PREFERENCE if name in available]
    if "CPUExecutionProvider" not in ordered:
        ordered.append("CPUExecutionProvider")
    return ordered


def worker_count() -> int:
    """Hardware parallelism used for sub-batch fan-out and concurrency bounds."""
    return os.cpu_count() or 1


# Global detector instance
_detector: Optional[DeviceDetector] = None


def get_device_detector() -> DeviceDetector:
    """Get or create the process-wide detector."""
    global _detector
    if _detector is None:
        _detector = DeviceDetector()
    return _detector


def select_device(preference: str = "auto") -> torch.device:
    """Pick a torch device for local inference."""
    return get_device_detector().select_device(preference)
