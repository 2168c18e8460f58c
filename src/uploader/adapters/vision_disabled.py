from __future__ import annotations

from uploader.domain.models import ImageAnalysis
from uploader.ports.vision_port import VisionPort


class DisabledVisionAdapter(VisionPort):
    def analyze(self, image_bytes: bytes) -> ImageAnalysis:
        _ = image_bytes
        return ImageAnalysis()
