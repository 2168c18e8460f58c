from __future__ import annotations

from typing import Protocol, runtime_checkable

from uploader.domain.models import ImageAnalysis


@runtime_checkable
class VisionPort(Protocol):
    def analyze(self, image_bytes: bytes) -> ImageAnalysis:
        """Return labels, OCR text, dominant colors and face count for an image."""
