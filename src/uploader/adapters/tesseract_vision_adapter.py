from __future__ import annotations

import io
import logging

from uploader.domain.models import DominantColor, ImageAnalysis
from uploader.ports.vision_port import VisionPort

logger = logging.getLogger(__name__)

_PALETTE_SIZE = 8
_MAX_COLORS = 5
_THUMBNAIL = (128, 128)


class TesseractVisionAdapter(VisionPort):
    """Local fallback: OCR text and dominant colors, no labels or faces."""

    def __init__(self, language: str = "eng") -> None:
        self._language = language

    def analyze(self, image_bytes: bytes) -> ImageAnalysis:
        try:
            import pytesseract
            from PIL import Image
        except ImportError as exc:
            raise RuntimeError(
                "pytesseract and Pillow are required for local analysis. "
                "Install with: pip install pytesseract pillow"
            ) from exc

        try:
            image = Image.open(io.BytesIO(image_bytes))
            image.load()
        except Exception as exc:
            raise RuntimeError("Failed to load image bytes for analysis.") from exc

        colors = dominant_colors(image)
        try:
            text = pytesseract.image_to_string(
                image.convert("RGB"), lang=self._language, config="--oem 1 --psm 6"
            ).strip()
        except pytesseract.TesseractNotFoundError as exc:
            raise RuntimeError(
                "Tesseract OCR engine not found. Install tesseract-ocr and ensure it is on PATH."
            ) from exc
        logger.info(f"Local analysis: {len(text)} text chars, {len(colors)} colors")
        return ImageAnalysis(labels=[], text=text, colors=colors, face_count=None)


def dominant_colors(image: object, limit: int = _MAX_COLORS) -> list[DominantColor]:
    """Quantize a thumbnail and return the most common palette entries."""

    from PIL import Image

    thumb = image.convert("RGB")
    thumb.thumbnail(_THUMBNAIL)
    quantized = thumb.quantize(colors=_PALETTE_SIZE, method=Image.Quantize.MEDIANCUT)
    palette = quantized.getpalette() or []
    counts = quantized.getcolors() or []
    total = sum(count for count, _ in counts) or 1
    ranked = sorted(counts, key=lambda item: item[0], reverse=True)[:limit]
    colors: list[DominantColor] = []
    for count, index in ranked:
        red, green, blue = palette[index * 3 : index * 3 + 3]
        fraction = count / total
        colors.append(
            DominantColor(
                red=red, green=green, blue=blue, pixel_fraction=fraction, score=fraction
            )
        )
    return colors
