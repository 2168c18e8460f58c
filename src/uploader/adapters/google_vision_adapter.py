from __future__ import annotations

import base64
import logging

import requests

from uploader.domain.models import DetectedLabel, DominantColor, ImageAnalysis
from uploader.errors import ExternalServiceError
from uploader.ports.vision_port import VisionPort

logger = logging.getLogger(__name__)

_FEATURES = [
    {"type": "LABEL_DETECTION", "maxResults": 10},
    {"type": "TEXT_DETECTION"},
    {"type": "IMAGE_PROPERTIES"},
    {"type": "FACE_DETECTION", "maxResults": 20},
]
_MAX_COLORS = 5


class GoogleVisionAdapter(VisionPort):
    _ANNOTATE_URL = "https://vision.googleapis.com/v1/images:annotate"

    def __init__(self, api_key: str, timeout: float = 30) -> None:
        self._api_key = api_key
        self._timeout = timeout

    def analyze(self, image_bytes: bytes) -> ImageAnalysis:
        body = {
            "requests": [
                {
                    "image": {"content": base64.b64encode(image_bytes).decode("ascii")},
                    "features": _FEATURES,
                }
            ]
        }
        try:
            response = requests.post(
                self._ANNOTATE_URL,
                params={"key": self._api_key},
                json=body,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise ExternalServiceError("Vision API request failed.") from exc
        if response.status_code >= 400:
            raise ExternalServiceError(
                f"Vision API error {response.status_code}.", response.status_code
            )
        responses = response.json().get("responses") or []
        if not responses:
            raise ExternalServiceError("Vision API returned no result.")
        result = responses[0]
        if result.get("error"):
            raise ExternalServiceError(f"Vision API error: {result['error'].get('message')}")
        analysis = parse_annotations(result)
        logger.info(
            f"Vision analysis: {len(analysis.labels)} labels, "
            f"{len(analysis.text)} text chars, {analysis.face_count} faces"
        )
        return analysis


def parse_annotations(result: dict) -> ImageAnalysis:
    labels = sorted(
        (
            DetectedLabel(description=item.get("description", ""), score=float(item.get("score", 0.0)))
            for item in result.get("labelAnnotations") or []
        ),
        key=lambda label: label.score,
        reverse=True,
    )
    texts = result.get("textAnnotations") or []
    text = texts[0].get("description", "") if texts else ""
    properties = result.get("imagePropertiesAnnotation") or {}
    dominant = (properties.get("dominantColors") or {}).get("colors") or []
    colors = [
        DominantColor(
            red=int(entry.get("color", {}).get("red", 0)),
            green=int(entry.get("color", {}).get("green", 0)),
            blue=int(entry.get("color", {}).get("blue", 0)),
            pixel_fraction=float(entry.get("pixelFraction", 0.0)),
            score=float(entry.get("score", 0.0)),
        )
        for entry in dominant[:_MAX_COLORS]
    ]
    return ImageAnalysis(
        labels=labels,
        text=text,
        colors=colors,
        face_count=len(result.get("faceAnnotations") or []),
    )
