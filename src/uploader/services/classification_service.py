from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from uploader.domain.category_rules import RuleTable
from uploader.domain.filenames import suggest_filename
from uploader.domain.models import ClassificationResult, ImageAnalysis, MessageContext
from uploader.domain.scoring import classify, fallback_result
from uploader.ports.vision_port import VisionPort

logger = logging.getLogger(__name__)

_STORED_TEXT_LIMIT = 2000


@dataclass
class ClassificationOutcome:
    analysis: ImageAnalysis
    result: ClassificationResult
    suggested_filename: str

    def record_fields(self) -> dict[str, Any]:
        return {
            "classification_method": self.result.method,
            "detected_labels": [label.description for label in self.analysis.labels],
            "detected_text": self.analysis.text[:_STORED_TEXT_LIMIT] or None,
            "ai_category": self.result.category,
            "ai_confidence": round(self.result.confidence, 4),
            "suggested_filename": self.suggested_filename,
        }


class ClassificationService:
    def __init__(self, vision: VisionPort, rules: RuleTable) -> None:
        self._vision = vision
        self._rules = rules

    @property
    def rules(self) -> RuleTable:
        return self._rules

    def classify_image(
        self,
        image_bytes: bytes,
        context: MessageContext | None,
        original_filename: str | None,
        mime_type: str | None,
        known_categories: Iterable[str] | None = None,
    ) -> ClassificationOutcome:
        try:
            analysis = self._vision.analyze(image_bytes)
        except Exception:
            logger.exception("Image analysis failed, classifying without image signals")
            analysis = ImageAnalysis()
        try:
            result = classify(analysis, context, self._rules, known_categories)
        except Exception:
            logger.exception("Scoring failed, using fallback category")
            result = fallback_result(self._rules)
        rule = self._rules.get(result.category)
        suggested = suggest_filename(
            original_filename,
            mime_type,
            context,
            analysis,
            category_role=rule.role if rule else None,
        )
        logger.info(
            f"Classified as {result.category} ({result.confidence:.2f}, {result.method}), "
            f"suggested name {suggested}"
        )
        return ClassificationOutcome(analysis=analysis, result=result, suggested_filename=suggested)
