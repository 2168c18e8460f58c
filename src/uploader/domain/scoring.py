from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .category_rules import FALLBACK, GROUP, INTERFACE, SCREENSHOT, SOLO, CategoryRule, RuleTable
from .models import CategoryScore, ClassificationResult, ImageAnalysis, MessageContext

KEYWORD_WEIGHT = 0.4
LABEL_WEIGHT = 0.4
TEXT_WEIGHT = 0.3
ANTI_LABEL_PENALTY = 0.15
SHORT_TEXT_THRESHOLD = 10
SHORT_OCR_MEDIAN = 120
LONG_OCR_MEDIAN = 180
BRAND_TEXT_LIMIT = 150
BRAND_MARKERS = ("DYNAMITE", "BLUE", "ERHA", "ERHAV", "ERHAVEN")
METHOD_THRESHOLD = 0.5

HYBRID = "hybrid"
KEYWORD_MATCH = "keyword_match"
VISION_API = "vision_api"
LOW_CONFIDENCE = "low_confidence"


@dataclass
class _Breakdown:
    rule: CategoryRule
    keyword: float
    label: float
    text: float
    score: float


def clamp_score(value: float) -> float:
    if value < 0.0:
        return 0.0
    if value > 1.0:
        return 1.0
    return value


def keyword_score(rule: CategoryRule, context_text: str) -> float:
    if not context_text:
        return 0.0
    lowered = context_text.lower()
    matches = sum(1 for keyword in rule.keywords if keyword.lower() in lowered)
    return min(matches / 2, 1.0)


def _matched_confidence(name: str, analysis: ImageAnalysis) -> float | None:
    needle = name.lower()
    for label in analysis.labels:
        described = label.description.strip().lower()
        if not described:
            continue
        if needle in described or described in needle:
            return label.score
    return None


def label_score(rule: CategoryRule, analysis: ImageAnalysis) -> float:
    if not analysis.labels:
        return 0.0
    best = 0.0
    for name in rule.labels:
        matched = _matched_confidence(name, analysis)
        if matched is not None and matched > best:
            best = matched
    for name in rule.anti_labels:
        matched = _matched_confidence(name, analysis)
        if matched is not None:
            best -= matched * ANTI_LABEL_PENALTY
    return max(best, 0.0)


def text_presence_score(rule: CategoryRule, text: str) -> float:
    if rule.expects_text is None:
        return 0.5
    length = len(text)
    if rule.expects_text and length > SHORT_TEXT_THRESHOLD:
        return min(length / 100, 1.0)
    if not rule.expects_text and length < SHORT_TEXT_THRESHOLD:
        return 1.0
    return 0.2


def _adjust(scores: dict[str, float], rules: RuleTable, role: str, delta: float) -> None:
    rule = rules.by_role(role)
    if rule is None or rule.name not in scores:
        return
    scores[rule.name] = clamp_score(scores[rule.name] + delta)


def apply_overrides(scores: dict[str, float], analysis: ImageAnalysis, rules: RuleTable) -> None:
    """Apply the face, text length, brand and color adjustments in place."""

    faces = analysis.face_count
    if faces is not None:
        if faces == 1:
            _adjust(scores, rules, SOLO, 0.25)
        elif faces >= 2:
            _adjust(scores, rules, GROUP, 0.30)
            _adjust(scores, rules, SOLO, -0.20)
        elif faces == 0:
            _adjust(scores, rules, INTERFACE, 0.10)
            _adjust(scores, rules, SCREENSHOT, 0.10)
            _adjust(scores, rules, FALLBACK, 0.05)

    text = analysis.text
    if text:
        if len(text) < SHORT_OCR_MEDIAN:
            _adjust(scores, rules, SOLO, 0.15)
        elif len(text) > LONG_OCR_MEDIAN:
            _adjust(scores, rules, GROUP, 0.20)
            _adjust(scores, rules, SOLO, -0.15)

        upper = text.upper()
        if len(text) < BRAND_TEXT_LIMIT and any(brand in upper for brand in BRAND_MARKERS):
            _adjust(scores, rules, SOLO, 0.10)

    if analysis.colors:
        top_fraction = analysis.colors[0].pixel_fraction
        if top_fraction > 0.4:
            _adjust(scores, rules, SOLO, 0.05)
        elif top_fraction < 0.25 and len(analysis.colors) >= 3:
            _adjust(scores, rules, GROUP, 0.05)


def detection_method(keyword: float, label: float) -> str:
    keyword_hit = keyword > METHOD_THRESHOLD
    label_hit = label > METHOD_THRESHOLD
    if keyword_hit and label_hit:
        return HYBRID
    if keyword_hit:
        return KEYWORD_MATCH
    if label_hit:
        return VISION_API
    return LOW_CONFIDENCE


def fallback_result(rules: RuleTable) -> ClassificationResult:
    """Result used when there is nothing to score or scoring failed."""

    fallback = rules.fallback()
    alternatives = [
        CategoryScore(name=rule.name, score=0.0)
        for rule in rules.rules
        if rule.name != fallback.name
    ][:2]
    return ClassificationResult(
        category=fallback.name,
        confidence=0.0,
        method=LOW_CONFIDENCE,
        alternatives=alternatives,
        scores={rule.name: 0.0 for rule in rules.rules},
    )


def classify(
    analysis: ImageAnalysis,
    context: MessageContext | None,
    rules: RuleTable,
    known_categories: Iterable[str] | None = None,
) -> ClassificationResult:
    """Rank the categories of ``rules`` for one image.

    Deterministic for a given input: ties keep table order.
    """

    if known_categories is not None:
        rules = rules.restricted_to(known_categories)
    context_text = context.text if context is not None else ""
    if not analysis.has_signals() and not context_text:
        return fallback_result(rules)

    breakdowns: list[_Breakdown] = []
    for rule in rules.rules:
        keyword = keyword_score(rule, context_text)
        label = label_score(rule, analysis)
        text = text_presence_score(rule, analysis.text)
        breakdowns.append(
            _Breakdown(
                rule=rule,
                keyword=keyword,
                label=label,
                text=text,
                score=keyword * KEYWORD_WEIGHT + label * LABEL_WEIGHT + text * TEXT_WEIGHT,
            )
        )

    scores = {item.rule.name: item.score for item in breakdowns}
    apply_overrides(scores, analysis, rules)
    for item in breakdowns:
        item.score = scores[item.rule.name] * item.rule.priority

    ranked = sorted(breakdowns, key=lambda item: item.score, reverse=True)
    winner = ranked[0]
    return ClassificationResult(
        category=winner.rule.name,
        confidence=min(winner.score, 1.0),
        method=detection_method(winner.keyword, winner.label),
        alternatives=[
            CategoryScore(name=item.rule.name, score=item.score) for item in ranked[1:3]
        ],
        scores={item.rule.name: item.score for item in breakdowns},
    )
