from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace

SOLO = "solo"
GROUP = "group"
INTERFACE = "interface"
SCREENSHOT = "screenshot"
FALLBACK = "fallback"


@dataclass(frozen=True)
class CategoryRule:
    """Scoring inputs for one category.

    ``expects_text`` is True/False for categories that expect OCR text or its
    absence, None when text presence is irrelevant. ``role`` marks the
    categories the override adjustments address.
    """

    name: str
    keywords: tuple[str, ...]
    labels: tuple[str, ...]
    anti_labels: tuple[str, ...]
    expects_text: bool | None
    priority: float
    role: str | None = None


@dataclass(frozen=True)
class LearnedRule:
    required_labels: tuple[str, ...] = ()
    recommended_labels: tuple[str, ...] = ()
    anti_labels: tuple[str, ...] = ()
    has_text: bool | None = None
    overrides_has_text: bool = False
    recommended_priority: float | None = None
    sample_size: int = 0
    avg_confidence: float | None = None
    no_changes: bool = False


@dataclass(frozen=True)
class RuleTable:
    rules: tuple[CategoryRule, ...]
    learned_categories: tuple[str, ...] = field(default=())

    def names(self) -> list[str]:
        return [rule.name for rule in self.rules]

    def get(self, name: str) -> CategoryRule | None:
        for rule in self.rules:
            if rule.name == name:
                return rule
        return None

    def by_role(self, role: str) -> CategoryRule | None:
        for rule in self.rules:
            if rule.role == role:
                return rule
        return None

    def fallback(self) -> CategoryRule:
        """Return the lowest-priority category (first one on ties)."""

        if not self.rules:
            raise ValueError("Rule table is empty")
        return min(self.rules, key=lambda rule: rule.priority)

    def restricted_to(self, names: Iterable[str]) -> RuleTable:
        wanted = set(names)
        kept = tuple(rule for rule in self.rules if rule.name in wanted)
        if not kept:
            return self
        return RuleTable(rules=kept, learned_categories=self.learned_categories)


BASE_RULES: tuple[CategoryRule, ...] = (
    CategoryRule(
        name="Character Illustration (Solo)",
        keywords=(
            "캐릭터", "character", "단독", "solo", "single", "일러스트", "illustration",
            "그림", "drawing", "portrait", "인물", "캐릭", "char", "persona",
            "1인", "one", "alone",
        ),
        labels=(
            "Graphics", "Animation", "Fictional character", "Graphic design",
            "Animated cartoon", "Fiction", "Anime", "Hero", "Costume", "Cartoon",
            "person", "character", "anime", "cartoon", "drawing", "art",
            "illustration", "sketch", "portrait", "face", "manga", "comic",
            "human", "figure", "character design",
        ),
        anti_labels=("crowd", "group", "people", "team", "landscape", "scenery"),
        expects_text=False,
        priority=0.85,
        role=SOLO,
    ),
    CategoryRule(
        name="Illustration (Group)",
        keywords=(
            "일러스트", "illustration", "단체", "group", "team", "multiple", "many",
            "배경", "background", "풍경", "landscape", "scenery", "environment",
            "복수", "several", "여러", "bg", "씬", "scene",
        ),
        labels=(
            "Animation", "Fiction", "Fictional character", "Animated cartoon",
            "Anime", "Cartoon", "Hero", "CG artwork", "Graphics", "PC game",
            "people", "group", "crowd", "team", "illustration", "art", "drawing",
            "landscape", "sky", "mountain", "nature", "scenery", "environment",
            "outdoor", "building", "architecture", "city", "forest", "ocean",
            "background", "scene", "anime", "cartoon",
        ),
        anti_labels=(
            "High-rise building", "Cityscape", "Skyscraper", "Animation", "Tower",
        ),
        expects_text=False,
        priority=0.8,
        role=GROUP,
    ),
    CategoryRule(
        name="UI / Screen",
        keywords=(
            "ui", "ux", "디자인", "design", "화면", "screen", "인터페이스", "interface",
            "목업", "mockup", "프로토타입", "prototype", "앱", "app", "웹", "web",
            "버튼", "button", "레이아웃", "layout", "메뉴", "menu",
        ),
        labels=(
            "Animation", "Animated cartoon", "Video Game Software", "Anime",
            "Fictional character", "Screenshot", "Graphic design",
            "High-rise building", "Game", "PC game", "user interface",
            "mobile app", "website", "application", "software", "screen",
            "display", "button", "menu", "icon", "logo", "design", "mockup",
            "prototype", "dashboard", "webpage", "ui design",
        ),
        anti_labels=(
            "Diagram", "Graphic design", "Screenshot", "Plan", "Animation",
            "Graphics", "Video Game Software",
        ),
        expects_text=True,
        priority=0.82,
        role=INTERFACE,
    ),
    CategoryRule(
        name="Game Screenshot",
        keywords=(
            "게임", "game", "gaming", "게임플레이", "gameplay", "플레이", "play",
            "스크린샷", "screenshot", "캡처", "capture", "화면캡처", "screencap",
            "ss", "캡쳐", "cap", "인게임", "ingame",
        ),
        labels=(
            "Animation", "Video Game Software", "Fictional character", "PC game",
            "Screenshot", "Graphics", "Graphic design", "game", "video game",
            "gaming", "gameplay", "screenshot", "game screen", "computer monitor",
            "display", "screen", "window", "desktop", "game ui", "hud",
            "health bar", "game interface",
        ),
        anti_labels=(),
        expects_text=False,
        priority=0.86,
        role=SCREENSHOT,
    ),
    CategoryRule(
        name="Other",
        keywords=(
            "기타", "other", "misc", "miscellaneous", "미분류", "uncategorized",
            "잡다", "various", "모호", "unclear",
        ),
        labels=(),
        anti_labels=(),
        expects_text=False,
        priority=0.79,
        role=FALLBACK,
    ),
)


def _dedupe(values: Iterable[str]) -> tuple[str, ...]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return tuple(ordered)


def _string_tuple(value: object) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(item) for item in value if isinstance(item, str) and item)


def parse_learned_rule(entry: Mapping[str, object]) -> LearnedRule:
    if entry.get("noChanges"):
        return LearnedRule(no_changes=True)
    priority = entry.get("recommendedPriority")
    if isinstance(priority, bool) or not isinstance(priority, (int, float)) or priority <= 0:
        priority = None
    has_text = entry.get("hasText")
    overrides_has_text = "hasText" in entry and (has_text is None or isinstance(has_text, bool))
    sample_size = entry.get("sampleSize")
    avg_confidence = entry.get("avgConfidence")
    return LearnedRule(
        required_labels=_string_tuple(entry.get("requiredLabels")),
        recommended_labels=_string_tuple(entry.get("recommendedLabels")),
        anti_labels=_string_tuple(entry.get("antiLabels")),
        has_text=has_text if overrides_has_text else None,
        overrides_has_text=overrides_has_text,
        recommended_priority=float(priority) if priority is not None else None,
        sample_size=sample_size if isinstance(sample_size, int) else 0,
        avg_confidence=(
            float(avg_confidence) if isinstance(avg_confidence, (int, float)) else None
        ),
    )


def parse_overlay(document: object) -> dict[str, LearnedRule]:
    """Parse a learned-rules document.

    Accepts the flat ``{category: entry}`` form and the versioned envelope
    ``{"version": n, "categories": {category: entry}}``. Entries that are not
    objects are ignored.
    """

    if not isinstance(document, dict):
        return {}
    categories = document.get("categories") if "version" in document else document
    if not isinstance(categories, dict):
        return {}
    overlay: dict[str, LearnedRule] = {}
    for name, entry in categories.items():
        if isinstance(entry, dict):
            overlay[str(name)] = parse_learned_rule(entry)
    return overlay


def merge_rule(base: CategoryRule, learned: LearnedRule | None) -> CategoryRule:
    if learned is None or learned.no_changes:
        return base
    return replace(
        base,
        priority=learned.recommended_priority or base.priority,
        expects_text=learned.has_text if learned.overrides_has_text else base.expects_text,
        labels=_dedupe(
            (*learned.required_labels, *learned.recommended_labels, *base.labels)
        ),
        anti_labels=_dedupe((*learned.anti_labels, *base.anti_labels)),
    )


def merge_rules(
    base_rules: tuple[CategoryRule, ...],
    overlay: Mapping[str, LearnedRule] | None = None,
) -> RuleTable:
    """Merge static rules with a learned overlay into an immutable table.

    Table order follows ``base_rules``; categories missing from the overlay, or
    flagged ``noChanges``, are carried over unchanged.
    """

    overlay = overlay or {}
    merged = tuple(merge_rule(rule, overlay.get(rule.name)) for rule in base_rules)
    applied = tuple(
        rule.name
        for rule in base_rules
        if rule.name in overlay and not overlay[rule.name].no_changes
    )
    return RuleTable(rules=merged, learned_categories=applied)
