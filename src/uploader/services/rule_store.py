from __future__ import annotations

import json
import logging
from pathlib import Path

from uploader.domain.category_rules import (
    BASE_RULES,
    CategoryRule,
    LearnedRule,
    RuleTable,
    merge_rules,
    parse_overlay,
)

logger = logging.getLogger(__name__)


class RuleStore:
    """Loads the learned overlay once and keeps the merged table.

    A new overlay takes effect only through a fresh RuleStore.
    """

    def __init__(
        self, overlay_path: str | None, base_rules: tuple[CategoryRule, ...] = BASE_RULES
    ) -> None:
        self._overlay_path = Path(overlay_path) if overlay_path else None
        self._base_rules = base_rules
        self._rules: RuleTable | None = None

    @property
    def rules(self) -> RuleTable:
        if self._rules is None:
            self._rules = merge_rules(self._base_rules, self._read_overlay())
            if self._rules.learned_categories:
                logger.info(
                    f"Learned rules applied for: {', '.join(self._rules.learned_categories)}"
                )
        return self._rules

    def _read_overlay(self) -> dict[str, LearnedRule]:
        if self._overlay_path is None:
            return {}
        if not self._overlay_path.exists():
            logger.info(f"No learned rules at {self._overlay_path}, using static rules")
            return {}
        try:
            document = json.loads(self._overlay_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(f"Ignoring unreadable learned rules {self._overlay_path}: {exc}")
            return {}
        overlay = parse_overlay(document)
        unknown = sorted(set(overlay) - {rule.name for rule in self._base_rules})
        if unknown:
            logger.warning(f"Learned rules for unknown categories ignored: {unknown}")
        return overlay
