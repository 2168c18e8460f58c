from .category_rules import BASE_RULES, CategoryRule, RuleTable, merge_rules
from .models import ClassificationResult, ImageAnalysis, MessageContext, UploadRecord
from .scoring import classify
from .validation import sanitize_filename

__all__ = [
    "BASE_RULES",
    "CategoryRule",
    "ClassificationResult",
    "ImageAnalysis",
    "MessageContext",
    "RuleTable",
    "UploadRecord",
    "classify",
    "merge_rules",
    "sanitize_filename",
]
