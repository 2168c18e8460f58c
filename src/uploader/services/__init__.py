from .classification_service import ClassificationService
from .event_dedup import EventDeduplicator
from .organization_service import OrganizationService
from .retry_controller import RetryController
from .review_service import ReviewService
from .rule_store import RuleStore
from .task_queue import TaskQueue
from .upload_pipeline import UploadPipeline

__all__ = [
    "ClassificationService",
    "EventDeduplicator",
    "OrganizationService",
    "RetryController",
    "ReviewService",
    "RuleStore",
    "TaskQueue",
    "UploadPipeline",
]
