from .google_drive_adapter import GoogleDriveAdapter
from .google_vision_adapter import GoogleVisionAdapter
from .slack_adapter import SlackChatAdapter, SlackClient, SlackNotifier
from .sqlite_upload_store import SQLiteUploadStore
from .tesseract_vision_adapter import TesseractVisionAdapter

__all__ = [
    "GoogleDriveAdapter",
    "GoogleVisionAdapter",
    "SQLiteUploadStore",
    "SlackChatAdapter",
    "SlackClient",
    "SlackNotifier",
    "TesseractVisionAdapter",
]
