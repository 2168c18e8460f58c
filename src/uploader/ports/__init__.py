from .chat_port import ChatPort
from .drive_port import DrivePort
from .notifier_port import NotifierPort
from .upload_store_port import UploadStorePort
from .vision_port import VisionPort

__all__ = ["ChatPort", "DrivePort", "NotifierPort", "UploadStorePort", "VisionPort"]
