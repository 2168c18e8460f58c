from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

_REPO_ROOT = Path(__file__).resolve().parents[2]
load_dotenv(_REPO_ROOT / ".env", override=False)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


SLACK_BOT_TOKEN = os.getenv("SLACK_BOT_TOKEN", "")
SLACK_SIGNING_SECRET = os.getenv("SLACK_SIGNING_SECRET", "")
TARGET_USER_ID = os.getenv("TARGET_USER_ID", "").strip() or None

GOOGLE_DRIVE_ACCESS_TOKEN = os.getenv("GOOGLE_DRIVE_ACCESS_TOKEN", "")
GOOGLE_DRIVE_FOLDER_ID = os.getenv("GOOGLE_DRIVE_FOLDER_ID", "")
GOOGLE_VISION_API_KEY = os.getenv("GOOGLE_VISION_API_KEY", "")
VISION_PROVIDER = os.getenv("VISION_PROVIDER", "google").strip().lower()
OCR_LANG = os.getenv("OCR_LANG", "eng+kor")

SQLITE_PATH = os.getenv("SQLITE_PATH", "./uploads.db")
LEARNED_RULES_PATH = os.getenv("LEARNED_RULES_PATH", "./data/learned-rules.json")

MAX_FILE_SIZE_MB = _env_int("MAX_FILE_SIZE_MB", 50)
ALLOWED_IMAGE_TYPES = _env_list(
    "ALLOWED_IMAGE_TYPES",
    ("image/jpeg", "image/png", "image/gif", "image/webp", "image/bmp"),
)
CREATE_DATE_FOLDERS = _env_bool("CREATE_DATE_FOLDERS", True)

MAX_RETRY_ATTEMPTS = _env_int("MAX_RETRY_ATTEMPTS", 3)
RETRY_DELAY_MS = _env_int("RETRY_DELAY_MS", 2000)
QUEUE_CONCURRENCY = _env_int("QUEUE_CONCURRENCY", 3)
QUEUE_DRAIN_TIMEOUT_S = _env_float("QUEUE_DRAIN_TIMEOUT_S", 30.0)
EVENT_DEDUP_TTL_SECONDS = _env_float("EVENT_DEDUP_TTL_SECONDS", 3600.0)

SEND_COMPLETION_MESSAGE = _env_bool("SEND_COMPLETION_MESSAGE", True)
SEND_ERROR_MESSAGE = _env_bool("SEND_ERROR_MESSAGE", True)

CLASSIFICATION_ENABLED = _env_bool("CLASSIFICATION_ENABLED", False)
CLASSIFICATION_ROOT_FOLDER_NAME = os.getenv("CLASSIFICATION_ROOT_FOLDER_NAME", "Classified")
CLASSIFICATION_ROOT_FOLDER_ID = os.getenv("CLASSIFICATION_ROOT_FOLDER_ID", "").strip() or None
AUTO_ORGANIZE_THRESHOLD = _env_float("AUTO_ORGANIZE_THRESHOLD", 0.7)
CONTEXT_MESSAGE_LIMIT = _env_int("CONTEXT_MESSAGE_LIMIT", 2)
CONTEXT_PREFER_THREAD = _env_bool("CONTEXT_PREFER_THREAD", True)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_DIR = os.getenv("LOG_DIR", "./logs")
HOST = os.getenv("HOST", "0.0.0.0")
PORT = _env_int("PORT", 3000)


def _check_range(errors: list[str], name: str, value: float, low: float, high: float) -> None:
    if value < low or value > high:
        errors.append(f"{name} must be between {low:g} and {high:g}, got {value:g}")


def validate_settings() -> None:
    """Raise ValueError listing every out-of-range setting."""

    errors: list[str] = []
    _check_range(errors, "MAX_FILE_SIZE_MB", MAX_FILE_SIZE_MB, 1, 1000)
    _check_range(errors, "MAX_RETRY_ATTEMPTS", MAX_RETRY_ATTEMPTS, 1, 10)
    _check_range(errors, "RETRY_DELAY_MS", RETRY_DELAY_MS, 0, 60000)
    _check_range(errors, "QUEUE_CONCURRENCY", QUEUE_CONCURRENCY, 1, 10)
    _check_range(errors, "AUTO_ORGANIZE_THRESHOLD", AUTO_ORGANIZE_THRESHOLD, 0, 1)
    _check_range(errors, "CONTEXT_MESSAGE_LIMIT", CONTEXT_MESSAGE_LIMIT, 0, 20)
    if QUEUE_DRAIN_TIMEOUT_S < 0:
        errors.append("QUEUE_DRAIN_TIMEOUT_S must not be negative")
    if EVENT_DEDUP_TTL_SECONDS <= 0:
        errors.append("EVENT_DEDUP_TTL_SECONDS must be positive")
    if VISION_PROVIDER not in {"google", "tesseract", "none"}:
        errors.append(f"VISION_PROVIDER must be google, tesseract or none, got {VISION_PROVIDER}")
    if not ALLOWED_IMAGE_TYPES:
        errors.append("ALLOWED_IMAGE_TYPES must list at least one MIME type")
    if errors:
        raise ValueError("Invalid configuration: " + "; ".join(errors))
