from __future__ import annotations

import re
import time
from datetime import datetime

from .category_rules import FALLBACK, GROUP, INTERFACE, SCREENSHOT, SOLO
from .models import ImageAnalysis, MessageContext
from .validation import sanitize_filename

MIME_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/bmp": "bmp",
}

GENERIC_PREFIXES = {
    SOLO: "character",
    GROUP: "background",
    INTERFACE: "ui_design",
    SCREENSHOT: "screenshot",
    FALLBACK: "image",
}

_MENTION = re.compile(r"<@[A-Z0-9]+>")
_CHANNEL_MENTION = re.compile(r"<#[A-Z0-9]+\|[^>]+>")
_URL = re.compile(r"https?://\S+")
_UNSAFE = re.compile(r"[^a-zA-Z0-9가-힣_-]")
_UNDERSCORES = re.compile(r"_+")
_ISO_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")
_DATE_STAMP = re.compile(r"\d{8}")
_SEPARATORS = re.compile(r"[_-]+")
_CAPTURE_WORDS = re.compile(r"screenshot|capture", re.IGNORECASE)


def split_extension(name: str) -> tuple[str, str]:
    """
    Split a filename into (base, extension), keeping the dot in the extension.
    """
    base, dot, ext = name.rpartition(".")
    if dot == "":
        return name, ""
    if base == "":
        return "", f".{ext}"
    return base, f".{ext}"


def date_folder_name(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%d")


def timestamped_filename(filename: str, moment: datetime) -> str:
    """
    Append a second-resolution timestamp before the extension.

    Example:
        >>> timestamped_filename("cat.png", datetime(2025, 3, 1, 9, 5, 7))
        'cat_20250301090507.png'
    """
    base, ext = split_extension(filename)
    return f"{base}_{moment.strftime('%Y%m%d%H%M%S')}{ext}"


def _slug(text: str) -> str:
    slug = re.sub(r"\s+", "_", text)
    slug = _UNSAFE.sub("", slug)
    slug = _UNDERSCORES.sub("_", slug)
    return slug.strip("_")


def name_from_context(context: MessageContext | None) -> str | None:
    if context is None:
        return None
    message = next((m for m in context.messages if m.text and m.text.strip()), None)
    if message is None:
        return None
    cleaned = _MENTION.sub("", message.text)
    cleaned = _CHANNEL_MENTION.sub("", cleaned)
    cleaned = _URL.sub("", cleaned)
    cleaned = cleaned.replace("<", "").replace(">", "").strip()
    cleaned = cleaned[:50].strip()
    if len(cleaned) < 3:
        return None
    return _slug(cleaned) or None


def name_from_text(text: str) -> str | None:
    if len(text) < 3:
        return None
    first_line = text.split("\n")[0][:30].strip()
    if len(first_line) < 3:
        return None
    return _slug(first_line) or None


def name_from_labels(analysis: ImageAnalysis) -> str | None:
    top = [label.description for label in analysis.labels if label.score > 0.7][:3]
    if not top:
        return None
    joined = re.sub(r"\s+", "_", "_".join(top))
    return _UNSAFE.sub("", joined).lower() or None


def name_from_original(original_filename: str | None) -> str | None:
    if not original_filename:
        return None
    base, _ = split_extension(original_filename)
    base = _CAPTURE_WORDS.sub("", base)
    base = _ISO_DATE.sub("", base)
    base = _DATE_STAMP.sub("", base)
    base = _SEPARATORS.sub("_", base).strip("_").strip()
    if len(base) < 3:
        return None
    return base


def generic_name(role: str | None, now_ms: int | None = None) -> str:
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    prefix = GENERIC_PREFIXES.get(role or "", "image")
    return f"{prefix}_{str(now_ms)[-6:]}"


def file_extension(original_filename: str | None, mime_type: str | None) -> str:
    if original_filename:
        _, ext = split_extension(original_filename)
        if ext and len(ext) > 1:
            return ext[1:].lower()
    return MIME_EXTENSIONS.get(mime_type or "", "png")


def suggest_filename(
    original_filename: str | None,
    mime_type: str | None,
    context: MessageContext | None,
    analysis: ImageAnalysis,
    category_role: str | None = None,
    now_ms: int | None = None,
) -> str:
    """Build a descriptive filename for a classified image.

    Tries, in order: the uploader's message context, the first OCR line, the
    strongest labels, the cleaned original name, then a generic prefix.
    """

    basename = (
        name_from_context(context)
        or (name_from_text(analysis.text) if analysis.has_text else None)
        or name_from_labels(analysis)
        or name_from_original(original_filename)
        or generic_name(category_role, now_ms)
    )
    extension = file_extension(original_filename, mime_type)
    return sanitize_filename(f"{basename}.{extension}")
