from __future__ import annotations

import logging

import requests

from uploader.domain.models import ContextMessage, MessageContext, SlackFile
from uploader.errors import ExternalServiceError, NotFoundError
from uploader.ports.chat_port import ChatPort
from uploader.ports.notifier_port import NotifierPort

logger = logging.getLogger(__name__)

_HISTORY_FETCH_LIMIT = 20
_THREAD_FETCH_LIMIT = 10


class SlackClient:
    """Minimal Slack Web API client over requests."""

    _BASE_URL = "https://slack.com/api"

    def __init__(self, bot_token: str, timeout: float = 30) -> None:
        self._bot_token = bot_token
        self._timeout = timeout

    def call(self, method: str, params: dict | None = None, post: bool = False) -> dict:
        try:
            if post:
                response = requests.post(
                    f"{self._BASE_URL}/{method}",
                    headers={**self.auth_header(), "Content-Type": "application/json; charset=utf-8"},
                    json=params or {},
                    timeout=self._timeout,
                )
            else:
                response = requests.get(
                    f"{self._BASE_URL}/{method}",
                    headers=self.auth_header(),
                    params=params or {},
                    timeout=self._timeout,
                )
        except requests.RequestException as exc:
            raise ExternalServiceError(f"Slack request failed while calling {method}.") from exc
        if response.status_code >= 400:
            raise ExternalServiceError(
                f"Slack API HTTP {response.status_code} while calling {method}.",
                response.status_code,
            )
        payload = response.json()
        if not payload.get("ok"):
            error = payload.get("error", "unknown_error")
            if error in {"file_not_found", "user_not_found", "channel_not_found"}:
                raise NotFoundError(f"Slack API error: {error}")
            raise ExternalServiceError(f"Slack API error: {error}")
        return payload

    def download(self, url: str) -> bytes:
        try:
            response = requests.get(url, headers=self.auth_header(), timeout=self._timeout)
        except requests.RequestException as exc:
            raise ExternalServiceError("Slack file download failed.") from exc
        if response.status_code >= 400:
            raise ExternalServiceError(
                f"Slack file download returned HTTP {response.status_code}.",
                response.status_code,
            )
        return response.content

    def auth_header(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._bot_token}"}


def _share_info(file_payload: dict) -> tuple[str | None, str | None, str | None]:
    """Return (channel, ts, thread_ts) of the first share of a file."""

    shares = file_payload.get("shares") or {}
    for visibility in ("public", "private"):
        for channel_id, entries in (shares.get(visibility) or {}).items():
            if entries:
                entry = entries[0]
                return channel_id, entry.get("ts"), entry.get("thread_ts")
    return None, None, None


class SlackChatAdapter(ChatPort):
    def __init__(
        self, client: SlackClient, context_limit: int = 2, prefer_thread: bool = True
    ) -> None:
        self._client = client
        self._context_limit = context_limit
        self._prefer_thread = prefer_thread

    def get_file_info(self, file_id: str) -> SlackFile:
        payload = self._client.call("files.info", {"file": file_id})
        file_payload = payload.get("file") or {}
        share_channel, share_ts, thread_ts = _share_info(file_payload)
        channels = file_payload.get("channels") or []
        created = file_payload.get("created")
        return SlackFile(
            file_id=file_payload.get("id", file_id),
            name=file_payload.get("name") or file_payload.get("title") or "",
            mime_type=file_payload.get("mimetype", ""),
            size=file_payload.get("size"),
            user_id=file_payload.get("user", ""),
            channel_id=share_channel or (channels[0] if channels else None),
            download_url=file_payload.get("url_private_download")
            or file_payload.get("url_private"),
            timestamp=share_ts or (str(created) if created is not None else None),
            thread_ts=thread_ts,
        )

    def get_user_name(self, user_id: str) -> str | None:
        payload = self._client.call("users.info", {"user": user_id})
        user = payload.get("user") or {}
        profile = user.get("profile") or {}
        return profile.get("display_name") or user.get("real_name") or user.get("name")

    def download_file(self, slack_file: SlackFile) -> bytes:
        if not slack_file.download_url:
            raise ExternalServiceError(f"File {slack_file.file_id} has no download URL")
        content = self._client.download(slack_file.download_url)
        logger.info(f"Downloaded {slack_file.file_id} ({len(content)} bytes)")
        return content

    def fetch_message_context(self, slack_file: SlackFile) -> MessageContext:
        channel_id = slack_file.channel_id
        if not channel_id:
            logger.warning(f"No channel found for {slack_file.file_id}, skipping context")
            return MessageContext()
        if slack_file.thread_ts and self._prefer_thread:
            messages = self._thread_messages(channel_id, slack_file.thread_ts)
            if messages:
                return MessageContext(source="thread", messages=messages)
        if not slack_file.timestamp:
            return MessageContext()
        return MessageContext(
            source="user_messages",
            messages=self._nearby_messages(channel_id, slack_file.user_id, slack_file.timestamp),
        )

    def _thread_messages(self, channel_id: str, thread_ts: str) -> list[ContextMessage]:
        try:
            payload = self._client.call(
                "conversations.replies",
                {"channel": channel_id, "ts": thread_ts, "limit": _THREAD_FETCH_LIMIT},
            )
        except ExternalServiceError as exc:
            logger.warning(f"Failed to read thread {thread_ts} in {channel_id}: {exc}")
            return []
        return [
            ContextMessage(user=msg.get("user"), text=msg["text"], ts=msg.get("ts"))
            for msg in payload.get("messages", [])
            if (msg.get("text") or "").strip()
        ]

    def _nearby_messages(self, channel_id: str, user_id: str, ts: str) -> list[ContextMessage]:
        before = self._history(channel_id, user_id, {"latest": ts})
        after = self._history(channel_id, user_id, {"oldest": ts})
        messages = sorted(before + after, key=lambda msg: float(msg.ts or 0))
        return messages[: self._context_limit * 2]

    def _history(self, channel_id: str, user_id: str, bounds: dict) -> list[ContextMessage]:
        try:
            payload = self._client.call(
                "conversations.history",
                {"channel": channel_id, "limit": _HISTORY_FETCH_LIMIT, **bounds},
            )
        except ExternalServiceError as exc:
            logger.warning(f"Failed to read history of {channel_id}: {exc}")
            return []
        matching = [
            ContextMessage(user=msg.get("user"), text=msg["text"], ts=msg.get("ts"))
            for msg in payload.get("messages", [])
            if msg.get("user") == user_id and (msg.get("text") or "").strip()
        ]
        return matching[: self._context_limit]


def _format_size(size: int | None) -> str:
    if not size:
        return "unknown size"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / 1024 / 1024:.2f} MB"


class SlackNotifier(NotifierPort):
    def __init__(self, client: SlackClient) -> None:
        self._client = client

    def notify_success(self, channel_id: str, summary: dict) -> None:
        lines = [f":white_check_mark: Uploaded *{summary.get('filename', 'file')}* to Google Drive"]
        lines.append(f"Size: {_format_size(summary.get('file_size'))}")
        if summary.get("url"):
            lines.append(f"<{summary['url']}|Open in Drive>")
        if summary.get("category"):
            confidence = summary.get("confidence") or 0.0
            lines.append(f"Category: {summary['category']} ({confidence:.0%})")
        if summary.get("suggested_filename"):
            lines.append(f"Suggested name: {summary['suggested_filename']}")
        self._post(channel_id, "\n".join(lines), summary.get("thread_ts"))

    def notify_failure(self, channel_id: str, summary: dict, error: str) -> None:
        text = (
            f":x: Could not upload *{summary.get('filename', 'file')}* to Google Drive\n"
            f"Error: {error}"
        )
        self._post(channel_id, text, summary.get("thread_ts"))

    def _post(self, channel_id: str, text: str, thread_ts: str | None) -> None:
        params = {"channel": channel_id, "text": text, "unfurl_links": False}
        if thread_ts:
            params["thread_ts"] = thread_ts
        self._client.call("chat.postMessage", params, post=True)
