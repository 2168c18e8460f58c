from unittest.mock import Mock

import pytest
import requests
from PIL import Image

from uploader.adapters.google_drive_adapter import GoogleDriveAdapter
from uploader.adapters.google_vision_adapter import parse_annotations
from uploader.adapters.slack_adapter import SlackChatAdapter, SlackClient, SlackNotifier
from uploader.adapters.tesseract_vision_adapter import dominant_colors
from uploader.adapters.vision_disabled import DisabledVisionAdapter
from uploader.domain.models import SlackFile
from uploader.errors import ExternalServiceError, NotFoundError


def _response(status_code: int = 200, payload: dict | None = None) -> Mock:
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload or {}
    return response


def test_drive_upload_sends_multipart_body(monkeypatch) -> None:
    captured: dict[str, object] = {}

    def _fake_request(method, url, headers, timeout, **kwargs):
        captured.update(method=method, url=url, headers=headers, **kwargs)
        return _response(
            payload={"id": "drive-1", "name": "hero.png", "webViewLink": "https://drive/1"}
        )

    monkeypatch.setattr(requests, "request", _fake_request)

    stored = GoogleDriveAdapter("token").upload_file(b"PNGDATA", "hero.png", "image/png", "folder-1")

    assert stored.file_id == "drive-1"
    assert stored.folder_id == "folder-1"
    assert captured["params"]["uploadType"] == "multipart"
    assert captured["headers"]["Authorization"] == "Bearer token"
    assert b"PNGDATA" in captured["data"]
    assert b'"parents": ["folder-1"]' in captured["data"]


def test_drive_ensure_folder_reuses_existing(monkeypatch) -> None:
    calls: list[str] = []

    def _fake_request(method, url, headers, timeout, **kwargs):
        calls.append(method)
        return _response(payload={"files": [{"id": "existing", "name": "2025-01-02"}]})

    monkeypatch.setattr(requests, "request", _fake_request)

    assert GoogleDriveAdapter("token").ensure_folder("2025-01-02", "base") == "existing"
    assert calls == ["get"]


def test_drive_ensure_folder_creates_missing(monkeypatch) -> None:
    responses = [_response(payload={"files": []}), _response(payload={"id": "new-folder"})]
    monkeypatch.setattr(requests, "request", lambda *args, **kwargs: responses.pop(0))

    assert GoogleDriveAdapter("token").ensure_folder("Other", "root") == "new-folder"


def test_drive_status_codes_map_to_errors(monkeypatch) -> None:
    adapter = GoogleDriveAdapter("token")

    monkeypatch.setattr(requests, "request", lambda *args, **kwargs: _response(404))
    with pytest.raises(NotFoundError):
        adapter.copy_file("drive-1", "folder-1", "a.png")

    monkeypatch.setattr(requests, "request", lambda *args, **kwargs: _response(401))
    with pytest.raises(ExternalServiceError) as excinfo:
        adapter.file_exists("folder-1", "a.png")
    assert excinfo.value.status_code == 401


def test_drive_transport_errors_are_wrapped(monkeypatch) -> None:
    def _boom(*args, **kwargs):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(requests, "request", _boom)

    with pytest.raises(ExternalServiceError):
        GoogleDriveAdapter("token").file_exists("folder-1", "a.png")


def test_slack_client_maps_api_errors(monkeypatch) -> None:
    client = SlackClient("xoxb-test")
    monkeypatch.setattr(
        requests, "get", lambda *args, **kwargs: _response(payload={"ok": False, "error": "file_not_found"})
    )
    with pytest.raises(NotFoundError):
        client.call("files.info", {"file": "F0123456789"})

    monkeypatch.setattr(
        requests, "get", lambda *args, **kwargs: _response(payload={"ok": False, "error": "ratelimited"})
    )
    with pytest.raises(ExternalServiceError):
        client.call("files.info", {"file": "F0123456789"})


def test_slack_file_info_reads_share_details() -> None:
    client = Mock()
    client.call.return_value = {
        "ok": True,
        "file": {
            "id": "F0123456789",
            "name": "hero.png",
            "mimetype": "image/png",
            "size": 2048,
            "user": "U0123456789",
            "url_private_download": "https://files.slack.com/hero.png",
            "shares": {
                "public": {
                    "C0123456789": [{"ts": "1700000001.000200", "thread_ts": "1700000000.000100"}]
                }
            },
        },
    }

    slack_file = SlackChatAdapter(client).get_file_info("F0123456789")

    assert slack_file.channel_id == "C0123456789"
    assert slack_file.timestamp == "1700000001.000200"
    assert slack_file.thread_ts == "1700000000.000100"
    assert slack_file.download_url == "https://files.slack.com/hero.png"


def _slack_file(**overrides) -> SlackFile:
    values = {
        "file_id": "F0123456789",
        "name": "hero.png",
        "mime_type": "image/png",
        "size": 2048,
        "user_id": "U0123456789",
        "channel_id": "C0123456789",
        "timestamp": "1700000010.000000",
    }
    values.update(overrides)
    return SlackFile(**values)


def test_thread_replies_are_preferred_context() -> None:
    client = Mock()
    client.call.return_value = {
        "messages": [{"user": "U1", "text": "boss design", "ts": "1"}, {"user": "U2", "text": " "}]
    }

    context = SlackChatAdapter(client).fetch_message_context(
        _slack_file(thread_ts="1700000000.000100")
    )

    assert context.source == "thread"
    assert context.text == "boss design"
    assert client.call.call_args.args[0] == "conversations.replies"


def test_history_context_keeps_uploader_messages_around_the_upload() -> None:
    client = Mock()
    client.call.side_effect = [
        {
            "messages": [
                {"user": "U0123456789", "text": "before two", "ts": "1700000009.0"},
                {"user": "U0000000000", "text": "someone else", "ts": "1700000008.0"},
                {"user": "U0123456789", "text": "before one", "ts": "1700000007.0"},
                {"user": "U0123456789", "text": "before zero", "ts": "1700000006.0"},
            ]
        },
        {"messages": [{"user": "U0123456789", "text": "after", "ts": "1700000011.0"}]},
    ]

    context = SlackChatAdapter(client, context_limit=2).fetch_message_context(_slack_file())

    assert context.source == "user_messages"
    assert [message.text for message in context.messages] == ["before one", "before two", "after"]


def test_context_without_channel_is_empty() -> None:
    client = Mock()

    context = SlackChatAdapter(client).fetch_message_context(_slack_file(channel_id=None))

    assert context.messages == []
    client.call.assert_not_called()


def test_download_requires_url() -> None:
    with pytest.raises(ExternalServiceError):
        SlackChatAdapter(Mock()).download_file(_slack_file())


def test_notifier_posts_in_thread() -> None:
    client = Mock()

    SlackNotifier(client).notify_success(
        "C0123456789",
        {
            "filename": "hero.png",
            "file_size": 2048,
            "url": "https://drive/1",
            "category": "Other",
            "confidence": 0.5,
            "thread_ts": "1700000000.000100",
        },
    )

    method, params = client.call.call_args.args
    assert method == "chat.postMessage"
    assert params["thread_ts"] == "1700000000.000100"
    assert "hero.png" in params["text"]
    assert "2.0 KB" in params["text"]
    assert "Category: Other (50%)" in params["text"]
    assert client.call.call_args.kwargs == {"post": True}


def test_vision_annotations_are_parsed() -> None:
    analysis = parse_annotations(
        {
            "labelAnnotations": [
                {"description": "Cartoon", "score": 0.7},
                {"description": "Anime", "score": 0.93},
            ],
            "textAnnotations": [{"description": "STAGE 1\nSTART"}, {"description": "STAGE"}],
            "imagePropertiesAnnotation": {
                "dominantColors": {
                    "colors": [
                        {"color": {"red": 10, "green": 20, "blue": 30}, "pixelFraction": 0.5}
                    ]
                }
            },
            "faceAnnotations": [{}, {}],
        }
    )

    assert [label.description for label in analysis.labels] == ["Anime", "Cartoon"]
    assert analysis.text == "STAGE 1\nSTART"
    assert analysis.colors[0].pixel_fraction == 0.5
    assert analysis.face_count == 2


def test_vision_without_faces_reports_zero() -> None:
    analysis = parse_annotations({})

    assert analysis.face_count == 0
    assert analysis.labels == []


def test_dominant_colors_of_a_flat_image() -> None:
    colors = dominant_colors(Image.new("RGB", (20, 20), (200, 10, 10)))

    assert len(colors) == 1
    assert colors[0].pixel_fraction == 1.0
    assert (colors[0].red, colors[0].green, colors[0].blue) == (200, 10, 10)


def test_disabled_vision_has_no_signals() -> None:
    assert DisabledVisionAdapter().analyze(b"img").has_signals() is False
