import json
import time
from unittest.mock import Mock

from fastapi.testclient import TestClient

from uploader.api import create_app
from uploader.domain.models import FileSharedEvent
from uploader.services.task_queue import DrainResult
from uploader.slack_verification import compute_signature, verify_slack_signature

_SECRET = "signing-secret"


def _pipeline() -> Mock:
    pipeline = Mock()
    pipeline.health.return_value = {"queue": {"queued": 0}, "uploads": {"total": 0}}
    pipeline.shutdown.return_value = DrainResult(drained=True, aborted=0, still_running=0)
    return pipeline


def _signed_headers(body: bytes, timestamp: str | None = None) -> dict[str, str]:
    timestamp = timestamp or str(int(time.time()))
    return {
        "X-Slack-Request-Timestamp": timestamp,
        "X-Slack-Signature": compute_signature(_SECRET, timestamp, body),
        "Content-Type": "application/json",
    }


def _client(pipeline: Mock, secret: str = _SECRET) -> TestClient:
    return TestClient(create_app({"upload_pipeline": pipeline}, signing_secret=secret))


def test_signature_verification() -> None:
    body = b'{"type":"event_callback"}'
    signature = compute_signature(_SECRET, "1700000000", body)

    assert verify_slack_signature(_SECRET, "1700000000", signature, body, now=1700000100)
    assert not verify_slack_signature(_SECRET, "1700000000", signature, body, now=1700000400)
    assert not verify_slack_signature("other", "1700000000", signature, body, now=1700000100)
    assert not verify_slack_signature(_SECRET, "1700000000", None, body, now=1700000100)
    assert not verify_slack_signature(_SECRET, "soon", signature, body, now=1700000100)
    assert not verify_slack_signature(_SECRET, "1700000000", "v0=\u00e9", body, now=1700000100)


def test_url_verification_returns_challenge() -> None:
    body = json.dumps({"type": "url_verification", "challenge": "abc123"}).encode()

    with _client(_pipeline()) as client:
        response = client.post("/slack/events", content=body, headers=_signed_headers(body))

    assert response.status_code == 200
    assert response.json() == {"challenge": "abc123"}


def test_unsigned_requests_are_rejected() -> None:
    pipeline = _pipeline()
    body = json.dumps({"type": "url_verification", "challenge": "abc123"}).encode()
    timestamp = str(int(time.time()))

    with _client(pipeline) as client:
        responses = [
            client.post(
                "/slack/events",
                content=body,
                headers={"X-Slack-Request-Timestamp": timestamp, "X-Slack-Signature": signature},
            )
            for signature in ("v0=bad", b"v0=\xe9")
        ]

    assert [response.status_code for response in responses] == [401, 401]
    pipeline.accept_event.assert_not_called()


def test_file_shared_event_is_taken_in_after_acknowledging() -> None:
    pipeline = _pipeline()
    shared = FileSharedEvent("F0123456789", "U0123456789", "C0123456789", "Ev1")
    pipeline.accept_event.return_value = shared
    payload = {
        "type": "event_callback",
        "event_id": "Ev1",
        "event": {
            "type": "file_shared",
            "file_id": "F0123456789",
            "user_id": "U0123456789",
            "channel_id": "C0123456789",
        },
    }
    body = json.dumps(payload).encode()

    with _client(pipeline) as client:
        response = client.post("/slack/events", content=body, headers=_signed_headers(body))

    assert response.json() == {"ok": True}
    pipeline.accept_event.assert_called_once_with(payload["event"], "Ev1")
    pipeline.intake.assert_called_once_with(shared)


def test_redelivered_event_is_not_taken_in() -> None:
    pipeline = _pipeline()
    pipeline.accept_event.return_value = None
    body = json.dumps(
        {"type": "event_callback", "event_id": "Ev1", "event": {"type": "file_shared"}}
    ).encode()

    with _client(pipeline, secret="") as client:
        response = client.post("/slack/events", content=body)

    assert response.status_code == 200
    pipeline.intake.assert_not_called()


def test_other_event_types_are_ignored() -> None:
    pipeline = _pipeline()
    body = json.dumps({"type": "event_callback", "event": {"type": "message"}}).encode()

    with _client(pipeline, secret="") as client:
        response = client.post("/slack/events", content=body)

    assert response.json() == {"ok": True}
    pipeline.accept_event.assert_not_called()


def test_invalid_json_is_a_bad_request() -> None:
    with _client(_pipeline(), secret="") as client:
        response = client.post("/slack/events", content=b"{nope")

    assert response.status_code == 400


def test_health_reports_pipeline_state_and_drains_on_shutdown() -> None:
    pipeline = _pipeline()

    with _client(pipeline) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["uploads"] == {"total": 0}
    pipeline.shutdown.assert_called_once()
