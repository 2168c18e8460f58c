import pytest

from uploader import settings


def test_defaults_are_valid() -> None:
    settings.validate_settings()


def test_out_of_range_values_are_reported(monkeypatch) -> None:
    monkeypatch.setattr(settings, "QUEUE_CONCURRENCY", 0)
    monkeypatch.setattr(settings, "AUTO_ORGANIZE_THRESHOLD", 1.5)
    monkeypatch.setattr(settings, "VISION_PROVIDER", "azure")

    with pytest.raises(ValueError) as excinfo:
        settings.validate_settings()

    message = str(excinfo.value)
    assert "QUEUE_CONCURRENCY" in message
    assert "AUTO_ORGANIZE_THRESHOLD" in message
    assert "VISION_PROVIDER" in message


def test_env_helpers(monkeypatch) -> None:
    monkeypatch.setenv("UPLOADER_TEST_INT", "7")
    monkeypatch.setenv("UPLOADER_TEST_BOOL", "no")
    monkeypatch.setenv("UPLOADER_TEST_LIST", "image/png, image/gif ,")
    monkeypatch.setenv("UPLOADER_TEST_BAD", "seven")

    assert settings._env_int("UPLOADER_TEST_INT", 1) == 7
    assert settings._env_bool("UPLOADER_TEST_BOOL", True) is False
    assert settings._env_list("UPLOADER_TEST_LIST", ()) == ("image/png", "image/gif")
    assert settings._env_float("UPLOADER_TEST_MISSING", 2.5) == 2.5
    with pytest.raises(ValueError):
        settings._env_int("UPLOADER_TEST_BAD", 1)
