import logging

from uploader.logging_config import setup_logging


def test_setup_logging_writes_app_and_error_logs(tmp_path) -> None:
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    try:
        setup_logging(log_dir=str(tmp_path), level="INFO")
        logging.getLogger("uploader.test").info("hello")
        logging.getLogger("uploader.test").error("broken")
        for handler in root.handlers:
            handler.flush()

        assert "hello" in (tmp_path / "app.log").read_text(encoding="utf-8")
        error_log = (tmp_path / "error.log").read_text(encoding="utf-8")
        assert "broken" in error_log
        assert "hello" not in error_log
        assert logging.getLogger("uvicorn.access").level == logging.WARNING
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
