import logging
import sys

from image_staging.logger import get_logger, setup_logger


def _stderr_handlers(logger: logging.Logger) -> list[logging.Handler]:
    return [h for h in logger.handlers if isinstance(h, logging.StreamHandler) and h.stream is sys.stderr]


def test_setup_logger_is_idempotent():
    setup_logger()
    logger = setup_logger()
    assert len(_stderr_handlers(logger)) == 1
    assert logger.propagate is False


def test_env_level_override(monkeypatch):
    monkeypatch.setenv("IMAGE_STAGING_LOG_LEVEL", "debug")
    assert setup_logger().level == logging.DEBUG
    monkeypatch.setenv("IMAGE_STAGING_LOG_LEVEL", "nonsense")
    assert setup_logger(logging.WARNING).level == logging.WARNING
    monkeypatch.delenv("IMAGE_STAGING_LOG_LEVEL")
    setup_logger()


def test_category_filter(monkeypatch):
    monkeypatch.setenv("IMAGE_STAGING_LOG_CATS", "staging, store")
    logger = setup_logger()
    (handler,) = _stderr_handlers(logger)

    def record(name: str) -> logging.LogRecord:
        return logging.LogRecord(name, logging.INFO, __file__, 1, "msg", None, None)

    assert handler.filter(record("image_staging.staging"))
    assert not handler.filter(record("image_staging.preview"))

    monkeypatch.delenv("IMAGE_STAGING_LOG_CATS")
    setup_logger()
    assert handler.filter(record("image_staging.preview"))


def test_get_logger_returns_child():
    assert get_logger("transforms").name == "image_staging.transforms"
    assert get_logger().name == "image_staging"
