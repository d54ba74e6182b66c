# tests/unit/logging/test_unit_logging.py
"""Tests for logging/logger.py, logging/context.py and logging/handlers.py."""

from __future__ import annotations

import json
import logging
import sys
from logging.handlers import RotatingFileHandler

import pytest

from reprostore.logging.context import (
    clear_context,
    get_context,
    set_bundle_context,
    set_ingest_context,
    set_stage,
)
from reprostore.logging.handlers import create_rotating_handler, parse_size
from reprostore.logging.logger import (
    ROOT_LOGGER_NAME,
    JsonFormatter,
    TextFormatter,
    get_logger,
    setup_logging,
)


@pytest.fixture(autouse=True)
def _reset():
    clear_context()
    yield
    clear_context()
    logging.getLogger(ROOT_LOGGER_NAME).handlers.clear()


def _record(msg: str = "hello %s", args: tuple = ("world",), **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="reprostore.test", level=logging.INFO, pathname=__file__,
        lineno=1, msg=msg, args=args, exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestContext:
    def test_empty_by_default(self):
        assert get_context().as_dict() == {}

    def test_ingest_and_stage(self):
        set_ingest_context("upload_1a2b3c4d")
        set_stage("extract")
        set_bundle_context("rb_00000001")
        assert get_context().as_dict() == {
            "upload_id": "upload_1a2b3c4d",
            "bundle_id": "rb_00000001",
            "stage": "extract",
        }

    def test_new_ingest_resets_bundle(self):
        set_bundle_context("rb_00000001")
        set_ingest_context("upload_ffffffff")
        assert get_context().bundle_id is None

    def test_clear(self):
        set_ingest_context("upload_1a2b3c4d", bundle_id="rb_1")
        clear_context()
        assert get_context().upload_id is None
        assert get_context().bundle_id is None


class TestFormatters:
    def test_json_formatter(self):
        set_ingest_context("upload_1a2b3c4d")
        payload = json.loads(JsonFormatter().format(_record()))
        assert payload["level"] == "INFO"
        assert payload["logger"] == "reprostore.test"
        assert payload["message"] == "hello world"
        assert payload["context"] == {"upload_id": "upload_1a2b3c4d"}

    def test_json_formatter_extra_data(self):
        payload = json.loads(JsonFormatter().format(_record(data={"bytes": 12})))
        assert payload["data"] == {"bytes": 12}
        assert "context" not in payload

    def test_json_formatter_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record()
            record.exc_info = sys.exc_info()
        payload = json.loads(JsonFormatter().format(record))
        assert "RuntimeError: boom" in payload["exception"]

    def test_text_formatter(self):
        set_ingest_context("upload_1a2b3c4d")
        set_bundle_context("rb_00000001")
        set_stage("commit")
        line = TextFormatter().format(_record())
        assert "[INFO    ]" in line
        assert "[upload_1a2b3c4d]" in line
        assert "[rb_00000001]" in line
        assert "(commit)" in line
        assert line.endswith("- hello world")


class TestSetup:
    def test_get_logger_namespaced(self):
        assert get_logger("ingest.pipeline").name == "reprostore.ingest.pipeline"

    def test_setup_replaces_handlers(self):
        setup_logging(level="DEBUG", log_format="text")
        setup_logging(level="WARNING", log_format="json")
        root = logging.getLogger(ROOT_LOGGER_NAME)
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)

    def test_setup_with_file(self, tmp_path):
        log_file = tmp_path / "logs" / "reprostore.log"
        setup_logging(level="INFO", log_format="json", log_file=str(log_file))
        get_logger("test").info("written to file")
        for handler in logging.getLogger(ROOT_LOGGER_NAME).handlers:
            handler.flush()
        assert "written to file" in log_file.read_text(encoding="utf-8")


class TestHandlers:
    @pytest.mark.parametrize("text,expected", [
        ("10MB", 10 * 1024 * 1024),
        ("512kb", 512 * 1024),
        ("1 GB", 1024 ** 3),
        ("2048", 2048),
    ])
    def test_parse_size(self, text, expected):
        assert parse_size(text) == expected

    def test_parse_size_invalid(self):
        with pytest.raises(ValueError, match="Invalid size format"):
            parse_size("ten megabytes")

    def test_create_rotating_handler(self, tmp_path):
        handler = create_rotating_handler(tmp_path / "a" / "b.log", rotation="1KB", retention=3)
        assert isinstance(handler, RotatingFileHandler)
        assert handler.maxBytes == 1024
        assert handler.backupCount == 3
        assert (tmp_path / "a").is_dir()
        handler.close()

    def test_rotation_keeps_retention_backups(self, tmp_path):
        log_file = tmp_path / "reprostore.log"
        setup_logging(level="INFO", log_format="text", log_file=str(log_file),
                      rotation="1KB", retention=2)
        log = get_logger("ingest.pipeline")
        for n in range(200):
            log.info("Committed bundle rb_%08x to bundles/rb_%08x", n, n)
        for handler in logging.getLogger(ROOT_LOGGER_NAME).handlers:
            handler.close()

        names = sorted(p.name for p in tmp_path.iterdir())
        assert names == ["reprostore.log", "reprostore.log.1", "reprostore.log.2"]
        assert log_file.stat().st_size <= 1024
