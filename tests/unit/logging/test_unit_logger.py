# tests/unit/logging/test_unit_logger.py - v1
"""Tests for logging/logger.py - logger factory and formatters."""

from __future__ import annotations

import json
import logging

import pytest

from galleryai.config.settings import Settings
from galleryai.logging.context import set_capability_context, set_task_context
from galleryai.logging.logger import (
    ROOT_LOGGER,
    JsonFormatter,
    TextFormatter,
    get_logger,
    setup_logging,
    setup_logging_from_settings,
)


def _record(msg: str = "Hello", level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord(
        name="test", level=level, pathname="", lineno=0, msg=msg, args=(), exc_info=None,
    )


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger(ROOT_LOGGER)
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestJsonFormatter:
    def test_format_basic(self):
        parsed = json.loads(JsonFormatter().format(_record()))
        assert parsed["level"] == "INFO"
        assert parsed["message"] == "Hello"
        assert "timestamp" in parsed
        assert "context" not in parsed

    def test_format_with_context(self):
        set_task_context("task123", "file:a.jpg:10")
        set_capability_context("mobilenet")
        parsed = json.loads(JsonFormatter().format(_record()))
        assert parsed["context"] == {
            "resource_key": "file:a.jpg:10",
            "task_id": "task123",
            "capability": "mobilenet",
        }

    def test_non_ascii_kept(self):
        output = JsonFormatter().format(_record("图像分析完成"))
        assert "图像分析完成" in output

    def test_extra_data(self):
        record = _record()
        record.data = {"cache_key": "k1"}
        parsed = json.loads(JsonFormatter().format(record))
        assert parsed["data"] == {"cache_key": "k1"}


class TestTextFormatter:
    def test_format_basic(self):
        output = TextFormatter().format(_record("Hello text"))
        assert "Hello text" in output
        assert "INFO" in output

    def test_format_with_context(self):
        set_task_context("task123")
        set_capability_context("coco-ssd")
        output = TextFormatter().format(_record())
        assert "[task=task123]" in output
        assert "(coco-ssd)" in output


class TestGetLogger:
    def test_returns_namespaced_logger(self):
        assert get_logger("analysis").name == "galleryai.analysis"


class TestSetupLogging:
    def test_setup_json(self):
        root = setup_logging(level="DEBUG", log_format="json")
        assert root.name == ROOT_LOGGER
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, JsonFormatter)

    def test_setup_text(self):
        root = setup_logging(level="INFO", log_format="text")
        assert isinstance(root.handlers[0].formatter, TextFormatter)

    def test_reinit_does_not_stack_handlers(self):
        setup_logging()
        root = setup_logging()
        assert len(root.handlers) == 1

    def test_with_file(self, tmp_path):
        log_file = tmp_path / "logs" / "gallery.log"
        root = setup_logging(log_file=log_file)
        assert len(root.handlers) == 2
        root.info("written")
        for handler in root.handlers:
            handler.flush()
        assert "written" in log_file.read_text(encoding="utf-8")

    def test_from_settings(self, tmp_path):
        settings = Settings(_env_file=None, log_level="WARNING", log_format="text")
        root = setup_logging_from_settings(settings)
        assert root.level == logging.WARNING
        assert isinstance(root.handlers[0].formatter, TextFormatter)
