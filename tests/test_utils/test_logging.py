"""Tests for the JSON log formatter and configure_logging."""

from __future__ import annotations

import json
import logging

import pytest

from stock_optimizer.config import LoggingConfig
from stock_optimizer.utils.logging import _JsonFormatter, configure_logging


@pytest.fixture(autouse=True)
def _restore_root_handlers():
    root = logging.getLogger()
    saved = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in saved:
            handler.close()
    root.handlers[:] = saved
    root.setLevel(level)


def _record(**extra) -> logging.LogRecord:
    record = logging.makeLogRecord(
        {"name": "stock_optimizer.optimizer.service", "levelname": "WARNING",
         "levelno": logging.WARNING, "msg": "Excluding %s", "args": ("ZZZ",)}
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    def test_core_fields(self):
        payload = json.loads(_JsonFormatter().format(_record()))
        assert payload["level"] == "WARNING"
        assert payload["logger"] == "stock_optimizer.optimizer.service"
        assert payload["msg"] == "Excluding ZZZ"
        assert payload["ts"].endswith("Z")

    def test_extra_keys_promoted(self):
        payload = json.loads(_JsonFormatter().format(_record(symbol="ZZZ", portfolio_id="p-1")))
        assert payload["symbol"] == "ZZZ"
        assert payload["portfolio_id"] == "p-1"


class TestConfigureLogging:
    def test_file_handler_created(self, tmp_path):
        log_file = tmp_path / "logs" / "run.log"
        configure_logging(LoggingConfig(level="debug", log_file=str(log_file), json_format=True))

        logging.getLogger("stock_optimizer.test").info("hello", extra={"symbol": "AAPL"})
        for handler in logging.getLogger().handlers:
            handler.flush()

        line = log_file.read_text(encoding="utf-8").strip().splitlines()[-1]
        assert json.loads(line)["symbol"] == "AAPL"
        assert logging.getLogger().level == logging.DEBUG

    def test_console_only(self):
        configure_logging(LoggingConfig(log_file=""))
        assert len(logging.getLogger().handlers) == 1
