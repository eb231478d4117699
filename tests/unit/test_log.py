from __future__ import annotations

import json
import logging

from reqflow.core.config import LoggingConfig
from reqflow.core.log import JsonFormatter, configure_logging


def test_json_formatter_includes_extra_fields() -> None:
    record = logging.LogRecord("reqflow.engine", logging.WARNING, __file__, 1, "attempt_failed", (), None)
    record.operation = "api.get_todos"
    record.failures = 2

    payload = json.loads(JsonFormatter().format(record))
    assert payload == {
        "event": "attempt_failed",
        "failures": 2,
        "level": "warning",
        "logger": "reqflow.engine",
        "operation": "api.get_todos",
    }


def test_configure_logging_installs_one_handler() -> None:
    root = configure_logging(LoggingConfig(level="debug", json_output=True))
    configure_logging(LoggingConfig(level="debug", json_output=True))
    try:
        assert root.name == "reqflow"
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
        root.setLevel(logging.NOTSET)
