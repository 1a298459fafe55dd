import json
import logging

from app.logger import JsonFormatter, setup_logging


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("app.services.items", logging.WARNING, __file__, 1, "item %s stuck", (7,), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_context():
    data = json.loads(JsonFormatter().format(_record(user_id="u-1", item_id=7)))
    assert data["level"] == "warning"
    assert data["logger"] == "app.services.items"
    assert data["message"] == "item 7 stuck"
    assert data["user_id"] == "u-1"
    assert data["item_id"] == 7
    assert "session_id" not in data


def test_json_formatter_keeps_non_ascii():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "책상", (), None)
    assert "책상" in JsonFormatter().format(record)


def test_setup_logging_accepts_level_name():
    root = logging.getLogger()
    previous = root.level, list(root.handlers)
    try:
        setup_logging("warning")
        assert root.level == logging.WARNING
        assert any(isinstance(h.formatter, JsonFormatter) for h in root.handlers)
        setup_logging("warning")
        assert sum(isinstance(h.formatter, JsonFormatter) for h in root.handlers) == 1
        assert logging.getLogger("botocore").level == logging.WARNING
    finally:
        root.setLevel(previous[0])
        root.handlers[:] = previous[1]
