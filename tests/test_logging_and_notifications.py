import json
import logging

from app.core.enums import NotificationKind
from app.core.logging import CollectFeeJsonFormatter, build_logging_config
from app.core.notifications import CollectingNotificationSink


def test_logging_config_selects_formatter() -> None:
    config = build_logging_config("debug", "json")
    assert config["handlers"]["console"]["formatter"] == "json"
    assert config["loggers"]["app"]["level"] == "DEBUG"
    assert build_logging_config("INFO", "text")["handlers"]["console"]["formatter"] == "standard"


def test_json_formatter_adds_level_and_logger() -> None:
    formatter = CollectFeeJsonFormatter("%(levelname)s %(message)s")
    record = logging.LogRecord("app.payments", logging.INFO, __file__, 1, "paid %s", ("ADM-7",), None)
    record.enrollment_id = 7

    data = json.loads(formatter.format(record))

    assert data["message"] == "paid ADM-7"
    assert data["level"] == "INFO"
    assert data["logger"] == "app.payments"
    assert data["enrollment_id"] == 7


def test_collecting_sink() -> None:
    sink = CollectingNotificationSink()
    sink.notify(NotificationKind.SUCCESS, "Payment successful", "Receipt 1")
    sink.notify("warning", "Amount not applied", "Term 1")

    assert sink.to_list() == [
        {"kind": "success", "title": "Payment successful", "message": "Receipt 1"},
        {"kind": "warning", "title": "Amount not applied", "message": "Term 1"},
    ]
