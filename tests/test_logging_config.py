import json
import logging

from coti_mcp.config import CotiConfig, default_config
from coti_mcp.server import JsonFormatter, _log_tool_result, configure_logging
from coti_mcp.tools.outcome import ToolOutcome


def test_logging_level_config():
    level = getattr(logging, default_config.log_level.upper(), logging.INFO)
    assert level in (
        logging.DEBUG,
        logging.INFO,
        logging.WARNING,
        logging.ERROR,
        logging.CRITICAL,
    )


def test_json_formatter_includes_tool_fields():
    record = logging.LogRecord("coti_mcp.server", logging.WARNING, __file__, 1, "tool=%s failed", ("sign_message",), None)
    record.tool = "sign_message"
    record.request_id = "req-1"
    record.error = "not_found"
    payload = json.loads(JsonFormatter().format(record))
    assert payload == {
        "level": "WARNING",
        "message": "tool=sign_message failed",
        "name": "coti_mcp.server",
        "tool": "sign_message",
        "request_id": "req-1",
        "error": "not_found",
    }


def test_json_formatter_omits_missing_extras():
    record = logging.LogRecord("coti_mcp", logging.INFO, __file__, 1, "hello", (), None)
    assert json.loads(JsonFormatter().format(record)) == {"level": "INFO", "message": "hello", "name": "coti_mcp"}


def test_configure_logging_plain_format():
    configure_logging(CotiConfig(log_level="debug", log_format="plain"), force=True)
    assert logging.getLogger().level == logging.DEBUG
    configure_logging(force=True)


def test_log_tool_result_records_metrics():
    from coti_mcp.metrics import default_metrics

    _log_tool_result("sign_message", ToolOutcome.success("ok"))
    _log_tool_result("sign_message", ToolOutcome(text="Error: x", error="downstream_failure"), "req-2")
    snapshot = default_metrics.snapshot()
    assert snapshot["tool_success"] == {"sign_message": 1}
    assert snapshot["tool_error"] == {"sign_message": 1}
    assert snapshot["error_kinds"] == {"downstream_failure": 1}
