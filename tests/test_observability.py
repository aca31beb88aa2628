import io
import json
import logging

import pytest
import structlog

from outbound.observability import configure_logging, get_logger


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


def test_json_logging_writes_event_and_level():
    output = io.StringIO()
    configure_logging(level=logging.DEBUG, output=output)

    get_logger("foo").bind(service="foo").warning("foo service disabled")

    record = json.loads(output.getvalue().strip())
    assert record["event"] == "foo service disabled"
    assert record["level"] == "warning"
    assert record["service"] == "foo"
    assert "timestamp" in record


def test_level_filters_debug_messages():
    output = io.StringIO()
    configure_logging(level=logging.INFO, output=output)

    get_logger("foo").debug("foo: http://localhost/")

    assert output.getvalue() == ""


def test_console_format_is_plain_text():
    output = io.StringIO()
    configure_logging(output=output, json_format=False)

    get_logger("foo").info("using foo service at http://localhost/")

    assert "using foo service at http://localhost/" in output.getvalue()
