"""Tests for structured log formatting."""

import logging
import sys

from help_assistant.core.logging import (
    ROOT_LOGGER_NAME,
    StructuredFormatter,
    get_logger,
    log_with_context,
)


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="help_assistant.query.pipeline",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Assistant answered",
        args=(),
        exc_info=None,
        func="process",
    )
    record.__dict__.update(extra)
    return record


def test_formatter_renders_fixed_fields_and_context():
    line = StructuredFormatter().format(
        _record(session_id="s-1", stage="retrieving", extra_data={"chunks": 3})
    )

    assert "level=INFO" in line
    assert "logger=help_assistant.query.pipeline" in line
    assert "message=Assistant answered" in line
    assert line.index("session_id=s-1") < line.index("stage=retrieving") < line.index("chunks=3")


def test_formatter_compacts_lists_and_quotes_spaces():
    line = StructuredFormatter().format(
        _record(extra_data={"modules": ["appointments", "blog"], "detail": "two words"})
    )

    assert "modules=[appointments,blog]" in line
    assert 'detail="two words"' in line


def test_formatter_includes_exception_on_one_line():
    try:
        raise ValueError("boom")
    except ValueError:
        record = _record()
        record.exc_info = sys.exc_info()

    line = StructuredFormatter().format(record)

    assert "exception=" in line
    assert "ValueError: boom" in line
    assert "\n" not in line


def test_get_logger_nests_names_under_package():
    assert get_logger("help_assistant.query.cache").name == "help_assistant.query.cache"
    assert get_logger("__main__").name == f"{ROOT_LOGGER_NAME}.__main__"
    assert logging.getLogger(ROOT_LOGGER_NAME).handlers


def test_log_with_context_promotes_context_fields():
    logger = logging.getLogger("help_assistant.tests.context")
    records: list[logging.LogRecord] = []

    class _Collect(logging.Handler):
        def emit(self, record):
            records.append(record)

    handler = _Collect()
    logger.addHandler(handler)
    try:
        log_with_context(logger, logging.WARNING, "msg", session_id="s-9", user_id="u-1", cached=True)
    finally:
        logger.removeHandler(handler)

    assert records[0].session_id == "s-9"
    assert records[0].user_id == "u-1"
    assert records[0].extra_data == {"cached": True}
