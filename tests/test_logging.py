"""Tests for the key=value log formatter."""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator

import pytest

from litestar_stepflow.logging import PACKAGE_LOGGER, KeyValueFormatter, configure_logging

pytestmark = pytest.mark.unit


def make_record(msg: str, **extra: object) -> logging.LogRecord:
    record = logging.LogRecord("litestar_stepflow.engine", logging.INFO, __file__, 1, msg, None, None)
    record.__dict__.update(extra)
    return record


@pytest.fixture
def package_logger() -> Iterator[logging.Logger]:
    logger = logging.getLogger(PACKAGE_LOGGER)
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield logger
    logger.handlers = handlers
    logger.setLevel(level)
    logger.propagate = propagate


class TestKeyValueFormatter:
    """Formatting of records and their extra fields."""

    def test_standard_fields_first(self) -> None:
        line = KeyValueFormatter().format(make_record("Run completed"))

        assert line.startswith("ts=")
        assert ' level=INFO logger=litestar_stepflow.engine msg="Run completed"' in line

    def test_extra_fields_are_appended(self) -> None:
        line = KeyValueFormatter().format(make_record("Executing step", run_id="r1", step="0:echo"))

        assert line.endswith("run_id=r1 step=0:echo")

    def test_values_with_spaces_are_quoted(self) -> None:
        line = KeyValueFormatter().format(make_record("x", error='bad "value" here', empty=""))

        assert 'error="bad \\"value\\" here"' in line
        assert 'empty=""' in line

    def test_exception_is_appended(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, exc_info=sys.exc_info())

        line = KeyValueFormatter().format(record)

        assert "RuntimeError: boom" in line.splitlines()[-1]


class TestConfigureLogging:
    """Installation on the package logger."""

    def test_installs_single_handler(self, package_logger: logging.Logger) -> None:
        configure_logging("debug")
        configure_logging("warning")

        assert len(package_logger.handlers) == 1
        assert isinstance(package_logger.handlers[0].formatter, KeyValueFormatter)
        assert package_logger.level == logging.WARNING
        assert package_logger.propagate is False
