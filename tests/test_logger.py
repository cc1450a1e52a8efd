"""
Tests for logging configuration and progress reporting.
"""

import io
import logging

from pyshar.logger import ProgressReporter, configure_logging, get_logger


class TestLogger:
    """Test logger hierarchy."""

    def test_get_logger(self):
        """Loggers live under the pyshar namespace."""
        assert get_logger().name == "pyshar"
        assert get_logger("energy").name == "pyshar.energy"
        assert get_logger("pyshar.core.energy").name == "pyshar.core.energy"

    def test_configure_logging(self):
        """Messages reach the configured stream."""
        stream = io.StringIO()
        logger = configure_logging(level=logging.DEBUG, stream=stream)
        get_logger("tests").debug("hello")

        assert "hello" in stream.getvalue()
        assert logger.level == logging.DEBUG


class TestProgressReporter:
    """Test the default progress callback."""

    def test_progress_line(self):
        """Progress is rewritten in place and ends with a newline."""
        stream = io.StringIO()
        reporter = ProgressReporter(stream=stream)

        reporter(1, 2)
        assert stream.getvalue() == "\r> Progress: 1/2\t\t"

        reporter(2, 2)
        assert stream.getvalue().endswith("\r> Progress: 2/2\t\t\n")
