import logging
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from transport.logging_config import TextFormatter, configure_logging, get_log_level


@pytest.fixture
def restore_transport_logger():
    logger = logging.getLogger("transport")
    saved = (logger.level, list(logger.handlers), logger.propagate)
    yield logger
    logger.setLevel(saved[0])
    logger.handlers[:] = saved[1]
    logger.propagate = saved[2]


def test_level_from_environment(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    assert get_log_level() == logging.DEBUG
    monkeypatch.setenv("LOG_LEVEL", "chatty")
    assert get_log_level() == logging.INFO
    monkeypatch.delenv("LOG_LEVEL")
    assert get_log_level("WARNING") == logging.WARNING


def test_configure_twice_keeps_one_handler(restore_transport_logger):
    configure_logging(logging.WARNING)
    logger = configure_logging(logging.ERROR)
    assert logger is restore_transport_logger
    assert logger.level == logging.ERROR
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, TextFormatter)


def test_formatter_shortens_logger_name():
    record = logging.LogRecord("transport.simulation", logging.INFO, "simulation.py", 12,
                               "Finished after %d steps", (3,), None)
    line = TextFormatter().format(record)
    assert "INFO" in line
    assert "[simulation] Finished after 3 steps" in line
    assert "simulation.py:12" not in line

    record.levelno, record.levelname = logging.ERROR, "ERROR"
    assert "(simulation.py:12)" in TextFormatter().format(record)
