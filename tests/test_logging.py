"""Tests for logging setup."""

import pytest
from loguru import logger

from duochat.config.schema import LoggingConfig
from duochat.utils.logging import configure_logging


@pytest.fixture(autouse=True)
def reset_sinks():
    yield
    logger.remove()


def _as_store(message: str) -> None:
    logger.patch(lambda record: record.update(name="duochat.store.file")).info(message)


def test_console_level_from_settings(capsys):
    configure_logging(LoggingConfig(level="INFO"))

    logger.info("room created")
    logger.debug("noise")

    err = capsys.readouterr().err
    assert "room created" in err
    assert "noise" not in err


def test_store_traffic_hidden_unless_verbose(capsys):
    configure_logging(LoggingConfig(level="INFO"))
    _as_store("set ChatRooms/r1")
    assert "set ChatRooms/r1" not in capsys.readouterr().err

    configure_logging(LoggingConfig(level="INFO"), verbose=True)
    _as_store("set ChatRooms/r2")
    logger.debug("details")
    err = capsys.readouterr().err
    assert "set ChatRooms/r2" in err
    assert "details" in err


def test_file_sink_keeps_everything(tmp_path):
    log_file = tmp_path / "logs" / "duochat.log"
    configure_logging(LoggingConfig(level="ERROR", logFile=str(log_file)))

    logger.debug("debug line")
    _as_store("store line")
    logger.remove()

    text = log_file.read_text()
    assert "debug line" in text
    assert "store line" in text
