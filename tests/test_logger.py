"""
Tests for logging setup
"""
import logging
import sys

import pytest
from loguru import logger

from utils.logger import get_logger, intercept_stdlib, setup_logger


@pytest.fixture
def restore_logger():
    yield
    logger.remove()
    logger.add(sys.stderr)


def test_setup_creates_log_file(tmp_path, restore_logger):
    log_dir = tmp_path / "logs"
    setup_logger("DEBUG", str(log_dir))

    get_logger("tests").info("hello from the tests")
    logger.complete()

    files = list(log_dir.glob("rustizarr_*.log"))
    assert len(files) == 1
    assert "hello from the tests" in files[0].read_text(encoding="utf-8")


def test_stdlib_records_reach_loguru(restore_logger):
    messages = []
    logger.remove()
    logger.add(messages.append, format="{message}")

    intercept_stdlib("INFO")
    logging.getLogger("uvicorn.error").warning("port already in use")

    assert any("port already in use" in message for message in messages)
