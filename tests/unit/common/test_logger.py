"""Tests for logger setup."""

import logging
import logging.handlers
import uuid

import pytest

from worksafe.common.logger import setup_logger
from worksafe.core.config import Settings


@pytest.fixture()
def logger_name():
    name = f"worksafe-test-{uuid.uuid4().hex}"
    yield name
    logging.getLogger(name).handlers.clear()


def test_console_handler_only_by_default(logger_name):
    logger = setup_logger(logger_name, Settings(_env_file=None, log_level="debug"))

    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0], logging.StreamHandler)


def test_rotating_file_handler(logger_name, tmp_path):
    settings = Settings(_env_file=None, log_to_file=True, log_dir=str(tmp_path / "logs"))

    logger = setup_logger(logger_name, settings, max_bytes=1024, backup_count=2)

    file_handlers = [h for h in logger.handlers if isinstance(h, logging.handlers.RotatingFileHandler)]
    assert len(file_handlers) == 1
    assert file_handlers[0].maxBytes == 1024
    assert file_handlers[0].backupCount == 2
    assert (tmp_path / "logs").is_dir()


def test_repeated_setup_does_not_duplicate_handlers(logger_name):
    settings = Settings(_env_file=None)

    setup_logger(logger_name, settings)
    logger = setup_logger(logger_name, settings)

    assert len(logger.handlers) == 1


def test_invalid_level(logger_name):
    with pytest.raises(ValueError):
        setup_logger(logger_name, Settings(_env_file=None, log_level="verbose"))
