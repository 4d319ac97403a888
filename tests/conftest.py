import json
import logging
import sys
from pathlib import Path

import pytest

from sops_context.invoker import TransformInvoker
from sops_context.logger import LOGGER_NAME

FAKE_SOPS = Path(__file__).parent / "fake_sops.py"


@pytest.fixture
def fake_sops_command():
    return [sys.executable, str(FAKE_SOPS)]


@pytest.fixture
def invoker(fake_sops_command):
    return TransformInvoker(fake_sops_command)


@pytest.fixture
def settings_file(tmp_path, fake_sops_command):
    config = {
        "sops": {"command": fake_sops_command, "timeout": 10},
        "server": {"max_workers": 4},
        "logging": {"level": "DEBUG", "file": str(tmp_path / "logs" / "server.log")},
    }
    path = tmp_path / "settings.json"
    path.write_text(json.dumps(config), encoding="utf-8")
    return path


@pytest.fixture
def restore_logger():
    logger = logging.getLogger(LOGGER_NAME)
    handlers, level = list(logger.handlers), logger.level
    yield
    for handler in logger.handlers:
        if handler not in handlers:
            handler.close()
    logger.handlers = handlers
    logger.setLevel(level)
