"""
로깅 설정 테스트

실행: python -m pytest test/logging_test.py -v
"""

import json
import logging

import pytest

from common.logging import setup_logging, worker_logger


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:

    def test_json_format(self, capsys, restore_root_logger):
        setup_logging(level="DEBUG", json_format=True)
        worker_logger("worker #1", "worker.main").info("Executing EchoJob")

        line = capsys.readouterr().out.strip().splitlines()[-1]
        payload = json.loads(line)
        assert payload['message'] == "Executing EchoJob"
        assert payload['level'] == "INFO"
        assert payload['logger'] == "worker.main"
        assert payload['worker'] == "worker #1"

    def test_text_format(self, capsys, restore_root_logger):
        setup_logging(level="INFO", json_format=False)
        logging.getLogger("jobrow").info("plain message")

        out = capsys.readouterr().out
        assert " - jobrow - INFO - plain message" in out

    def test_library_loggers_quieted(self, restore_root_logger):
        setup_logging(level="DEBUG", json_format=False)
        assert logging.getLogger('aiosqlite').level == logging.WARNING
