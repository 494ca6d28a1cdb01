"""
로깅 설정

JSON 포맷(ELK/Loki 수집용) 또는 텍스트 포맷으로 루트 로거를 구성합니다.
워커 로그는 worker_logger()로 남기며 JSON 로그에 worker 필드가 붙습니다.

worker.yaml:
    logging:
      level: INFO
      json_format: true
      log_file: null
"""

import logging
import sys
from typing import Any

from pythonjsonlogger.json import JsonFormatter

TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
JSON_FIELDS = '%(timestamp)s %(level)s %(name)s %(message)s'

# 큐 동작과 무관한 라이브러리 로그는 WARNING 이상만
QUIET_LOGGERS = ('asyncio', 'aiosqlite')


class JobrowJsonFormatter(JsonFormatter):
    """timestamp/level/logger 필드를 고정으로 넣는 JSON 포매터"""

    def add_fields(self, log_record: dict[str, Any], record: logging.LogRecord, message_dict: dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record['timestamp'] = self.formatTime(record)
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record.setdefault('message', record.getMessage())


def _handlers(formatter: logging.Formatter, log_file: str | None) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logging(level: str = "INFO", json_format: bool = True, log_file: str | None = None) -> None:
    """
    루트 로거 구성 (기존 핸들러 교체)

    Args:
        level: 로그 레벨 이름
        json_format: False면 텍스트 포맷
        log_file: 지정 시 stdout과 함께 파일에도 기록
    """
    formatter = JobrowJsonFormatter(JSON_FIELDS) if json_format else logging.Formatter(TEXT_FORMAT)
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        handlers=_handlers(formatter, log_file),
        force=True,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def worker_logger(description: str, name: str = "worker") -> logging.LoggerAdapter:
    """워커 설명을 extra 필드로 붙이는 로거"""
    return logging.LoggerAdapter(logging.getLogger(name), {'worker': description})
