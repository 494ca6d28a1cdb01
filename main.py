"""
jobrow 진입점

jobs 테이블을 준비하고 워커풀을 실행합니다.

사용법:
    python main.py                 # 워커 실행 (jobs 테이블이 없으면 생성)
    python main.py worker          # 워커 실행
    python main.py init-db         # jobs 테이블만 생성
    python main.py --config ./config worker
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any

import yaml

from common.logging import setup_logging
from database import get_db
from database.registry import DatabaseRegistry
from job.model import QueueConfig
from record.schema import create_jobs_table
from worker.main import WorkerConfig, WorkerPool, load_jobs

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "config"


def load_config(config_path: Path) -> dict[str, Any]:
    """database.yaml + worker.yaml 병합"""
    config: dict[str, Any] = {}
    for file_name in ("database.yaml", "worker.yaml"):
        with open(config_path / file_name, encoding="utf-8") as f:
            config.update(yaml.safe_load(f) or {})
    return config


async def init_db(config: dict[str, Any]) -> None:
    """jobs 테이블 생성"""
    queue_cfg = config.get("queue", {})
    database = queue_cfg.get("database", "default")
    await create_jobs_table(get_db(database), queue_cfg.get("extensions", []))


async def run_worker(config: dict[str, Any], stop_event: asyncio.Event) -> None:
    """워커풀 실행"""
    worker_config = WorkerConfig(**config.get("worker", {}))
    loaded = load_jobs(worker_config.jobs_package)
    logger.info(f"Loaded {len(loaded)} job modules from {worker_config.jobs_package}")

    queue_config = QueueConfig(database=worker_config.database)
    worker_pool = WorkerPool(worker_config, queue_config)

    async def wait_stop():
        await stop_event.wait()
        await worker_pool.stop()

    stopper = asyncio.create_task(wait_stop())
    try:
        await worker_pool.start()
    finally:
        stopper.cancel()


async def main(command: str, config_path: Path) -> None:
    """메인 함수"""
    config = load_config(config_path)

    log_cfg = config.get("logging", {})
    setup_logging(
        level=log_cfg.get("level", "INFO"),
        json_format=log_cfg.get("json_format", True),
        log_file=log_cfg.get("log_file"),
    )

    db_names = {
        config.get("queue", {}).get("database", "default"),
        config.get("worker", {}).get("database", "default"),
    }
    await DatabaseRegistry.init_from_config(config, sorted(db_names))

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        stop_event.set()

    # Windows는 add_signal_handler를 지원하지 않음
    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

    try:
        await init_db(config)
        if command == "worker":
            await run_worker(config, stop_event)
    except asyncio.CancelledError:
        logger.info("Tasks cancelled")
    finally:
        await DatabaseRegistry.close_all()
        logger.info("jobrow stopped")


def run(argv: list[str] | None = None) -> None:
    """콘솔 스크립트 진입점"""
    parser = argparse.ArgumentParser(prog="jobrow", description="durable job queue worker")
    parser.add_argument("command", nargs="?", default="worker", choices=["worker", "init-db"])
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="config directory")
    args = parser.parse_args(argv)

    try:
        asyncio.run(main(args.command, args.config))
    except KeyboardInterrupt:
        print("\nShutdown requested by user")


if __name__ == "__main__":
    run()
