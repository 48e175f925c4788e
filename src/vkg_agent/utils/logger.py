"""
Logging utility with loguru.

Console output plus two rotating files: everything at DEBUG in vkg.log, and
only the workflow `[TRACE]` step lines in pipeline.log so a single query's
path through load -> generate -> validate -> execute can be read end to end.
"""

import logging
import sys
from pathlib import Path

from loguru import logger

from vkg_agent.config.settings import settings

LOG_DIR = Path(__file__).parent.parent.parent.parent / "data" / "logs"

# httpx logs every Trino poll and SPARQL request at INFO
_NOISY_LOGGERS = ("httpx", "httpcore")


def _is_trace_line(record) -> bool:
    return record["message"].startswith("[TRACE]")


def setup_logger(level: str = None, log_dir: Path = LOG_DIR):
    """
    Configure loguru sinks. Safe to call more than once (sinks are replaced).
    """
    logger.remove()

    logger.add(
        sys.stdout,
        colorize=True,
        format="<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=level or settings.log_level,
    )

    log_dir.mkdir(parents=True, exist_ok=True)
    logger.add(
        log_dir / "vkg.log",
        rotation="10 MB",
        retention="1 week",
        compression="zip",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        level="DEBUG",
    )
    logger.add(
        log_dir / "pipeline.log",
        rotation="10 MB",
        retention="3 days",
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {message}",
        filter=_is_trace_line,
        level="INFO",
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info(f"Logger initialized (level={level or settings.log_level}, files in {log_dir})")
    return logger
