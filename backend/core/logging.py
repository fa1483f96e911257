"""
Loguru setup for the API process. Modules log through `from loguru import logger`.

Sync passes and lock transitions are logged at INFO/WARNING on stderr; the
per-event transcript trace (DEBUG_TRANSCRIPTS) only shows up at DEBUG, which
the log file always keeps.
"""

import sys
from pathlib import Path

from loguru import logger

from core.config import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> "
    "| <level>{level: <8}</level> "
    "| <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> "
    "- <level>{message}</level>"
)


def configure_logging(level: str | None = None, log_dir: str | None = None) -> None:
    # FastAPI / Uvicorn may have attached handlers already
    logger.remove()

    logger.add(
        sys.stderr,
        level=level or settings.LOG_LEVEL,
        diagnose=False,
        backtrace=settings.ENV == "development",
        enqueue=True,
        format=CONSOLE_FORMAT,
    )

    directory = log_dir if log_dir is not None else settings.LOG_DIR
    if not directory:
        return

    Path(directory).mkdir(parents=True, exist_ok=True)
    logger.add(
        str(Path(directory) / "transcript_sync_{time:YYYY-MM-DD}.log"),
        rotation="00:00",
        retention=f"{settings.LOG_RETENTION_DAYS} days",
        compression="zip",
        level="DEBUG",
        enqueue=True,
        backtrace=False,
    )
